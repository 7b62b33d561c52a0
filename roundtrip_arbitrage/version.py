"""Version information for the round-trip arbitrage engine."""

__version__ = "0.1.0"


def get_version() -> str:
    return __version__
