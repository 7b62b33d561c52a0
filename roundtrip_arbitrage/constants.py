"""
Constants and enums for the round-trip arbitrage engine.

Centralizes mint addresses, the static token registry, the recognized program
allow-list and chain fee constants so they are defined once.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class QuoteMode(Enum):
    """Quote retrieval strategy selected by the trigger."""

    REGULAR = "regular"  # polling watchlist
    SIZE_AWARE = "size_aware"  # large-flow triggers


class TriggerKind(Enum):
    """Origin of a pipeline cycle."""

    POLL = "poll"
    BIG_TRADE = "big_trade"


# === CHAIN CONSTANTS ===

LAMPORTS_PER_SOL = 1_000_000_000
TRANSACTION_FEE_LAMPORTS = 5_000
BASE_TX_FEE_SOL = TRANSACTION_FEE_LAMPORTS / LAMPORTS_PER_SOL

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

NATIVE_SYMBOLS = frozenset({"SOL", "WSOL"})

# Targets used when the mother asset is SOL
NATIVE_STABLE_TARGETS = (USDC_MINT, USDT_MINT)


@dataclass(frozen=True)
class TokenMeta:
    """Static metadata for a token mint."""

    mint: str
    decimals: int
    symbol: str


POPULAR_TOKEN_INFO = (
    TokenMeta(SOL_MINT, 9, "SOL"),
    TokenMeta(USDC_MINT, 6, "USDC"),
    TokenMeta(USDT_MINT, 6, "USDT"),
    TokenMeta("JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", 6, "JUP"),
    TokenMeta("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", 5, "BONK"),
    TokenMeta("EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm", 6, "WIF"),
    TokenMeta("mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So", 9, "mSOL"),
    TokenMeta("J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn", 9, "JitoSOL"),
    TokenMeta("4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", 6, "RAY"),
    TokenMeta("HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3", 6, "PYTH"),
)

TOKEN_INFO_BY_MINT: Dict[str, TokenMeta] = {t.mint: t for t in POPULAR_TOKEN_INFO}

# Program id -> display name. Trades not touching one of these are ignored.
RECOGNIZED_PROGRAMS: Dict[str, str] = {
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4": "Jupiter v6",
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8": "Raydium AMM",
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK": "Raydium CLMM",
    "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C": "Raydium CPMM",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc": "Orca Whirlpool",
    "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo": "Meteora DLMM",
    "Eo7WjKq67rjJQSZxS6z3YkapzY3eMj6Xy8X5EQVn5UaB": "Meteora Pools",
    "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA": "Pump.fun AMM",
    "PhoeNiXZ8ByJGLkxNfZRnkUfjvmuYqLR89jjFHGqdXY": "Phoenix",
}


def lookup_token(mint: str) -> Optional[TokenMeta]:
    """Return registry metadata for a mint, or None when unknown."""
    return TOKEN_INFO_BY_MINT.get(mint)


def token_symbol(mint: str) -> str:
    """Symbol for a mint, "UNKNOWN" when not in the registry."""
    meta = TOKEN_INFO_BY_MINT.get(mint)
    return meta.symbol if meta else "UNKNOWN"


def resolve_token_meta(mint: str) -> TokenMeta:
    """
    Registry metadata with the polling fallbacks applied.

    Unknown mints default to 6 decimals, except the native mint which is
    always 9 decimals / SOL.
    """
    meta = TOKEN_INFO_BY_MINT.get(mint)
    if meta is not None:
        return meta
    if mint == SOL_MINT:
        return TokenMeta(mint, 9, "SOL")
    return TokenMeta(mint, 6, "UNKNOWN")


def is_native(mint: str, symbol: Optional[str] = None) -> bool:
    """True when the mint (or its symbol) denotes the native asset."""
    return mint == SOL_MINT or (symbol is not None and symbol.upper() in NATIVE_SYMBOLS)
