#!/usr/bin/env python3
"""
Main entry point for the round-trip arbitrage engine.

Loads the settings file and the signer keypair, starts the nonce and price
refresh tasks, then runs the polling scheduler and/or the large-flow stream
trigger until interrupted.

Usage:
    # Default config (config/settings.yaml)
    python main.py

    # Explicit config and env file, verbose logs
    python main.py --config config/settings.yaml --env-file .env --log-level DEBUG
"""

import argparse
import asyncio
import logging
import sys

import logging_config
from roundtrip_arbitrage.app import ArbitrageApp
from roundtrip_arbitrage.config_loader import DEFAULT_CONFIG_PATH, load_keypair, load_runtime_config
from roundtrip_arbitrage.exceptions import ConfigurationError, ValidationError
from roundtrip_arbitrage.version import get_version

logger = logging.getLogger(__name__)


async def main():
    parser = argparse.ArgumentParser(
        description="Round-trip DEX arbitrage engine (polling and large-flow triggers)"
    )
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Path to settings YAML (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--env-file", help="Path to a .env file (default: search from cwd)")
    parser.add_argument(
        "--audit-dir", help="Directory for logs.txt and big_trades.txt (default: cwd)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()
    if args.log_level == "DEBUG":
        logging_config.setup_debug()
    else:
        logging_config.setup(level=getattr(logging, args.log_level))
    logger.info(f"roundtrip-arbitrage {get_version()}")

    try:
        config = load_runtime_config(args.config, env_file=args.env_file)
    except ValidationError as e:
        logger.error(f"❌ {e}")
        for error in e.details.get("errors", []):
            location = ".".join(str(part) for part in error.get("loc", ()))
            logger.error(f"   {location}: {error.get('msg')}")
        return 1
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return 1

    try:
        keypair = load_keypair(config.node.keypair_path)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return 1

    app = ArbitrageApp(config, keypair, audit_dir=args.audit_dir)

    try:
        await app.start()
        app.log_mode_configuration()
        await app.measure_timing()
        await app.run()
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return 1
    except Exception as e:
        logger.error(f"Engine failed: {e}", exc_info=True)
        return 1
    finally:
        await app.shutdown()

    return 0


def cli():
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
