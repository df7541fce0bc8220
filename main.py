"""
Payout Daemon - Main entry point.

Bridges an ITL SMART Hopper and an NV200/SMART Payout to Redis pub/sub.

Usage:
    python main.py -H 127.0.0.1 -p 6379 -d /dev/ttyACM0 -t mypackage.transport:create
"""

import argparse
import asyncio
import logging
import sys

from infrastructure.settings import get_settings, set_settings


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Cash peripheral daemon (SMART Hopper, NV200 + SMART Payout)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--redis-host", "-H",
        type=str,
        default="127.0.0.1",
        help="Redis host",
    )
    parser.add_argument(
        "--redis-port", "-p",
        type=int,
        default=6379,
        help="Redis port",
    )
    parser.add_argument(
        "--device", "-d",
        type=str,
        default="/dev/ttyACM0",
        help="Serial device of the SSP bus",
    )
    parser.add_argument(
        "--transport", "-t",
        type=str,
        default=None,
        help="SSP transport factory as 'module:callable'",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Configure settings from the command line and run the daemon.

    Returns:
        Exit code (0 normal, 1 Redis unavailable, 3 protocol integrity failure).
    """
    args = parse_args(argv)

    set_settings(
        get_settings().with_overrides(
            redis_host=args.redis_host,
            redis_port=args.redis_port,
            serial_device=args.device,
            transport_factory=args.transport,
        )
    )

    # Imported after the settings are final, the logger reads them on import
    from application.daemon import PayoutDaemon
    from loggers import logger, set_level

    set_level(logging.DEBUG if args.debug else logging.INFO)

    try:
        return asyncio.run(PayoutDaemon().run())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
