"""
Runs a bridge from a JSON configuration file.

    python -m slackbridge bridge.json
"""

import argparse
import logging
import sys

import trio_asyncio

from slackbridge.bot import Bridge
from slackbridge.config import BridgeConfig
from slackbridge.errors import ConfigError


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="slackbridge", description="Relay IRC channels to Slack."
    )
    parser.add_argument("config", help="Path to the JSON configuration file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = BridgeConfig.from_file(args.config)

    except ConfigError as err:
        logging.getLogger("slackbridge").error("%s", err)
        return 2

    bridge = Bridge.from_config(config)

    try:
        trio_asyncio.run(bridge.start)

    except KeyboardInterrupt:
        pass

    return 0


if __name__ == "__main__":
    sys.exit(main())
