"""Command line entry point: ``python -m weather_reporter --config ./config``."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config import load_config
from .run import Reporter
from .settings import ImproperlyConfigured, load_settings

logger = logging.getLogger("weather_reporter")

LOG_FORMAT = "%(asctime)s weather-reporter: [%(threadName)s] %(name)s %(levelname)s %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="weather-reporter",
        description="Poll weather providers and forward observations to destinations",
    )
    parser.add_argument("--config", type=str, help="Path to a configuration file or directory")
    parser.add_argument("--once", action="store_true", help="Poll every service once and exit")
    parser.add_argument("--log-level", type=str, help="Logging level (default INFO)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ImproperlyConfigured as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error("%s", exc)
        return 2

    level = (args.log_level or settings.log_level).upper()
    if not isinstance(logging.getLevelName(level), int):
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error("invalid log level: %s", level)
        return 2
    logging.basicConfig(level=level, format=LOG_FORMAT)

    config_path = args.config or settings.config_path
    try:
        services = load_config(config_path)
        reporter = Reporter(services, settings)
    except ImproperlyConfigured as exc:
        logger.error("%s", exc)
        return 2

    if args.once:
        return 0 if reporter.run_once() else 1

    reporter.run_forever()
    return 1 if reporter.failed_services else 0


if __name__ == "__main__":
    sys.exit(main())
