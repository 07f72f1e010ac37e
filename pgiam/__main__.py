"""Module entrypoint to run `python -m pgiam VALUE`."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

from .config import ConfigurationError, load_config
from .handler import uppercase
from .service import DataService

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Set up root logging from ``LOG_LEVEL`` unless a level is given."""

    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pgiam", description="Upper-case VALUE after reading the configured table.")
    parser.add_argument("value")
    parser.add_argument("--timeout", type=float, default=None, help="Deadline in seconds for a connection refresh.")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    try:
        config = load_config()
    except ConfigurationError as exc:
        print(f"pgiam: {exc}", file=sys.stderr)
        return 2

    service = DataService(config)
    try:
        result = uppercase(args.value, service, timeout=args.timeout)
    finally:
        service.shutdown()
    if result.ok:
        print(result.value)
        return 0
    print(f"pgiam: {result.error}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
