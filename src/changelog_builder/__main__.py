"""Run the changelog builder API server."""

import argparse
import logging
import sys

from changelog_builder.config import config_exists, load_config
from changelog_builder.web.app import create_app


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="changelog_builder",
        description="Serve the release changelog builder API.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=5000, help="Port to listen on (default: 5000)")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode and debug logging")
    args = parser.parse_args(argv)

    level = "INFO"
    if config_exists():
        try:
            level = load_config().log_level.upper()
        except ValueError as e:
            print(f"Warning: {e}", file=sys.stderr)
    if args.debug:
        level = "DEBUG"

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )

    app = create_app()
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0


if __name__ == "__main__":
    sys.exit(main())
