"""Command line entry point: ``cont3xt -c /path/to/cont3xt.ini``."""

import argparse
import logging
import sys

import uvicorn

from cont3xt.config import load_settings
from cont3xt.exceptions import ConfigError, DuplicateSourceError
from cont3xt.main import create_app

logger = logging.getLogger("cont3xt")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cont3xt", description="Cont3xt lookup service")
    parser.add_argument("-c", "--config", help="path to the INI config file")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument(
        "--insecure", action="store_true", help="do not verify Elasticsearch certificates"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
        overrides = {}
        if args.debug:
            overrides.update(debug=True, log_level="DEBUG")
        if args.insecure:
            overrides["insecure"] = True
        if overrides:
            cont3xt = settings.cont3xt.model_copy(update=overrides)
            settings = settings.model_copy(update={"cont3xt": cont3xt})
        app = create_app(settings)
    except (ConfigError, DuplicateSourceError) as e:
        print(f"cont3xt: {e.message}", file=sys.stderr)
        return 1

    config = settings.cont3xt
    ssl = {}
    if config.tls_enabled:
        ssl = {"ssl_keyfile": config.key_file, "ssl_certfile": config.cert_file}

    logger.info("Listening on port %d", config.port)
    uvicorn.run(app, host="0.0.0.0", port=config.port, log_level=config.log_level.lower(), **ssl)
    return 0


if __name__ == "__main__":
    sys.exit(main())
