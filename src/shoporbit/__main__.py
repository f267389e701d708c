"""
Command line entry point.

    shoporbit serve [--config PATH]
    shoporbit init-db [--config PATH]
    shoporbit purge-tokens [--config PATH]
"""

import argparse
import sys

from aiohttp import web
from loguru import logger

from .api import create_app
from .auth import PermissionCatalogError, build_auth_services
from .config import load_config
from .logging_setup import setup_logging


def serve(config) -> None:
    services = build_auth_services(config)
    app = create_app(services)

    logger.info(f"Starting Shop Orbit auth server on {config.host}:{config.port}")
    logger.info(f"Database: {config.database_path}")
    web.run_app(app, host=config.host, port=config.port, print=None)
    logger.info("Server stopped")


def init_db(config) -> None:
    services = build_auth_services(config)
    roles = services.roles.list_roles()
    logger.info(f"Database ready at {config.database_path} with {len(roles)} roles")


def purge_tokens(config) -> None:
    services = build_auth_services(config)
    removed = services.tokens.purge_expired()
    logger.info(f"Purged {removed} expired refresh tokens")


COMMANDS = {
    "serve": serve,
    "init-db": init_db,
    "purge-tokens": purge_tokens,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="shoporbit", description="Shop Orbit auth server")
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=sorted(COMMANDS),
        help="Action to run (default: serve)"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML config file"
    )
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)

    try:
        COMMANDS[args.command](config)
    except PermissionCatalogError as e:
        logger.error(f"Permission catalog check failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
