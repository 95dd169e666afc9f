"""
Command line entry point: ``python -m companyhub serve|init-db``.
"""

from __future__ import annotations

import argparse
import logging

import uvicorn

from companyhub.config import get_settings
from companyhub.db import PostgresDbClient
from companyhub.logging_config import configure_logging

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="companyhub")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)
    serve.add_argument("--reload", action="store_true")

    subparsers.add_parser("init-db", help="Create relational tables")

    args = parser.parse_args(argv)
    configure_logging(settings.log_level)

    if args.command == "init-db":
        if not settings.database_url:
            parser.error("DATABASE_URL must be set for init-db")
        # Table creation happens in the client constructor.
        PostgresDbClient(settings.database_url)
        logger.info("Relational schema is up to date")
        return 0

    uvicorn.run(
        "companyhub.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
