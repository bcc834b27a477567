"""Module executed when running ``python -m moviecat``.

``python -m moviecat`` serves the API; ``python -m moviecat reconcile`` runs a
single season reconciliation pass, for hosts that prefer an external cron
over the built-in scheduler. The two must not share a database: the pass only
holds an in-process lock, so it refuses to run while SEASON_CHECK_ENABLED is
true unless ``--force`` is given.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import uvicorn

from app.config import settings


def serve() -> None:
    """Start the uvicorn server using the configured settings."""

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


async def reconcile_once() -> dict[str, int]:
    from app.database import Database
    from app.main import build_reconciliation, create_tmdb_http_client
    from app.services.catalog_store import CatalogStore
    from app.services.notifications import NotificationService

    database = Database(settings.database_url)
    await database.create_all()
    try:
        async with create_tmdb_http_client() as http_client:
            _, runner = build_reconciliation(
                CatalogStore(database.session_factory),
                NotificationService(database.session_factory),
                http_client,
            )
            result = await runner.run_all()
    finally:
        await database.dispose()
    return result.to_payload()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="moviecat")
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=("serve", "reconcile"),
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="reconcile even though the server scheduler is enabled",
    )
    args = parser.parse_args(argv)

    if args.command == "reconcile":
        if not settings.tmdb_api_key:
            print("TMDB_API_KEY must be set to reconcile seasons", file=sys.stderr)
            return 2
        if settings.season_check_enabled and not args.force:
            print(
                "SEASON_CHECK_ENABLED is true; the server scheduler owns reconciliation. "
                "Set SEASON_CHECK_ENABLED=false for cron use or pass --force.",
                file=sys.stderr,
            )
            return 2
        print(json.dumps(asyncio.run(reconcile_once())))
        return 0

    serve()
    return 0


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    sys.exit(main())
