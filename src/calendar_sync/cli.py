"""Command-line interface for the calendar sync service."""

import argparse
import asyncio
import logging
import sys

from calendar_sync import __version__
from calendar_sync.errors import CalendarSyncError

logger = logging.getLogger(__name__)


async def _refresh_webhooks(user_id: str, account_id: str | None) -> None:
    from calendar_sync.api.app import build_services, create_app
    from calendar_sync.config import get_settings
    from calendar_sync.database.connection import close_db, init_db

    settings = get_settings()
    app = create_app()

    await init_db()
    try:
        build_services(app, settings)
        await app.state.webhook_service.refresh_all(user_id, account_id)
    finally:
        if hasattr(app.state, "publisher"):
            await app.state.publisher.close()
            await app.state.token_provider.oauth.aclose()
        await close_db()


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Calendar Sync - recurring event edits and Google push notifications"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")

    # Refresh command
    refresh_parser = subparsers.add_parser(
        "refresh-webhooks", help="Create or renew Google watch channels for a user"
    )
    refresh_parser.add_argument("--user-id", required=True, help="User ID")
    refresh_parser.add_argument(
        "--account-id",
        default=None,
        help="Only refresh this linked account",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        import uvicorn

        from calendar_sync.config import get_settings

        settings = get_settings()
        uvicorn.run(
            "calendar_sync.api.app:create_app",
            factory=True,
            host=args.host or settings.host,
            port=args.port or settings.port,
        )
        return 0

    try:
        asyncio.run(_refresh_webhooks(args.user_id, args.account_id))
    except CalendarSyncError as e:
        logger.error(f"Webhook refresh failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
