"""CLI entry point for the Sentry to Slack relay.

Usage:
    python -m sentry_slack_relay [options]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.config
import sys
from typing import NoReturn

from pydantic import ValidationError

from sentry_slack_relay import __version__
from sentry_slack_relay.config import Settings, clear_settings_cache, get_settings
from sentry_slack_relay.server import WebhookServer
from sentry_slack_relay.shutdown import GracefulShutdown

APP_NAME = "Sentry Slack Relay"
APP_VERSION = __version__

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="sentry-slack-relay",
        description="Relay Sentry webhook notifications to Slack channels.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m sentry_slack_relay                   Run the webhook server
  python -m sentry_slack_relay --config-check    Validate config and exit
  python -m sentry_slack_relay --dry-run         Format alerts without posting
  python -m sentry_slack_relay --port 9000       Listen on another port
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )
    parser.add_argument(
        "--config-check",
        action="store_true",
        help="Validate configuration and exit without starting the server",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level (default: from settings)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Format alerts but don't post them to Slack",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Override listen address (default: from settings)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override listen port (default: from settings)",
    )

    return parser


def configure_logging(level: str) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if level == "DEBUG" else "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "aiohttp.access": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)


def print_config_summary(settings: Settings) -> None:
    """Print a summary of the configuration with secrets redacted."""
    summary = settings.redacted_summary()
    print("Configuration:")
    print(f"  Slack token: {summary['slack_bot_token']}")
    print(f"  Backend channel: {summary['slack_channel_backend']}")
    print(f"  Frontend channel: {summary['slack_channel_frontend']}")
    print(f"  Slack API: {summary['slack_api_url']}")
    print(f"  Rate-limit retries: {summary['slack_max_rate_limit_retries']}")
    print(f"  Listen: {summary['listen']}")
    print(f"  Log Level: {summary['log_level']}")
    print(f"  Dry Run: {summary['dry_run']}")
    print()


def validate_config() -> Settings | None:
    """Validate and load configuration.

    Returns:
        Settings instance if valid, None if invalid.
    """
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        print("Configuration validation failed:", file=sys.stderr)
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            print(f"  {field}: {error['msg']}", file=sys.stderr)
        return None


def run_config_check(settings: Settings) -> int:
    """Report whether everything needed for delivery is configured.

    Returns:
        EXIT_SUCCESS when the token and both channels are set,
        EXIT_CONFIG_ERROR otherwise.
    """
    print_config_summary(settings)

    missing = []
    if not settings.slack.enabled:
        missing.append("SLACK_BOT_TOKEN")
    if not settings.slack.channel_backend:
        missing.append("SLACK_CHANNEL_BACKEND")
    if not settings.slack.channel_frontend:
        missing.append("SLACK_CHANNEL_FRONTEND")

    if missing:
        print(f"Missing configuration: {', '.join(missing)}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    print("All checks passed. Ready to run.")
    return EXIT_SUCCESS


async def run_server(settings: Settings, host: str, port: int) -> int:
    """Serve webhooks until a shutdown signal arrives.

    Returns:
        Exit code.
    """
    logger = logging.getLogger(__name__)
    server = WebhookServer.from_settings(settings)

    try:
        async with GracefulShutdown() as shutdown:
            await server.start(host=host, port=port)
            await shutdown.wait()
    except Exception as e:
        logger.exception("Webhook server failed: %s", e)
        return EXIT_ERROR
    finally:
        await server.stop()

    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = validate_config()
    if settings is None:
        sys.exit(EXIT_CONFIG_ERROR)

    configure_logging(args.log_level or settings.log_level)

    if args.config_check:
        sys.exit(run_config_check(settings))

    if args.dry_run:
        settings = settings.model_copy(update={"dry_run": True})

    logging.getLogger(__name__).info("Starting %s v%s", APP_NAME, APP_VERSION)
    exit_code = asyncio.run(
        run_server(
            settings,
            host=args.host or settings.host,
            port=args.port or settings.port,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
