"""Webhook HTTP server relaying Sentry notifications to Slack.

Each upstream Sentry project posts to its own route, which is bound to
one Slack channel. The server also exposes health and Prometheus
metrics endpoints.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aiohttp import web
from prometheus_client import Counter, Histogram, generate_latest

from sentry_slack_relay.alerter.channels.slack import SlackChannel
from sentry_slack_relay.alerter.formatter import SlackFormatter
from sentry_slack_relay.alerter.models import DeliveryResult
from sentry_slack_relay.alerter.payload import normalize
from sentry_slack_relay.config import ConfigurationError

if TYPE_CHECKING:
    from sentry_slack_relay.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 8080

# Type aliases
Handler = Callable[[web.Request], Awaitable[web.Response]]


@dataclass(frozen=True)
class WebhookRoute:
    """A webhook path bound to a Slack channel.

    Attributes:
        name: Short route name used in logs and metrics.
        path: URL path Sentry posts to.
        channel_id: Slack channel id, None if not configured.
        channel_env: Environment variable the channel id is read from.
    """

    name: str
    path: str
    channel_id: str | None
    channel_env: str


# Prometheus metrics
WEBHOOKS_TOTAL = Counter(
    "sentry_relay_webhooks_total",
    "Total number of webhooks received",
    ["route"],
)

DELIVERIES_TOTAL = Counter(
    "sentry_relay_deliveries_total",
    "Slack deliveries by outcome",
    ["route", "outcome"],
)

DELIVERY_LATENCY = Histogram(
    "sentry_relay_delivery_seconds",
    "Time spent formatting and delivering a webhook",
    ["route"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def routes_from_settings(settings: Settings) -> list[WebhookRoute]:
    """Build the backend and frontend webhook routes from settings."""
    return [
        WebhookRoute(
            name="backend",
            path="/api/sentry-backend",
            channel_id=settings.slack.channel_backend,
            channel_env="SLACK_CHANNEL_BACKEND",
        ),
        WebhookRoute(
            name="frontend",
            path="/api/sentry-frontend",
            channel_id=settings.slack.channel_frontend,
            channel_env="SLACK_CHANNEL_FRONTEND",
        ),
    ]


def method_not_allowed() -> web.Response:
    """Build the response for non-POST requests."""
    return web.json_response(
        {"error": "Method not allowed"},
        status=405,
        headers={"Allow": "POST"},
    )


class WebhookServer:
    """aiohttp server hosting the Sentry webhook routes.

    Example:
        ```python
        settings = get_settings()
        server = WebhookServer.from_settings(settings)
        await server.start(host=settings.host, port=settings.port)
        ...
        await server.stop()
        ```
    """

    def __init__(
        self,
        routes: list[WebhookRoute],
        channel: SlackChannel,
        *,
        formatter: SlackFormatter | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            routes: Webhook routes to serve.
            channel: Slack delivery client shared by all routes.
            formatter: Message formatter, a default one if omitted.
        """
        self.routes = routes
        self.channel = channel
        self.formatter = formatter or SlackFormatter()
        self._start_time = time.time()

        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> WebhookServer:
        """Create a server wired from application settings."""
        channel = SlackChannel.from_settings(settings.slack, dry_run=settings.dry_run)
        return cls(routes_from_settings(settings), channel)

    async def relay(self, route: WebhookRoute, body: Any) -> DeliveryResult:
        """Format a webhook body and deliver it to the route's channel.

        Raises:
            ConfigurationError: If the route's channel is not configured.
            DeliveryError: If Slack rejects the message.
        """
        if not route.channel_id:
            raise ConfigurationError(f"Missing {route.channel_env}")

        alert = normalize(body)
        logger.info(
            "Relaying %s alert from %s: %s", alert.level, route.name, alert.title
        )
        message = self.formatter.format(alert)
        return await self.channel.deliver(route.channel_id, message)

    def _make_handler(self, route: WebhookRoute) -> Handler:
        """Create the request handler for a webhook route."""

        async def handle(request: web.Request) -> web.Response:
            if request.method != "POST":
                return method_not_allowed()

            WEBHOOKS_TOTAL.labels(route=route.name).inc()
            started = time.perf_counter()
            body = await self._read_body(request, route)

            try:
                result = await self.relay(route, body)
            except Exception as e:
                logger.exception("sentry-%s error: %s", route.name, e)
                result = DeliveryResult.failed(str(e))
            finally:
                DELIVERY_LATENCY.labels(route=route.name).observe(
                    time.perf_counter() - started
                )

            if not result.ok:
                DELIVERIES_TOTAL.labels(route=route.name, outcome="failure").inc()
                return web.json_response({"error": result.error}, status=500)

            DELIVERIES_TOTAL.labels(route=route.name, outcome="success").inc()
            return web.json_response({"ok": True}, status=200)

        return handle

    @staticmethod
    async def _read_body(request: web.Request, route: WebhookRoute) -> Any:
        """Decode the JSON body, treating empty or invalid bodies as {}."""
        raw = await request.read()
        if not raw.strip():
            return {}
        try:
            return json.loads(raw.decode(request.charset or "utf-8"))
        except (ValueError, LookupError):
            logger.warning("Invalid JSON body on %s route, using empty payload", route.name)
            return {}

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Handle /health endpoint."""
        return web.json_response(
            {
                "status": "ok",
                "uptime_seconds": round(time.time() - self._start_time, 2),
                "slack_token_configured": bool(self.channel.bot_token),
                "routes": {
                    route.path: {"channel_configured": bool(route.channel_id)}
                    for route in self.routes
                },
            }
        )

    async def _handle_live(self, _request: web.Request) -> web.Response:
        """Handle /live endpoint for liveness probes."""
        return web.json_response({"live": True}, status=200)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        """Handle /metrics endpoint (Prometheus format)."""
        return web.Response(
            body=generate_latest(),
            content_type="text/plain",
            charset="utf-8",
        )

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        for route in self.routes:
            app.router.add_route("*", route.path, self._make_handler(route))
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/live", self._handle_live)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self, host: str = "0.0.0.0", port: int = DEFAULT_HTTP_PORT) -> None:
        """Start serving webhooks.

        Args:
            host: Address to bind.
            port: Port to listen on.
        """
        if self._runner:
            logger.warning("Webhook server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, host, port)
        await site.start()

        logger.info("Webhook server listening on %s:%d", host, port)

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None
            logger.info("Webhook server stopped")

