"""Slack Web API channel implementation."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING, Any

import httpx
from prometheus_client import Counter

from sentry_slack_relay.alerter.models import DeliveryResult
from sentry_slack_relay.config import DEFAULT_SLACK_API_URL, ConfigurationError

if TYPE_CHECKING:
    from sentry_slack_relay.alerter.models import ChatMessage
    from sentry_slack_relay.config import SlackSettings

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 1.0

RATE_LIMITED_TOTAL = Counter(
    "sentry_relay_rate_limited_total",
    "Number of rate-limited responses received from Slack",
)


class DeliveryError(Exception):
    """Raised when Slack rejects a message or cannot be reached."""


def parse_retry_after(value: str | None) -> float:
    """Parse a Retry-After header value in seconds.

    Missing, non-numeric, non-finite and non-positive values fall back
    to one second.
    """
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if not math.isfinite(seconds) or seconds <= 0:
        return DEFAULT_RETRY_AFTER
    return seconds


class SlackChannel:
    """Slack chat.postMessage channel for sending alerts.

    Posts messages with a bot token and waits out rate limits using the
    Retry-After hint. Rate-limited sends are retried indefinitely unless
    ``max_rate_limit_retries`` is set.
    """

    def __init__(
        self,
        bot_token: str | None,
        *,
        api_url: str = DEFAULT_SLACK_API_URL,
        timeout: float = 10.0,
        max_rate_limit_retries: int | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize Slack channel.

        Args:
            bot_token: Slack bot token, None if not configured.
            api_url: chat.postMessage endpoint.
            timeout: HTTP request timeout in seconds.
            max_rate_limit_retries: Cap on rate-limit retries, None for no cap.
            dry_run: Log messages instead of posting them.
        """
        self.bot_token = bot_token
        self.api_url = api_url
        self.timeout = timeout
        self.max_rate_limit_retries = max_rate_limit_retries
        self.dry_run = dry_run

    @classmethod
    def from_settings(cls, settings: SlackSettings, *, dry_run: bool = False) -> SlackChannel:
        """Create a channel from Slack settings."""
        token = settings.bot_token.get_secret_value() if settings.bot_token else None
        return cls(
            token,
            api_url=settings.api_url,
            timeout=settings.timeout,
            max_rate_limit_retries=settings.max_rate_limit_retries,
            dry_run=dry_run,
        )

    async def deliver(self, channel_id: str | None, message: ChatMessage) -> DeliveryResult:
        """Send a message to a Slack channel.

        Args:
            channel_id: Target channel id.
            message: Formatted message to post.

        Returns:
            DeliveryResult carrying Slack's acknowledgement.

        Raises:
            ConfigurationError: If the bot token or channel id is missing.
            DeliveryError: If Slack rejects the message or cannot be reached.
        """
        if not self.bot_token:
            raise ConfigurationError("Missing SLACK_BOT_TOKEN")
        if not channel_id:
            raise ConfigurationError("Missing Slack channel id")

        payload = message.to_payload(channel_id)

        if self.dry_run:
            logger.info("Dry run, not posting to %s: %s", channel_id, message.text)
            return DeliveryResult(ok=True, response={"ok": True, "dry_run": True})

        headers = {
            "Authorization": f"Bearer {self.bot_token}",
            "Content-Type": "application/json; charset=utf-8",
        }

        retries = 0
        while True:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.api_url, json=payload, headers=headers)
            except httpx.HTTPError as e:
                raise DeliveryError(f"Slack request failed: {e}") from e

            if response.status_code != 429:
                break

            RATE_LIMITED_TOTAL.inc()
            if (
                self.max_rate_limit_retries is not None
                and retries >= self.max_rate_limit_retries
            ):
                raise DeliveryError(
                    f"Slack rate limit persisted after {retries} retries"
                )

            delay = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning("Slack rate limited, retry after %ss", delay)
            await asyncio.sleep(delay)
            retries += 1

        data = self._parse_body(response)
        if not response.is_success or not data.get("ok"):
            reason = data.get("error") or f"{response.status_code} {response.reason_phrase}"
            logger.error("Slack API error: %s", reason)
            raise DeliveryError(f"Slack API error: {reason}")

        logger.info("Slack message delivered to %s", channel_id)
        return DeliveryResult(ok=True, response=data, retries=retries)

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON object body, returning an empty dict otherwise."""
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
