"""Data models for the alerter module."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SentryAlert:
    """A Sentry notification reduced to the fields shown in Slack.

    Built by ``normalize()`` from either an event webhook or an issue
    snapshot. Optional fields are ``None`` when no source provided them.

    Attributes:
        level: Lower-cased severity level.
        title: Alert headline.
        culprit: Code location blamed for the error, or empty.
        environment: Deployment environment, "unknown" if not reported.
        environment_found: Whether environment came from the payload.
        timestamp: Event time as an ISO-8601 string.
        browser: Browser name and version.
        os: Client operating system name and version.
        user: Affected user identity (email and id).
        links: Ordered label to URL mapping.
    """

    level: str
    title: str
    culprit: str = ""
    environment: str = "unknown"
    environment_found: bool = False
    timestamp: str | None = None
    browser: str | None = None
    os: str | None = None
    user: str = ""
    links: dict[str, str] = field(default_factory=dict)

    # Issue snapshot details
    status: str | None = None
    substatus: str | None = None
    priority: str | None = None
    event_count: int | None = None
    user_count: str | None = None
    first_seen: str | None = None
    last_seen: str | None = None
    first_release: str | None = None
    last_release: str | None = None

    # Context line identifiers
    project_name: str | None = None
    project_slug: str | None = None
    platform: str | None = None
    short_id: str | None = None
    error_type: str | None = None
    where: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    """A Slack message ready for delivery.

    Attributes:
        text: Plain text fallback shown in notifications.
        blocks: Block Kit sections rendered in the channel.
    """

    text: str
    blocks: list[dict[str, Any]] = field(default_factory=list)

    def to_payload(self, channel: str) -> dict[str, Any]:
        """Build the chat.postMessage request body."""
        return {
            "channel": channel,
            "text": self.text,
            "blocks": self.blocks,
        }


@dataclass
class DeliveryResult:
    """Outcome of delivering a message to Slack."""

    ok: bool
    error: str | None = None
    response: dict[str, Any] = field(default_factory=dict)
    retries: int = 0

    @classmethod
    def failed(cls, error: str) -> DeliveryResult:
        """Create a failed result carrying an error description."""
        return cls(ok=False, error=error)
