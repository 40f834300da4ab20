"""Slack message formatter for Sentry alerts.

This module renders normalized SentryAlert objects into Slack Block Kit
messages with a plain text fallback for notification previews.
"""

from __future__ import annotations

from typing import Any

from sentry_slack_relay.alerter.models import ChatMessage, SentryAlert
from sentry_slack_relay.alerter.payload import DEFAULT_LEVEL, normalize

# Severity indicators
LEVEL_EMOJI = {
    "fatal": ":fire:",
    "error": ":rotating_light:",
    "warning": ":warning:",
    "info": ":information_source:",
    "debug": ":beetle:",
}

STATUS_EMOJI = {
    "unresolved": ":red_circle:",
    "resolved": ":white_check_mark:",
    "ignored": ":zzz:",
}

ESCALATING_EMOJI = ":chart_with_upwards_trend:"

# Slack renders at most 10 fields per section
MAX_FIELDS = 10
MAX_TITLE_LENGTH = 200
MAX_DETAIL_LENGTH = 500

SEPARATOR = "  •  "


def get_level_emoji(level: str) -> str:
    """Get the severity indicator for a level, defaulting to the error one."""
    return LEVEL_EMOJI.get(level, LEVEL_EMOJI[DEFAULT_LEVEL])


def truncate(value: str, limit: int = MAX_TITLE_LENGTH) -> str:
    """Shorten text to at most ``limit`` characters, marking the cut."""
    if len(value) <= limit:
        return value
    return value[: limit - 1].rstrip() + "…"


def escape_mrkdwn(value: str) -> str:
    """Escape the characters Slack treats as control sequences in mrkdwn."""
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def mrkdwn_field(label: str, value: str) -> dict[str, str]:
    """Build a single entry of a section fields grid."""
    return {"type": "mrkdwn", "text": f"*{label}:*\n{escape_mrkdwn(value)}"}


def context_block(items: list[str]) -> dict[str, Any]:
    """Build a context block holding one mrkdwn line."""
    return {
        "type": "context",
        "elements": [{"type": "mrkdwn", "text": SEPARATOR.join(items)}],
    }


class SlackFormatter:
    """Formats SentryAlerts into Slack Block Kit messages.

    The message consists of a header section, an optional fields grid,
    an optional context line of identifiers, a divider, and an optional
    line of links.
    """

    def __init__(self, *, max_fields: int = MAX_FIELDS) -> None:
        """Initialize the formatter.

        Args:
            max_fields: Maximum number of entries in the fields grid.
        """
        self.max_fields = max_fields

    def format(self, alert: SentryAlert) -> ChatMessage:
        """Format a normalized alert into a Slack message.

        Args:
            alert: The alert to format.

        Returns:
            ChatMessage with fallback text and blocks.
        """
        emoji = get_level_emoji(alert.level)
        title = escape_mrkdwn(truncate(alert.title))

        blocks: list[dict[str, Any]] = [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": self._build_header(alert, emoji, title)},
            }
        ]

        fields = self._build_fields(alert)
        if fields:
            blocks.append({"type": "section", "fields": fields})

        context_items = self._build_context(alert)
        if context_items:
            blocks.append(context_block(context_items))

        blocks.append({"type": "divider"})

        if alert.links:
            blocks.append(
                context_block([f"<{url}|{label}>" for label, url in alert.links.items()])
            )

        return ChatMessage(
            text=f"{emoji} Sentry {alert.level.upper()}: {title}",
            blocks=blocks,
        )

    def _build_header(self, alert: SentryAlert, emoji: str, title: str) -> str:
        """Build the header section text."""
        indicators = [emoji]
        status_emoji = STATUS_EMOJI.get(alert.status or "")
        if status_emoji:
            indicators.append(status_emoji)
        if alert.substatus == "escalating":
            indicators.append(ESCALATING_EMOJI)

        headline = f"*{' '.join(indicators)} Sentry {alert.level.upper()}*"
        states = [escape_mrkdwn(s) for s in (alert.status, alert.substatus) if s]
        if states:
            headline += f"{SEPARATOR}_{' / '.join(states)}_"

        lines = [headline, f"*Title:* {title}"]
        for label, value in (("Culprit", alert.culprit), ("Where", alert.where)):
            if value:
                detail = escape_mrkdwn(truncate(value, MAX_DETAIL_LENGTH))
                lines.append(f"*{label}:* `{detail}`")
        return "\n".join(lines)

    def _build_fields(self, alert: SentryAlert) -> list[dict[str, str]]:
        """Build the fields grid, capped at max_fields entries."""
        status = alert.status
        if status and alert.substatus:
            status = f"{status} ({alert.substatus})"

        candidates: list[tuple[str, str | None]] = [
            ("Env", alert.environment if alert.environment_found else None),
            ("Priority", alert.priority),
            ("Status", status),
            ("Events", str(alert.event_count) if alert.event_count is not None else None),
            ("Users", alert.user_count),
            ("First seen", alert.first_seen),
            ("Time", alert.timestamp if not alert.first_seen else None),
            ("Last seen", alert.last_seen),
            ("Browser", alert.browser),
            ("OS", alert.os),
            ("User", alert.user or None),
            ("First release", f"`{alert.first_release}`" if alert.first_release else None),
            ("Last release", f"`{alert.last_release}`" if alert.last_release else None),
        ]
        fields = [mrkdwn_field(label, value) for label, value in candidates if value]
        return fields[: self.max_fields]

    def _build_context(self, alert: SentryAlert) -> list[str]:
        """Build the identifiers shown in the context line."""
        candidates = [
            ("Project", alert.project_name),
            ("Slug", alert.project_slug),
            ("Platform", alert.platform),
            ("ID", alert.short_id),
            ("Type", alert.error_type),
        ]
        return [f"{label}: {escape_mrkdwn(value)}" for label, value in candidates if value]


def format_slack_message(body: Any, formatter: SlackFormatter | None = None) -> ChatMessage:
    """Normalize a raw Sentry webhook body and render it for Slack.

    Never raises; missing fields fall back to defaults.
    """
    return (formatter or SlackFormatter()).format(normalize(body))
