"""Tests for Slack message formatter."""

from typing import Any

import pytest

from sentry_slack_relay.alerter.formatter import (
    ESCALATING_EMOJI,
    LEVEL_EMOJI,
    MAX_DETAIL_LENGTH,
    MAX_FIELDS,
    MAX_TITLE_LENGTH,
    STATUS_EMOJI,
    SlackFormatter,
    escape_mrkdwn,
    format_slack_message,
    get_level_emoji,
    truncate,
)
from sentry_slack_relay.alerter.models import ChatMessage, SentryAlert

# ============================================================================
# Helpers
# ============================================================================


def blocks_of_type(message: ChatMessage, block_type: str) -> list[dict[str, Any]]:
    """Return the blocks of a given type."""
    return [b for b in message.blocks if b["type"] == block_type]


def field_texts(message: ChatMessage) -> list[str]:
    """Return the texts of the fields grid, if any."""
    for block in message.blocks:
        if block["type"] == "section" and "fields" in block:
            return [f["text"] for f in block["fields"]]
    return []


def header_text(message: ChatMessage) -> str:
    """Return the header section text."""
    text: str = message.blocks[0]["text"]["text"]
    return text


@pytest.fixture
def formatter() -> SlackFormatter:
    """Create a formatter."""
    return SlackFormatter()


# ============================================================================
# Helper function tests
# ============================================================================


class TestGetLevelEmoji:
    """Tests for severity indicators."""

    @pytest.mark.parametrize("level", ["fatal", "error", "warning", "info", "debug"])
    def test_known_levels(self, level: str) -> None:
        assert get_level_emoji(level) == LEVEL_EMOJI[level]

    def test_unknown_level_uses_error_indicator(self) -> None:
        assert get_level_emoji("critical") == LEVEL_EMOJI["error"]


class TestTruncate:
    """Tests for title truncation."""

    def test_short_text_unchanged(self) -> None:
        assert truncate("short") == "short"

    def test_long_text_cut_with_ellipsis(self) -> None:
        result = truncate("x" * 500)
        assert len(result) == MAX_TITLE_LENGTH
        assert result.endswith("…")


# ============================================================================
# SlackFormatter tests
# ============================================================================


class TestEmptyPayload:
    """Tests for messages built from payloads without optional fields."""

    def test_defaults(self) -> None:
        message = format_slack_message({})

        assert message.text == ":rotating_light: Sentry ERROR: Sentry Event"
        assert "*Title:* Sentry Event" in header_text(message)
        assert field_texts(message) == []
        assert blocks_of_type(message, "context") == []
        assert [b["type"] for b in message.blocks] == ["section", "divider"]

    @pytest.mark.parametrize("body", [None, [], "garbage", {"data": None}])
    def test_malformed_body_never_raises(self, body: Any) -> None:
        message = format_slack_message(body)
        assert "Sentry ERROR" in message.text


class TestLevels:
    """Tests for severity rendering."""

    @pytest.mark.parametrize("level", ["FATAL", "Warning", "info", "DeBuG"])
    def test_mixed_case_levels(self, level: str) -> None:
        message = format_slack_message({"data": {"event": {"level": level}}})
        emoji = LEVEL_EMOJI[level.lower()]

        assert message.text.startswith(f"{emoji} Sentry {level.upper()}:")
        assert header_text(message).startswith(f"*{emoji} Sentry {level.upper()}*")

    def test_unknown_level(self) -> None:
        message = format_slack_message({"data": {"event": {"level": "Critical"}}})
        assert message.text == ":rotating_light: Sentry CRITICAL: Sentry Event"


class TestRoundTrip:
    """End-to-end formatting of an event webhook."""

    def test_fatal_event(self) -> None:
        body = {
            "data": {
                "event": {
                    "level": "fatal",
                    "title": "DB down",
                    "environment": "production",
                    "datetime": "2024-01-01T00:00:00Z",
                }
            }
        }
        message = format_slack_message(body)

        assert "FATAL" in message.text
        assert "DB down" in message.text
        assert message.text == ":fire: Sentry FATAL: DB down"
        fields = field_texts(message)
        assert "*Env:*\nproduction" in fields
        assert "*Time:*\n2024-01-01T00:00:00Z" in fields


class TestFields:
    """Tests for the fields grid."""

    def test_browser_concatenation(self) -> None:
        body = {
            "data": {"event": {"contexts": {"browser": {"name": "Chrome", "version": "120"}}}}
        }
        assert "*Browser:*\nChrome 120" in field_texts(format_slack_message(body))

    def test_browser_omitted_when_incomplete(self) -> None:
        body = {"data": {"event": {"contexts": {"browser": {"name": "Chrome"}}}}}
        assert field_texts(format_slack_message(body)) == []

    def test_browser_incomplete_with_tag(self) -> None:
        body = {
            "data": {
                "event": {
                    "contexts": {"browser": {"name": "Chrome"}},
                    "tags": [["browser", "Chrome 119"]],
                }
            }
        }
        assert field_texts(format_slack_message(body)) == ["*Browser:*\nChrome 119"]

    def test_unknown_environment_not_shown(self, formatter: SlackFormatter) -> None:
        message = formatter.format(SentryAlert(level="error", title="t", os="Linux"))
        assert field_texts(message) == ["*OS:*\nLinux"]

    def test_field_order(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(
            level="error",
            title="t",
            environment="prod",
            environment_found=True,
            timestamp="2024-01-01T00:00:00Z",
            browser="Safari 17",
            os="iOS 17",
            user="a@example.com • 1",
        )
        labels = [text.split(":*")[0] for text in field_texts(formatter.format(alert))]
        assert labels == ["*Env", "*Time", "*Browser", "*OS", "*User"]

    def test_first_seen_replaces_time(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(
            level="error",
            title="t",
            timestamp="2024-01-01T00:00:00Z",
            first_seen="2023-12-31T00:00:00.000Z",
        )
        assert field_texts(formatter.format(alert)) == ["*First seen:*\n2023-12-31T00:00:00.000Z"]

    def test_fields_are_capped(self) -> None:
        alert = SentryAlert(
            level="error",
            title="t",
            environment="prod",
            environment_found=True,
            timestamp="2024-01-01T00:00:00Z",
            browser="b",
            os="o",
            user="u",
            status="unresolved",
            priority="high",
            event_count=3,
            user_count="2",
            last_seen="2024-01-02T00:00:00.000Z",
            first_release="1.0",
            last_release="1.1",
        )
        assert len(field_texts(SlackFormatter().format(alert))) == MAX_FIELDS
        assert len(field_texts(SlackFormatter(max_fields=4).format(alert))) == 4

    def test_release_rendered_as_code(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(level="error", title="t", first_release="1.0.0")
        assert field_texts(formatter.format(alert)) == ["*First release:*\n`1.0.0`"]


class TestHeader:
    """Tests for the header section."""

    def test_culprit_and_where(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(
            level="error", title="Boom", culprit="app.views", where="app/views.py#divide"
        )
        lines = header_text(formatter.format(alert)).split("\n")
        assert lines == [
            "*:rotating_light: Sentry ERROR*",
            "*Title:* Boom",
            "*Culprit:* `app.views`",
            "*Where:* `app/views.py#divide`",
        ]

    def test_status_indicators(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(
            level="warning", title="t", status="unresolved", substatus="escalating"
        )
        headline = header_text(formatter.format(alert)).split("\n")[0]
        assert headline == (
            f"*{LEVEL_EMOJI['warning']} {STATUS_EMOJI['unresolved']} {ESCALATING_EMOJI}"
            " Sentry WARNING*  •  _unresolved / escalating_"
        )

    def test_long_title_truncated(self, formatter: SlackFormatter) -> None:
        message = formatter.format(SentryAlert(level="error", title="x" * 1000))
        assert len(message.text) < 300
        assert message.text.endswith("…")

    def test_special_characters_escaped(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(
            level="error",
            title="<!channel> a & b",
            culprit="List<int>",
            where="x.py#<lambda>",
        )
        message = formatter.format(alert)
        lines = header_text(message).split("\n")

        assert lines[1] == "*Title:* &lt;!channel&gt; a &amp; b"
        assert lines[2] == "*Culprit:* `List&lt;int&gt;`"
        assert lines[3] == "*Where:* `x.py#&lt;lambda&gt;`"
        assert "<!channel>" not in message.text

    def test_long_culprit_truncated(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(level="error", title="t", culprit="c" * 5000, where="w" * 5000)
        lines = header_text(formatter.format(alert)).split("\n")

        assert len(lines[2]) <= len("*Culprit:* ``") + MAX_DETAIL_LENGTH
        assert lines[2].endswith("…`")
        assert len(lines[3]) <= len("*Where:* ``") + MAX_DETAIL_LENGTH


class TestContextAndLinks:
    """Tests for the context line and links line."""

    def test_context_line(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(
            level="error",
            title="t",
            project_name="Backend",
            project_slug="backend",
            platform="python",
            short_id="BACKEND-1A",
            error_type="KeyError",
        )
        contexts = blocks_of_type(formatter.format(alert), "context")
        assert contexts[0]["elements"][0]["text"] == (
            "Project: Backend  •  Slug: backend  •  Platform: python"
            "  •  ID: BACKEND-1A  •  Type: KeyError"
        )

    def test_links_after_divider(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(
            level="error",
            title="t",
            links={"Open in Sentry": "https://sentry.io/i/1/", "Request URL": "https://x.io/"},
        )
        message = formatter.format(alert)

        assert [b["type"] for b in message.blocks] == ["section", "divider", "context"]
        assert message.blocks[-1]["elements"][0]["text"] == (
            "<https://sentry.io/i/1/|Open in Sentry>  •  <https://x.io/|Request URL>"
        )


class TestChatMessage:
    """Tests for the API payload."""

    def test_to_payload(self) -> None:
        message = format_slack_message({})
        payload = message.to_payload("C123")

        assert payload["channel"] == "C123"
        assert payload["text"] == message.text
        assert payload["blocks"] == message.blocks


class TestEscapeMrkdwn:
    """Tests for mrkdwn escaping."""

    def test_control_characters(self) -> None:
        assert escape_mrkdwn("a < b && c > d") == "a &lt; b &amp;&amp; c &gt; d"

    def test_plain_text_unchanged(self) -> None:
        assert escape_mrkdwn("ZeroDivisionError: division by zero") == (
            "ZeroDivisionError: division by zero"
        )

    def test_field_values_escaped(self, formatter: SlackFormatter) -> None:
        alert = SentryAlert(level="error", title="t", user="<@U123>", environment_found=False)
        assert field_texts(formatter.format(alert)) == ["*User:*\n&lt;@U123&gt;"]
