"""Typed view over Sentry webhook payloads.

Sentry sends two loosely-structured shapes to the relay: event webhooks
(``{"data": {"event": {...}}}``) and issue snapshots (the issue object
itself, with ``id`` and ``title`` at the top level). Fields may be
missing, null, or shaped differently between Sentry versions, so every
lookup here fails soft and returns ``None`` instead of raising.

Each logical field has its own resolver which tries its sources in
priority order and keeps the first non-empty value.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sentry_slack_relay.alerter.models import SentryAlert

DEFAULT_LEVEL = "error"
DEFAULT_TITLE = "Sentry Event"
DEFAULT_ENVIRONMENT = "unknown"
USER_SEPARATOR = " • "


def dig(obj: Any, *path: str) -> Any:
    """Walk nested mappings, returning None as soon as a step is missing."""
    current = obj
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def text(value: Any) -> str | None:
    """Coerce a scalar to a non-empty string, or None."""
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return None
    if isinstance(value, bool):
        return None
    result = str(value).strip()
    return result or None


def first_present(*candidates: Any) -> str | None:
    """Return the first candidate that coerces to a non-empty string."""
    for candidate in candidates:
        value = text(candidate)
        if value is not None:
            return value
    return None


def find_tag(tags: Any, key: str) -> str | None:
    """Look up a tag value by key.

    Sentry reports tags either as ``[key, value]`` pairs or as
    ``{"key": ..., "value": ...}`` mappings. Anything else is skipped.
    """
    if not isinstance(tags, list):
        return None
    for entry in tags:
        if isinstance(entry, (list, tuple)) and len(entry) >= 2:
            tag_key, tag_value = entry[0], entry[1]
        elif isinstance(entry, Mapping):
            tag_key, tag_value = entry.get("key"), entry.get("value")
        else:
            continue
        if tag_key == key:
            return text(tag_value)
    return None


def format_iso(value: Any) -> str | None:
    """Normalize an ISO string or epoch seconds to an ISO-8601 UTC string.

    Returns None when the value cannot be interpreted as a point in time.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            moment = datetime.fromtimestamp(value, UTC)
        elif isinstance(value, str) and value.strip().isdigit():
            moment = datetime.fromtimestamp(int(value.strip()), UTC)
        elif isinstance(value, str) and value.strip():
            moment = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            if moment.tzinfo is None:
                moment = moment.replace(tzinfo=UTC)
            moment = moment.astimezone(UTC)
        else:
            return None
    except (ValueError, OverflowError, OSError):
        return None
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class SentryPayload:
    """Optional-field view over a raw webhook body.

    Attributes:
        event: The ``data.event`` mapping of an event webhook, or empty.
        issue: The body itself when it is an issue snapshot, else None.
    """

    event: Mapping[str, Any] = field(default_factory=dict)
    issue: Mapping[str, Any] | None = None

    @classmethod
    def from_dict(cls, body: Any) -> SentryPayload:
        """Create a payload view from a decoded JSON body of any shape."""
        if not isinstance(body, Mapping):
            return cls()

        event = dig(body, "data", "event")
        if isinstance(event, Mapping):
            return cls(event=event)
        if event:
            return cls()

        issue = body if body.get("id") and body.get("title") else None
        return cls(issue=issue)

    def ev(self, *path: str) -> Any:
        """Look up a nested event field."""
        return dig(self.event, *path)

    def iss(self, *path: str) -> Any:
        """Look up a nested issue field."""
        if self.issue is None:
            return None
        return dig(self.issue, *path)

    def tag(self, key: str) -> str | None:
        """Look up an event tag."""
        return find_tag(self.event.get("tags"), key)


def resolve_level(payload: SentryPayload) -> str:
    """Resolve the severity level, lowercased, defaulting to error."""
    level = first_present(
        payload.ev("level"),
        payload.tag("level"),
        payload.iss("level"),
    )
    return (level or DEFAULT_LEVEL).lower()


def resolve_title(payload: SentryPayload) -> str:
    """Resolve the headline, preferring the issue title."""
    return (
        first_present(
            payload.iss("title"),
            payload.ev("title"),
            payload.ev("message"),
            payload.ev("logentry", "formatted"),
        )
        or DEFAULT_TITLE
    )


def resolve_culprit(payload: SentryPayload) -> str:
    """Resolve where the error originated, or an empty string."""
    return (
        first_present(
            payload.iss("culprit"),
            payload.ev("culprit"),
            payload.ev("location"),
            payload.ev("metadata", "filename"),
        )
        or ""
    )


def resolve_environment(payload: SentryPayload) -> str | None:
    """Resolve the event environment, None when not reported."""
    return first_present(payload.ev("environment"), payload.tag("environment"))


def resolve_timestamp(payload: SentryPayload) -> str | None:
    """Resolve the event time, formatting epoch seconds as ISO-8601."""
    return first_present(payload.ev("datetime")) or format_iso(payload.ev("timestamp"))


def _name_version(context: Any) -> str | None:
    name = text(dig(context, "name"))
    version = text(dig(context, "version"))
    if name and version:
        return f"{name} {version}"
    return None


def resolve_browser(payload: SentryPayload) -> str | None:
    """Resolve "name version" of the browser, falling back to tags."""
    return (
        _name_version(payload.ev("contexts", "browser"))
        or payload.tag("browser")
        or payload.tag("browser.name")
    )


def resolve_os(payload: SentryPayload) -> str | None:
    """Resolve "name version" of the client OS, falling back to tags."""
    return (
        _name_version(payload.ev("contexts", "client_os"))
        or payload.tag("client_os")
        or payload.tag("client_os.name")
    )


def resolve_user(payload: SentryPayload) -> str:
    """Join the user email and id, either of which may be missing."""
    parts = [
        first_present(payload.ev("user", "email")),
        first_present(payload.ev("user", "id"), payload.tag("user")),
    ]
    return USER_SEPARATOR.join(part for part in parts if part)


def resolve_links(payload: SentryPayload) -> dict[str, str]:
    """Collect labelled links to Sentry and the failing request."""
    permalink = first_present(payload.iss("permalink"))
    candidates = {
        "Open in Sentry": first_present(payload.ev("web_url"), permalink),
        "Events in Issue": first_present(
            payload.ev("issue_url"),
            f"{permalink}events/" if permalink else None,
        ),
        "Request URL": first_present(payload.ev("request", "url"), payload.tag("url")),
    }
    return {label: url for label, url in candidates.items() if url}


def resolve_release(payload: SentryPayload, key: str) -> str | None:
    """Resolve a release version of an issue, e.g. firstRelease."""
    return first_present(
        payload.iss(key, "shortVersion"),
        payload.iss(key, "versionInfo", "description"),
    )


def resolve_event_count(payload: SentryPayload) -> int | None:
    """Resolve the issue event count, None when zero or unparsable."""
    count = payload.iss("count")
    if not count or isinstance(count, bool):
        return None
    try:
        return int(float(count))
    except (TypeError, ValueError, OverflowError):
        return None


def resolve_where(payload: SentryPayload) -> str | None:
    """Resolve "file#function" from the error metadata."""
    filename = first_present(
        payload.iss("metadata", "filename"),
        payload.ev("metadata", "filename"),
    )
    function = first_present(
        payload.iss("metadata", "function"),
        payload.ev("metadata", "function"),
    )
    if not filename and not function:
        return None
    return f"{filename or ''}#{function}" if function else filename


def normalize(body: Any) -> SentryAlert:
    """Reduce a raw webhook body to a SentryAlert.

    Never raises: every missing or malformed field falls back to a
    default or is left out.

    Args:
        body: Decoded JSON body as received from Sentry.

    Returns:
        The normalized alert.
    """
    payload = SentryPayload.from_dict(body)
    environment = resolve_environment(payload)

    return SentryAlert(
        level=resolve_level(payload),
        title=resolve_title(payload),
        culprit=resolve_culprit(payload),
        environment=environment or DEFAULT_ENVIRONMENT,
        environment_found=environment is not None,
        timestamp=resolve_timestamp(payload),
        browser=resolve_browser(payload),
        os=resolve_os(payload),
        user=resolve_user(payload),
        links=resolve_links(payload),
        status=first_present(payload.iss("status"), payload.ev("issue_status")),
        substatus=first_present(payload.iss("substatus")),
        priority=first_present(payload.iss("priority"), payload.ev("issue_priority")),
        event_count=resolve_event_count(payload),
        user_count=first_present(payload.iss("userCount")),
        first_seen=format_iso(payload.iss("firstSeen")),
        last_seen=format_iso(payload.iss("lastSeen")),
        first_release=resolve_release(payload, "firstRelease"),
        last_release=resolve_release(payload, "lastRelease"),
        project_name=first_present(
            payload.iss("project", "name"),
            payload.ev("project_slug"),
            payload.ev("project"),
        ),
        project_slug=first_present(
            payload.iss("project", "slug"),
            payload.ev("project_slug"),
        ),
        platform=first_present(
            payload.iss("platform"),
            payload.ev("platform"),
            payload.ev("contexts", "runtime", "name"),
        ),
        short_id=first_present(payload.iss("shortId"), payload.ev("event_id")),
        error_type=first_present(
            payload.iss("metadata", "type"),
            payload.ev("metadata", "type"),
        ),
        where=resolve_where(payload),
    )
