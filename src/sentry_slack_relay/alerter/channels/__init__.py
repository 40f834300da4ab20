"""Alert channel implementations."""

from sentry_slack_relay.alerter.channels.slack import DeliveryError, SlackChannel

__all__ = [
    "DeliveryError",
    "SlackChannel",
]
