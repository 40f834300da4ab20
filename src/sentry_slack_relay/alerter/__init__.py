"""Alerting layer - Sentry payload normalization and Slack delivery."""

from sentry_slack_relay.alerter.channels.slack import DeliveryError, SlackChannel
from sentry_slack_relay.alerter.formatter import SlackFormatter, format_slack_message
from sentry_slack_relay.alerter.models import ChatMessage, DeliveryResult, SentryAlert
from sentry_slack_relay.alerter.payload import SentryPayload, normalize

__all__ = [
    "ChatMessage",
    "DeliveryError",
    "DeliveryResult",
    "SentryAlert",
    "SentryPayload",
    "SlackChannel",
    "SlackFormatter",
    "format_slack_message",
    "normalize",
]
