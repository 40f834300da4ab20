"""Sentry to Slack relay - forwards Sentry webhooks to Slack channels."""

__version__ = "0.1.0"
