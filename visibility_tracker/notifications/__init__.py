"""Operator notification sinks."""

from visibility_tracker.notifications.base import LogNotificationSink, NotificationSink, ProviderFailure
from visibility_tracker.notifications.telegram import TelegramNotificationSink


def get_notification_sink() -> NotificationSink:
    """Telegram when configured, log-only otherwise."""
    from visibility_tracker.core.config import settings

    if settings.telegram_bot_token and settings.telegram_chat_id:
        return TelegramNotificationSink(settings.telegram_bot_token, settings.telegram_chat_id)
    return LogNotificationSink()


__all__ = [
    "LogNotificationSink",
    "NotificationSink",
    "ProviderFailure",
    "TelegramNotificationSink",
    "get_notification_sink",
]
