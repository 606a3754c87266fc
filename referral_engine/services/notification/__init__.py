"""Notification services."""

from referral_engine.services.notification.dispatcher import (
    EmailSender,
    NotificationDispatcher,
)


__all__ = ["EmailSender", "NotificationDispatcher"]
