# src/fxpad/adapters/notifications/__init__.py
"""
Notification Adapters - Delivery of User Notifications

This package contains the notification center interface and its
implementations:
- Local in-process center (headless runs and tests)
- Telegram chat center (python-telegram-bot)
"""

from fxpad.adapters.notifications.base import (
    DateTrigger,
    NotificationCenter,
    NotificationPermission,
    PermissionStatus,
)
from fxpad.adapters.notifications.local import LocalNotificationCenter
from fxpad.adapters.notifications.telegram import TelegramNotificationCenter

__all__ = [
    "DateTrigger",
    "NotificationCenter",
    "NotificationPermission",
    "PermissionStatus",
    "LocalNotificationCenter",
    "TelegramNotificationCenter",
]
