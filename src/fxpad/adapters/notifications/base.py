# src/fxpad/adapters/notifications/base.py
"""
Notification Center Interface

Schedulers talk to notifications only through this interface: schedule a
notification now or at a date, cancel a scheduled one, dismiss a presented
one, and query or request delivery permission. Scheduling under an
identifier that is already in use replaces the earlier notification.

Files that USE this module:
- fxpad.adapters.notifications.local (LocalNotificationCenter)
- fxpad.adapters.notifications.telegram (TelegramNotificationCenter)
- fxpad.application.pinned_rate_service, rate_alert_service, retention_service

Files that this module USES:
- fxpad.domain.models (NotificationContent)
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from fxpad.domain.models import NotificationContent


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


@dataclass(frozen=True)
class NotificationPermission:
    status: PermissionStatus
    can_ask_again: bool = True

    @property
    def granted(self) -> bool:
        return self.status is PermissionStatus.GRANTED


@dataclass(frozen=True)
class DateTrigger:
    """Deliver at a specific (timezone-aware) moment."""
    at: datetime


class NotificationCenter(ABC):
    """Async notification collaborator."""

    @abstractmethod
    async def schedule(
        self,
        content: NotificationContent,
        trigger: Optional[DateTrigger] = None,
        identifier: Optional[str] = None,
    ) -> str:
        """
        Present now (trigger None) or at trigger.at.

        Returns:
            The notification identifier (generated when not given)

        Raises:
            NotificationDeliveryError: If the notification cannot be scheduled
        """
        raise NotImplementedError

    @abstractmethod
    async def cancel(self, identifier: str) -> None:
        """Drop a scheduled, not yet delivered notification."""
        raise NotImplementedError

    @abstractmethod
    async def dismiss(self, identifier: str) -> None:
        """Remove an already presented notification."""
        raise NotImplementedError

    @abstractmethod
    async def get_permission(self) -> NotificationPermission:
        raise NotImplementedError

    @abstractmethod
    async def request_permission(self) -> NotificationPermission:
        raise NotImplementedError

    async def deliver_due(self, now: Optional[datetime] = None) -> list[str]:
        """Present date-triggered notifications whose time has come."""
        return []
