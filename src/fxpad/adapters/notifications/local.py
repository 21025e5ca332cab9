# src/fxpad/adapters/notifications/local.py
"""
Local Notification Center - In-Process Notification Table

Keeps presented and scheduled notifications in memory. Used when no
Telegram chat is configured and as the notification fake in tests.

Files that USE this module:
- fxpad.app (fallback notification center)
- tests.* (scheduler service tests)

Files that this module USES:
- fxpad.adapters.notifications.base (NotificationCenter interface)
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fxpad.adapters.notifications.base import (
    DateTrigger,
    NotificationCenter,
    NotificationPermission,
    PermissionStatus,
)
from fxpad.domain.models import NotificationContent

logger = logging.getLogger(__name__)


class LocalNotificationCenter(NotificationCenter):
    def __init__(
        self,
        permission: PermissionStatus = PermissionStatus.GRANTED,
        can_ask_again: bool = True,
        grant_on_request: bool = True,
    ):
        """
        Args:
            permission: Initial permission status
            can_ask_again: Whether request_permission may change the status
            grant_on_request: Outcome of a permission request when asking is allowed
        """
        self.permission = NotificationPermission(permission, can_ask_again)
        self.grant_on_request = grant_on_request
        self.permission_requests = 0
        self.presented: dict[str, NotificationContent] = {}
        self.scheduled: dict[str, tuple[NotificationContent, datetime]] = {}

    async def schedule(
        self,
        content: NotificationContent,
        trigger: Optional[DateTrigger] = None,
        identifier: Optional[str] = None,
    ) -> str:
        identifier = identifier or uuid.uuid4().hex
        self.scheduled.pop(identifier, None)
        if trigger is None:
            self.presented[identifier] = content
            logger.info("Notification presented: %s (%s)", identifier, content.title)
        else:
            self.scheduled[identifier] = (content, trigger.at)
            logger.info("Notification scheduled: %s at %s", identifier, trigger.at.isoformat())
        return identifier

    async def cancel(self, identifier: str) -> None:
        self.scheduled.pop(identifier, None)

    async def dismiss(self, identifier: str) -> None:
        self.presented.pop(identifier, None)

    async def get_permission(self) -> NotificationPermission:
        return self.permission

    async def request_permission(self) -> NotificationPermission:
        self.permission_requests += 1
        if not self.permission.granted and self.permission.can_ask_again:
            status = PermissionStatus.GRANTED if self.grant_on_request else PermissionStatus.DENIED
            self.permission = NotificationPermission(status, can_ask_again=False)
        return self.permission

    async def deliver_due(self, now: Optional[datetime] = None) -> list[str]:
        now = now or datetime.now(timezone.utc)
        due = [key for key, (_, at) in self.scheduled.items() if at <= now]
        for identifier in due:
            content, _ = self.scheduled.pop(identifier)
            self.presented[identifier] = content
        return due
