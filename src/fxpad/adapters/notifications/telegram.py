# src/fxpad/adapters/notifications/telegram.py
"""
Telegram Notification Center - Notifications as Telegram Messages

Delivers notifications to one Telegram chat (NOTIFY_CHAT_ID) through
python-telegram-bot:
- immediate notifications are sent as messages
- scheduling again under an identifier that already has a message edits
  that message in place instead of sending a new one
- sticky notifications are pinned in the chat (best effort)
- date-triggered notifications are persisted as pending and sent by
  deliver_due() from the background loop
- dismiss() deletes the message

Sent message ids and pending notifications live in the key-value store so
a restart keeps editing the same messages.

Files that USE this module:
- fxpad.app (used when BOT_TOKEN and NOTIFY_CHAT_ID are configured)
- tests.test_telegram_notifications (unit tests)

Files that this module USES:
- fxpad.adapters.notifications.base (NotificationCenter interface)
- fxpad.adapters.persistence (message id and pending tables)
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from telegram import Bot
from telegram.error import BadRequest, RetryAfter, TelegramError

from fxpad.adapters.notifications.base import (
    DateTrigger,
    NotificationCenter,
    NotificationPermission,
    PermissionStatus,
)
from fxpad.adapters.persistence import KeyValueStore, read_json, write_json
from fxpad.domain.errors import NotificationDeliveryError
from fxpad.domain.models import NotificationContent
from fxpad.shared.validators import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

MESSAGE_IDS_KEY = "telegramMessageIds"
PENDING_KEY = "telegramPendingNotifications"


def render_message(content: NotificationContent) -> str:
    """Plain-text message: title, optional subtitle, blank line, body."""
    lines = [content.title]
    if content.subtitle:
        lines.append(content.subtitle)
    return "\n".join(lines) + f"\n\n{content.body}"


def _content_to_json(content: NotificationContent) -> dict:
    return {
        "title": content.title,
        "body": content.body,
        "subtitle": content.subtitle,
        "data": content.data,
        "sticky": content.sticky,
        "sound": content.sound,
    }


def _pending_sort_key(item: tuple[str, Any]) -> str:
    entry = item[1]
    return str(entry.get("at")) if isinstance(entry, dict) else ""


def _content_from_json(data: dict) -> NotificationContent:
    return NotificationContent(
        title=str(data.get("title", "")),
        body=str(data.get("body", "")),
        subtitle=data.get("subtitle"),
        data=dict(data.get("data") or {}),
        sticky=bool(data.get("sticky", False)),
        sound=bool(data.get("sound", True)),
    )


def _retry_delay(error: RetryAfter) -> float:
    retry_after: Any = error.retry_after
    if isinstance(retry_after, timedelta):
        return retry_after.total_seconds()
    return float(retry_after)


class TelegramNotificationCenter(NotificationCenter):
    def __init__(self, bot: Bot, chat_id: str, store: KeyValueStore):
        """
        Args:
            bot: python-telegram-bot Bot instance
            chat_id: Target chat (@channel, -100... or a user id)
            store: Key-value store for message ids and pending notifications
        """
        self.bot = bot
        self.chat_id = chat_id
        self.store = store

    # ----- persisted tables -----

    def _message_ids(self) -> dict[str, int]:
        raw = read_json(self.store, MESSAGE_IDS_KEY)
        if not isinstance(raw, dict):
            return {}
        return {str(key): int(value) for key, value in raw.items() if isinstance(value, int)}

    def _save_message_ids(self, message_ids: dict[str, int]) -> None:
        write_json(self.store, MESSAGE_IDS_KEY, message_ids)

    def _pending(self) -> dict[str, dict]:
        raw = read_json(self.store, PENDING_KEY)
        return raw if isinstance(raw, dict) else {}

    def _save_pending(self, pending: dict[str, dict]) -> None:
        write_json(self.store, PENDING_KEY, pending)

    # ----- bot calls -----

    async def _call(self, method, **kwargs):
        """Call a Bot method, waiting out one Telegram rate limit."""
        try:
            return await method(**kwargs)
        except RetryAfter as e:
            delay = _retry_delay(e)
            logger.warning("Telegram rate limit (429): retry after %s seconds", delay)
            await asyncio.sleep(delay + 1)
            return await method(**kwargs)

    async def _send(self, identifier: str, content: NotificationContent) -> None:
        text = render_message(content)
        message_ids = self._message_ids()
        existing = message_ids.get(identifier)

        try:
            if existing is not None:
                try:
                    await self._call(
                        self.bot.edit_message_text,
                        chat_id=self.chat_id,
                        message_id=existing,
                        text=text,
                    )
                    logger.info("Notification %s updated in place (message %s)", identifier, existing)
                    return
                except BadRequest as e:
                    if "not modified" in str(e).lower():
                        return
                    logger.warning("Editing message %s failed, sending a new one: %s", existing, e)

            message = await self._call(
                self.bot.send_message,
                chat_id=self.chat_id,
                text=text,
                disable_notification=not content.sound,
            )
        except TelegramError as e:
            logger.error("Telegram delivery failed for %s: %s", identifier, e)
            raise NotificationDeliveryError(f"Telegram delivery failed: {e}") from e

        message_ids[identifier] = message.message_id
        self._save_message_ids(message_ids)
        logger.info("Notification %s sent (message %s)", identifier, message.message_id)

        if content.sticky:
            try:
                await self.bot.pin_chat_message(
                    chat_id=self.chat_id,
                    message_id=message.message_id,
                    disable_notification=True,
                )
            except TelegramError as e:
                logger.warning("Could not pin message %s: %s", message.message_id, e)

    # ----- NotificationCenter -----

    async def schedule(
        self,
        content: NotificationContent,
        trigger: Optional[DateTrigger] = None,
        identifier: Optional[str] = None,
    ) -> str:
        identifier = identifier or uuid.uuid4().hex
        pending = self._pending()

        if trigger is not None and trigger.at > datetime.now(timezone.utc):
            pending[identifier] = {
                "at": format_timestamp(trigger.at),
                "content": _content_to_json(content),
            }
            self._save_pending(pending)
            logger.info("Notification %s queued for %s", identifier, trigger.at.isoformat())
            return identifier

        if pending.pop(identifier, None) is not None:
            self._save_pending(pending)
        await self._send(identifier, content)
        return identifier

    async def cancel(self, identifier: str) -> None:
        pending = self._pending()
        if pending.pop(identifier, None) is not None:
            self._save_pending(pending)

    async def dismiss(self, identifier: str) -> None:
        message_ids = self._message_ids()
        message_id = message_ids.pop(identifier, None)
        if message_id is None:
            return
        self._save_message_ids(message_ids)
        try:
            await self._call(self.bot.delete_message, chat_id=self.chat_id, message_id=message_id)
        except TelegramError as e:
            raise NotificationDeliveryError(f"Telegram delete failed: {e}") from e

    async def get_permission(self) -> NotificationPermission:
        if self.chat_id:
            return NotificationPermission(PermissionStatus.GRANTED, can_ask_again=False)
        return NotificationPermission(PermissionStatus.DENIED, can_ask_again=False)

    async def request_permission(self) -> NotificationPermission:
        # Access is decided by the bot's membership in the chat
        return await self.get_permission()

    async def deliver_due(self, now: Optional[datetime] = None) -> list[str]:
        """
        Send pending notifications whose time has come.

        A failed send stays pending and is retried on the next call.
        """
        now = now or datetime.now(timezone.utc)
        pending = self._pending()
        delivered: list[str] = []

        for identifier, entry in sorted(pending.items(), key=_pending_sort_key):
            at = parse_timestamp(entry.get("at")) if isinstance(entry, dict) else None
            content = entry.get("content") if isinstance(entry, dict) else None
            if at is None or not isinstance(content, dict):
                logger.warning("Dropping malformed pending notification %s", identifier)
                delivered.append(identifier)
                continue
            if at > now:
                continue
            try:
                await self._send(identifier, _content_from_json(content))
            except NotificationDeliveryError as e:
                logger.warning("Pending notification %s not delivered yet: %s", identifier, e)
                continue
            delivered.append(identifier)

        if delivered:
            current = self._pending()
            for identifier in delivered:
                current.pop(identifier, None)
            self._save_pending(current)
        return delivered
