# src/fxpad/application/retention_service.py
"""
Retention Reminder Service - Gentle "check your rates" Reminders

After each recorded currency check, three date-triggered reminders are
(re)scheduled at +30h, +78h and +174h, moved into the local daytime window
[REMINDER_WINDOW_START_HOUR, REMINDER_WINDOW_END_HOUR). New activity
reschedules the whole sequence from scratch.

Reminders are suppressed (and any scheduled ones cancelled) while the pinned
rate notification is enabled, or before any activity was recorded. The user
is asked for notification permission at most once for this feature.

Files that USE this module:
- fxpad.app (initialize at startup)
- tests.test_retention_service (unit tests)

Files that this module USES:
- fxpad.adapters.notifications (date-triggered notifications)
- fxpad.adapters.formatting (reminder copy)
- fxpad.application.currency_preferences (tracked pair label)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from fxpad.adapters.formatting import pick_reminder_template
from fxpad.adapters.formatting.formatter import to_local_time, tracked_pair_label
from fxpad.adapters.notifications import DateTrigger, NotificationCenter
from fxpad.adapters.persistence import KeyValueStore, read_json, write_json
from fxpad.application.currency_preferences import read_selected_codes
from fxpad.application.pinned_rate_service import STORAGE_KEY as PINNED_CONFIG_KEY
from fxpad.application.rates_service import utc_now
from fxpad.config import settings
from fxpad.domain.models import NotificationContent, RetentionReminderState
from fxpad.shared.validators import parse_timestamp

logger = logging.getLogger(__name__)

STATE_KEY = "retentionReminderState"
PERMISSION_PROMPTED_KEY = "retentionReminderPermissionPrompted"

MIN_SCHEDULE_LEAD = timedelta(minutes=1)
FALLBACK_LEAD = timedelta(minutes=30)
MIN_STAGE_GAP = timedelta(minutes=30)
TRACK_ACTIVITY_THROTTLE = timedelta(minutes=10)
REMINDER_WINDOW_MINUTE = 15
MAX_WINDOW_MINUTE = 55


@dataclass(frozen=True)
class ReminderStage:
    id: str
    delay: timedelta
    minute_offset: int


REMINDER_STAGES = (
    ReminderStage("retention-reminder-1", timedelta(hours=30), 0),
    ReminderStage("retention-reminder-2", timedelta(hours=78), 5),
    ReminderStage("retention-reminder-3", timedelta(hours=174), 10),
)
REMINDER_IDS = tuple(stage.id for stage in REMINDER_STAGES)


def normalize_reminder_time(
    at: datetime, minute_offset: int, start_hour: int, end_hour: int
) -> datetime:
    """
    Move a proposed reminder time into the local delivery window.

    Before the window it moves to today's window start, at or after the
    window end to the next day's window start (at minute 15 + offset, capped
    at 55). Inside the window only seconds are dropped.
    """
    local = to_local_time(at)
    window_minute = min(MAX_WINDOW_MINUTE, REMINDER_WINDOW_MINUTE + minute_offset)

    if local.hour < start_hour:
        return local.replace(hour=start_hour, minute=window_minute, second=0, microsecond=0)
    if local.hour >= end_hour:
        next_day = local + timedelta(days=1)
        return next_day.replace(hour=start_hour, minute=window_minute, second=0, microsecond=0)
    return local.replace(second=0, microsecond=0)


def to_future_reminder_time(
    base: datetime, minute_offset: int, now: datetime, start_hour: int, end_hour: int
) -> datetime:
    """Window-normalized reminder time at least one minute from now."""
    target = normalize_reminder_time(
        max(base, now + MIN_SCHEDULE_LEAD), minute_offset, start_hour, end_hour
    )
    if target <= now + MIN_SCHEDULE_LEAD:
        target = normalize_reminder_time(now + FALLBACK_LEAD, minute_offset, start_hour, end_hour)
    return target


def plan_reminder_times(
    last_check_at: datetime, now: datetime, start_hour: int, end_hour: int
) -> list[datetime]:
    """Trigger times for all stages, each at least 30 minutes after the previous one."""
    times: list[datetime] = []
    for stage in REMINDER_STAGES:
        trigger_at = to_future_reminder_time(
            last_check_at + stage.delay, stage.minute_offset, now, start_hour, end_hour
        )
        if times and trigger_at <= times[-1] + MIN_STAGE_GAP:
            trigger_at = to_future_reminder_time(
                times[-1] + MIN_STAGE_GAP, stage.minute_offset, now, start_hour, end_hour
            )
        times.append(trigger_at)
    return times


class RetentionReminderService:
    def __init__(
        self,
        store: KeyValueStore,
        notifications: NotificationCenter,
        clock: Callable[[], datetime] = utc_now,
        window_start_hour: Optional[int] = None,
        window_end_hour: Optional[int] = None,
    ):
        self.store = store
        self.notifications = notifications
        self.clock = clock
        self.window_start_hour = (
            settings.reminder_window_start_hour if window_start_hour is None else window_start_hour
        )
        self.window_end_hour = (
            settings.reminder_window_end_hour if window_end_hour is None else window_end_hour
        )
        self._state: Optional[RetentionReminderState] = None
        self._lock = asyncio.Lock()

    # ----- state -----

    def get_state(self) -> RetentionReminderState:
        if self._state is None:
            raw = read_json(self.store, STATE_KEY)
            raw = raw if isinstance(raw, dict) else {}
            self._state = RetentionReminderState(
                last_currency_check_at=parse_timestamp(raw.get("lastCurrencyCheckAt")),
                last_scheduled_at=parse_timestamp(raw.get("lastScheduledAt")),
            )
        return RetentionReminderState(
            self._state.last_currency_check_at, self._state.last_scheduled_at
        )

    def _persist(self, state: RetentionReminderState) -> None:
        self._state = RetentionReminderState(state.last_currency_check_at, state.last_scheduled_at)
        write_json(self.store, STATE_KEY, state.to_json())

    def _pinned_rate_enabled(self) -> bool:
        raw = read_json(self.store, PINNED_CONFIG_KEY)
        return isinstance(raw, dict) and bool(raw.get("enabled"))

    # ----- permission -----

    async def _ensure_permission(self, request_if_missing: bool) -> bool:
        permission = await self.notifications.get_permission()
        if permission.granted:
            return True
        if not request_if_missing or not permission.can_ask_again:
            return False
        if self.store.get_one(PERMISSION_PROMPTED_KEY) == "1":
            return False

        self.store.set({PERMISSION_PROMPTED_KEY: "1"})
        permission = await self.notifications.request_permission()
        return permission.granted

    # ----- scheduling -----

    async def cancel_reminders(self) -> None:
        """Cancel all three reminder stages; failures are ignored."""
        results = await asyncio.gather(
            *(self.notifications.cancel(identifier) for identifier in REMINDER_IDS),
            return_exceptions=True,
        )
        for identifier, result in zip(REMINDER_IDS, results):
            if isinstance(result, Exception):
                logger.debug("Cancel of %s failed: %s", identifier, result)

    async def _schedule_sequence(self, state: RetentionReminderState, request_permission: bool) -> bool:
        if state.last_currency_check_at is None or self._pinned_rate_enabled():
            await self.cancel_reminders()
            return False

        if not await self._ensure_permission(request_permission):
            return False

        await self.cancel_reminders()

        pair_label = tracked_pair_label(read_selected_codes(self.store))
        now = self.clock()
        trigger_times = plan_reminder_times(
            state.last_currency_check_at, now, self.window_start_hour, self.window_end_hour
        )

        for index, (stage, trigger_at) in enumerate(zip(REMINDER_STAGES, trigger_times)):
            title, body = pick_reminder_template(index, pair_label, state.last_currency_check_at)
            await self.notifications.schedule(
                NotificationContent(
                    title=title,
                    body=body,
                    sound=True,
                    data={
                        "screen": "index",
                        "type": "retention-reminder",
                        "pairLabel": pair_label,
                        "stage": str(index + 1),
                    },
                ),
                trigger=DateTrigger(trigger_at),
                identifier=stage.id,
            )
            logger.debug("Retention reminder %s at %s", stage.id, trigger_at.isoformat())

        self._persist(RetentionReminderState(state.last_currency_check_at, now))
        return True

    async def schedule_reminder_sequence(
        self, state: Optional[RetentionReminderState] = None, request_permission: bool = False
    ) -> bool:
        """
        Reschedule all reminder stages from the last recorded activity.

        Returns:
            True when the sequence was scheduled
        """
        async with self._lock:
            return await self._schedule_sequence(state or self.get_state(), request_permission)

    async def track_currency_check_activity(self) -> None:
        """Record a currency check (at most once per 10 minutes) and reschedule reminders."""
        async with self._lock:
            current = self.get_state()
            now = self.clock()
            last = current.last_currency_check_at
            if last is not None and now - last < TRACK_ACTIVITY_THROTTLE:
                return

            state = RetentionReminderState(now, current.last_scheduled_at)
            self._persist(state)
            try:
                await self._schedule_sequence(state, request_permission=True)
            except Exception as e:
                logger.error("Failed to schedule retention reminders: %s", e, exc_info=True)

    async def initialize(self) -> None:
        """Startup hook: reschedule without prompting for permission."""
        async with self._lock:
            try:
                await self._schedule_sequence(self.get_state(), request_permission=False)
            except Exception as e:
                logger.error("Failed to initialize retention reminders: %s", e, exc_info=True)
