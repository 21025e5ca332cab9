# src/fxpad/application/task_registry.py
"""
Task Registry - Explicit Background Task Table

Background features declare their callback once with define_task() and
switch periodic execution on and off with register_periodic_task() /
unregister_task(). Registrations (name, minimum interval, last run) are
persisted under "backgroundTasks" so they survive restarts; callbacks are
process-local and defined again at startup.

The background loop in fxpad.app calls run_due_tasks() on every tick.

Files that USE this module:
- fxpad.application.pinned_rate_service (pinned-rate-daily-refresh)
- fxpad.application.rate_alert_service (rate-alerts-background-check)
- fxpad.app (background loop)
- tests.test_task_registry (unit tests)

Files that this module USES:
- fxpad.adapters.persistence (registration table)
- fxpad.domain.models (BackgroundTaskResult)
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from fxpad.adapters.persistence import KeyValueStore, read_json, write_json
from fxpad.domain.models import BackgroundTaskResult
from fxpad.shared.validators import format_timestamp, parse_number, parse_timestamp

logger = logging.getLogger(__name__)

BACKGROUND_TASKS_KEY = "backgroundTasks"

TaskCallback = Callable[[], Awaitable[BackgroundTaskResult]]


class TaskRegistry:
    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.store = store
        self.clock = clock
        self._callbacks: dict[str, TaskCallback] = {}

    # ----- definitions (process-local) -----

    def define_task(self, name: str, callback: TaskCallback) -> bool:
        """
        Define the callback for a task name.

        Returns:
            False when the name is already defined (the first definition wins)
        """
        if name in self._callbacks:
            return False
        self._callbacks[name] = callback
        logger.debug("Background task defined: %s", name)
        return True

    def is_task_defined(self, name: str) -> bool:
        return name in self._callbacks

    # ----- registrations (persisted) -----

    def _registrations(self) -> dict[str, dict]:
        raw = read_json(self.store, BACKGROUND_TASKS_KEY)
        if not isinstance(raw, dict):
            return {}
        return {str(name): entry for name, entry in raw.items() if isinstance(entry, dict)}

    def _save(self, registrations: dict[str, dict]) -> None:
        write_json(self.store, BACKGROUND_TASKS_KEY, registrations)

    def register_periodic_task(self, name: str, minimum_interval: timedelta) -> None:
        """Register (or re-register with a new interval) a periodic task; keeps its last run."""
        registrations = self._registrations()
        entry = registrations.get(name, {})
        interval_minutes = minimum_interval.total_seconds() / 60
        if entry.get("minimumIntervalMinutes") == interval_minutes:
            return
        entry["minimumIntervalMinutes"] = interval_minutes
        entry.setdefault("lastRunAt", None)
        registrations[name] = entry
        self._save(registrations)
        logger.info("Background task registered: %s (every %.0f min)", name, interval_minutes)

    def unregister_task(self, name: str) -> None:
        registrations = self._registrations()
        if registrations.pop(name, None) is None:
            return
        self._save(registrations)
        logger.info("Background task unregistered: %s", name)

    def is_task_registered(self, name: str) -> bool:
        return name in self._registrations()

    def registered_tasks(self) -> list[str]:
        return sorted(self._registrations())

    # ----- execution -----

    async def run_task(self, name: str) -> BackgroundTaskResult:
        """Run one defined task; exceptions and unknown names count as FAILED."""
        callback = self._callbacks.get(name)
        if callback is None:
            logger.warning("Background task %s is not defined", name)
            return BackgroundTaskResult.FAILED

        try:
            result = await callback()
        except Exception as e:
            logger.error("Background task %s failed: %s", name, e, exc_info=True)
            result = BackgroundTaskResult.FAILED

        registrations = self._registrations()
        if name in registrations:
            registrations[name]["lastRunAt"] = format_timestamp(self.clock())
            registrations[name]["lastResult"] = result.value
            self._save(registrations)
        return result

    def _is_due(self, entry: dict, now: datetime) -> bool:
        last_run_at = parse_timestamp(entry.get("lastRunAt"))
        if last_run_at is None:
            return True
        interval = parse_number(entry.get("minimumIntervalMinutes")) or 0
        return now - last_run_at >= timedelta(minutes=interval)

    async def run_due_tasks(self, now: Optional[datetime] = None) -> dict[str, BackgroundTaskResult]:
        """Run every registered, defined task whose interval elapsed since its last run."""
        now = now or self.clock()
        results: dict[str, BackgroundTaskResult] = {}
        for name, entry in self._registrations().items():
            if name not in self._callbacks or not self._is_due(entry, now):
                continue
            results[name] = await self.run_task(name)
        return results
