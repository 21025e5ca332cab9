# src/fxpad/app.py
"""
Application Entry Point - Service Wiring and Background Runtime

This module serves as the composition root for fxpad. build_app() wires the
store, rate providers, notification center, task registry and feature
services once; main() runs the background runtime that stands in for the
OS task scheduler:

1. initialize every feature (re-register tasks, republish pinned rate,
   re-check alerts, reschedule reminders)
2. every BACKGROUND_POLL_SECONDS run due background tasks and deliver due
   date-triggered notifications

Files that USE this module:
- fxpad console script (pyproject entry point)
- python -m fxpad.app

Files that this module USES:
- fxpad.shared.logging_conf (setup_logging for logging configuration)
- fxpad.config (settings for configuration management)
- fxpad.adapters.* (store, notification centers)
- fxpad.application.* (feature services)
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from telegram import Bot
from telegram.error import NetworkError, TimedOut

from fxpad.adapters.notifications import (
    LocalNotificationCenter,
    NotificationCenter,
    TelegramNotificationCenter,
)
from fxpad.adapters.persistence import JsonFileStore, KeyValueStore
from fxpad.application import (
    CalculatorSession,
    ExchangeRatesService,
    PinnedRateService,
    RateAlertService,
    RetentionReminderService,
    TaskRegistry,
)
from fxpad.config.settings import Settings
from fxpad.shared.logging_conf import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class FxpadApp:
    """Explicitly constructed services, created once per process."""
    settings: Settings
    store: KeyValueStore
    notifications: NotificationCenter
    registry: TaskRegistry
    rates: ExchangeRatesService
    pinned_rate: PinnedRateService
    rate_alerts: RateAlertService
    retention: RetentionReminderService
    bot: Optional[Bot] = None

    def new_calculator(self, exchange_rates: Mapping[str, float]) -> CalculatorSession:
        return CalculatorSession(self.store, exchange_rates, default_codes=self.settings.default_codes)

    async def initialize(self) -> None:
        """Startup hooks of every feature; each logs and contains its own failures."""
        await self.pinned_rate.initialize()
        await self.rate_alerts.initialize()
        await self.retention.initialize()

    async def tick(self) -> None:
        """One background pass: due tasks, then due scheduled notifications."""
        results = await self.registry.run_due_tasks()
        for name, result in results.items():
            logger.info("Background task %s finished: %s", name, result.value)
        delivered = await self.notifications.deliver_due()
        if delivered:
            logger.info("Delivered %d scheduled notification(s)", len(delivered))


def build_app(settings: Settings, store: Optional[KeyValueStore] = None) -> FxpadApp:
    """
    Wire all services.

    Telegram delivery is used when BOT_TOKEN and NOTIFY_CHAT_ID are set,
    otherwise notifications stay in the in-process local center.
    """
    store = store or JsonFileStore(settings.store_file)

    bot = None
    if settings.telegram_enabled:
        bot = Bot(token=settings.bot_token)
        notifications: NotificationCenter = TelegramNotificationCenter(bot, settings.notify_chat_id, store)
        logger.info("Notifications go to Telegram chat %s", settings.notify_chat_id)
    else:
        notifications = LocalNotificationCenter()
        logger.info("Telegram not configured, using local notification center")

    registry = TaskRegistry(store)
    rates = ExchangeRatesService(store, configured_provider=settings.rates_provider)
    return FxpadApp(
        settings=settings,
        store=store,
        notifications=notifications,
        registry=registry,
        rates=rates,
        pinned_rate=PinnedRateService(
            store, rates, notifications, registry, default_codes=settings.default_codes
        ),
        rate_alerts=RateAlertService(
            store, rates, notifications, registry, default_codes=settings.default_codes
        ),
        retention=RetentionReminderService(
            store,
            notifications,
            window_start_hour=settings.reminder_window_start_hour,
            window_end_hour=settings.reminder_window_end_hour,
        ),
        bot=bot,
    )


async def run_background(app: FxpadApp, iterations: Optional[int] = None) -> None:
    """
    Background loop.

    Args:
        app: Wired services
        iterations: Stop after this many ticks (None runs forever)
    """
    if app.bot is not None:
        await app.bot.initialize()
    try:
        await app.initialize()
        count = 0
        while iterations is None or count < iterations:
            try:
                await app.tick()
            except (TimedOut, NetworkError) as e:
                logger.warning("Telegram network error during background tick: %s", e)
            count += 1
            if iterations is None or count < iterations:
                await asyncio.sleep(app.settings.background_poll_seconds)
    finally:
        if app.bot is not None:
            await app.bot.shutdown()


# PID file path for preventing multiple instances
def _get_pid_file(settings: Settings) -> Path:
    pid_file = os.environ.get("FXPAD_PID_FILE")
    if pid_file:
        return Path(pid_file)
    return settings.store_file.parent / "fxpad.pid"


def _check_existing_instance(pid_file: Path) -> None:
    """
    Raises:
        RuntimeError: If the PID file names a process that is still running
    """
    if not pid_file.exists():
        return
    try:
        old_pid = int(pid_file.read_text().strip())
    except (ValueError, OSError):
        pid_file.unlink(missing_ok=True)
        return
    try:
        os.kill(old_pid, 0)  # signal 0 only checks existence
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        return
    raise RuntimeError(
        f"Another fxpad instance is already running (PID: {old_pid}).\n"
        f"Please stop it first with: kill {old_pid}"
    )


def main() -> None:
    """Set up logging, take the instance lock and run the background loop."""
    from fxpad.config import settings

    setup_logging(
        level=logging.INFO,
        log_file=settings.log_file,
        log_dir=settings.log_dir,
        log_to_stdout=settings.log_stdout,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
    )
    logger.info("Working directory: %s", os.getcwd())

    pid_file = _get_pid_file(settings)
    try:
        _check_existing_instance(pid_file)
    except RuntimeError as e:
        logger.error(str(e))
        sys.exit(1)
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))
    atexit.register(lambda: pid_file.unlink(missing_ok=True))
    logger.info("Instance lock acquired (PID: %d)", os.getpid())

    app = build_app(settings)
    logger.info(
        "Starting background runtime… poll interval=%ds, provider=%s",
        settings.background_poll_seconds,
        app.rates.preferred_provider(),
    )
    try:
        asyncio.run(run_background(app))
    except KeyboardInterrupt:
        logger.info("Stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception("Unexpected error in background runtime: %s (type: %s)", e, type(e).__name__)
        raise


if __name__ == "__main__":
    main()
