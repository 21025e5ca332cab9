# src/fxpad/application/pinned_rate_service.py
"""
Pinned Rate Service - Sticky Daily Rate Notification

Tracks one currency pair and keeps a single sticky notification up to date
with the latest daily pair rate, the converted tracked amount and the trend
against the previous capture.

Lifecycle: disabled -> enable() -> active (daily refresh through the
background task "pinned-rate-daily-refresh") -> disable().

Every public operation returns a PinnedRateResult (or the config) and never
raises for expected failures: missing permission, unavailable rates and
notification errors are reported through the result message.

Files that USE this module:
- fxpad.app (initialize at startup, background task)
- tests.test_pinned_rate_service (unit tests)

Files that this module USES:
- fxpad.application.rates_service (rate table, cached flag map)
- fxpad.application.task_registry (periodic refresh)
- fxpad.application.currency_preferences (default pair)
- fxpad.adapters.notifications (sticky notification)
- fxpad.adapters.formatting (summary text)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Sequence

from fxpad.adapters.formatting import build_pinned_summary, trend_label
from fxpad.adapters.formatting.formatter import format_time_label, to_local_time
from fxpad.adapters.notifications import NotificationCenter
from fxpad.adapters.persistence import KeyValueStore, read_json, write_json
from fxpad.application.currency_preferences import default_pair_codes
from fxpad.application.rates_service import (
    ExchangeRatesService,
    cached_flag_iso_map,
    pair_rate,
    utc_now,
)
from fxpad.application.task_registry import TaskRegistry
from fxpad.config import settings
from fxpad.domain.errors import (
    InvalidConfigurationError,
    MissingPairRateError,
    NotificationDeliveryError,
    RatesUnavailableError,
)
from fxpad.domain.models import (
    BackgroundTaskResult,
    NotificationContent,
    PinnedRateConfig,
    PinnedRateResult,
    PinnedRateSummary,
    Trend,
    TrendDirection,
)
from fxpad.shared.validators import (
    clamp_integer,
    normalize_currency_code,
    normalize_positive_number,
    parse_number,
    parse_timestamp,
    validate_currency_code,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "pinnedRateNotificationConfig"
PINNED_NOTIFICATION_ID = "pinned-rate-notification"
BACKGROUND_TASK_NAME = "pinned-rate-daily-refresh"
BACKGROUND_MIN_INTERVAL = timedelta(hours=24)
DEFAULT_AMOUNT = 100.0
DEFAULT_REFRESH_HOUR = 8
DEFAULT_REFRESH_MINUTE = 0
FLAT_TREND_THRESHOLD_PERCENT = 0.0001

# keyword name -> stored JSON key
_CHANGE_KEYS = {
    "base_currency_code": "baseCurrencyCode",
    "quote_currency_code": "quoteCurrencyCode",
    "amount": "amount",
    "refresh_hour": "refreshHour",
    "refresh_minute": "refreshMinute",
}

MSG_DISABLED = "Pinned notification is disabled."
MSG_PERMISSION_REQUIRED = "Notifications permission is required to enable pinned updates."
MSG_RATES_UNAVAILABLE = "Unable to fetch rates yet. Open the app again when online."
MSG_UPDATED = "Pinned notification updated with the latest daily rate."
MSG_STALE_SNAPSHOT = "Latest rates were unavailable, so the previous snapshot is still pinned."
MSG_ENABLE_FAILED = "Failed to enable pinned notification."
MSG_PUBLISH_FAILED = "Unable to publish the pinned notification right now."
MSG_REFRESH_FAILED = "Failed to refresh pinned notification."


def to_local_day_key(value: datetime) -> str:
    """Local calendar day of a timestamp as YYYY-MM-DD."""
    return to_local_time(value).strftime("%Y-%m-%d")


def calculate_trend(previous_rate: Optional[float], current_rate: float) -> Trend:
    """
    Trend between the previous and the current pair rate.

    No valid previous rate gives FLAT with an unknown percent; a change
    below 0.0001% in absolute value is FLAT with 0 percent.
    """
    if not previous_rate or previous_rate <= 0:
        return Trend(TrendDirection.FLAT, None)

    percent = (current_rate - previous_rate) / previous_rate * 100
    if abs(percent) < FLAT_TREND_THRESHOLD_PERCENT:
        return Trend(TrendDirection.FLAT, 0.0)
    return Trend(TrendDirection.UP if percent > 0 else TrendDirection.DOWN, percent)


def should_run_daily_refresh(
    config: PinnedRateConfig, now: datetime, respect_refresh_time: bool = True
) -> bool:
    """
    Whether the pinned rate is due for its daily refresh.

    Due when there is no valid captured rate or day key; never due when the
    rate was already captured today; otherwise due on a new day, and when
    respecting the refresh time only once the local time reaches it.
    """
    if not config.last_rate or config.last_rate <= 0:
        return True
    if not config.last_updated_day_key:
        return True
    if config.last_updated_day_key == to_local_day_key(now):
        return False
    if not respect_refresh_time:
        return True

    local_now = to_local_time(now)
    now_minutes = local_now.hour * 60 + local_now.minute
    refresh_minutes = config.refresh_hour * 60 + config.refresh_minute
    return now_minutes >= refresh_minutes


def _parse_trend_direction(value: Any) -> Optional[TrendDirection]:
    try:
        direction = TrendDirection(value)
    except ValueError:
        return None
    return None if direction is TrendDirection.NONE else direction


def normalize_pinned_config(
    raw: Optional[Mapping[str, Any]],
    fallback: PinnedRateConfig,
    default_codes: Sequence[str],
) -> PinnedRateConfig:
    """
    Build a valid config from a stored (camelCase) record.

    Invalid fields take the fallback's value. When base and quote collide the
    quote becomes the fallback quote, or the default second code when the
    fallback quote is that same code.
    """
    raw = raw or {}
    base = normalize_currency_code(raw.get("baseCurrencyCode"), fallback.base_currency_code)
    quote = normalize_currency_code(raw.get("quoteCurrencyCode"), fallback.quote_currency_code)
    if quote == base:
        quote = default_codes[1] if fallback.quote_currency_code == base else fallback.quote_currency_code

    last_rate = None
    if raw.get("lastRate") is not None:
        parsed = parse_number(raw.get("lastRate"))
        if parsed is None:
            parsed = fallback.last_rate or 0
        last_rate = parsed if parsed > 0 else None

    last_updated_at = None
    if raw.get("lastUpdatedAt") is not None:
        last_updated_at = parse_timestamp(raw.get("lastUpdatedAt")) or fallback.last_updated_at

    day_key = raw.get("lastUpdatedDayKey")
    direction = _parse_trend_direction(raw.get("lastTrendDirection"))

    trend_percent = None
    if raw.get("lastTrendPercent") is not None:
        trend_percent = parse_number(raw.get("lastTrendPercent"))
        if trend_percent is None:
            trend_percent = fallback.last_trend_percent or 0.0

    return PinnedRateConfig(
        enabled=bool(raw.get("enabled")),
        base_currency_code=base,
        quote_currency_code=quote,
        amount=normalize_positive_number(raw.get("amount"), fallback.amount),
        refresh_hour=clamp_integer(raw.get("refreshHour"), 0, 23, fallback.refresh_hour),
        refresh_minute=clamp_integer(raw.get("refreshMinute"), 0, 59, fallback.refresh_minute),
        last_rate=last_rate,
        last_updated_at=last_updated_at,
        last_updated_day_key=(
            day_key if isinstance(day_key, str) and day_key else fallback.last_updated_day_key
        ),
        last_trend_direction=direction or fallback.last_trend_direction,
        last_trend_percent=trend_percent,
    )


def _merge_changes(config: PinnedRateConfig, changes: Mapping[str, Any]) -> dict:
    record = config.to_json()
    for name, value in changes.items():
        if name not in _CHANGE_KEYS:
            raise TypeError(f"Unknown pinned-rate setting: {name}")
        record[_CHANGE_KEYS[name]] = value
    return record


def validate_pinned_changes(config: PinnedRateConfig, changes: Mapping[str, Any]) -> None:
    """
    Reject user-entered settings that would otherwise be silently repaired.

    Hour and minute are clamped later rather than rejected.

    Raises:
        InvalidConfigurationError: With a message suitable for the user
    """
    if "amount" in changes:
        amount = parse_number(changes["amount"])
        if amount is None or amount <= 0:
            raise InvalidConfigurationError("Amount must be a positive number.")

    base = config.base_currency_code
    quote = config.quote_currency_code
    if "base_currency_code" in changes:
        base = str(changes["base_currency_code"] or "").upper().strip()
    if "quote_currency_code" in changes:
        quote = str(changes["quote_currency_code"] or "").upper().strip()
    if not validate_currency_code(base) or not validate_currency_code(quote):
        raise InvalidConfigurationError("Currency codes must be 3-letter codes like USD.")
    if base == quote:
        raise InvalidConfigurationError("Choose two different currencies to track.")


class PinnedRateService:
    """
    Pinned daily-rate notification feature.

    Foreground operations are serialized by one lock; the background refresh
    skips its run when an operation is already in flight.
    """

    def __init__(
        self,
        store: KeyValueStore,
        rates: ExchangeRatesService,
        notifications: NotificationCenter,
        registry: TaskRegistry,
        default_codes: Optional[Sequence[str]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.rates = rates
        self.notifications = notifications
        self.registry = registry
        self.default_codes = tuple(default_codes or settings.default_codes)
        self.clock = clock
        self._lock = asyncio.Lock()
        registry.define_task(BACKGROUND_TASK_NAME, self.run_background_refresh)

    # ----- config -----

    def _default_config(self) -> PinnedRateConfig:
        base, quote = default_pair_codes(self.store, self.default_codes)
        return PinnedRateConfig(
            enabled=False,
            base_currency_code=base,
            quote_currency_code=quote,
            amount=DEFAULT_AMOUNT,
            refresh_hour=DEFAULT_REFRESH_HOUR,
            refresh_minute=DEFAULT_REFRESH_MINUTE,
        )

    def get_config(self) -> PinnedRateConfig:
        """Stored config, or the defaults when nothing (or garbage) is stored."""
        default = self._default_config()
        raw = read_json(self.store, STORAGE_KEY)
        if not isinstance(raw, dict):
            return default
        return normalize_pinned_config(raw, default, self.default_codes)

    def _persist(self, config: PinnedRateConfig) -> None:
        write_json(self.store, STORAGE_KEY, config.to_json())

    def _apply(self, current: PinnedRateConfig, record: Mapping[str, Any]) -> PinnedRateConfig:
        config = normalize_pinned_config(record, current, self.default_codes)
        self._persist(config)
        return config

    def update_draft(self, **changes: Any) -> PinnedRateConfig:
        """Save draft settings (normalized) without touching the notification."""
        current = self.get_config()
        return self._apply(current, _merge_changes(current, changes))

    # ----- notification -----

    async def _ensure_permission(self, request_if_missing: bool) -> bool:
        permission = await self.notifications.get_permission()
        if permission.granted:
            return True
        if not request_if_missing:
            return False
        permission = await self.notifications.request_permission()
        return permission.granted

    async def _remove_notification(self) -> None:
        try:
            await self.notifications.cancel(PINNED_NOTIFICATION_ID)
        except Exception as e:
            logger.warning("Failed to cancel scheduled pinned notification: %s", e)
        try:
            await self.notifications.dismiss(PINNED_NOTIFICATION_ID)
        except Exception as e:
            logger.warning("Failed to dismiss pinned notification: %s", e)

    async def _publish(self, config: PinnedRateConfig) -> PinnedRateSummary:
        summary = build_pinned_summary(config, cached_flag_iso_map(self.store))
        if summary is None:
            raise NotificationDeliveryError(
                "Pinned notification cannot be published without a valid rate."
            )

        await self._remove_notification()
        await self.notifications.schedule(
            NotificationContent(
                title=summary.title,
                subtitle=summary.subtitle,
                body=summary.body,
                sticky=True,
                sound=False,
                data={
                    "screen": "pinned-rate-notification",
                    "baseCurrencyCode": config.base_currency_code,
                    "quoteCurrencyCode": config.quote_currency_code,
                    "baseCurrencyFlagEmoji": summary.base_flag_emoji,
                    "quoteCurrencyFlagEmoji": summary.quote_flag_emoji,
                },
            ),
            identifier=PINNED_NOTIFICATION_ID,
        )
        return summary

    # ----- refresh -----

    async def _updated_config(self, config: PinnedRateConfig) -> PinnedRateConfig:
        rates = await self.rates.fetch_global_exchange_rates()
        if not rates:
            raise RatesUnavailableError("Exchange rates are currently unavailable.")

        next_rate = pair_rate(rates, config.base_currency_code, config.quote_currency_code)
        if next_rate is None:
            raise MissingPairRateError(
                f"Missing exchange rate for {config.base_currency_code}/{config.quote_currency_code}."
            )

        trend = calculate_trend(config.last_rate, next_rate)
        updated_at = self.clock()
        return replace(
            config,
            last_rate=next_rate,
            last_updated_at=updated_at,
            last_updated_day_key=to_local_day_key(updated_at),
            last_trend_direction=trend.direction,
            last_trend_percent=trend.percent,
        )

    async def _sync(
        self,
        config: PinnedRateConfig,
        force: bool = False,
        request_permission: bool = False,
        respect_refresh_time: bool = True,
    ) -> PinnedRateResult:
        if not config.enabled:
            return PinnedRateResult(False, MSG_DISABLED, config)

        if not await self._ensure_permission(request_permission):
            return PinnedRateResult(False, MSG_PERMISSION_REQUIRED, config)

        should_refresh = force or should_run_daily_refresh(config, self.clock(), respect_refresh_time)
        next_config = config
        refreshed = False

        if should_refresh:
            try:
                next_config = await self._updated_config(config)
                self._persist(next_config)
                refreshed = True
            except (RatesUnavailableError, MissingPairRateError) as e:
                logger.warning("Pinned rate refresh failed: %s", e)
                if not config.last_rate:
                    return PinnedRateResult(False, MSG_RATES_UNAVAILABLE, config)

        try:
            summary = await self._publish(next_config)
        except NotificationDeliveryError as e:
            logger.error("Failed to publish pinned notification: %s", e)
            return PinnedRateResult(False, MSG_PUBLISH_FAILED, next_config)

        if refreshed:
            message = MSG_UPDATED
        elif should_refresh:
            message = MSG_STALE_SNAPSHOT
        else:
            next_refresh = format_time_label(next_config.refresh_hour, next_config.refresh_minute)
            message = f"Pinned notification is active. Next refresh after {next_refresh}."
        return PinnedRateResult(True, message, next_config, summary)

    # ----- public operations -----

    async def enable(self, **changes: Any) -> PinnedRateResult:
        """
        Validate and save the settings, switch the feature on and refresh now.

        Invalid amount or currency codes are rejected before anything is saved.
        """
        async with self._lock:
            current = self.get_config()
            try:
                validate_pinned_changes(current, changes)
                record = _merge_changes(current, changes)
            except (InvalidConfigurationError, TypeError) as e:
                logger.info("Pinned rate settings rejected: %s", e)
                return PinnedRateResult(False, str(e), current)

            record["enabled"] = True
            config = self._apply(current, record)

            try:
                self.registry.register_periodic_task(BACKGROUND_TASK_NAME, BACKGROUND_MIN_INTERVAL)
                return await self._sync(config, force=True, request_permission=True)
            except Exception as e:
                logger.error("Failed to enable pinned rate notification: %s", e, exc_info=True)
                return PinnedRateResult(False, MSG_ENABLE_FAILED, config)

    async def refresh_now(self) -> PinnedRateResult:
        """Forced refresh, prompting for permission when missing."""
        async with self._lock:
            config = self.get_config()
            try:
                return await self._sync(config, force=True, request_permission=True)
            except Exception as e:
                logger.error("Failed to refresh pinned rate notification: %s", e, exc_info=True)
                return PinnedRateResult(False, MSG_REFRESH_FAILED, config)

    async def disable(self) -> PinnedRateConfig:
        """Switch the feature off; the settings and last snapshot are kept."""
        async with self._lock:
            current = self.get_config()
            record = current.to_json()
            record["enabled"] = False
            config = self._apply(current, record)

            try:
                self.registry.unregister_task(BACKGROUND_TASK_NAME)
            except Exception as e:
                logger.error("Failed to unregister pinned rate background task: %s", e)

            await self._remove_notification()
            return config

    async def initialize(self) -> None:
        """Startup hook: re-register and republish when the feature is enabled."""
        async with self._lock:
            config = self.get_config()
            if not config.enabled:
                return
            try:
                self.registry.register_periodic_task(BACKGROUND_TASK_NAME, BACKGROUND_MIN_INTERVAL)
                result = await self._sync(config, respect_refresh_time=False)
                logger.info("Pinned rate initialized: %s", result.message)
            except Exception as e:
                logger.error("Failed to initialize pinned rate notifications: %s", e, exc_info=True)

    async def run_background_refresh(self) -> BackgroundTaskResult:
        """Background task callback for the daily refresh."""
        if self._lock.locked():
            logger.info("Pinned rate refresh already in progress, skipping background run")
            return BackgroundTaskResult.SUCCESS

        async with self._lock:
            config = self.get_config()
            if not config.enabled:
                return BackgroundTaskResult.SUCCESS
            result = await self._sync(config, respect_refresh_time=False)

        if not result.success:
            logger.warning("Pinned rate background refresh failed: %s", result.message)
            return BackgroundTaskResult.FAILED
        return BackgroundTaskResult.SUCCESS

    @staticmethod
    def trend_label(direction: TrendDirection, percent: Optional[float]) -> str:
        """Long trend description for settings screens."""
        return trend_label(direction, percent)
