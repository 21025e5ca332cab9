# src/fxpad/application/rate_alert_service.py
"""
Rate Alert Service - Target Rate Notifications

Users define targets for currency pairs ("notify me when USD/KES is at or
above 130"). Evaluation fetches the rate table once per batch, records the
checked rate on every enabled alert and sends one detailed notification per
matched alert. A notified alert is disabled and stamped with triggered_at so
the same crossing is reported at most once.

The background task "rate-alerts-background-check" is registered exactly
while at least one alert is enabled.

Files that USE this module:
- fxpad.app (initialize at startup, background task)
- tests.test_rate_alert_service (unit tests)

Files that this module USES:
- fxpad.application.rates_service (shared rate fetch)
- fxpad.application.task_registry (periodic check)
- fxpad.adapters.notifications (alert notifications)
- fxpad.adapters.formatting (notification text)
"""
from __future__ import annotations

import asyncio
import logging
import random
import string
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Sequence

from fxpad.adapters.formatting import build_rate_alert_content
from fxpad.adapters.notifications import NotificationCenter
from fxpad.adapters.persistence import KeyValueStore, read_json, write_json
from fxpad.application.rates_service import ExchangeRatesService, pair_rate, utc_now
from fxpad.application.task_registry import TaskRegistry
from fxpad.config import settings
from fxpad.domain.errors import InvalidConfigurationError, InvalidRateError
from fxpad.domain.models import (
    BackgroundTaskResult,
    RateAlert,
    RateAlertCondition,
    RateAlertEvaluationResult,
)
from fxpad.shared.validators import (
    normalize_currency_code,
    normalize_positive_number,
    parse_number,
    parse_timestamp,
    validate_currency_code,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "rateAlerts"
BACKGROUND_TASK_NAME = "rate-alerts-background-check"
BACKGROUND_MIN_INTERVAL = timedelta(minutes=60)

MSG_NO_ENABLED = "No enabled alerts to evaluate."
MSG_RATES_UNAVAILABLE = "Unable to fetch exchange rates right now."
MSG_NONE_TRIGGERED = "No alerts triggered with the latest rates."
MSG_EVALUATION_FAILED = "Unable to evaluate rate alerts right now."

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_alert_id(now: datetime) -> str:
    """'<epoch-ms>-<6 random base36 chars>'"""
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"{int(now.timestamp() * 1000)}-{suffix}"


def _positive_or_none(value: Any) -> Optional[float]:
    parsed = parse_number(value)
    return parsed if parsed is not None and parsed > 0 else None


def normalize_alert(
    raw: Optional[Mapping[str, Any]], fallback: RateAlert, default_codes: Sequence[str]
) -> RateAlert:
    """Build a valid alert from a stored (camelCase) record, repairing bad fields from fallback."""
    raw = raw or {}
    base = normalize_currency_code(raw.get("baseCurrencyCode"), fallback.base_currency_code)
    quote = normalize_currency_code(raw.get("quoteCurrencyCode"), fallback.quote_currency_code)
    if base == quote:
        quote = default_codes[1] if fallback.base_currency_code == base else fallback.base_currency_code

    try:
        condition = RateAlertCondition(raw.get("condition"))
    except ValueError:
        condition = fallback.condition

    alert_id = raw.get("id")
    enabled = raw.get("enabled")
    return RateAlert(
        id=alert_id if isinstance(alert_id, str) and alert_id.strip() else fallback.id,
        enabled=enabled if isinstance(enabled, bool) else fallback.enabled,
        base_currency_code=base,
        quote_currency_code=quote,
        target_rate=normalize_positive_number(raw.get("targetRate"), fallback.target_rate),
        condition=condition,
        created_at=parse_timestamp(raw.get("createdAt")) or fallback.created_at,
        last_checked_at=parse_timestamp(raw.get("lastCheckedAt")),
        last_checked_rate=_positive_or_none(raw.get("lastCheckedRate")),
        triggered_at=parse_timestamp(raw.get("triggeredAt")),
    )


def _plural_message(count: int, one: str, many: str) -> str:
    return one if count == 1 else many.format(count=count)


class RateAlertService:
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
        self._cache: Optional[list[RateAlert]] = None
        self._lock = asyncio.Lock()
        registry.define_task(BACKGROUND_TASK_NAME, self.run_background_check)

    # ----- storage -----

    def _default_alert(self) -> RateAlert:
        now = self.clock()
        return RateAlert(
            id=new_alert_id(now),
            enabled=True,
            base_currency_code=self.default_codes[0],
            quote_currency_code=self.default_codes[1],
            target_rate=1.0,
            condition=RateAlertCondition.AT_OR_ABOVE,
            created_at=now,
        )

    def _load(self) -> list[RateAlert]:
        if self._cache is None:
            raw = read_json(self.store, STORAGE_KEY)
            if not isinstance(raw, list):
                self._cache = []
            else:
                self._cache = [
                    normalize_alert(entry if isinstance(entry, dict) else None,
                                    self._default_alert(), self.default_codes)
                    for entry in raw
                ]
        return [replace(alert) for alert in self._cache]

    def _persist(self, alerts: list[RateAlert]) -> None:
        self._cache = [replace(alert) for alert in alerts]
        write_json(self.store, STORAGE_KEY, [alert.to_json() for alert in alerts])

    def _sync_task_registration(self, alerts: list[RateAlert]) -> None:
        if any(alert.enabled for alert in alerts):
            self.registry.register_periodic_task(BACKGROUND_TASK_NAME, BACKGROUND_MIN_INTERVAL)
        else:
            self.registry.unregister_task(BACKGROUND_TASK_NAME)

    def get_alerts(self) -> list[RateAlert]:
        """All alerts, newest first."""
        return self._load()

    # ----- evaluation -----

    async def _ensure_permission(self, request_if_missing: bool) -> bool:
        permission = await self.notifications.get_permission()
        if permission.granted:
            return True
        if not request_if_missing or not permission.can_ask_again:
            return False
        permission = await self.notifications.request_permission()
        return permission.granted

    async def _evaluate(self, request_permission: bool) -> RateAlertEvaluationResult:
        alerts = self._load()
        if not any(alert.enabled for alert in alerts):
            return RateAlertEvaluationResult(True, alerts, 0, MSG_NO_ENABLED)

        rates = await self.rates.fetch_global_exchange_rates()
        if not rates:
            return RateAlertEvaluationResult(False, alerts, 0, MSG_RATES_UNAVAILABLE)

        now = self.clock()
        matched: list[tuple[RateAlert, float]] = []
        for alert in alerts:
            if not alert.enabled:
                continue
            current = pair_rate(rates, alert.base_currency_code, alert.quote_currency_code)
            if current is None:
                logger.debug("No rate for %s/%s", alert.base_currency_code, alert.quote_currency_code)
                continue
            alert.last_checked_rate = current
            alert.last_checked_at = now
            if alert.condition.is_met(current, alert.target_rate):
                matched.append((alert, current))

        blocked_count = 0
        failed_count = 0
        triggered_count = 0
        if matched:
            if await self._ensure_permission(request_permission):
                outcomes = await asyncio.gather(
                    *(
                        self.notifications.schedule(build_rate_alert_content(alert, current))
                        for alert, current in matched
                    ),
                    return_exceptions=True,
                )
                for (alert, _), outcome in zip(matched, outcomes):
                    if isinstance(outcome, Exception):
                        failed_count += 1
                        logger.error("Rate alert %s notification failed: %s", alert.id, outcome)
                        continue
                    alert.enabled = False
                    alert.triggered_at = now
                    triggered_count += 1
            else:
                blocked_count = len(matched)

        self._persist(alerts)
        self._sync_task_registration(alerts)

        if not matched:
            return RateAlertEvaluationResult(True, alerts, 0, MSG_NONE_TRIGGERED)

        if blocked_count:
            message = _plural_message(
                blocked_count,
                "1 alert condition matched, but notifications are not permitted. "
                "The alert remains enabled.",
                "{count} alert conditions matched, but notifications are not permitted. "
                "Alerts remain enabled.",
            )
            return RateAlertEvaluationResult(True, alerts, 0, message, blocked_count=blocked_count)

        if failed_count:
            message = _plural_message(
                failed_count,
                "1 alert notification could not be delivered. The alert remains enabled.",
                "{count} alert notifications could not be delivered. Those alerts remain enabled.",
            )
            return RateAlertEvaluationResult(
                False, alerts, triggered_count, message, blocked_count=failed_count
            )

        message = _plural_message(
            triggered_count,
            "1 alert triggered and a detailed notification was sent.",
            "{count} alerts triggered and detailed notifications were sent.",
        )
        return RateAlertEvaluationResult(True, alerts, triggered_count, message)

    async def _evaluate_guarded(self, request_permission: bool) -> RateAlertEvaluationResult:
        try:
            return await self._evaluate(request_permission)
        except Exception as e:
            logger.error("Rate alert evaluation failed: %s", e, exc_info=True)
            return RateAlertEvaluationResult(False, self._load(), 0, MSG_EVALUATION_FAILED)

    async def evaluate_now(self, request_permission: bool = False) -> RateAlertEvaluationResult:
        """
        Check every enabled alert against one fresh rate table.

        Args:
            request_permission: Prompt for notification permission when a match needs it

        Returns:
            RateAlertEvaluationResult; matched alerts that could not be notified stay enabled
        """
        async with self._lock:
            return await self._evaluate_guarded(request_permission)

    # ----- user operations -----

    def _validate(self, base: str, quote: str, target_rate: Any, condition: Any) -> RateAlertCondition:
        if not validate_currency_code(base) or not validate_currency_code(quote):
            raise InvalidConfigurationError("Currency codes must be 3-letter codes like USD.")
        if base == quote:
            raise InvalidConfigurationError("Choose two different currencies for the alert.")
        rate = parse_number(target_rate)
        if rate is None or rate <= 0:
            raise InvalidRateError("Target rate must be a positive number.")
        try:
            return RateAlertCondition(condition)
        except ValueError as e:
            raise InvalidConfigurationError("Condition must be at or above, or at or below.") from e

    async def create_alert(
        self,
        base_currency_code: str,
        quote_currency_code: str,
        target_rate: float,
        condition: RateAlertCondition | str = RateAlertCondition.AT_OR_ABOVE,
    ) -> RateAlertEvaluationResult:
        """Add an alert (listed first) and evaluate all alerts right away."""
        async with self._lock:
            alerts = self._load()
            base = str(base_currency_code or "").upper().strip()
            quote = str(quote_currency_code or "").upper().strip()
            try:
                parsed_condition = self._validate(base, quote, target_rate, condition)
            except (InvalidConfigurationError, InvalidRateError) as e:
                logger.info("Rate alert rejected: %s", e)
                return RateAlertEvaluationResult(False, alerts, 0, str(e))

            alert = replace(
                self._default_alert(),
                base_currency_code=base,
                quote_currency_code=quote,
                target_rate=float(target_rate),
                condition=parsed_condition,
            )
            alerts = [alert] + alerts
            self._persist(alerts)
            self._sync_task_registration(alerts)
            logger.info("Rate alert created: %s %s/%s %s %s", alert.id, base, quote,
                        parsed_condition.value, target_rate)
            return await self._evaluate_guarded(request_permission=True)

    async def toggle_alert(self, alert_id: str, enabled: bool) -> list[RateAlert]:
        """Enable or disable one alert; re-enabling clears triggered_at."""
        async with self._lock:
            alerts = self._load()
            for alert in alerts:
                if alert.id == alert_id:
                    alert.enabled = enabled
                    if enabled:
                        alert.triggered_at = None
            self._persist(alerts)
            self._sync_task_registration(alerts)
            return alerts

    async def delete_alert(self, alert_id: str) -> list[RateAlert]:
        async with self._lock:
            alerts = [alert for alert in self._load() if alert.id != alert_id]
            self._persist(alerts)
            self._sync_task_registration(alerts)
            return alerts

    async def initialize(self) -> None:
        """Startup hook: sync task registration and check enabled alerts without prompting."""
        async with self._lock:
            alerts = self._load()
            try:
                self._sync_task_registration(alerts)
                if any(alert.enabled for alert in alerts):
                    result = await self._evaluate_guarded(request_permission=False)
                    logger.info("Rate alerts initialized: %s", result.message)
            except Exception as e:
                logger.error("Failed to initialize rate alerts: %s", e, exc_info=True)

    async def run_background_check(self) -> BackgroundTaskResult:
        """Background task callback."""
        if self._lock.locked():
            logger.info("Rate alert evaluation already in progress, skipping background run")
            return BackgroundTaskResult.SUCCESS

        async with self._lock:
            result = await self._evaluate_guarded(request_permission=False)
        if not result.success:
            logger.warning("Rate alert background check failed: %s", result.message)
            return BackgroundTaskResult.FAILED
        return BackgroundTaskResult.SUCCESS
