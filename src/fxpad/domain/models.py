# src/fxpad/domain/models.py
"""
Domain Models - Pure Business Objects

This module contains domain models representing core business concepts:
- Trend and alert-condition enums
- Persisted feature records (pinned rate, rate alerts, retention state)
- Operation result objects returned by the scheduler services

Files that USE this module:
- fxpad.application.* (all services use domain models)
- fxpad.adapters.* (formatting and providers build domain models)
- tests.* (tests use domain models for test data)

Files that this module USES:
- fxpad.shared.validators (timestamp serialization)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from fxpad.shared.validators import format_timestamp


class TrendDirection(str, Enum):
    """Direction of change between two captured pair rates."""
    UP = "up"
    DOWN = "down"
    FLAT = "flat"
    NONE = "none"


class RateAlertCondition(str, Enum):
    """When a rate alert fires relative to its target."""
    AT_OR_ABOVE = "atOrAbove"
    AT_OR_BELOW = "atOrBelow"

    def is_met(self, current_rate: float, target_rate: float) -> bool:
        if self is RateAlertCondition.AT_OR_ABOVE:
            return current_rate >= target_rate
        return current_rate <= target_rate

    @property
    def label(self) -> str:
        return "at or above" if self is RateAlertCondition.AT_OR_ABOVE else "at or below"


class BackgroundTaskResult(str, Enum):
    """Binary status reported back to the background-task runtime."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class Trend:
    """
    Change between the previous and the current pair rate.

    Attributes:
        direction: UP, DOWN or FLAT
        percent: Signed percentage change, None when there was no baseline
    """
    direction: TrendDirection
    percent: Optional[float]


@dataclass(frozen=True)
class Currency:
    """A currency offered by the rate provider."""
    code: str
    name: str
    flag: str  # ISO country code used for the flag emoji

    def to_json(self) -> dict:
        return {"code": self.code, "name": self.name, "flag": self.flag}


@dataclass
class PinnedRateConfig:
    """
    Persisted configuration of the pinned daily-rate notification.

    Attributes:
        enabled: Whether the sticky notification is active
        base_currency_code: Currency converted from (3 letters)
        quote_currency_code: Currency converted to (3 letters, differs from base)
        amount: Tracked amount of the base currency (> 0)
        refresh_hour: Local hour of the daily refresh (0-23)
        refresh_minute: Local minute of the daily refresh (0-59)
        last_rate: Last captured pair rate (quote per 1 base)
        last_updated_at: When last_rate was captured
        last_updated_day_key: Local calendar day of last_updated_at (YYYY-MM-DD)
        last_trend_direction: Trend of the last refresh
        last_trend_percent: Percentage change of the last refresh
    """
    enabled: bool
    base_currency_code: str
    quote_currency_code: str
    amount: float = 100.0
    refresh_hour: int = 8
    refresh_minute: int = 0
    last_rate: Optional[float] = None
    last_updated_at: Optional[datetime] = None
    last_updated_day_key: Optional[str] = None
    last_trend_direction: Optional[TrendDirection] = None
    last_trend_percent: Optional[float] = None

    def to_json(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "enabled": self.enabled,
            "baseCurrencyCode": self.base_currency_code,
            "quoteCurrencyCode": self.quote_currency_code,
            "amount": self.amount,
            "refreshHour": self.refresh_hour,
            "refreshMinute": self.refresh_minute,
            "lastRate": self.last_rate,
            "lastUpdatedAt": format_timestamp(self.last_updated_at),
            "lastUpdatedDayKey": self.last_updated_day_key,
            "lastTrendDirection": (
                self.last_trend_direction.value if self.last_trend_direction else None
            ),
            "lastTrendPercent": self.last_trend_percent,
        }


@dataclass
class RateAlert:
    """
    A user-defined target for a currency pair.

    Once triggered and notified, the alert is disabled so the same crossing
    is reported at most once; the user re-enables it explicitly.
    """
    id: str
    enabled: bool
    base_currency_code: str
    quote_currency_code: str
    target_rate: float
    condition: RateAlertCondition
    created_at: datetime
    last_checked_at: Optional[datetime] = None
    last_checked_rate: Optional[float] = None
    triggered_at: Optional[datetime] = None

    def to_json(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "enabled": self.enabled,
            "baseCurrencyCode": self.base_currency_code,
            "quoteCurrencyCode": self.quote_currency_code,
            "targetRate": self.target_rate,
            "condition": self.condition.value,
            "createdAt": format_timestamp(self.created_at),
            "lastCheckedAt": format_timestamp(self.last_checked_at),
            "lastCheckedRate": self.last_checked_rate,
            "triggeredAt": format_timestamp(self.triggered_at),
        }


@dataclass
class RetentionReminderState:
    """Last recorded currency-check activity and last reminder scheduling."""
    last_currency_check_at: Optional[datetime] = None
    last_scheduled_at: Optional[datetime] = None

    def to_json(self) -> dict:
        return {
            "lastCurrencyCheckAt": format_timestamp(self.last_currency_check_at),
            "lastScheduledAt": format_timestamp(self.last_scheduled_at),
        }


@dataclass(frozen=True)
class ConversionRecord:
    """One entry of the local conversion history."""
    from_currency: str
    to_currency: str
    amount: str
    converted_amount: str
    exchange_rate: float
    timestamp: datetime

    def to_json(self) -> dict:
        return {
            "fromCurrency": self.from_currency,
            "toCurrency": self.to_currency,
            "amount": self.amount,
            "convertedAmount": self.converted_amount,
            "exchangeRate": self.exchange_rate,
            "timestamp": format_timestamp(self.timestamp),
        }


@dataclass(frozen=True)
class PinnedRateSummary:
    """Rendered content of the sticky pinned-rate notification."""
    title: str
    subtitle: str
    body: str
    converted_amount: float
    pair_rate: float
    trend_direction: TrendDirection
    trend_percent: Optional[float]
    base_flag_emoji: str
    quote_flag_emoji: str


@dataclass(frozen=True)
class PinnedRateResult:
    """Outcome of a pinned-rate operation."""
    success: bool
    message: str
    config: PinnedRateConfig
    summary: Optional[PinnedRateSummary] = None


@dataclass(frozen=True)
class RateAlertEvaluationResult:
    """
    Outcome of a rate-alert evaluation.

    Attributes:
        success: False only when the evaluation itself failed
        alerts: Alerts after the evaluation
        triggered_count: Alerts notified and disabled in this run
        message: Human-readable summary
        blocked_count: Matched alerts left enabled because they could not be notified
    """
    success: bool
    alerts: list[RateAlert]
    triggered_count: int
    message: str
    blocked_count: int = 0


@dataclass(frozen=True)
class NotificationContent:
    """What a notification shows; `data` carries routing hints for the UI."""
    title: str
    body: str
    subtitle: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    sticky: bool = False
    sound: bool = True
