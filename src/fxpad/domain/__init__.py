# src/fxpad/domain/__init__.py
"""
Domain Layer - Business Logic and Models

This package contains pure business logic with no external dependencies:
- Domain models (records, enums, result objects)
- Domain errors
- Expression engine and keypad reducer
"""

from fxpad.domain.errors import (
    DomainError,
    InvalidConfigurationError,
    InvalidRateError,
    MissingPairRateError,
    NotificationDeliveryError,
    RatesUnavailableError,
)
from fxpad.domain.expression import (
    MAX_EXPRESSION_LENGTH,
    evaluate_expression,
    format_expression_display,
    sanitize_and_limit_expression,
)
from fxpad.domain.keypad import KEYPAD_ROWS, apply_key
from fxpad.domain.models import (
    BackgroundTaskResult,
    PinnedRateConfig,
    RateAlert,
    RateAlertCondition,
    RetentionReminderState,
    Trend,
    TrendDirection,
)

__all__ = [
    "DomainError",
    "InvalidConfigurationError",
    "InvalidRateError",
    "MissingPairRateError",
    "NotificationDeliveryError",
    "RatesUnavailableError",
    "MAX_EXPRESSION_LENGTH",
    "evaluate_expression",
    "format_expression_display",
    "sanitize_and_limit_expression",
    "KEYPAD_ROWS",
    "apply_key",
    "BackgroundTaskResult",
    "PinnedRateConfig",
    "RateAlert",
    "RateAlertCondition",
    "RetentionReminderState",
    "Trend",
    "TrendDirection",
]
