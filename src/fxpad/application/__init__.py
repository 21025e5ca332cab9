# src/fxpad/application/__init__.py
"""
Application Layer - Use Cases and Services

This package contains application services that orchestrate domain logic.
Collaborators (store, providers, notification center, task registry) are
injected; nothing here is a module-level singleton.
"""

from fxpad.application.calculator import CalculatorSession
from fxpad.application.pinned_rate_service import PinnedRateService
from fxpad.application.rate_alert_service import RateAlertService
from fxpad.application.rates_service import ExchangeRatesService
from fxpad.application.retention_service import RetentionReminderService
from fxpad.application.task_registry import TaskRegistry

__all__ = [
    "CalculatorSession",
    "ExchangeRatesService",
    "PinnedRateService",
    "RateAlertService",
    "RetentionReminderService",
    "TaskRegistry",
]
