# src/fxpad/shared/__init__.py
"""
Shared Utilities - Cross-cutting Concerns

This package contains shared utilities used across all layers:
- Validation and normalization
- Debounced deferred execution
- Logging configuration
"""

from fxpad.shared.concurrency import Debouncer
from fxpad.shared.validators import (
    clamp_integer,
    normalize_currency_code,
    normalize_positive_number,
    parse_number,
    parse_timestamp,
    validate_bot_token,
    validate_chat_id,
    validate_currency_code,
)

__all__ = [
    "Debouncer",
    "clamp_integer",
    "normalize_currency_code",
    "normalize_positive_number",
    "parse_number",
    "parse_timestamp",
    "validate_bot_token",
    "validate_chat_id",
    "validate_currency_code",
]
