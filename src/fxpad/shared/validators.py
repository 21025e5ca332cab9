# src/fxpad/shared/validators.py
"""
Input Validation Utilities - Configuration and Record Validation

This module provides validation and normalization helpers shared by the
settings layer and the persisted-record loaders. Loaders use the normalize_*
helpers to self-heal malformed stored values instead of failing.

Files that USE this module:
- fxpad.config.settings (token, chat ID and currency code validators)
- fxpad.application.pinned_rate_service (normalizing stored config)
- fxpad.application.rate_alert_service (normalizing stored alerts)
- fxpad.application.retention_service (normalizing reminder state)

Files that this module USES:
- None (pure utility functions)
"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

_CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}$")


def validate_chat_id(chat_id: str) -> bool:
    """
    Validate Telegram chat ID format.

    Args:
        chat_id: Chat ID to validate

    Returns:
        True if valid, False otherwise
    """
    if not chat_id:
        return False

    # Chat IDs can be:
    # - @channelname (public channels)
    # - -1001234567890 (private channels/chats)
    # - 123456789 (user IDs)
    if chat_id.startswith('@'):
        return bool(re.match(r'^@[a-zA-Z0-9_]+$', chat_id))
    elif chat_id.startswith('-'):
        return bool(re.match(r'^-\d+$', chat_id))
    return bool(re.match(r'^\d+$', chat_id))


def validate_bot_token(token: str) -> bool:
    """
    Validate Telegram bot token format.

    Args:
        token: Bot token to validate

    Returns:
        True if valid, False otherwise
    """
    if not token:
        return False

    # Bot tokens should be in format: 123456789:ABCDEFghijklmnopQRSTUVwxyz
    pattern = r'^\d{8,10}:[A-Za-z0-9_-]{35}$'
    return bool(re.match(pattern, token))


def validate_currency_code(code: str) -> bool:
    """Return True for an upper-case 3-letter currency code."""
    return bool(code) and bool(_CURRENCY_CODE_RE.match(code))


def normalize_currency_code(value: Any, fallback: str) -> str:
    """
    Upper-case and trim a stored currency code.

    Args:
        value: Raw value (any type)
        fallback: Code returned when value is not a 3-character code

    Returns:
        Normalized code or fallback
    """
    normalized = str(value or "").upper().strip()
    return normalized if len(normalized) == 3 else fallback


def parse_number(value: Any) -> Optional[float]:
    """Parse a finite float, returning None for anything else (bools included)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def normalize_positive_number(value: Any, fallback: Optional[float]) -> Optional[float]:
    """Return value as a float when it is finite and > 0, otherwise fallback."""
    parsed = parse_number(value)
    if parsed is None or parsed <= 0:
        return fallback
    return parsed


def clamp_integer(value: Any, min_val: int, max_val: int, fallback: int) -> int:
    """
    Truncate value to an int and clamp it into [min_val, max_val].

    Non-numeric input yields fallback; out-of-range input is clamped, not rejected.
    """
    parsed = parse_number(value)
    if parsed is None:
        return fallback
    return min(max_val, max(min_val, math.trunc(parsed)))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Accepts datetime objects, ISO-8601 strings (both "...Z" and "+00:00")
    and epoch milliseconds. Naive values are taken as local time. Returns
    None for missing, zero or invalid values.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.astimezone()
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
        else:
            return parsed if parsed.tzinfo else parsed.astimezone()
    millis = parse_number(value)
    if millis is None or millis <= 0:
        return None
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp for storage."""
    return value.isoformat() if value else None
