# src/fxpad/application/currency_preferences.py
"""
Currency Preferences - Selected and Recent Currency Codes

The keypad's selected rows and recently used codes are stored as JSON
lists. The calculator writes them; the pinned-rate defaults and the
retention reminder copy read the selected list.

Files that USE this module:
- fxpad.application.calculator (writes selected and recent codes)
- fxpad.application.pinned_rate_service (default pair)
- fxpad.application.retention_service (tracked pair label)

Files that this module USES:
- fxpad.adapters.persistence (JSON records)
"""
from __future__ import annotations

import logging
from typing import Sequence

from fxpad.adapters.persistence import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)

SELECTED_CODES_KEY = "selectedCurrencyCodes"
RECENT_CODES_KEY = "recentCurrencyCodes"


def parse_code_list(value) -> list[str]:
    """Upper-cased 3-letter codes from a stored list; anything else yields []."""
    if not isinstance(value, list):
        return []
    codes = [str(item or "").upper().strip() for item in value]
    return [code for code in codes if len(code) == 3]


def read_code_list(store: KeyValueStore, key: str) -> list[str]:
    return parse_code_list(read_json(store, key))


def write_code_list(store: KeyValueStore, key: str, codes: Sequence[str]) -> None:
    write_json(store, key, list(codes))


def read_selected_codes(store: KeyValueStore) -> list[str]:
    return read_code_list(store, SELECTED_CODES_KEY)


def default_pair_codes(store: KeyValueStore, default_codes: Sequence[str]) -> tuple[str, str]:
    """First two selected codes, else the defaults; an identical pair falls back to the defaults."""
    selected = read_selected_codes(store)
    primary = selected[0] if len(selected) > 0 else default_codes[0]
    secondary = selected[1] if len(selected) > 1 else default_codes[1]
    if primary == secondary:
        return default_codes[0], default_codes[1]
    return primary, secondary
