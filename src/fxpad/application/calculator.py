# src/fxpad/application/calculator.py
"""
Calculator Session - Multi-Currency Keypad State

Holds the rows of the converter keypad: two to five selected currencies,
one of which is active and owns the typed expression. Every other row shows
the evaluated amount converted through the USD-relative rate table.

Side effects are debounced: the expression is saved as "lastAmount" shortly
after typing stops, and a conversion-history entry (active row to the first
other row) is written once the value has been stable for a second.

Files that USE this module:
- fxpad.app (keypad session factory)
- tests.test_calculator (unit tests)

Files that this module USES:
- fxpad.domain.keypad / fxpad.domain.expression (reducer and evaluator)
- fxpad.shared.concurrency (Debouncer)
- fxpad.adapters.formatting (row value formatting)
- fxpad.application.currency_preferences (selected and recent codes)
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Sequence

from fxpad.adapters.formatting import format_number
from fxpad.adapters.persistence import KeyValueStore, read_json, write_json
from fxpad.application.currency_preferences import (
    RECENT_CODES_KEY,
    SELECTED_CODES_KEY,
    read_code_list,
    write_code_list,
)
from fxpad.application.rates_service import utc_now
from fxpad.config import settings
from fxpad.domain.expression import evaluate_expression, sanitize_and_limit_expression
from fxpad.domain.keypad import apply_key
from fxpad.domain.models import ConversionRecord
from fxpad.shared.concurrency import Debouncer

logger = logging.getLogger(__name__)

MIN_ROWS = 2
MAX_ROWS = 5
MAX_RECENT_CURRENCIES = 10
MAX_HISTORY_ENTRIES = 50
DEBOUNCE_DELAY_SECONDS = 1.0
LAST_AMOUNT_DELAY_SECONDS = 0.25

ACTIVE_CODE_KEY = "activeCurrencyCode"
LAST_AMOUNT_KEY = "lastAmount"
HISTORY_KEY = "conversionHistory"
LAST_CONVERTED_AMOUNT_KEY = "lastConvertedAmount"


def normalize_code_list(codes: Any) -> list[str]:
    """Upper-cased, trimmed, de-duplicated codes in first-seen order; non-lists give []."""
    if not isinstance(codes, (list, tuple)):
        return []
    unique: list[str] = []
    for raw in codes:
        code = str(raw).upper().strip()
        if code and code not in unique:
            unique.append(code)
    return unique


def normalize_codes(
    codes: Sequence[str], available: Sequence[str], default_codes: Sequence[str]
) -> list[str]:
    """
    Make a valid row list.

    Keeps unique available codes in order, pads up to MIN_ROWS from the
    defaults and then from the available list, and caps at MAX_ROWS.
    """
    available_set = set(available)
    result = [code for code in normalize_code_list(list(codes)) if code in available_set]

    for fallback in default_codes:
        if len(result) >= MIN_ROWS:
            break
        if fallback in available_set and fallback not in result:
            result.append(fallback)

    for code in available:
        if len(result) >= MIN_ROWS:
            break
        if code not in result:
            result.append(code)

    return result[:MAX_ROWS]


def prepend_currency_code(codes: Sequence[str], code: str, limit: int) -> list[str]:
    normalized = code.upper()
    return ([normalized] + [existing for existing in codes if existing != normalized])[:limit]


def _plain(value: str) -> str:
    return sanitize_and_limit_expression((value or "").replace(",", ""), settings.max_expression_length)


class CalculatorSession:
    """
    One keypad screen.

    Args:
        store: Key-value store for preferences, lastAmount and history
        exchange_rates: USD-relative rate table
        available_codes: Codes the user may pick (defaults to the rate table keys)
        default_codes: Fallback pair (defaults to settings)
        clock: Returns the current aware datetime (history timestamps)
    """

    def __init__(
        self,
        store: KeyValueStore,
        exchange_rates: Mapping[str, float],
        available_codes: Optional[Sequence[str]] = None,
        default_codes: Optional[Sequence[str]] = None,
        clock: Callable[[], datetime] = utc_now,
        history_delay: float = DEBOUNCE_DELAY_SECONDS,
        amount_delay: float = LAST_AMOUNT_DELAY_SECONDS,
    ):
        self.store = store
        self.exchange_rates = dict(exchange_rates)
        self.default_codes = tuple(default_codes or settings.default_codes)
        self._codes_from_rates = not available_codes
        self.available_codes = self._rate_codes() if self._codes_from_rates else list(available_codes)
        self.max_length = settings.max_expression_length
        self.clock = clock
        self._amount_debouncer = Debouncer(amount_delay, self._save_last_amount)
        self._history_debouncer = Debouncer(history_delay, self._record_history)

        stored_codes = read_code_list(store, SELECTED_CODES_KEY) or list(self.default_codes)
        self.selected_codes = normalize_codes(stored_codes, self.available_codes, self.default_codes)
        stored_active = str(store.get_one(ACTIVE_CODE_KEY) or "").upper()
        self.active_code = stored_active if stored_active in self.selected_codes else self.selected_codes[0]
        self.recent_codes = read_code_list(store, RECENT_CODES_KEY)[:MAX_RECENT_CURRENCIES]
        self.expression = sanitize_and_limit_expression(
            store.get_one(LAST_AMOUNT_KEY) or "", self.max_length
        )
        self._save_codes()

    # ----- derived values -----

    @property
    def resolved_amount(self) -> Optional[float]:
        return evaluate_expression(self.expression)

    def row_values(self) -> dict[str, str]:
        """Active row shows the raw expression, the others the converted amount or ''."""
        values: dict[str, str] = {}
        amount = self.resolved_amount
        active_rate = self.exchange_rates.get(self.active_code)

        for code in self.selected_codes:
            if code == self.active_code:
                values[code] = self.expression
                continue
            target_rate = self.exchange_rates.get(code)
            if amount is None or not active_rate or not target_rate:
                values[code] = ""
                continue
            values[code] = format_number(amount * (target_rate / active_rate))
        return values

    # ----- persistence -----

    def _save_codes(self) -> None:
        write_code_list(self.store, SELECTED_CODES_KEY, self.selected_codes)
        self.store.set({ACTIVE_CODE_KEY: self.active_code})

    def _save_recent(self, code: str) -> None:
        self.recent_codes = prepend_currency_code(self.recent_codes, code, MAX_RECENT_CURRENCIES)
        write_code_list(self.store, RECENT_CODES_KEY, self.recent_codes)

    def _save_last_amount(self, expression: str) -> None:
        self.store.set({LAST_AMOUNT_KEY: expression})

    def _record_history(self, from_code: str, to_code: str, amount: float, rate: float) -> None:
        converted = amount * rate
        if amount <= 0 or converted <= 0:
            return

        record = ConversionRecord(
            from_currency=from_code,
            to_currency=to_code,
            amount=format_number(amount),
            converted_amount=format_number(converted),
            exchange_rate=rate,
            timestamp=self.clock(),
        )
        history = read_json(self.store, HISTORY_KEY)
        history = history if isinstance(history, list) else []
        write_json(self.store, HISTORY_KEY, ([record.to_json()] + history)[:MAX_HISTORY_ENTRIES])
        self.store.set({LAST_CONVERTED_AMOUNT_KEY: record.converted_amount})
        logger.debug("Conversion recorded: %s %s -> %s", record.amount, from_code, to_code)

    def _changed(self) -> None:
        self._amount_debouncer.trigger(self.expression)

        amount = self.resolved_amount
        to_code = next((code for code in self.selected_codes if code != self.active_code), None)
        from_rate = self.exchange_rates.get(self.active_code)
        to_rate = self.exchange_rates.get(to_code) if to_code else None
        if amount is None or not to_code or not from_rate or not to_rate:
            self._history_debouncer.cancel()
            return
        self._history_debouncer.trigger(self.active_code, to_code, amount, to_rate / from_rate)

    def _activate(self, code: str, values: Mapping[str, str]) -> None:
        self.active_code = code
        self.expression = _plain(values.get(code, ""))

    # ----- keypad -----

    def press_key(self, key: str) -> str:
        """Apply one keypad key and return the new expression."""
        self.expression = apply_key(self.expression, key, self.max_length)
        self._changed()
        return self.expression

    def _rate_codes(self) -> list[str]:
        # No rate table yet (offline first launch): the default pair
        return sorted(self.exchange_rates) or list(self.default_codes)

    def update_rates(self, exchange_rates: Mapping[str, float]) -> None:
        self.exchange_rates = dict(exchange_rates)
        if self._codes_from_rates:
            self.available_codes = self._rate_codes()
        self._changed()

    # ----- rows -----

    def select_row(self, code: str) -> bool:
        """Make another row active; its displayed value becomes the expression."""
        code = code.upper()
        if code == self.active_code or code not in self.selected_codes:
            return False
        self._activate(code, self.row_values())
        self._save_codes()
        self._changed()
        return True

    def swap(self) -> bool:
        """Swap the two rows (only with exactly two rows); the other row becomes active."""
        if len(self.selected_codes) != 2:
            return False
        values = self.row_values()
        first, second = self.selected_codes
        self.selected_codes = [second, first]
        if self.active_code == first:
            self._activate(second, values)
        elif self.active_code == second:
            self._activate(first, values)
        self._save_codes()
        self._changed()
        return True

    def add_currency(self, code: str) -> bool:
        """
        Add a row. An already selected code becomes active instead.

        Returns:
            False when the code is unknown or the row limit is reached
        """
        code = code.upper()
        if code not in self.available_codes:
            return False
        if code in self.selected_codes:
            self._activate(code, self.row_values())
        elif len(self.selected_codes) >= MAX_ROWS:
            logger.info("Row limit reached (%d)", MAX_ROWS)
            return False
        else:
            self.selected_codes.append(code)
        self._save_recent(code)
        self._save_codes()
        self._changed()
        return True

    def replace_currency(self, index: int, code: str) -> bool:
        """Change the currency of one row; a code used by another row is rejected."""
        code = code.upper()
        if not 0 <= index < len(self.selected_codes) or code not in self.available_codes:
            return False
        duplicate = self.selected_codes.index(code) if code in self.selected_codes else -1
        if duplicate not in (-1, index):
            return False

        was_active = self.selected_codes[index] == self.active_code
        self.selected_codes[index] = code
        if was_active:
            self.active_code = code
        self._save_recent(code)
        self._save_codes()
        self._changed()
        return True

    def remove_row(self, index: int) -> bool:
        """Remove a row while keeping at least MIN_ROWS."""
        if len(self.selected_codes) <= MIN_ROWS or not 0 <= index < len(self.selected_codes):
            return False
        values = self.row_values()
        removed = self.selected_codes.pop(index)
        if removed == self.active_code:
            self._activate(self.selected_codes[0], values)
        self._save_codes()
        self._changed()
        return True

    def close(self) -> None:
        """Drop pending debounced writes."""
        self._amount_debouncer.cancel()
        self._history_debouncer.cancel()
