# tests/test_calculator.py
"""
Calculator Session Tests - Keypad Rows, Conversion and Debounced Writes

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- fxpad.application.calculator (CalculatorSession, normalize_codes)
- tests.conftest (store, clock fixtures)
- pytest, pytest-asyncio (testing framework)
"""
import asyncio  # Letting debounced writes fire

import pytest  # Testing framework for writing and running tests

from fxpad.adapters.persistence import read_json, write_json
from fxpad.application.calculator import (
    ACTIVE_CODE_KEY,
    HISTORY_KEY,
    LAST_AMOUNT_KEY,
    LAST_CONVERTED_AMOUNT_KEY,
    MAX_ROWS,
    CalculatorSession,
    normalize_code_list,
    normalize_codes,
    prepend_currency_code,
)
from fxpad.application.currency_preferences import RECENT_CODES_KEY, SELECTED_CODES_KEY

RATES = {"USD": 1.0, "KES": 130.0, "EUR": 0.9, "GBP": 0.8}
WIDE_RATES = dict(RATES, JPY=150.0, CHF=0.88, AUD=1.5)
DEFAULT_CODES = ("USD", "KES")


@pytest.fixture
def session(store, clock):
    return CalculatorSession(store, RATES, default_codes=DEFAULT_CODES, clock=clock)


def type_keys(session, *keys):
    for key in keys:
        session.press_key(key)


class TestCodeHelpers:
    def test_normalize_code_list(self):
        assert normalize_code_list([" usd", "KES", "USD", ""]) == ["USD", "KES"]
        assert normalize_code_list("USD") == []

    def test_normalize_codes_pads_and_caps(self):
        available = ["AUD", "EUR", "KES", "USD"]
        assert normalize_codes(["XXX"], available, DEFAULT_CODES) == ["USD", "KES"]
        assert normalize_codes(["EUR"], available, ("JPY", "CHF")) == ["EUR", "AUD"]
        assert len(normalize_codes(list(WIDE_RATES), list(WIDE_RATES), DEFAULT_CODES)) == MAX_ROWS

    def test_prepend_currency_code(self):
        assert prepend_currency_code(["EUR", "KES", "GBP"], "gbp", 3) == ["GBP", "EUR", "KES"]
        assert prepend_currency_code(["EUR", "KES"], "USD", 2) == ["USD", "EUR"]


class TestInitialState:
    def test_defaults(self, session, store):
        assert session.selected_codes == ["USD", "KES"]
        assert session.active_code == "USD"
        assert session.expression == ""
        assert session.row_values() == {"USD": "", "KES": ""}
        assert read_json(store, SELECTED_CODES_KEY) == ["USD", "KES"]

    def test_empty_rate_table_uses_default_pair(self, store, clock):
        session = CalculatorSession(store, {}, default_codes=DEFAULT_CODES, clock=clock)
        type_keys(session, "5")

        assert session.selected_codes == ["USD", "KES"]
        assert session.row_values() == {"USD": "5", "KES": ""}

        session.update_rates(RATES)
        assert session.row_values()["KES"] == "650.000"
        assert session.add_currency("EUR") is True

    def test_restores_stored_preferences(self, store, clock):
        write_json(store, SELECTED_CODES_KEY, ["EUR", "GBP", "XXX"])
        store.set({ACTIVE_CODE_KEY: "GBP", LAST_AMOUNT_KEY: "1,250+5"})

        session = CalculatorSession(store, RATES, default_codes=DEFAULT_CODES, clock=clock)

        assert session.selected_codes == ["EUR", "GBP"]
        assert session.active_code == "GBP"
        assert session.expression == "1250+5"


class TestConversion:
    def test_other_rows_show_converted_amount(self, session):
        type_keys(session, "1", "0", "0")
        assert session.row_values() == {"USD": "100", "KES": "13,000.000"}

    def test_expression_is_evaluated(self, session):
        type_keys(session, "2", "+", "3", "x", "4")
        assert session.resolved_amount == 14
        assert session.row_values()["KES"] == "1,820.000"

    def test_invalid_expression_blanks_other_rows(self, session):
        type_keys(session, "5", "/", "0")
        assert session.row_values()["KES"] == ""

    def test_missing_rate_blanks_row(self, session):
        type_keys(session, "1")
        session.update_rates({"USD": 1.0})
        assert session.row_values()["KES"] == ""


class TestRows:
    def test_select_row_takes_displayed_value(self, session):
        type_keys(session, "1", "0", "0")

        assert session.select_row("kes") is True

        assert session.active_code == "KES"
        assert session.expression == "13000.000"
        assert session.row_values()["USD"] == "100.000"
        assert session.select_row("KES") is False
        assert session.select_row("EUR") is False

    def test_swap_two_rows(self, session, store):
        type_keys(session, "2")

        assert session.swap() is True

        assert session.selected_codes == ["KES", "USD"]
        assert session.active_code == "KES"
        assert session.expression == "260.000"
        assert store.get_one(ACTIVE_CODE_KEY) == "KES"

    def test_swap_needs_exactly_two_rows(self, session):
        session.add_currency("EUR")
        assert session.swap() is False

    def test_add_currency(self, session, store):
        assert session.add_currency("eur") is True
        assert session.selected_codes == ["USD", "KES", "EUR"]
        assert read_json(store, RECENT_CODES_KEY) == ["EUR"]
        assert session.add_currency("XXX") is False

    def test_add_selected_currency_activates_it(self, session):
        type_keys(session, "1")
        assert session.add_currency("KES") is True
        assert session.selected_codes == ["USD", "KES"]
        assert session.active_code == "KES"

    def test_row_limit(self, store, clock):
        session = CalculatorSession(store, WIDE_RATES, default_codes=DEFAULT_CODES, clock=clock)
        for code in ("EUR", "GBP", "JPY"):
            assert session.add_currency(code) is True
        assert len(session.selected_codes) == MAX_ROWS
        assert session.add_currency("CHF") is False

    def test_replace_currency(self, session):
        assert session.replace_currency(1, "EUR") is True
        assert session.selected_codes == ["USD", "EUR"]
        assert session.replace_currency(1, "USD") is False
        assert session.replace_currency(5, "GBP") is False

    def test_replace_active_row_keeps_it_active(self, session):
        assert session.replace_currency(0, "GBP") is True
        assert session.active_code == "GBP"

    def test_remove_row(self, session):
        assert session.remove_row(0) is False
        session.add_currency("EUR")
        type_keys(session, "1")

        assert session.remove_row(0) is True

        assert session.selected_codes == ["KES", "EUR"]
        assert session.active_code == "KES"
        assert session.expression == "130.000"


class TestDebouncedWrites:
    def test_writes_without_event_loop(self, session, store):
        type_keys(session, "5")

        assert store.get_one(LAST_AMOUNT_KEY) == "5"
        history = read_json(store, HISTORY_KEY)
        assert history[0]["fromCurrency"] == "USD"
        assert history[0]["toCurrency"] == "KES"
        assert history[0]["amount"] == "5.000"
        assert history[0]["convertedAmount"] == "650.000"
        assert store.get_one(LAST_CONVERTED_AMOUNT_KEY) == "650.000"

    def test_zero_amount_is_not_recorded(self, session, store):
        type_keys(session, "0")
        assert read_json(store, HISTORY_KEY) is None

    @pytest.mark.asyncio
    async def test_rapid_typing_records_one_entry(self, store, clock):
        session = CalculatorSession(
            store, RATES, default_codes=DEFAULT_CODES, clock=clock, history_delay=0.02, amount_delay=0.01
        )
        type_keys(session, "1", "2", "3")
        await asyncio.sleep(0.06)

        history = read_json(store, HISTORY_KEY)
        assert len(history) == 1
        assert history[0]["amount"] == "123.000"
        assert store.get_one(LAST_AMOUNT_KEY) == "123"

    @pytest.mark.asyncio
    async def test_close_drops_pending_writes(self, store, clock):
        session = CalculatorSession(
            store, RATES, default_codes=DEFAULT_CODES, clock=clock, history_delay=0.02, amount_delay=0.02
        )
        type_keys(session, "7")
        session.close()
        await asyncio.sleep(0.05)

        assert read_json(store, HISTORY_KEY) is None
        assert store.get_one(LAST_AMOUNT_KEY) is None
