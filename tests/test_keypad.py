# tests/test_keypad.py
"""
Keypad Reducer Tests - Keystroke Rules of the Converter Keypad

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- fxpad.domain.keypad (apply_key, KEYPAD_ROWS)
- pytest (testing framework)
"""
import pytest  # Testing framework for writing and running tests

from fxpad.domain.keypad import KEYPAD_ROWS, apply_key


def press(*keys, start=""):
    expression = start
    for key in keys:
        expression = apply_key(expression, key)
    return expression


class TestClearAndBackspace:
    def test_clear(self):
        assert apply_key("12+3", "C") == ""

    def test_backspace(self):
        assert apply_key("12+3", "<") == "12+"
        assert apply_key("", "<") == ""


class TestEqualsAndPercent:
    def test_equals_evaluates(self):
        assert apply_key("2+3*4", "=") == "14"
        assert apply_key("1/3", "=") == "0.333"

    def test_equals_is_idempotent(self):
        once = apply_key("10/3", "=")
        assert apply_key(once, "=") == once

    def test_equals_with_invalid_expression_keeps_it(self):
        assert apply_key("5/0", "=") == "5/0"
        assert apply_key("", "=") == ""

    def test_percent(self):
        assert apply_key("50", "%") == "0.5"
        assert apply_key("200+50", "%") == "2.5"


class TestDecimalPoint:
    def test_on_empty_inserts_zero(self):
        assert apply_key("", ".") == "0."

    def test_after_operator_inserts_zero(self):
        assert apply_key("5+", ".") == "5+0."

    def test_second_point_in_token_is_ignored(self):
        assert apply_key("1.5", ".") == "1.5"

    def test_point_in_new_token_is_allowed(self):
        assert apply_key("1.5+2", ".") == "1.5+2."

    def test_respects_length_cap(self):
        full = "1" * 15
        assert apply_key(full, ".") == full


class TestOperators:
    def test_empty_accepts_only_minus(self):
        assert apply_key("", "+") == ""
        assert apply_key("", "x") == ""
        assert apply_key("", "/") == ""
        assert apply_key("", "-") == "-"

    def test_multiply_key_maps_to_star(self):
        assert apply_key("5", "x") == "5*"
        assert apply_key("5", "×") == "5*"

    def test_trailing_operator_is_replaced(self):
        assert apply_key("5+", "x") == "5*"
        assert apply_key("5*", "-") == "5-"

    def test_rejected_after_bare_point(self):
        assert apply_key("5.", "+") == "5."


class TestDigits:
    def test_double_zero_on_empty_or_zero(self):
        assert apply_key("", "00") == "0"
        assert apply_key("0", "00") == "0"

    def test_double_zero_appends(self):
        assert apply_key("12", "00") == "1200"

    def test_digit_replaces_lone_zero(self):
        assert apply_key("0", "7") == "7"

    def test_digit_appends(self):
        assert press("1", "2", "+", "3") == "12+3"

    def test_length_cap_keeps_previous_value(self):
        full = "1" * 15
        assert apply_key(full, "2") == full
        assert apply_key("1" * 14, "00") == "1" * 14


class TestUnknownKeys:
    @pytest.mark.parametrize("key", ["?", "", "12", "a"])
    def test_unknown_key_is_noop(self, key):
        assert apply_key("12", key) == "12"


class TestKeypadLayout:
    def test_every_key_is_handled(self):
        keys = [key for row in KEYPAD_ROWS for key in row]
        assert len(keys) == 20
        assert set(keys) >= {"C", "<", "%", "/", "x", "-", "+", "00", ".", "="}
