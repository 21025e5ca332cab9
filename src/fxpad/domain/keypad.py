# src/fxpad/domain/keypad.py
"""
Keypad Reducer - Keystroke to Expression Transitions

apply_key(expression, key) returns the expression that results from pressing
one keypad key. The reducer is pure: the caller owns the expression string
and replaces it with the return value.

Files that USE this module:
- fxpad.application.calculator (CalculatorSession.press_key)

Files that this module USES:
- fxpad.domain.expression (sanitizing, evaluation, result formatting)
"""
from __future__ import annotations

import re

from fxpad.domain.expression import (
    MAX_EXPRESSION_LENGTH,
    evaluate_expression,
    format_input,
    is_operator,
    sanitize_and_limit_expression,
)

KEY_CLEAR = "C"
KEY_BACKSPACE = "<"
KEY_EQUALS = "="
KEY_PERCENT = "%"
KEY_DECIMAL = "."
KEY_DOUBLE_ZERO = "00"

# Keypad layout, top row first
KEYPAD_ROWS = (
    ("C", "<", "%", "/"),
    ("7", "8", "9", "x"),
    ("4", "5", "6", "-"),
    ("1", "2", "3", "+"),
    ("00", "0", ".", "="),
)

_OPERATOR_KEYS = {"+": "+", "-": "-", "/": "/", "x": "*", "×": "*", "*": "*"}
_DIGITS = frozenset("0123456789")
_OPERATOR_SPLIT_RE = re.compile(r"[+\-*/]")


def apply_key(expression: str, key: str, max_length: int = MAX_EXPRESSION_LENGTH) -> str:
    """
    Apply one keypad key to an expression.

    Args:
        expression: Current expression
        key: Pressed key (see KEYPAD_ROWS; '*' and '×' also mean multiply)
        max_length: Edits that would exceed this length are rejected

    Returns:
        The next expression. Rejected edits and unknown keys return the
        current (sanitized) expression unchanged.
    """
    if key == KEY_CLEAR:
        return ""

    if key == KEY_BACKSPACE:
        return expression[:-1]

    if key in (KEY_EQUALS, KEY_PERCENT):
        result = evaluate_expression(expression)
        if result is None:
            return expression
        if key == KEY_PERCENT:
            result = result / 100
        return format_input(result, max_length)

    prev = sanitize_and_limit_expression(expression, max_length)

    def with_limit(next_value: str) -> str:
        return next_value if len(next_value) <= max_length else prev

    if key == KEY_DECIMAL:
        current_token = _OPERATOR_SPLIT_RE.split(prev)[-1]
        if "." in current_token:
            return prev
        if not prev or is_operator(prev[-1]):
            return with_limit(f"{prev}0.")
        return with_limit(f"{prev}.")

    if key in _OPERATOR_KEYS:
        operator = _OPERATOR_KEYS[key]
        if not prev:
            return operator if operator == "-" else prev
        if is_operator(prev[-1]):
            return with_limit(f"{prev[:-1]}{operator}")
        if prev.endswith("."):
            return prev
        return with_limit(f"{prev}{operator}")

    if key == KEY_DOUBLE_ZERO:
        if not prev or prev == "0":
            return "0"
        return with_limit(f"{prev}00")

    if len(key) == 1 and key in _DIGITS:
        if prev == "0":
            return with_limit(key)
        return with_limit(f"{prev}{key}")

    return prev
