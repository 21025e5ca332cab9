# src/fxpad/domain/expression.py
"""
Expression Engine - Keypad Arithmetic Evaluation and Display

This module turns the string typed on the currency keypad into a number and
into a grouped display string:
- sanitize_and_limit_expression: keep only keypad characters, cap the length
- evaluate_expression: precedence-climbing evaluation, None for invalid input
- format_expression_display: thousands grouping per numeric token
- format_input: plain numeric string written back by "=" and "%"

Every function here is pure and synchronous. Malformed input is an expected
state while the user is typing, so nothing in this module raises for it;
invalid expressions evaluate to None.

Files that USE this module:
- fxpad.domain.keypad (keystroke reducer)
- fxpad.application.calculator (row values, resolved amount)

Files that this module USES:
- None (pure domain logic)
"""
from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Optional

MAX_EXPRESSION_LENGTH = 15

OPERATORS = ("+", "-", "*", "/")
_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}
_NUMBER_CHARS = frozenset("0123456789.")

_DISALLOWED_RE = re.compile(r"[^0-9+\-*/.]")
_REPEATED_DIVIDE_RE = re.compile(r"/{2,}")
_NUMERIC_TOKEN_RE = re.compile(r"^[0-9]*\.?[0-9]*$")
_DISPLAY_SPLIT_RE = re.compile(r"([+\-/x])")
_THOUSANDS_RE = re.compile(r"\B(?=(\d{3})+(?!\d))")

_THREE_PLACES = Decimal("0.001")
# Wide enough to quantize any finite float to 3 places
_ROUNDING_CONTEXT = Context(prec=400)


def is_operator(value: str) -> bool:
    """Return True for one of the four binary operator characters."""
    return value in OPERATORS


def sanitize_expression(value: str) -> str:
    """Map multiply symbols to '*', drop foreign characters, collapse '//'."""
    mapped = (value or "").replace("x", "*").replace("×", "*")
    return _REPEATED_DIVIDE_RE.sub("/", _DISALLOWED_RE.sub("", mapped))


def clamp_expression_length(value: str, max_length: int = MAX_EXPRESSION_LENGTH) -> str:
    return value[:max_length]


def sanitize_and_limit_expression(value: str, max_length: int = MAX_EXPRESSION_LENGTH) -> str:
    """
    Sanitize a raw expression and truncate it to max_length characters.

    Args:
        value: Raw text (keypad input, pasted text, a formatted row value)
        max_length: Maximum number of characters kept

    Returns:
        String made only of digits, '+', '-', '*', '/' and '.'
    """
    return clamp_expression_length(sanitize_expression(value), max_length)


def format_input(value: float, max_length: int = MAX_EXPRESSION_LENGTH) -> str:
    """
    Render an evaluated number as a plain expression string.

    The value is rounded half-up to 3 decimal places and printed without
    exponent notation or trailing zeros. When truncation leaves a dangling
    decimal point it is dropped, so re-evaluating the result is stable.
    """
    try:
        rounded = Decimal(repr(value)).quantize(
            _THREE_PLACES, rounding=ROUND_HALF_UP, context=_ROUNDING_CONTEXT
        )
    except (InvalidOperation, ValueError):
        return ""

    text = format(rounded, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"

    limited = sanitize_and_limit_expression(text, max_length)
    return limited[:-1] if limited.endswith(".") else limited


class _InvalidExpression(Exception):
    """Internal signal for malformed input; never leaves this module."""


class _Evaluator:
    """Precedence-climbing evaluator over a sanitized expression."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def evaluate(self) -> float:
        value = self._binary(1)
        if self.pos != len(self.text):
            raise _InvalidExpression(f"unexpected {self.text[self.pos]!r}")
        return value

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _binary(self, min_precedence: int) -> float:
        lhs = self._operand()
        while True:
            operator = self._peek()
            precedence = _PRECEDENCE.get(operator)
            if precedence is None or precedence < min_precedence:
                return lhs
            self.pos += 1
            rhs = self._binary(precedence + 1)
            lhs = _apply(operator, lhs, rhs)

    def _operand(self) -> float:
        # A single leading sign belongs to the literal
        sign = 1.0
        if self._peek() in ("+", "-"):
            if self._peek() == "-":
                sign = -1.0
            self.pos += 1

        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] in _NUMBER_CHARS:
            self.pos += 1
        literal = self.text[start:self.pos]

        if not literal or literal == "." or literal.count(".") > 1:
            raise _InvalidExpression(f"bad number at {start}")
        return sign * float(literal)


def _apply(operator: str, lhs: float, rhs: float) -> float:
    if operator == "+":
        result = lhs + rhs
    elif operator == "-":
        result = lhs - rhs
    elif operator == "*":
        result = lhs * rhs
    else:
        if rhs == 0:
            raise _InvalidExpression("division by zero")
        result = lhs / rhs

    if not math.isfinite(result):
        raise _InvalidExpression("non-finite result")
    return result


def _trim_dangling(expression: str) -> str:
    while expression and (is_operator(expression[-1]) or expression.endswith(".")):
        expression = expression[:-1]
    return expression


def evaluate_expression(expression: str) -> Optional[float]:
    """
    Evaluate a keypad expression.

    Trailing operators and a trailing bare '.' are trimmed first so the valid
    prefix of a half-typed expression still evaluates ("5+" -> 5.0).
    '*' and '/' bind tighter than '+' and '-', operators of equal precedence
    associate left to right, and one '+' or '-' where a number is expected
    is read as the sign of that number.

    Args:
        expression: Raw or sanitized expression

    Returns:
        Finite float, or None for empty or malformed input, division by
        zero and overflow
    """
    if not expression:
        return None

    safe_expression = _trim_dangling(sanitize_expression(expression))
    if not safe_expression:
        return None

    try:
        result = _Evaluator(safe_expression).evaluate()
    except (_InvalidExpression, ValueError, OverflowError):
        return None
    return result if math.isfinite(result) else None


def _format_numeric_token(token: str) -> str:
    if token == "":
        return ""

    whole, _, decimal = token.partition(".")
    grouped_whole = _THOUSANDS_RE.sub(",", whole or "0")

    if token.endswith("."):
        return f"{grouped_whole}."
    return f"{grouped_whole}.{decimal}" if "." in token else grouped_whole


def format_expression_display(raw_value: str, max_length: int = MAX_EXPRESSION_LENGTH) -> str:
    """
    Group thousands in every numeric token of an expression for display.

    Operators are kept ('*' shown as 'x') and a trailing bare '.' survives
    so the user sees the point they just typed. Existing separators are
    removed first, which makes grouping independent of how many times a
    value has been through here.

    >>> format_expression_display("1234567*2.")
    '1,234,567x2.'
    """
    if not raw_value:
        return "0"

    expression = clamp_expression_length(raw_value.replace(",", ""), max_length)
    expression = expression.replace("*", "x")
    tokens = _DISPLAY_SPLIT_RE.split(expression)

    return "".join(
        _format_numeric_token(token) if _NUMERIC_TOKEN_RE.match(token) else token
        for token in tokens
    )
