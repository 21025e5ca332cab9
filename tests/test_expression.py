# tests/test_expression.py
"""
Expression Engine Tests - Sanitizing, Evaluating and Displaying Expressions

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- fxpad.domain.expression (sanitize, evaluate, format functions)
- pytest (testing framework)
"""
import pytest  # Testing framework for writing and running tests

from fxpad.domain.expression import (
    MAX_EXPRESSION_LENGTH,
    evaluate_expression,
    format_expression_display,
    format_input,
    is_operator,
    sanitize_and_limit_expression,
)


class TestEvaluateExpression:
    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("2+3*4", 14),
            ("10/2-1", 4),
            ("10-2-3", 5),
            ("8/2/2", 2),
            ("1.5*2", 3),
            ("-5+2", -3),
            ("5--3", 8),
            ("2*-3", -6),
            ("007", 7),
        ],
    )
    def test_standard_precedence(self, expression, expected):
        assert evaluate_expression(expression) == pytest.approx(expected)

    def test_empty_is_invalid(self):
        assert evaluate_expression("") is None

    def test_trailing_operator_is_trimmed(self):
        assert evaluate_expression("5+") == 5
        assert evaluate_expression("5*-") == 5
        assert evaluate_expression("12.") == 12

    def test_division_by_zero_is_invalid(self):
        assert evaluate_expression("5/0") is None
        assert evaluate_expression("5/0.0") is None

    def test_malformed_input_is_invalid(self):
        assert evaluate_expression("1.2.3") is None
        assert evaluate_expression("*5") is None
        assert evaluate_expression("--3") is None
        assert evaluate_expression("-") is None

    def test_multiply_symbols_are_accepted(self):
        assert evaluate_expression("3x4") == 12
        assert evaluate_expression("3×4") == 12

    def test_non_finite_result_is_invalid(self):
        assert evaluate_expression("9" * 200 + "*" + "9" * 200) is None

    def test_never_raises_on_garbage(self):
        for garbage in ["abc", "((", "..", "+-*/", "1e5", None]:
            evaluate_expression(garbage)


class TestSanitizeAndLimit:
    def test_only_allowed_characters(self):
        result = sanitize_and_limit_expression("1,234 abc+5$")
        assert result == "1234+5"
        assert set(result) <= set("0123456789+-*/.")

    def test_collapses_repeated_division(self):
        assert sanitize_and_limit_expression("8///2") == "8/2"

    def test_maps_multiply_symbols(self):
        assert sanitize_and_limit_expression("2x3×4") == "2*3*4"

    def test_length_is_capped(self):
        result = sanitize_and_limit_expression("1" * 40)
        assert len(result) == MAX_EXPRESSION_LENGTH

    def test_custom_length(self):
        assert sanitize_and_limit_expression("123456", 4) == "1234"


class TestFormatInput:
    def test_rounds_to_three_places(self):
        assert format_input(1 / 3) == "0.333"
        assert format_input(2.0005) == "2.001"

    def test_drops_trailing_zeros(self):
        assert format_input(14.0) == "14"
        assert format_input(0.1 + 0.2) == "0.3"

    def test_negative_zero(self):
        assert format_input(-0.0001) == "0"

    def test_large_numbers_have_no_exponent(self):
        result = format_input(1e20)
        assert "e" not in result
        assert len(result) <= MAX_EXPRESSION_LENGTH

    def test_no_dangling_decimal_point_after_truncation(self):
        assert not format_input(12345678901234.5).endswith(".")


class TestFormatExpressionDisplay:
    def test_empty_shows_zero(self):
        assert format_expression_display("") == "0"

    def test_groups_thousands(self):
        assert format_expression_display("1234567") == "1,234,567"

    def test_grouping_is_stable_across_calls(self):
        first = format_expression_display("1234567")
        assert format_expression_display("1234567") == first
        assert format_expression_display(first) == first

    def test_operators_and_multiply_sign(self):
        assert format_expression_display("1000*2000-3") == "1,000x2,000-3"

    def test_trailing_decimal_point_is_kept(self):
        assert format_expression_display("1234.") == "1,234."
        assert format_expression_display("1234.50") == "1,234.50"

    def test_leading_decimal_point(self):
        assert format_expression_display(".5") == "0.5"


class TestIsOperator:
    def test_operators(self):
        assert all(is_operator(op) for op in "+-*/")
        assert not is_operator("x")
        assert not is_operator("1")
