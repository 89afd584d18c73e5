"""Unit tests for expression: tokenizer, parser, evaluator, diagnostics rendering."""

from __future__ import annotations

import pytest

from src.quote_calculator.expression import (
    BinOp,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    Name,
    Number,
    UnresolvedIdentifierError,
    evaluate,
    identifiers,
    parse,
    substitute,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("10 * 5", 50),
        ("100 + 25 + 10", 135),
        ("1000 * 0.15", 150),
        ("2 + 3 * 4", 14),
        ("(2 + 3) * 4", 20),
        ("10 - 4 - 3", 3),
        ("100 / 10 / 2", 5),
        ("-5 + 10", 5),
        ("-(2 + 3) * -2", 10),
        ("+7", 7),
        (".5 * 4", 2),
        ("1e3 / 4", 250),
    ],
)
def test_arithmetic(text, expected):
    assert evaluate(text) == pytest.approx(expected)


def test_names_resolve_from_bindings():
    assert evaluate("base + size * rate", {"base": 50, "size": 10, "rate": 5}) == 100


def test_composite_and_base_tokens_are_independent():
    bindings = {"extras": 0, "extras_gutters": 50, "extras_deck": 120}
    assert evaluate("extras + extras_gutters + extras_deck", bindings) == 170


def test_unresolved_identifier():
    with pytest.raises(UnresolvedIdentifierError) as exc_info:
        evaluate("size * rate", {"size": 2})
    assert exc_info.value.name == "rate"


@pytest.mark.parametrize("text", ["", "   ", "2 +", "(1 + 2", "1 + 2)", "3 4", "2 ** 3", "Math.max(1, 2)", "a = 1", "10x"])
def test_syntax_errors(text):
    with pytest.raises(ExpressionSyntaxError):
        evaluate(text, {"a": 1, "x": 1})


def test_division_by_zero():
    with pytest.raises(ExpressionEvaluationError):
        evaluate("10 / (size - 2)", {"size": 2})


def test_overflow_is_an_evaluation_error():
    with pytest.raises(ExpressionEvaluationError):
        evaluate("1e308 * 10")


def test_no_code_execution():
    # Attribute access and calls are not part of the grammar
    with pytest.raises(ExpressionSyntaxError):
        evaluate("__import__('os').getcwd()")


def test_parse_builds_ast():
    assert parse("a * 2") == BinOp("*", Name("a"), Number(2.0))


def test_identifiers_in_order():
    assert identifiers("b + a * b + c_1") == ["b", "a", "c_1"]


def test_substitute_renders_bound_names_only():
    assert substitute("base + size * rate", {"base": 50, "size": 10, "rate": 5}) == "50 + 10 * 5"
    assert substitute("size * unknown", {"size": 2.5}) == "2.5 * unknown"
    assert substitute("a_b + a", {"a": 1, "a_b": 7}) == "7 + 1"


def test_deep_nesting_is_a_syntax_error():
    with pytest.raises(ExpressionSyntaxError):
        evaluate("(" * 2000 + "size" + ")" * 2000, {"size": 3})
    with pytest.raises(ExpressionSyntaxError):
        evaluate("-" * 3000 + "size", {"size": 3})


def test_moderate_nesting_still_evaluates():
    assert evaluate("(" * 50 + "size" + ")" * 50, {"size": 3}) == 3
    assert evaluate("--size", {"size": 3}) == 3


def test_long_operator_chain_evaluates():
    # Left-leaning tree thousands of levels deep
    assert evaluate(" + ".join(["size"] * 5000), {"size": 2}) == 10000


def test_huge_binding_is_an_evaluation_error():
    with pytest.raises(ExpressionEvaluationError):
        evaluate("size * 2", {"size": 10**400})
