"""Unit tests for normalizer: raw answers to formula numbers per variable type."""

from __future__ import annotations

from src.quote_calculator.models import Variable, VariableOption, VariableType
from src.quote_calculator.normalizer import normalize, option_selected


def _choice(var_type, options, allow_multiple=False):
    return Variable(
        id="v",
        type=VariableType(var_type),
        options=[VariableOption(**o) for o in options],
        allow_multiple_selection=allow_multiple,
    )


def test_checkbox():
    v = Variable(id="v", type=VariableType.CHECKBOX)
    assert normalize(v, True) == 1
    assert normalize(v, False) == 0
    assert normalize(v, "yes") == 0
    assert normalize(v, None) == 0


def test_select_prefers_multiplier_then_numeric_value():
    v = _choice("select", [
        {"value": "std", "multiplier": 1.5, "numeric_value": 10},
        {"value": "basic", "numeric_value": 7},
        {"value": "bare"},
    ])
    assert normalize(v, "std") == 1.5
    assert normalize(v, "basic") == 7
    assert normalize(v, "bare") == 0
    assert normalize(v, "missing") == 0


def test_select_keeps_zero_multiplier():
    v = _choice("select", [{"value": "none", "multiplier": 0, "numeric_value": 9}])
    assert normalize(v, "none") == 0


def test_dropdown_uses_numeric_value_only():
    v = _choice("dropdown", [{"value": "large", "multiplier": 3, "numeric_value": 40}, {"value": "small", "multiplier": 2}])
    assert normalize(v, "large") == 40
    assert normalize(v, "small") == 0


def test_single_select_list_answer_takes_first_element():
    v = _choice("dropdown", [{"value": "a", "numeric_value": 5}, {"value": "b", "numeric_value": 9}])
    assert normalize(v, ["b", "a"]) == 9
    assert normalize(v, []) == 0


def test_multiple_choice_sums_selected_options():
    v = _choice("multiple-choice", [
        {"value": "gutters", "numeric_value": 50},
        {"value": "windows", "numeric_value": 75},
        {"value": "deck", "numeric_value": 120},
    ])
    assert normalize(v, ["gutters", "deck"]) == 170
    assert normalize(v, "gutters") == 0
    assert normalize(v, []) == 0


def test_multiple_choice_with_option_tokens_aggregate_is_zero():
    v = _choice("multiple-choice", [{"value": "a", "numeric_value": 5}], allow_multiple=True)
    assert normalize(v, ["a"]) == 0


def test_number_and_slider_coercion():
    for var_type in ("number", "slider"):
        v = Variable(id="v", type=VariableType(var_type))
        assert normalize(v, 12) == 12
        assert normalize(v, "2.5") == 2.5
        assert normalize(v, " 40 ") == 40
        assert normalize(v, "") == 0
        assert normalize(v, "abc") == 0
        assert normalize(v, float("nan")) == 0
        assert normalize(v, None) == 0
        assert normalize(v, ["3"]) == 0


def test_text_is_zero():
    v = Variable(id="v", type=VariableType.TEXT)
    assert normalize(v, "hello") == 0


def test_hidden_variable_uses_default_not_answer():
    v = Variable(id="v", type=VariableType.NUMBER)
    assert normalize(v, 99, visible=False) == 0

    cb = Variable(id="cb", type=VariableType.CHECKBOX)
    assert normalize(cb, True, visible=False) == 0

    # Hidden select resolves through its first option
    sel = _choice("select", [{"value": "std", "multiplier": 1}, {"value": "rush", "multiplier": 2}])
    assert normalize(sel, "rush", visible=False) == 1


def test_option_selected():
    assert option_selected(["a", "b"], "b") is True
    assert option_selected(["a"], "b") is False
    assert option_selected("a", "a") is True
    assert option_selected(None, None) is False


def test_number_too_large_for_float_is_zero():
    v = Variable(id="v", type=VariableType.NUMBER)
    assert normalize(v, 10**400) == 0
    assert normalize(v, -(10**400)) == 0
    assert normalize(v, "1e400") == 0


def test_option_values_that_are_not_finite_are_ignored():
    option = VariableOption.from_dict({"value": "big", "numericValue": 10**400, "multiplier": float("inf")})
    assert option.numeric_value is None
    assert option.multiplier is None
    v = Variable(id="v", type=VariableType.SELECT, options=[option])
    assert normalize(v, "big") == 0
