"""Unit tests for conditional_logic: visibility rules and hidden defaults."""

from __future__ import annotations

import pytest

from src.quote_calculator.conditional_logic import (
    available_conditions,
    condition_label,
    default_for_hidden,
    effective_answers,
    resolve_visibility,
)
from src.quote_calculator.models import ConditionalLogic, Variable, VariableOption, VariableType


def _var(var_id, var_type="number", depends_on=None, condition="equals", expected=None, expected_values=None, options=None):
    logic = None
    if depends_on is not None:
        logic = ConditionalLogic(
            enabled=True,
            depends_on=depends_on,
            condition=condition,
            expected_value=expected,
            expected_values=expected_values,
        )
    return Variable(
        id=var_id,
        type=VariableType(var_type),
        options=[VariableOption(value=o) for o in options or []],
        conditional_logic=logic,
    )


def test_no_logic_is_visible():
    v = _var("size")
    assert resolve_visibility(v, {}, [v]) is True


def test_disabled_logic_is_visible():
    v = _var("extra", depends_on="size", expected=5)
    v.conditional_logic.enabled = False
    assert resolve_visibility(v, {"size": 1}, [v, _var("size")]) is True


def test_equals_and_not_equals():
    pets = _var("pets", "checkbox")
    count = _var("pet_count", depends_on="pets", expected=True)
    others = _var("no_pets", depends_on="pets", condition="not_equals", expected=True)
    all_vars = [pets, count, others]

    assert resolve_visibility(count, {"pets": True}, all_vars) is True
    assert resolve_visibility(count, {"pets": False}, all_vars) is False
    assert resolve_visibility(others, {"pets": False}, all_vars) is True


def test_equals_on_list_answer_checks_membership():
    material = _var("roofMaterial", "multiple-choice", options=["Metal", "Tile"])
    metal_q = _var("metalGauge", depends_on="roofMaterial", expected="Metal")
    assert resolve_visibility(metal_q, {"roofMaterial": ["Metal"]}, [material, metal_q]) is True
    assert resolve_visibility(metal_q, {"roofMaterial": ["Tile"]}, [material, metal_q]) is False


def test_numeric_comparisons():
    sqft = _var("sqft")
    big = _var("big_job", depends_on="sqft", condition="greater_than", expected=1000)
    small = _var("small_job", depends_on="sqft", condition="less_than", expected=500)
    all_vars = [sqft, big, small]

    assert resolve_visibility(big, {"sqft": 1500}, all_vars) is True
    assert resolve_visibility(big, {"sqft": "1500"}, all_vars) is True
    assert resolve_visibility(big, {"sqft": 800}, all_vars) is False
    assert resolve_visibility(small, {"sqft": 200}, all_vars) is True
    # Non-numeric answers never satisfy a comparison
    assert resolve_visibility(big, {"sqft": "lots"}, all_vars) is False
    assert resolve_visibility(big, {"sqft": True}, all_vars) is False


def test_contains_with_expected_values():
    kind = _var("kind", "select", options=["deep", "standard", "move-out"])
    rooms = _var("rooms", depends_on="kind", condition="contains", expected_values=["deep", "move-out"])
    all_vars = [kind, rooms]
    assert resolve_visibility(rooms, {"kind": "deep"}, all_vars) is True
    assert resolve_visibility(rooms, {"kind": "standard"}, all_vars) is False
    assert resolve_visibility(rooms, {"kind": ["standard", "move-out"]}, all_vars) is True


def test_contains_substring_is_case_insensitive():
    notes = _var("notes", "text")
    stairs = _var("flights", depends_on="notes", condition="contains", expected="Stairs")
    assert resolve_visibility(stairs, {"notes": "three flights of stairs"}, [notes, stairs]) is True
    assert resolve_visibility(stairs, {"notes": "ground floor"}, [notes, stairs]) is False


def test_empty_conditions():
    notes = _var("notes", "text")
    when_empty = _var("a", depends_on="notes", condition="is_empty")
    when_filled = _var("b", depends_on="notes", condition="is_not_empty")
    all_vars = [notes, when_empty, when_filled]

    assert resolve_visibility(when_empty, {"notes": ""}, all_vars) is True
    assert resolve_visibility(when_empty, {"notes": []}, all_vars) is True
    assert resolve_visibility(when_filled, {"notes": "gate code 1234"}, all_vars) is True
    assert resolve_visibility(when_filled, {"notes": []}, all_vars) is False


def test_unanswered_dependency_hides():
    size = _var("size")
    extra = _var("extra", depends_on="size", condition="is_empty")
    assert resolve_visibility(extra, {}, [size, extra]) is False


def test_unknown_dependency_is_not_met():
    ghost = _var("extra", depends_on="does_not_exist", expected=1)
    assert resolve_visibility(ghost, {"does_not_exist": 1}, [ghost]) is False


def test_unknown_condition_is_visible():
    size = _var("size")
    odd = _var("odd", depends_on="size", condition="matches_regex", expected="x")
    assert resolve_visibility(odd, {"size": 3}, [size, odd]) is True


def test_hidden_dependency_cascades():
    pets = _var("pets", "checkbox")
    count = _var("pet_count", depends_on="pets", expected=True)
    large = _var("large_pets", depends_on="pet_count", condition="greater_than", expected=2)
    all_vars = [pets, count, large]

    # pet_count answered but hidden, so its dependants stay hidden
    answers = {"pets": False, "pet_count": 5}
    assert resolve_visibility(large, answers, all_vars) is False
    answers["pets"] = True
    assert resolve_visibility(large, answers, all_vars) is True


def test_dependency_cycle_hides():
    a = _var("a", depends_on="b", expected=1)
    b = _var("b", depends_on="a", expected=1)
    assert resolve_visibility(a, {"a": 1, "b": 1}, [a, b]) is False


@pytest.mark.parametrize(
    "var_type, options, expected",
    [
        ("checkbox", None, False),
        ("select", ["std", "premium"], "std"),
        ("dropdown", [], ""),
        ("multiple-choice", ["a", "b"], []),
        ("number", None, 0),
        ("slider", None, 0),
        ("text", None, ""),
    ],
)
def test_default_for_hidden(var_type, options, expected):
    assert default_for_hidden(_var("v", var_type, options=options)) == expected


def test_effective_answers_replaces_hidden_values():
    pets = _var("pets", "checkbox")
    count = _var("pet_count", depends_on="pets", expected=True)
    out = effective_answers([pets, count], {"pets": False, "pet_count": 4})
    assert out == {"pets": False, "pet_count": 0}


def test_condition_helpers():
    assert condition_label("not_equals") == "Does not equal"
    assert condition_label("custom") == "custom"
    assert available_conditions(VariableType.CHECKBOX) == ["equals", "not_equals"]
    assert "greater_than" in available_conditions(VariableType.NUMBER)
    assert "greater_than" not in available_conditions(VariableType.SELECT)


def test_answer_too_large_for_float_never_satisfies_a_comparison():
    sqft = _var("sqft")
    big = _var("big_job", depends_on="sqft", condition="greater_than", expected=1000)
    assert resolve_visibility(big, {"sqft": 10**400}, [sqft, big]) is False
    # An overflowing threshold is ignored the same way
    huge = _var("huge_job", depends_on="sqft", condition="less_than", expected=10**400)
    assert resolve_visibility(huge, {"sqft": 5}, [sqft, huge]) is False
