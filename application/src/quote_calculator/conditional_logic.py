"""Conditional visibility of variables and the defaults hidden variables contribute."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from .models import Variable, VariableType

CONDITION_LABELS: dict[str, str] = {
    "equals": "Equals",
    "not_equals": "Does not equal",
    "greater_than": "Greater than",
    "less_than": "Less than",
    "contains": "Contains/Is one of",
    "is_empty": "Is empty",
    "is_not_empty": "Is not empty",
}

_CHOICE_CONDITIONS = ["equals", "not_equals", "contains", "is_empty", "is_not_empty"]

# Conditions the builder offers for a dependency of each type
AVAILABLE_CONDITIONS: dict[VariableType, list[str]] = {
    VariableType.NUMBER: ["equals", "not_equals", "greater_than", "less_than", "is_empty", "is_not_empty"],
    VariableType.SLIDER: ["equals", "not_equals", "greater_than", "less_than", "is_empty", "is_not_empty"],
    VariableType.SELECT: _CHOICE_CONDITIONS,
    VariableType.DROPDOWN: _CHOICE_CONDITIONS,
    VariableType.MULTIPLE_CHOICE: _CHOICE_CONDITIONS,
    VariableType.CHECKBOX: ["equals", "not_equals"],
    VariableType.TEXT: _CHOICE_CONDITIONS,
}


def available_conditions(variable_type: VariableType) -> list[str]:
    return list(AVAILABLE_CONDITIONS.get(variable_type, ["equals", "not_equals", "is_empty", "is_not_empty"]))


def condition_label(condition: str) -> str:
    return CONDITION_LABELS.get(condition, condition)


def default_for_hidden(variable: Variable) -> Any:
    """Inert raw value a hidden variable contributes in place of its answer."""
    if variable.type is VariableType.CHECKBOX:
        return False
    if variable.type in (VariableType.SELECT, VariableType.DROPDOWN):
        return variable.options[0].value if variable.options else ""
    if variable.type is VariableType.MULTIPLE_CHOICE:
        return []
    if variable.type in (VariableType.NUMBER, VariableType.SLIDER):
        return 0
    return ""


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if not isinstance(value, (int, float)) and not (isinstance(value, str) and value.strip()):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _is_empty(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return not value


def _lower(value: Any) -> str:
    return str(value).lower()


def _condition_met(condition: str, actual: Any, expected: Any, expected_values: list[Any] | None) -> bool:
    is_list = isinstance(actual, (list, tuple))

    if condition == "equals":
        return expected in actual if is_list else actual == expected
    if condition == "not_equals":
        return expected not in actual if is_list else actual != expected
    if condition in ("greater_than", "less_than"):
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return False
        return left > right if condition == "greater_than" else left < right
    if condition == "contains":
        if expected_values is not None:
            if is_list:
                return any(v in expected_values for v in actual)
            return actual in expected_values
        if not isinstance(expected, str):
            return False
        if is_list:
            return any(_lower(v) == expected.lower() for v in actual)
        return isinstance(actual, str) and expected.lower() in actual.lower()
    if condition == "is_empty":
        return _is_empty(actual)
    if condition == "is_not_empty":
        return not _is_empty(actual)
    # Unknown conditions never hide a field
    return True


def _visible(
    variable: Variable,
    answers: Mapping[str, Any],
    by_id: Mapping[str, Variable],
    visiting: frozenset[str],
) -> bool:
    logic = variable.conditional_logic
    if not logic or not logic.enabled or not logic.depends_on:
        return True
    if variable.id in visiting:
        return False  # dependency cycle

    dependency = by_id.get(logic.depends_on)
    if dependency is None:
        return False
    if not _visible(dependency, answers, by_id, visiting | {variable.id}):
        return False

    actual = answers.get(dependency.id)
    if actual is None:
        return False
    return _condition_met(logic.condition, actual, logic.expected_value, logic.expected_values)


def resolve_visibility(
    variable: Variable,
    answers: Mapping[str, Any],
    all_variables: Iterable[Variable],
) -> bool:
    """
    Return True if `variable` should be shown given the raw answers of its service.

    A rule is checked against the dependency's raw answer. Rules that reference a
    variable missing from the service, an unanswered variable, or a variable that is
    itself hidden evaluate to "not met". Never raises.
    """
    by_id = {v.id: v for v in all_variables}
    return _visible(variable, answers or {}, by_id, frozenset())


def effective_answers(variables: list[Variable], answers: Mapping[str, Any]) -> dict[str, Any]:
    """Raw value each variable contributes: its answer if visible, else its hidden default."""
    answers = answers or {}
    by_id = {v.id: v for v in variables}
    out: dict[str, Any] = {}
    for var in variables:
        if _visible(var, answers, by_id, frozenset()):
            out[var.id] = answers.get(var.id)
        else:
            out[var.id] = default_for_hidden(var)
    return out
