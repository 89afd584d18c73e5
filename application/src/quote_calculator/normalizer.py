"""Turn one raw answer into the number its formula token is bound to."""

from __future__ import annotations

import math
from typing import Any

from .conditional_logic import default_for_hidden
from .models import Variable, VariableType


def _to_number(value: Any) -> float:
    """Numeric coercion for number/slider answers; anything non-numeric is 0."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _single_choice(variable: Variable, raw: Any) -> float:
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    option = variable.find_option(raw)
    if option is None:
        return 0.0
    if variable.type is VariableType.SELECT and option.multiplier is not None:
        return option.multiplier
    return option.numeric_value if option.numeric_value is not None else 0.0


def _choice_sum(variable: Variable, raw: Any) -> float:
    if not isinstance(raw, (list, tuple)):
        return 0.0
    return sum(
        option.numeric_value or 0.0
        for option in variable.options
        if option.value in raw
    )


def normalize(variable: Variable, raw_value: Any, visible: bool = True) -> float:
    """
    Return the number substituted for `variable`'s own token.

    Hidden variables are normalized from their hidden default, never skipped.
    A multi-select that binds per-option tokens resolves its aggregate token to 0.
    """
    if not visible:
        raw_value = default_for_hidden(variable)

    var_type = variable.type
    if var_type is VariableType.CHECKBOX:
        return 1.0 if raw_value is True else 0.0
    if var_type in (VariableType.SELECT, VariableType.DROPDOWN):
        return _single_choice(variable, raw_value)
    if var_type is VariableType.MULTIPLE_CHOICE:
        if variable.allow_multiple_selection:
            return 0.0
        return _choice_sum(variable, raw_value)
    if var_type in (VariableType.NUMBER, VariableType.SLIDER):
        return _to_number(raw_value)
    if var_type is VariableType.TEXT:
        return 0.0
    raise ValueError(f"unhandled variable type: {var_type!r}")


def option_selected(raw_value: Any, option_value: Any) -> bool:
    """True if a multi-select answer (list or single value) includes `option_value`."""
    if isinstance(raw_value, (list, tuple)):
        return option_value in raw_value
    return raw_value is not None and raw_value == option_value
