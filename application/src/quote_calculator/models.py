"""Service definitions: variables, options, conditional logic, upsells."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class VariableType(str, Enum):
    NUMBER = "number"
    SLIDER = "slider"
    SELECT = "select"
    DROPDOWN = "dropdown"
    MULTIPLE_CHOICE = "multiple-choice"
    CHECKBOX = "checkbox"
    TEXT = "text"


def composite_token(variable_id: str, option_id: str) -> str:
    """Formula token for one option of a multi-select variable."""
    return f"{variable_id}_{option_id}"


def _optional_float(value: Any) -> float | None:
    """Finite float, or None for anything else (including NaN, Infinity and huge ints)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def finite_float(value: Any, default: float = 0.0) -> float:
    """Numeric setting from a JSON document; missing or non-finite means `default`."""
    number = _optional_float(value)
    return default if number is None else number


@dataclass
class VariableOption:
    """One choice of a select-like variable."""
    value: Any
    label: str = ""
    id: str | None = None
    numeric_value: float | None = None
    multiplier: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VariableOption:
        d = dict(data)
        option_id = d.get("id")
        return cls(
            value=d.get("value"),
            label=str(d.get("label") or ""),
            id=str(option_id) if option_id not in (None, "") else None,
            numeric_value=_optional_float(d.get("numericValue")),
            multiplier=_optional_float(d.get("multiplier")),
        )


@dataclass
class ConditionalLogic:
    """Visibility rule: show the variable when `depends_on` meets `condition`."""
    enabled: bool = False
    depends_on: str | None = None
    condition: str = "equals"
    expected_value: Any = None
    expected_values: list[Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConditionalLogic | None:
        if not data:
            return None
        # Accept the rule either flat or nested under "rule"
        d = {**data, **(data.get("rule") or {})}
        expected_values = d.get("expectedValues")
        return cls(
            enabled=bool(d.get("enabled", False)),
            depends_on=d.get("dependsOnVariable") or None,
            condition=str(d.get("condition") or "equals"),
            expected_value=d.get("expectedValue"),
            expected_values=list(expected_values) if isinstance(expected_values, list) else None,
        )


@dataclass
class Variable:
    """One customer-facing input of a service."""
    id: str
    type: VariableType
    name: str = ""
    options: list[VariableOption] = field(default_factory=list)
    allow_multiple_selection: bool = False
    conditional_logic: ConditionalLogic | None = None
    unit: str | None = None
    default_value: Any = None

    @property
    def has_conditional_logic(self) -> bool:
        return bool(self.conditional_logic and self.conditional_logic.enabled)

    @property
    def uses_option_tokens(self) -> bool:
        """True when each option is bound through its own composite token."""
        return self.type is VariableType.MULTIPLE_CHOICE and self.allow_multiple_selection

    def find_option(self, value: Any) -> VariableOption | None:
        for option in self.options:
            if option.value == value:
                return option
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Variable:
        d = dict(data)
        if not d.get("id"):
            raise ValueError("variable is missing an id")
        try:
            var_type = VariableType(d.get("type"))
        except ValueError:
            raise ValueError(f"variable {d['id']!r} has unknown type {d.get('type')!r}") from None
        return cls(
            id=str(d["id"]),
            type=var_type,
            name=str(d.get("name") or d["id"]),
            options=[VariableOption.from_dict(o) for o in d.get("options") or []],
            allow_multiple_selection=bool(d.get("allowMultipleSelection", False)),
            conditional_logic=ConditionalLogic.from_dict(d.get("conditionalLogic")),
            unit=d.get("unit"),
            default_value=d.get("defaultValue"),
        )


@dataclass
class UpsellItem:
    """Optional add-on priced as a percentage of the undiscounted subtotal."""
    id: str
    name: str
    percentage_of_main: float
    description: str | None = None
    category: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UpsellItem:
        d = dict(data)
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name") or ""),
            percentage_of_main=finite_float(d.get("percentageOfMain")),
            description=d.get("description"),
            category=d.get("category"),
        )


@dataclass
class Service:
    """One priceable unit: a formula plus the variables that feed it."""
    id: str
    name: str
    formula: str
    variables: list[Variable] = field(default_factory=list)
    upsell_items: list[UpsellItem] = field(default_factory=list)

    def variable(self, variable_id: str) -> Variable | None:
        for var in self.variables:
            if var.id == variable_id:
                return var
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Service:
        """
        Build a Service from its JSON document.

        Accepts `name` or `title`; unknown keys (images, measurement config, styling)
        are ignored.
        """
        d = dict(data)
        if d.get("id") in (None, ""):
            raise ValueError("service is missing an id")
        return cls(
            id=str(d["id"]),
            name=str(d.get("name") or d.get("title") or ""),
            formula=str(d.get("formula") or ""),
            variables=[Variable.from_dict(v) for v in d.get("variables") or []],
            upsell_items=[UpsellItem.from_dict(u) for u in d.get("upsellItems") or []],
        )
