"""Per-service formula evaluation: bind variable tokens, evaluate, round to a price."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from . import expression
from .conditional_logic import resolve_visibility
from .models import Service, composite_token
from .normalizer import normalize, option_selected
from .pricing_pipeline import round_half_up

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class FormulaEvaluationError(Exception):
    """A service's formula could not be priced; the service is priced at 0."""

    def __init__(self, service_id: str, formula: str, substituted: str, cause: Exception):
        super().__init__(f"service {service_id}: {cause}")
        self.service_id = service_id
        self.formula = formula
        self.substituted = substituted
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_id": self.service_id,
            "formula": self.formula,
            "substituted": self.substituted,
            "error": str(self.cause),
            "error_type": type(self.cause).__name__,
        }


@dataclass
class ServicePrice:
    """Rounded price of one service, with the error that zeroed it (if any)."""
    service_id: str
    price: int
    error: FormulaEvaluationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_id": self.service_id,
            "price": self.price,
            "error": self.error.to_dict() if self.error else None,
        }


def build_bindings(service: Service, answers: Mapping[str, Any]) -> dict[str, float]:
    """
    Map every formula token of `service` to its number.

    Per-option tokens (`{variableId}_{optionId}`) of multi-select variables are bound
    first; every other variable binds its own id. A hidden multi-select binds all of
    its option tokens to 0.
    """
    answers = answers or {}
    variables = service.variables
    bindings: dict[str, float] = {}

    for var in variables:
        if not var.uses_option_tokens:
            continue
        visible = resolve_visibility(var, answers, variables)
        raw = answers.get(var.id) if visible else []
        for option in var.options:
            if not option.id:
                continue
            selected = option_selected(raw, option.value)
            value = (option.numeric_value or 0.0) if selected else 0.0
            bindings[composite_token(var.id, option.id)] = value

    for var in variables:
        visible = resolve_visibility(var, answers, variables)
        # For option-token variables this is the aggregate token, always 0
        bindings[var.id] = normalize(var, answers.get(var.id), visible)

    return bindings


def evaluate_service(service: Service, answers: Mapping[str, Any]) -> ServicePrice:
    """Price one service. Never raises for formula problems; see ServicePrice.error."""
    bindings = build_bindings(service, answers)
    try:
        result = expression.evaluate(service.formula, bindings)
    except expression.ExpressionError as exc:
        error = FormulaEvaluationError(
            service.id,
            service.formula,
            expression.substitute(service.formula, bindings),
            exc,
        )
        print(
            f"[formula_engine] service {service.id} priced at 0: {exc} "
            f"(formula={service.formula!r}, substituted={error.substituted!r})",
            file=sys.stderr,
        )
        return ServicePrice(service_id=service.id, price=0, error=error)
    return ServicePrice(service_id=service.id, price=round_half_up(result))


def evaluate(service: Service, answers: Mapping[str, Any]) -> int:
    """Integer price of one service (0 if its formula fails)."""
    return evaluate_service(service, answers).price


def price_services(
    services: Iterable[Service],
    answer_set: Mapping[str, Mapping[str, Any]],
) -> dict[str, ServicePrice]:
    """Evaluate every service against its slice of the answer set."""
    answer_set = answer_set or {}
    results: dict[str, ServicePrice] = {}
    for service in services:
        answers = answer_set.get(service.id)
        results[service.id] = evaluate_service(service, answers if isinstance(answers, Mapping) else {})
    return results


def validate_service(service: Service) -> list[str]:
    """
    Return human-readable problems with a service definition (empty if none).

    Checks ids are usable as formula tokens, that no variable id collides with
    another variable's option token, that the formula parses, and that every name
    in the formula is bound by some variable.
    """
    issues: list[str] = []
    seen: set[str] = set()
    for var in service.variables:
        if var.id in seen:
            issues.append(f"duplicate variable id {var.id!r}")
        seen.add(var.id)
        if not _IDENTIFIER_RE.match(var.id):
            issues.append(f"variable id {var.id!r} is not a valid formula token")

    composite_owner: dict[str, str] = {}
    for var in service.variables:
        if not var.uses_option_tokens:
            continue
        for option in var.options:
            if not option.id:
                continue
            token = composite_token(var.id, option.id)
            if not _IDENTIFIER_RE.match(token):
                issues.append(f"option token {token!r} is not a valid formula token")
            if token in composite_owner:
                issues.append(f"option token {token!r} is defined more than once")
            composite_owner[token] = var.id

    for var in service.variables:
        owner = composite_owner.get(var.id)
        if owner is not None:
            issues.append(f"variable id {var.id!r} collides with an option token of {owner!r}")

    try:
        names = expression.identifiers(service.formula)
        expression.parse(service.formula)
    except expression.ExpressionSyntaxError as exc:
        issues.append(f"formula does not parse: {exc}")
        return issues

    known = seen | set(composite_owner)
    for name in names:
        if name not in known:
            issues.append(f"formula references unknown token {name!r}")
    return issues
