"""Condition compiler: declarative conditions to in-memory evaluators.

Each compiled evaluator takes ``{"record": ..., "user": ...}`` and returns
a bool.  Compilation never raises for bad input; anything that cannot be
evaluated yields ``False`` at evaluation time (fail-closed), except
``lookup`` and unknown condition types, which evaluate to ``True`` because
they are meant to be enforced by the query trimmer instead.

Supported operators for ``simple`` conditions and ``complex`` leaves:
``= != > >= < <= in not_in contains not_contains starts_with ends_with``.

Example
-------
>>> evaluator = compile_condition(
...     {"field": "owner_id", "operator": "=", "value": "$current_user.id"}
... )
>>> evaluator({"record": {"owner_id": "u1"}, "user": {"id": "u1"}})
True
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from aumos_record_security.errors import FormulaSyntaxError
from aumos_record_security.permissions.formula import FormulaEvaluator
from aumos_record_security.permissions.models import Condition, ConditionEvaluator
from aumos_record_security.permissions.paths import get_field_value, resolve_value

logger = logging.getLogger(__name__)

OPERATORS: frozenset[str] = frozenset(
    [
        "=",
        "!=",
        ">",
        ">=",
        "<",
        "<=",
        "in",
        "not_in",
        "contains",
        "not_contains",
        "starts_with",
        "ends_with",
    ]
)

LOGICAL_TOKENS: frozenset[str] = frozenset(["and", "or"])


def condition_type(condition: Mapping[str, Any]) -> str:
    """Return the condition's tag, defaulting to ``"simple"``."""
    return str(condition.get("type") or "simple")


def apply_operator(actual: object, operator: str, expected: object) -> bool:
    """Apply one comparison operator.  Unknown operators return ``False``."""
    match operator:
        case "=":
            return actual == expected
        case "!=":
            return actual != expected
        case ">" | ">=" | "<" | "<=":
            if actual is None or expected is None:
                return False
            try:
                if operator == ">":
                    return actual > expected  # type: ignore[operator]
                if operator == ">=":
                    return actual >= expected  # type: ignore[operator]
                if operator == "<":
                    return actual < expected  # type: ignore[operator]
                return actual <= expected  # type: ignore[operator]
            except TypeError:
                return False
        case "in":
            return isinstance(expected, (list, tuple, set, frozenset)) and actual in expected
        case "not_in":
            return isinstance(expected, (list, tuple, set, frozenset)) and actual not in expected
        case "contains":
            return isinstance(actual, str) and isinstance(expected, str) and expected in actual
        case "not_contains":
            return isinstance(actual, str) and isinstance(expected, str) and expected not in actual
        case "starts_with":
            return (
                isinstance(actual, str)
                and isinstance(expected, str)
                and actual.startswith(expected)
            )
        case "ends_with":
            return (
                isinstance(actual, str)
                and isinstance(expected, str)
                and actual.endswith(expected)
            )
        case _:
            return False


def evaluate_leaf(leaf: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    """Evaluate a single ``{field, operator, value}`` leaf against ``context``."""
    actual = get_field_value(context.get("record"), str(leaf.get("field", "")))
    expected = resolve_value(leaf.get("value"), context.get("user"))
    return apply_operator(actual, str(leaf.get("operator", "=")), expected)


def evaluate_postfix(expression: list[Any], context: Mapping[str, Any]) -> bool:
    """Evaluate a postfix list of leaves interleaved with ``"and"``/``"or"``."""
    stack: list[bool] = []
    for element in expression:
        if isinstance(element, str) and element in LOGICAL_TOKENS:
            right = stack.pop() if stack else False
            left = stack.pop() if stack else False
            stack.append(left and right if element == "and" else left or right)
        elif isinstance(element, Mapping):
            stack.append(evaluate_leaf(element, context))
        else:
            logger.warning("Ignoring unrecognised complex-condition element: %r", element)
    return stack.pop() if stack else False


def _always_true(context: Mapping[str, Any]) -> bool:
    return True


def _never(context: Mapping[str, Any]) -> bool:
    return False


def compile_condition(condition: Condition | None) -> ConditionEvaluator:
    """Compile a declarative condition into an evaluator.

    Parameters
    ----------
    condition:
        Condition mapping or ``None``.

    Returns
    -------
    ConditionEvaluator
        Callable taking ``{"record": ..., "user": ...}``.
    """
    if not condition:
        return _always_true

    kind = condition_type(condition)

    if kind == "simple":
        leaf = dict(condition)
        operator = str(leaf.get("operator", "="))
        if operator not in OPERATORS:
            logger.warning("Unknown condition operator %r; condition never matches", operator)
            return _never

        def _simple(context: Mapping[str, Any]) -> bool:
            return evaluate_leaf(leaf, context)

        return _simple

    if kind == "complex":
        expression = list(condition.get("expression") or [])

        def _complex(context: Mapping[str, Any]) -> bool:
            return evaluate_postfix(expression, context)

        return _complex

    if kind == "formula":
        formula = str(condition.get("formula", ""))
        try:
            evaluator = FormulaEvaluator(formula)
        except FormulaSyntaxError as exc:
            logger.error("Formula condition failed to parse; denying: %s", exc)
            return _never

        def _formula(context: Mapping[str, Any]) -> bool:
            try:
                return evaluator.evaluate(context)
            except Exception:  # noqa: BLE001
                logger.exception("Error evaluating formula condition %r", formula)
                return False

        return _formula

    # lookup and unrecognised types are enforced by the query trimmer.
    return _always_true
