"""Tests for compile_condition and the simple/complex evaluators."""
from __future__ import annotations

import pytest

from aumos_record_security.permissions.conditions import (
    apply_operator,
    compile_condition,
    evaluate_postfix,
)

_USER: dict[str, object] = {"id": "u1", "roles": ["member"], "team": "blue"}


def _ctx(record: dict[str, object]) -> dict[str, object]:
    return {"record": record, "user": _USER}


class TestApplyOperator:
    @pytest.mark.parametrize(
        ("actual", "operator", "expected", "outcome"),
        [
            ("a", "=", "a", True),
            ("a", "!=", "a", False),
            (5, ">", 3, True),
            (5, "<=", 5, True),
            ("x", "in", ["x", "y"], True),
            ("z", "not_in", ["x", "y"], True),
            ("hello world", "contains", "lo w", True),
            ("hello", "not_contains", "xyz", True),
            ("hello", "starts_with", "he", True),
            ("hello", "ends_with", "lo", True),
        ],
    )
    def test_operators(self, actual: object, operator: str, expected: object, outcome: bool) -> None:
        assert apply_operator(actual, operator, expected) is outcome

    def test_in_requires_collection(self) -> None:
        assert apply_operator("x", "in", "xyz") is False

    def test_ordering_against_none_is_false(self) -> None:
        assert apply_operator(None, ">", 1) is False

    def test_unknown_operator_is_false(self) -> None:
        assert apply_operator(1, "~=", 1) is False


class TestCompileCondition:
    def test_none_is_always_true(self) -> None:
        assert compile_condition(None)(_ctx({})) is True

    def test_simple_with_current_user(self) -> None:
        evaluator = compile_condition(
            {"field": "owner_id", "operator": "=", "value": "$current_user.id"}
        )
        assert evaluator(_ctx({"owner_id": "u1"})) is True
        assert evaluator(_ctx({"owner_id": "u2"})) is False

    def test_simple_unknown_operator_never_matches(self) -> None:
        evaluator = compile_condition({"field": "a", "operator": "like", "value": "x"})
        assert evaluator(_ctx({"a": "x"})) is False

    def test_complex_postfix(self) -> None:
        evaluator = compile_condition(
            {
                "type": "complex",
                "expression": [
                    {"field": "team", "operator": "=", "value": "$current_user.team"},
                    {"field": "status", "operator": "=", "value": "open"},
                    "and",
                ],
            }
        )
        assert evaluator(_ctx({"team": "blue", "status": "open"})) is True
        assert evaluator(_ctx({"team": "blue", "status": "closed"})) is False

    def test_formula(self) -> None:
        evaluator = compile_condition({"type": "formula", "formula": "status == 'open'"})
        assert evaluator(_ctx({"status": "open"})) is True

    def test_bad_formula_denies(self) -> None:
        evaluator = compile_condition({"type": "formula", "formula": "status ==="})
        assert evaluator(_ctx({"status": "open"})) is False

    def test_deeply_nested_formula_denies(self) -> None:
        formula = "(" * 3000 + "status == 'open'" + ")" * 3000
        evaluator = compile_condition({"type": "formula", "formula": formula})
        assert evaluator(_ctx({"status": "open"})) is False

    def test_lookup_is_deferred_to_queries(self) -> None:
        evaluator = compile_condition(
            {"type": "lookup", "object": "projects", "via": "project_id", "condition": None}
        )
        assert evaluator(_ctx({})) is True


class TestEvaluatePostfix:
    def test_or(self) -> None:
        expression = [
            {"field": "a", "operator": "=", "value": 1},
            {"field": "b", "operator": "=", "value": 2},
            "or",
        ]
        assert evaluate_postfix(expression, _ctx({"a": 0, "b": 2})) is True

    def test_missing_operand_is_false(self) -> None:
        expression = [{"field": "a", "operator": "=", "value": 1}, "and"]
        assert evaluate_postfix(expression, _ctx({"a": 1})) is False

    def test_empty_expression_is_false(self) -> None:
        assert evaluate_postfix([], _ctx({})) is False

    def test_unrecognised_element_ignored(self) -> None:
        expression = [{"field": "a", "operator": "=", "value": 1}, 42]
        assert evaluate_postfix(expression, _ctx({"a": 1})) is True
