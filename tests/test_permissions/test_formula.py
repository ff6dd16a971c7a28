"""Tests for the sandboxed formula parser and evaluator."""
from __future__ import annotations

import pytest

from aumos_record_security.errors import FormulaSyntaxError
from aumos_record_security.permissions.formula import (
    MAX_NESTING_DEPTH,
    FormulaEvaluator,
    parse_formula,
    tokenize,
)


def _ctx(record: dict[str, object], user: dict[str, object] | None = None) -> dict[str, object]:
    return {"record": record, "user": user or {"id": "u1", "roles": ["member"]}}


# ---------------------------------------------------------------------------
# Tokenizer and parser
# ---------------------------------------------------------------------------


class TestTokenizer:
    def test_strict_equality_aliased(self) -> None:
        tokens = tokenize("a === 1")
        assert [t.value for t in tokens] == ["a", "==", "1"]

    def test_unexpected_character_raises(self) -> None:
        with pytest.raises(FormulaSyntaxError) as exc_info:
            tokenize("a == 1 ; b")
        assert exc_info.value.position == 7


class TestParser:
    def test_or_binds_loosest(self) -> None:
        node = parse_formula("a || b && c")
        assert node[0] == "or"
        assert node[2][0] == "and"

    def test_unbalanced_parenthesis_raises(self) -> None:
        with pytest.raises(FormulaSyntaxError):
            parse_formula("(a == 1")

    def test_empty_formula_raises(self) -> None:
        with pytest.raises(FormulaSyntaxError):
            parse_formula("   ")

    def test_trailing_tokens_raise(self) -> None:
        with pytest.raises(FormulaSyntaxError):
            parse_formula("a == 1 2")

    def test_unknown_variable_raises(self) -> None:
        with pytest.raises(FormulaSyntaxError):
            parse_formula("$session.id == 1")

    def test_function_call_rejected(self) -> None:
        with pytest.raises(FormulaSyntaxError):
            parse_formula("__import__('os')")


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class TestFormulaEvaluator:
    def test_current_user_reference(self) -> None:
        evaluator = FormulaEvaluator("owner == $current_user.id")
        assert evaluator.evaluate(_ctx({"owner": "u1"})) is True
        assert evaluator.evaluate(_ctx({"owner": "u2"})) is False

    def test_record_prefix_and_user_root(self) -> None:
        evaluator = FormulaEvaluator("record.team == user.team")
        assert evaluator(_ctx({"team": "blue"}, {"id": "u1", "team": "blue"})) is True

    def test_numeric_comparison(self) -> None:
        evaluator = FormulaEvaluator("amount >= 100.5")
        assert evaluator.evaluate(_ctx({"amount": 200})) is True
        assert evaluator.evaluate(_ctx({"amount": 10})) is False

    def test_comparison_with_missing_value_is_false(self) -> None:
        evaluator = FormulaEvaluator("amount > 10")
        assert evaluator.evaluate(_ctx({})) is False

    def test_mismatched_types_is_false(self) -> None:
        evaluator = FormulaEvaluator("amount > 10")
        assert evaluator.evaluate(_ctx({"amount": "lots"})) is False

    def test_negation_and_parentheses(self) -> None:
        evaluator = FormulaEvaluator("!(status == 'closed' || archived)")
        assert evaluator.evaluate(_ctx({"status": "open", "archived": False})) is True
        assert evaluator.evaluate(_ctx({"status": "closed"})) is False

    def test_keywords(self) -> None:
        evaluator = FormulaEvaluator("public == true && deleted_at == null")
        assert evaluator.evaluate(_ctx({"public": True})) is True

    def test_escaped_quote_in_string(self) -> None:
        evaluator = FormulaEvaluator("name == 'o\\'brien'")
        assert evaluator.evaluate(_ctx({"name": "o'brien"})) is True

    def test_nested_path(self) -> None:
        evaluator = FormulaEvaluator("owner.team == 'blue'")
        assert evaluator.evaluate(_ctx({"owner": {"team": "blue"}})) is True

    def test_repr_contains_formula(self) -> None:
        assert "a == 1" in repr(FormulaEvaluator("a == 1"))

    def test_negative_number_literal(self) -> None:
        evaluator = FormulaEvaluator("balance > -5")
        assert evaluator.evaluate(_ctx({"balance": 10})) is True
        assert evaluator.evaluate(_ctx({"balance": -7.5})) is False

    def test_negative_float_literal(self) -> None:
        assert parse_formula("a >= -2.5") == ("cmp", ">=", ("path", "record", "a"), ("lit", -2.5))


class TestNestingLimit:
    def test_moderate_nesting_parses(self) -> None:
        formula = "(" * MAX_NESTING_DEPTH + "a" + ")" * MAX_NESTING_DEPTH
        assert parse_formula(formula) == ("path", "record", "a")

    def test_deep_parentheses_raise_syntax_error(self) -> None:
        formula = "(" * 3000 + "a" + ")" * 3000
        with pytest.raises(FormulaSyntaxError):
            parse_formula(formula)

    def test_deep_negation_raises_syntax_error(self) -> None:
        with pytest.raises(FormulaSyntaxError):
            parse_formula("!" * 3000 + "a")

    def test_sibling_groups_do_not_accumulate_depth(self) -> None:
        formula = " && ".join(["(a == 1)"] * (MAX_NESTING_DEPTH + 10))
        assert parse_formula(formula)[0] == "and"
