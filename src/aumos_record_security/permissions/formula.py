"""Sandboxed evaluator for record-rule formulas.

Formulas are parsed by a small recursive-descent parser into a tuple AST
and evaluated directly against ``{"record": ..., "user": ...}``.  There is
no ``eval``/``exec``, no attribute access and no function calls, so a
formula can only read values reachable from the record and the user.

Grammar
-------
::

    expression := or_expr
    or_expr    := and_expr ( "||" and_expr )*
    and_expr   := unary ( "&&" unary )*
    unary      := "!" unary | comparison
    comparison := primary ( ( "==" | "!=" | ">" | ">=" | "<" | "<=" ) primary )?
    primary    := literal | path | "(" expression ")"
    literal    := 'string' | "string" | number | true | false | null
    number     := "-"? digits ( "." digits )?
    path       := identifier ( "." identifier )*

Path roots: ``record.<path>`` and bare ``<path>`` read the record;
``user.<path>`` and ``$current_user.<path>`` read the acting user.
Parentheses and ``!`` may nest at most ``MAX_NESTING_DEPTH`` levels deep.

Example
-------
>>> evaluator = FormulaEvaluator("status == 'active' && owner == $current_user.id")
>>> evaluator.evaluate({"record": {"status": "active", "owner": "u1"}, "user": {"id": "u1"}})
True
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from aumos_record_security.errors import FormulaSyntaxError
from aumos_record_security.permissions.paths import get_field_value

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<number>-?\d+\.\d+|-?\d+)
  | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||[<>!()])
  | (?P<name>\$?[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
    """,
    re.VERBOSE,
)

_COMPARISON_OPS: frozenset[str] = frozenset(["==", "!=", ">", ">=", "<", "<="])
_OP_ALIASES: dict[str, str] = {"===": "==", "!==": "!="}
_KEYWORDS: dict[str, object] = {"true": True, "false": False, "null": None}
_USER_ROOTS: frozenset[str] = frozenset(["user", "$current_user"])
_ESCAPE_RE = re.compile(r"\\(.)")

MAX_NESTING_DEPTH: int = 64


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    position: int


def tokenize(formula: str) -> list[Token]:
    """Split ``formula`` into tokens, raising on any unrecognised character."""
    tokens: list[Token] = []
    position = 0
    while position < len(formula):
        match = _TOKEN_RE.match(formula, position)
        if match is None:
            raise FormulaSyntaxError(
                f"Unexpected character {formula[position]!r}", formula, position
            )
        kind = match.lastgroup or ""
        if kind != "ws":
            value = match.group()
            if kind == "op":
                value = _OP_ALIASES.get(value, value)
            tokens.append(Token(kind, value, position))
        position = match.end()
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

FormulaNode = tuple[Any, ...]


class _Parser:
    def __init__(self, formula: str) -> None:
        self._formula = formula
        self._tokens = tokenize(formula)
        self._index = 0
        self._depth = 0

    def parse(self) -> FormulaNode:
        if not self._tokens:
            raise FormulaSyntaxError("Empty formula", self._formula, 0)
        node = self._or_expr()
        if self._index < len(self._tokens):
            token = self._tokens[self._index]
            raise FormulaSyntaxError(
                f"Unexpected token {token.value!r}", self._formula, token.position
            )
        return node

    # -- helpers --------------------------------------------------------

    def _peek(self) -> Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _accept(self, value: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == "op" and token.value == value:
            self._index += 1
            return True
        return False

    def _end_position(self) -> int:
        return len(self._formula)

    def _descend(self, token: Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise FormulaSyntaxError(
                f"Formula nested deeper than {MAX_NESTING_DEPTH} levels",
                self._formula,
                token.position,
            )

    # -- productions ----------------------------------------------------

    def _or_expr(self) -> FormulaNode:
        node = self._and_expr()
        while self._accept("||"):
            node = ("or", node, self._and_expr())
        return node

    def _and_expr(self) -> FormulaNode:
        node = self._unary()
        while self._accept("&&"):
            node = ("and", node, self._unary())
        return node

    def _unary(self) -> FormulaNode:
        token = self._peek()
        if token is not None and self._accept("!"):
            self._descend(token)
            node = ("not", self._unary())
            self._depth -= 1
            return node
        return self._comparison()

    def _comparison(self) -> FormulaNode:
        left = self._primary()
        token = self._peek()
        if token is not None and token.kind == "op" and token.value in _COMPARISON_OPS:
            self._index += 1
            right = self._primary()
            return ("cmp", token.value, left, right)
        return left

    def _primary(self) -> FormulaNode:
        token = self._peek()
        if token is None:
            raise FormulaSyntaxError(
                "Unexpected end of formula", self._formula, self._end_position()
            )
        if token.kind == "op" and token.value == "(":
            self._index += 1
            self._descend(token)
            node = self._or_expr()
            if not self._accept(")"):
                raise FormulaSyntaxError(
                    "Expected ')'", self._formula, self._end_position()
                )
            self._depth -= 1
            return node
        self._index += 1
        if token.kind == "string":
            return ("lit", _ESCAPE_RE.sub(r"\1", token.value[1:-1]))
        if token.kind == "number":
            number: object = float(token.value) if "." in token.value else int(token.value)
            return ("lit", number)
        if token.kind == "name":
            if token.value in _KEYWORDS:
                return ("lit", _KEYWORDS[token.value])
            return _path_node(token.value)
        raise FormulaSyntaxError(
            f"Unexpected token {token.value!r}", self._formula, token.position
        )


def _path_node(name: str) -> FormulaNode:
    root, _, rest = name.partition(".")
    if root in _USER_ROOTS:
        return ("path", "user", rest)
    if root == "record" and rest:
        return ("path", "record", rest)
    if root.startswith("$"):
        raise FormulaSyntaxError(f"Unknown variable {root!r}", name, 0)
    return ("path", "record", name)


def parse_formula(formula: str) -> FormulaNode:
    """Parse ``formula`` into an AST.

    Raises
    ------
    FormulaSyntaxError
        If the formula does not match the grammar.
    """
    return _Parser(formula).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _compare(operator: str, left: object, right: object) -> bool:
    if operator == "==":
        return left == right
    if operator == "!=":
        return left != right
    if left is None or right is None:
        return False
    try:
        if operator == ">":
            return left > right  # type: ignore[operator]
        if operator == ">=":
            return left >= right  # type: ignore[operator]
        if operator == "<":
            return left < right  # type: ignore[operator]
        if operator == "<=":
            return left <= right  # type: ignore[operator]
    except TypeError:
        return False
    return False


def evaluate_node(node: FormulaNode, context: Mapping[str, Any]) -> Any:
    """Evaluate a parsed formula node against ``{"record", "user"}``."""
    kind = node[0]
    if kind == "lit":
        return node[1]
    if kind == "path":
        source = context.get(node[1])
        if not node[2]:
            return source
        return get_field_value(source, node[2])
    if kind == "not":
        return not evaluate_node(node[1], context)
    if kind == "and":
        return bool(evaluate_node(node[1], context)) and bool(evaluate_node(node[2], context))
    if kind == "or":
        return bool(evaluate_node(node[1], context)) or bool(evaluate_node(node[2], context))
    if kind == "cmp":
        return _compare(
            node[1], evaluate_node(node[2], context), evaluate_node(node[3], context)
        )
    raise ValueError(f"Unknown formula node: {kind!r}")


class FormulaEvaluator:
    """A parsed formula ready for repeated in-memory evaluation.

    Parameters
    ----------
    formula:
        Formula text following the module grammar.

    Raises
    ------
    FormulaSyntaxError
        If the formula cannot be parsed.
    """

    def __init__(self, formula: str) -> None:
        self._formula = formula
        self._ast = parse_formula(formula)

    @property
    def formula(self) -> str:
        return self._formula

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        """Return the formula's truth value for ``context``."""
        return bool(evaluate_node(self._ast, context))

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return self.evaluate(context)

    def __repr__(self) -> str:
        return f"FormulaEvaluator({self._formula!r})"
