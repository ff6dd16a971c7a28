"""Condition to filter-tree translation.

Filters are Mongo-style nested dicts understood by the downstream query
layer::

    {"owner": "u1"}                                   equality
    {"age": {"$gte": 18}}                             comparison
    {"$and": [...]}, {"$or": [...]}                   logical nodes
    {"name": {"$regex": "^ab", "$options": "i"}}      case-insensitive match
    {"$lookup": {"from", "localField", "foreignField", "filter"}}

``{}`` means "no restriction".  A condition that exists but cannot be
expressed as a filter raises :class:`FilterTranslationError` instead, so
callers can fall back to in-memory evaluation rather than admitting
every row.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, MutableMapping

from aumos_record_security.errors import FilterTranslationError
from aumos_record_security.permissions.conditions import LOGICAL_TOKENS, condition_type
from aumos_record_security.permissions.models import CURRENT_USER_PREFIX, Condition
from aumos_record_security.permissions.paths import get_field_value, resolve_value

Filter = dict[str, Any]

IMPOSSIBLE_FILTER: Filter = {"id": None}
"""Matches no record; injected for anonymous access to RLS-protected objects."""

LOOKUP_FOREIGN_FIELD: str = "id"

_MISSING = object()

# ---------------------------------------------------------------------------
# Filter tree helpers
# ---------------------------------------------------------------------------


def impossible_filter() -> Filter:
    """Return a fresh copy of :data:`IMPOSSIBLE_FILTER`."""
    return dict(IMPOSSIBLE_FILTER)


def is_impossible_filter(node: object) -> bool:
    """True when ``node`` is the match-nothing marker or a conjunction containing it."""
    if not isinstance(node, Mapping):
        return False
    if len(node) == 1 and node.get("id", _MISSING) is None:
        return True
    conjuncts = node.get("$and")
    if isinstance(conjuncts, list):
        return any(is_impossible_filter(child) for child in conjuncts)
    return False


def add_filter(query: MutableMapping[str, Any], new_filter: Filter) -> None:
    """AND-combine ``new_filter`` into ``query["filters"]``.

    An empty filter is no restriction and leaves the query untouched.  The
    query gets a new conjunction node; the previous filter object is never
    mutated, so a base filter can be shared between queries.
    """
    if not new_filter:
        return
    existing = query.get("filters")
    if not existing:
        query["filters"] = new_filter
    elif len(existing) == 1 and isinstance(existing.get("$and"), list):
        query["filters"] = {"$and": [*existing["$and"], new_filter]}
    else:
        query["filters"] = {"$and": [existing, new_filter]}


def combine_any(filters: list[Filter]) -> Filter:
    """OR-combine filters.  Any empty member makes the whole group unrestricted."""
    if not filters or any(not f for f in filters):
        return {}
    if len(filters) == 1:
        return filters[0]
    return {"$or": filters}


# ---------------------------------------------------------------------------
# Leaf operators
# ---------------------------------------------------------------------------


def _regex_value(field: str, operator: str, value: object) -> str:
    if not isinstance(value, str):
        raise FilterTranslationError(
            f"Operator {operator!r} on {field!r} needs a string value, got {value!r}",
            {"field": field, "operator": operator, "value": value},
        )
    return re.escape(value)


def _list_value(field: str, operator: str, value: object) -> list[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    raise FilterTranslationError(
        f"Operator {operator!r} on {field!r} needs a list value, got {value!r}",
        {"field": field, "operator": operator, "value": value},
    )


def operator_to_filter(field: str, operator: str, value: object) -> Filter:
    """Translate one ``field OPERATOR value`` comparison into a filter node.

    Raises
    ------
    FilterTranslationError
        For unknown operators or values the operator cannot take.
    """
    match operator:
        case "=" | "==":
            return {field: value}
        case "!=":
            return {field: {"$ne": value}}
        case ">":
            return {field: {"$gt": value}}
        case ">=":
            return {field: {"$gte": value}}
        case "<":
            return {field: {"$lt": value}}
        case "<=":
            return {field: {"$lte": value}}
        case "in":
            return {field: {"$in": _list_value(field, operator, value)}}
        case "not_in":
            return {field: {"$nin": _list_value(field, operator, value)}}
        case "contains":
            return {field: {"$regex": _regex_value(field, operator, value), "$options": "i"}}
        case "not_contains":
            pattern = _regex_value(field, operator, value)
            return {field: {"$not": {"$regex": pattern, "$options": "i"}}}
        case "starts_with":
            return {
                field: {"$regex": f"^{_regex_value(field, operator, value)}", "$options": "i"}
            }
        case "ends_with":
            return {
                field: {"$regex": f"{_regex_value(field, operator, value)}$", "$options": "i"}
            }
        case _:
            raise FilterTranslationError(
                f"Unknown condition operator: {operator!r}",
                {"field": field, "operator": operator, "value": value},
            )


def _leaf_to_filter(leaf: Mapping[str, Any], user: Mapping[str, Any] | None) -> Filter:
    field = leaf.get("field")
    if not field:
        raise FilterTranslationError("Condition has no field", dict(leaf))
    value = resolve_value(leaf.get("value"), user)
    return operator_to_filter(str(field), str(leaf.get("operator", "=")), value)


# ---------------------------------------------------------------------------
# Condition types
# ---------------------------------------------------------------------------


def complex_to_filter(expression: list[Any], user: Mapping[str, Any] | None) -> Filter:
    """Translate a postfix expression into nested ``$and``/``$or`` nodes."""
    stack: list[Filter] = []
    for element in expression:
        if isinstance(element, str) and element in LOGICAL_TOKENS:
            if len(stack) < 2:
                raise FilterTranslationError(
                    f"Operator {element!r} is missing an operand", expression
                )
            right = stack.pop()
            left = stack.pop()
            stack.append({f"${element}": [left, right]})
        elif isinstance(element, Mapping):
            stack.append(_leaf_to_filter(element, user))
        else:
            raise FilterTranslationError(
                f"Unrecognised expression element: {element!r}", expression
            )
    if len(stack) != 1:
        raise FilterTranslationError("Malformed complex expression", expression)
    return stack[0]


def lookup_to_filter(condition: Mapping[str, Any], user: Mapping[str, Any] | None) -> Filter:
    """Translate a lookup condition into a ``$lookup`` marker node."""
    target = condition.get("object")
    via = condition.get("via")
    if not target or not via:
        raise FilterTranslationError("Lookup condition needs 'object' and 'via'", dict(condition))
    nested = condition_to_filter(condition.get("condition"), user)
    if not nested:
        raise FilterTranslationError(
            "Unable to convert nested lookup condition", dict(condition)
        )
    return {
        "$lookup": {
            "from": target,
            "localField": via,
            "foreignField": LOOKUP_FOREIGN_FIELD,
            "filter": nested,
        }
    }


def condition_to_filter(condition: Condition | None, user: Mapping[str, Any] | None) -> Filter:
    """Translate any condition into a filter tree.

    ``None`` (or an empty mapping) yields ``{}``, i.e. no restriction.

    Raises
    ------
    FilterTranslationError
        When the condition cannot be represented as a filter.
    """
    if not condition:
        return {}
    kind = condition_type(condition)
    match kind:
        case "simple":
            return _leaf_to_filter(condition, user)
        case "complex":
            return complex_to_filter(list(condition.get("expression") or []), user)
        case "formula":
            return formula_to_filter(str(condition.get("formula", "")), user)
        case "lookup":
            return lookup_to_filter(condition, user)
        case _:
            raise FilterTranslationError(f"Unknown condition type: {kind!r}", dict(condition))


# ---------------------------------------------------------------------------
# Formula mini-compiler
# ---------------------------------------------------------------------------

_COMPARISON_RE = re.compile(
    r"^([A-Za-z_]\w*(?:\.\w+)*)\s*(===|!==|==|!=|>=|<=|>|<)\s*(.+)$", re.DOTALL
)
_IDENTIFIER_RE = re.compile(r"^(!?)\s*([A-Za-z_]\w*(?:\.\w+)*)$")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")
_USER_PREFIX = "user."
_FORMULA_OPERATORS: dict[str, str] = {
    "==": "=",
    "===": "=",
    "!=": "!=",
    "!==": "!=",
    ">": ">",
    ">=": ">=",
    "<": "<",
    "<=": "<=",
}


def split_on_operator(formula: str, operator: str) -> list[str]:
    """Split ``formula`` on a two-character operator outside quoted strings.

    Empty parts are dropped.  Backslash-escaped quotes do not toggle
    quoting.
    """
    parts: list[str] = []
    current: list[str] = []
    quote: str | None = None
    index = 0
    while index < len(formula):
        char = formula[index]
        if char in ("'", '"') and (index == 0 or formula[index - 1] != "\\"):
            if quote is None:
                quote = char
            elif char == quote:
                quote = None
        elif quote is None and formula.startswith(operator, index):
            part = "".join(current).strip()
            if part:
                parts.append(part)
            current = []
            index += len(operator)
            continue
        current.append(char)
        index += 1
    part = "".join(current).strip()
    if part:
        parts.append(part)
    return parts or [formula]


def _record_field(path: str, formula: str) -> str:
    """Map a formula path to the record field it reads.

    ``record.<path>`` and bare ``<path>`` name a record field, matching the
    in-memory evaluator.  A user path is not a record field at all.
    """
    root, _, rest = path.partition(".")
    if root == "user":
        raise FilterTranslationError(
            f"Formula compares a user value, not a record field: {path!r}", formula
        )
    if root == "record" and rest:
        return rest
    return path


def parse_literal(text: str, user: Mapping[str, Any] | None, formula: str) -> Any:
    """Parse the right-hand side of a formula comparison."""
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return re.sub(r"\\(.)", r"\1", text[1:-1])
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    if text.startswith(CURRENT_USER_PREFIX):
        return get_field_value(user, text[len(CURRENT_USER_PREFIX):])
    if text.startswith(_USER_PREFIX):
        return get_field_value(user, text[len(_USER_PREFIX):])
    raise FilterTranslationError(f"Unsupported formula value {text!r}", formula)


def formula_to_filter(formula: str, user: Mapping[str, Any] | None) -> Filter:
    """Compile a restricted formula into a filter tree.

    Supported shapes: ``a || b``, ``a && b`` (``||`` binds loosest),
    ``field OP literal`` with ``OP`` one of ``== != > >= < <=``, a bare
    ``field`` (not null) and ``!field`` (null or empty).  Paths follow the
    in-memory evaluator: ``record.owner`` and ``owner`` are the same field,
    while ``$current_user.<path>`` and ``user.<path>`` are only valid as
    values.

    Example
    -------
    >>> formula_to_filter("status == 'active' && owner == $current_user.id", {"id": "u1"})
    {'$and': [{'status': 'active'}, {'owner': 'u1'}]}

    Raises
    ------
    FilterTranslationError
        For any other shape, e.g. parentheses or field-to-field comparisons.
    """
    normalized = formula.strip()
    if not normalized:
        raise FilterTranslationError("Empty formula", formula)

    or_parts = split_on_operator(normalized, "||")
    if len(or_parts) > 1:
        return {"$or": [formula_to_filter(part, user) for part in or_parts]}

    and_parts = split_on_operator(normalized, "&&")
    if len(and_parts) > 1:
        return {"$and": [formula_to_filter(part, user) for part in and_parts]}

    comparison = _COMPARISON_RE.match(normalized)
    if comparison is not None:
        field, operator, raw_value = comparison.groups()
        field = _record_field(field, formula)
        value = parse_literal(raw_value, user, formula)
        return operator_to_filter(field, _FORMULA_OPERATORS[operator], value)

    identifier = _IDENTIFIER_RE.match(normalized)
    if identifier is not None:
        negated, path = identifier.groups()
        field = _record_field(path, formula)
        if negated:
            return {field: {"$in": [None, ""]}}
        return {field: {"$ne": None}}

    raise FilterTranslationError(f"Unsupported formula pattern: {formula}", formula)
