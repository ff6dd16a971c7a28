"""Row-level security as query filters.

Exports the :class:`QueryTrimmer` and the filter-tree helpers it uses.
"""
from __future__ import annotations

from aumos_record_security.query.filters import (
    IMPOSSIBLE_FILTER,
    Filter,
    add_filter,
    condition_to_filter,
    formula_to_filter,
    is_impossible_filter,
    operator_to_filter,
    split_on_operator,
)
from aumos_record_security.query.trimmer import (
    QueryTrimmer,
    ResidualFilter,
    applicable_record_rules,
)

__all__ = [
    "IMPOSSIBLE_FILTER",
    "Filter",
    "QueryTrimmer",
    "ResidualFilter",
    "add_filter",
    "applicable_record_rules",
    "condition_to_filter",
    "formula_to_filter",
    "is_impossible_filter",
    "operator_to_filter",
    "split_on_operator",
]
