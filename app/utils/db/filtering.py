"""Filter helpers for list/search queries."""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.orm import Query

_OPERATORS = {
    "==": lambda col, v: col == v,
    "!=": lambda col, v: col != v,
    ">": lambda col, v: col > v,
    ">=": lambda col, v: col >= v,
    "<": lambda col, v: col < v,
    "<=": lambda col, v: col <= v,
    "in": lambda col, v: col.in_(v),
}


def apply_filters(query: Query, model: Any, filters: Dict[str, Any]) -> Query:
    """
    Apply simple equality or ``{"operator": op, "value": v}`` filters.

    Unknown columns are ignored; ``None`` values are skipped.
    """
    for field, condition in filters.items():
        column = getattr(model, field, None)
        if column is None:
            continue
        if isinstance(condition, dict):
            op = condition.get("operator", "==")
            value = condition.get("value")
            if value is None or op not in _OPERATORS:
                continue
            query = query.filter(_OPERATORS[op](column, value))
        elif condition is not None:
            query = query.filter(column == condition)
    return query
