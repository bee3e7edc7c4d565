"""
Translation of condition trees and ordering specs into SQLAlchemy.

A condition tree is a mapping of field names to values or predicate dicts,
combined with ``AND`` / ``OR`` / ``NOT`` keys::

    {"OR": [{"status": "active"}, {"views": {"gte": 100}}], "deleted_at": None}
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Mapping

from sqlalchemy import and_, false, func, not_, or_

from flash_core import parse_ordering

from .expressions import (
    INSENSITIVE_LOOKUPS,
    LOOKUP_ALIASES,
    apply_lookup,
    is_predicate,
    parse_lookup,
)

if TYPE_CHECKING:
    from sqlalchemy.sql import ColumnElement

ColumnResolver = Callable[[str], Any]

AGGREGATE_FUNCTIONS: dict[str, Callable[[Any], Any]] = {
    "_count": func.count,
    "_sum": func.sum,
    "_avg": func.avg,
    "_min": func.min,
    "_max": func.max,
}


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def build_condition(
    node: Any,
    resolve_column: ColumnResolver,
    *,
    allow_aggregates: bool = False,
) -> ColumnElement[bool] | None:
    """
    Resolve a condition tree into a SQLAlchemy boolean expression.

    Args:
        node: The condition tree (mapping, list of mappings, or None).
        resolve_column: Maps a field name to a column expression; raises
            ValueError for unknown fields.
        allow_aggregates: Accept ``_sum``/``_count``/... keys, as used by HAVING.

    Returns:
        The expression, or None for an empty tree.

    Notes:
        - ``OR: []`` matches nothing, ``AND: []`` and ``NOT: []`` match everything.
    """
    if node is None:
        return None

    if isinstance(node, (list, tuple)):
        parts = [build_condition(n, resolve_column, allow_aggregates=allow_aggregates)
                 for n in node]
        return _and(parts)

    if not isinstance(node, Mapping):
        msg = f"Condition must be a mapping, got {type(node).__name__}"
        raise ValueError(msg)

    clauses: list[ColumnElement[bool]] = []
    for key, value in node.items():
        if key == "AND":
            combined = build_condition(
                _as_list(value), resolve_column, allow_aggregates=allow_aggregates
            )
            if combined is not None:
                clauses.append(combined)
        elif key == "OR":
            parts = [
                c
                for c in (
                    build_condition(n, resolve_column, allow_aggregates=allow_aggregates)
                    for n in _as_list(value)
                )
                if c is not None
            ]
            clauses.append(or_(*parts) if parts else false())
        elif key == "NOT":
            negated = build_condition(
                _as_list(value), resolve_column, allow_aggregates=allow_aggregates
            )
            if negated is not None:
                clauses.append(not_(negated))
        elif allow_aggregates and key in AGGREGATE_FUNCTIONS:
            clauses.extend(_aggregate_conditions(key, value, resolve_column))
        else:
            clauses.append(field_condition(key, value, resolve_column))

    return _and(clauses)


def _and(parts: list[ColumnElement[bool] | None]) -> ColumnElement[bool] | None:
    present = [p for p in parts if p is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return and_(*present)


def _aggregate_conditions(
    key: str, value: Any, resolve_column: ColumnResolver
) -> list[ColumnElement[bool]]:
    if not isinstance(value, Mapping):
        msg = f"'{key}' filter must map field names to predicates"
        raise ValueError(msg)
    fn = AGGREGATE_FUNCTIONS[key]
    return [
        _value_condition(fn(resolve_column(field)), predicate)
        for field, predicate in value.items()
    ]


def field_condition(
    key: str, value: Any, resolve_column: ColumnResolver
) -> ColumnElement[bool]:
    """
    Resolve one ``field: value`` entry of a condition tree.

    The key may carry a Django-style lookup suffix (``price__gt``); the value
    may be a literal, ``None`` (IS NULL) or a predicate dict (``{"gt": 5}``).
    """
    field_name, lookup = parse_lookup(key)
    col = resolve_column(field_name)

    if lookup != "exact":
        return apply_lookup(col, lookup, value)
    return _value_condition(col, value)


def _value_condition(col: Any, value: Any) -> ColumnElement[bool]:
    if is_predicate(value):
        return predicate_condition(col, value)
    return apply_lookup(col, "exact", value)


def predicate_condition(col: Any, predicate: Mapping[str, Any]) -> ColumnElement[bool]:
    """Resolve an operator dict such as ``{"gte": 1, "lt": 10}`` against a column."""
    insensitive = predicate.get("mode") == "insensitive"
    clauses: list[ColumnElement[bool]] = []

    for op, operand in predicate.items():
        if op == "mode":
            continue

        if op == "not":
            if is_predicate(operand):
                inner = dict(operand)
                if insensitive:
                    inner.setdefault("mode", "insensitive")
                clauses.append(not_(predicate_condition(col, inner)))
            elif operand is None:
                clauses.append(col.isnot(None))
            else:
                clauses.append(col != operand)
            continue

        op = LOOKUP_ALIASES.get(op, op)
        if insensitive:
            op = INSENSITIVE_LOOKUPS.get(op, op)
        clauses.append(apply_lookup(col, op, operand))

    combined = _and(list(clauses))
    if combined is None:
        msg = "Predicate must contain at least one operator"
        raise ValueError(msg)
    return combined


def build_order_by(order_by: Any, resolve_column: ColumnResolver) -> list[Any]:
    """
    Resolve an ordering spec into ORDER BY clauses.

    Accepts ``{"field": "asc" | "desc"}``, a list of such mappings, or an
    ordering string such as ``"-created_at,title"``.

    Example:
        >>> build_order_by({"created_at": "desc"}, resolve)  # doctest: +SKIP
    """
    if not order_by:
        return []

    instructions: list[tuple[str, str]] = []
    if isinstance(order_by, str):
        instructions = list(parse_ordering(order_by))
    else:
        for entry in _as_list(order_by):
            if not isinstance(entry, Mapping):
                msg = f"Unsupported order_by entry: {entry!r}"
                raise ValueError(msg)
            for field, direction in entry.items():
                instructions.append((field, str(direction).lower()))

    clauses = []
    for field, direction in instructions:
        if direction not in ("asc", "desc"):
            msg = f"Unsupported sort direction '{direction}' for '{field}'"
            raise ValueError(msg)
        col = resolve_column(field)
        clauses.append(col.desc() if direction == "desc" else col.asc())
    return clauses
