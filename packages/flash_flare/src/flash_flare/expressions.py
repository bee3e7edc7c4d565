from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Protocol,
    cast,
    runtime_checkable,
)

from sqlalchemy import func, not_

if TYPE_CHECKING:
    from sqlalchemy.orm import InstrumentedAttribute
    from sqlalchemy.sql import ColumnElement


@runtime_checkable
class Resolvable(Protocol):
    """Protocol for objects resolvable into SQLAlchemy expressions."""

    def resolve(self, model: type[Any]) -> "ColumnElement[Any] | None":
        """Resolve the object into a SQLAlchemy expression."""
        ...


LOOKUP_ALIASES = {
    "equals": "exact",
    "starts_with": "startswith",
    "ends_with": "endswith",
}

# Lookups with a case-insensitive twin, used by ``mode="insensitive"``
INSENSITIVE_LOOKUPS = {
    "exact": "iexact",
    "contains": "icontains",
    "startswith": "istartswith",
    "endswith": "iendswith",
}

OPERATORS: dict[str, Callable[[Any, Any], "ColumnElement[bool]"]] = {
    "exact": lambda c, v: c.is_(None) if v is None else c == v,
    "iexact": lambda c, v: func.lower(c) == func.lower(v),
    "contains": lambda c, v: c.contains(v),
    "icontains": lambda c, v: func.lower(c).contains(func.lower(v)),
    "gt": lambda c, v: c > v,
    "gte": lambda c, v: c >= v,
    "lt": lambda c, v: c < v,
    "lte": lambda c, v: c <= v,
    "in": lambda c, v: c.in_(list(v)),
    "not_in": lambda c, v: not_(c.in_(list(v))),
    "startswith": lambda c, v: c.startswith(v),
    "istartswith": lambda c, v: func.lower(c).startswith(func.lower(v)),
    "endswith": lambda c, v: c.endswith(v),
    "iendswith": lambda c, v: func.lower(c).endswith(func.lower(v)),
    "isnull": lambda c, v: c.is_(None) if v else c.isnot(None),
}

# Keys allowed inside a predicate dict besides the operators themselves
PREDICATE_MODIFIERS = frozenset({"not", "mode"})


def parse_lookup(key: str) -> tuple[str, str]:
    """
    Split a lookup key into (field_name, lookup).

    Supported format: 'field' or 'field__lookup' (e.g., 'price' or 'price__gt').
    Nested lookups across relationships (e.g., 'author__name') are not
    supported and raise a ValueError.
    """
    parts = key.split("__")
    if len(parts) > 2:
        msg = (
            f"Unsupported lookup '{key}'. Nested lookups across relationships "
            f"are not currently supported."
        )
        raise ValueError(msg)

    field_name = parts[0]
    lookup = parts[1] if len(parts) > 1 else "exact"
    return field_name, LOOKUP_ALIASES.get(lookup, lookup)


def apply_lookup(col: Any, lookup: str, value: Any) -> "ColumnElement[bool]":
    """Apply a lookup operator to a SQLAlchemy column."""
    lookup = LOOKUP_ALIASES.get(lookup, lookup)
    if lookup not in OPERATORS:
        supported = ", ".join(OPERATORS.keys())
        msg = f"Unsupported lookup '{lookup}'. Supported: {supported}"
        raise ValueError(msg)

    return OPERATORS[lookup](col, value)


def is_predicate(value: Any) -> bool:
    """
    Return True if ``value`` is an operator dict such as ``{"gt": 5}``.

    A dict whose keys are not all operators is a plain value (a JSON column
    compared for equality).
    """
    if not isinstance(value, dict) or not value:
        return False
    return all(
        LOOKUP_ALIASES.get(k, k) in OPERATORS or k in PREDICATE_MODIFIERS
        for k in value
    )


class F(Resolvable):
    """
    Reference to a model field with arithmetic support.

    Used in update data to compute the new value in SQL:

    Example:
        >>> await client.post.update_many(
        ...     {"where": {"published": True}, "data": {"views": F("views") + 1}})
    """

    name: str

    def __init__(self, name: str | InstrumentedAttribute[Any]):
        self.name = name if isinstance(name, str) else name.key
        self._ops: list[tuple[str, Any]] = []

    def _with(self, op: str, other: Any) -> "F":
        new_f = F(self.name)
        new_f._ops = [*self._ops, (op, other)]
        return new_f

    def __add__(self, other: Any) -> "F":
        return self._with("+", other)

    def __sub__(self, other: Any) -> "F":
        return self._with("-", other)

    def __mul__(self, other: Any) -> "F":
        return self._with("*", other)

    def __truediv__(self, other: Any) -> "F":
        return self._with("/", other)

    def __repr__(self) -> str:
        ops = "".join(f" {op} {other!r}" for op, other in self._ops)
        return f"F({self.name!r}{ops})"

    def resolve(self, model: type[Any]) -> "ColumnElement[Any] | None":
        res = getattr(model, self.name, None)
        if res is None:
            msg = f"Field '{self.name}' not found on model {model.__name__}"
            raise AttributeError(msg)

        for op, other in self._ops:
            if hasattr(other, "resolve"):
                other = cast("Resolvable", other).resolve(model)

            if other is None:
                msg = f"Operand resolved to None in F('{self.name}') expression"
                raise ValueError(msg)

            if op == "+":
                res = res + other
            elif op == "-":
                res = res - other
            elif op == "*":
                res = res * other
            elif op == "/":
                res = res / other
        return res
