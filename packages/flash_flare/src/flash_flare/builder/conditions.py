from __future__ import annotations

from typing import Any, Callable, TypeVar

from flash_flare.exceptions import InvalidArgumentError
from flash_flare.state import Condition, combine

from .base import BuilderBase

B = TypeVar("B", bound="BuilderConditions")


class BuilderConditions(BuilderBase):
    """
    Boolean composition of the ``where`` tree.

    Every call folds the new predicate into the existing tree; no earlier
    predicate is ever overwritten. Nesting is left-leaning: the newest
    predicate wraps everything accumulated so far.
    """

    def where(self: B, predicate: Condition) -> B:
        """
        Add ``predicate`` with AND logic.

        Example:
            >>> qb.where({"status": "active"}).where({"views": {"gte": 100}})
            # {"AND": [{"status": "active"}, {"views": {"gte": 100}}]}
        """
        self._state.where = combine(self._state.where, predicate, "AND")
        return self

    def and_where(self: B, predicate: Condition) -> B:
        return self.where(predicate)

    def or_where(self: B, predicate: Condition) -> B:
        """
        Add ``predicate`` with OR logic against the whole accumulated tree.

        ``where(A).where(B).or_where(C)`` yields ``OR[AND[A, B], C]``; use
        ``where_group`` to OR only a subset of conditions.
        """
        self._state.where = combine(self._state.where, predicate, "OR")
        return self

    def where_group(self: B, callback: Callable[[Any], Any], mode: str = "AND") -> B:
        """
        Build a parenthesised group on a fresh builder and fold it in.

        An empty group leaves the condition unchanged.

        Example:
            >>> qb.where({"published": True}).where_group(
            ...     lambda g: g.where({"author_id": 1}).or_where({"featured": True}))
            # AND[{published}, OR[{author_id}, {featured}]]
        """
        if mode not in ("AND", "OR"):
            msg = f"Unsupported group mode '{mode}'. Expected 'AND' or 'OR'"
            raise InvalidArgumentError(msg)

        group = self._new(self.delegate)
        callback(group)
        self._state.where = combine(self._state.where, group.get_query().where, mode)
        return self

    def or_where_group(self: B, callback: Callable[[Any], Any]) -> B:
        return self.where_group(callback, "OR")

    def with_id(self: B, id: Any) -> B:
        """
        Filter by primary key.

        Raises:
            InvalidArgumentError: If ``id`` is falsy (``None``, ``0``, ``""``).
        """
        if not id:
            msg = "Id is required"
            raise InvalidArgumentError(msg)
        return self.where({"id": id})
