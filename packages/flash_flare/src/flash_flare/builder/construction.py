from __future__ import annotations

from typing import Any, Callable, TypeVar, Union

from flash_flare.exceptions import InvalidArgumentError
from flash_flare.state import Condition

from .conditions import BuilderConditions

B = TypeVar("B", bound="BuilderConstruction")


def _field_list(fields: tuple[Any, ...]) -> list[str]:
    if len(fields) == 1 and isinstance(fields[0], (list, tuple)):
        return list(fields[0])
    return list(fields)


class BuilderConstruction(BuilderConditions):
    """
    Chainable query shaping: ordering, windowing, projection, relations and
    grouping. Every method mutates the builder and returns it.
    """

    def order(self: B, order_by: Union[dict[str, str], list[dict[str, str]], str]) -> B:
        """
        Set the ordering, replacing any previous one.

        Example:
            >>> qb.order({"created_at": "desc"})
            >>> qb.order([{"status": "asc"}, {"id": "desc"}])
            >>> qb.order("-created_at,title")
        """
        self._state.order_by = order_by
        return self

    def first(self: B, key: str = "created_at") -> B:
        """Order ascending by ``key`` and keep one record."""
        return self.order({key: "asc"}).limit(1)

    def last(self: B, key: str = "created_at") -> B:
        """Order descending by ``key`` and keep one record."""
        return self.order({key: "desc"}).limit(1)

    def limit(self: B, count: int) -> B:
        if count < 0:
            msg = "Limit must be a non-negative integer"
            raise InvalidArgumentError(msg)
        self._state.take = count
        return self

    def skip(self: B, offset: int) -> B:
        if offset < 0:
            msg = "Skip must be a non-negative integer"
            raise InvalidArgumentError(msg)
        self._state.skip = offset
        return self

    def distinct(self: B, *fields: str | list[str]) -> B:
        """
        Keep one record per distinct combination of ``fields``.

        Example:
            >>> await qb.distinct("author_id").find_many()
        """
        self._state.distinct = _field_list(fields)
        return self

    def select(self: B, fields: dict[str, Any] | list[str]) -> B:
        """
        Restrict returned fields.

        Accepts ``{"id": True, "title": True}`` or a list of names. A relation
        name may appear in the mapping with ``True`` or nested options.
        """
        if isinstance(fields, (list, tuple)):
            fields = {name: True for name in fields}
        self._state.select = dict(fields)
        return self

    def include(self: B, relation: str, callback: Callable[[Any], Any] | None = None) -> B:
        """
        Load ``relation`` with each record.

        Without a callback the relation is loaded as is. With one, the callback
        receives a builder for the related model (the registered builder class
        when there is one) and the query it builds shapes the nested load.

        Example:
            >>> client.from_("user").include(
            ...     "posts", lambda posts: posts.where({"published": True}).limit(5))
        """
        if callback is None:
            self._state.include[relation] = True
            return self

        builder = self._relation_builder(relation)
        callback(builder)
        nested = builder.get_query()
        self._state.include[relation] = True if nested.is_empty() else nested
        return self

    def _relation_builder(self, relation: str) -> Any:
        related = None
        target = None
        if self.delegate is not None and hasattr(self.delegate, "related"):
            related = self.delegate.related(relation)
            target = self.delegate.related_model(relation)

        builder = self.registry.create(relation, related)
        if builder is None and target is not None:
            builder = self.registry.create(target, related)
        if builder is None:
            from . import QueryBuilder

            builder = QueryBuilder(related, self.registry)
        return builder

    def group_by(self: B, *fields: str | list[str]) -> B:
        """
        Group by ``fields``; used by ``find_groups``.

        Example:
            >>> await qb.group_by("status").find_groups({"_count": True})
        """
        self._state.group_by = _field_list(fields)
        return self

    def having(self: B, condition: Condition) -> B:
        """
        Filter groups by aggregate, e.g. ``{"_sum": {"views": {"gt": 100}}}``,
        or by a grouped field.
        """
        self._state.having = condition
        return self

    def when(self: B, condition: bool | Callable[[], bool], callback: Callable[[B], Any]) -> B:
        """
        Apply ``callback`` to the builder only when ``condition`` holds.

        Example:
            >>> qb.when(search is not None, lambda q: q.where({"title": {"contains": search}}))
        """
        holds = condition() if callable(condition) else condition
        if holds:
            callback(self)
        return self
