from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable

from flash_core import PaginatedResult, PaginationMeta, flash_settings
from flash_core.logging import get_logger
from flash_flare.exceptions import InvalidArgumentError

from .construction import BuilderConstruction

logger = get_logger(__name__)

Record = dict[str, Any]


class BuilderExecution(BuilderConstruction):
    """
    Terminal read operations.

    Each method renders the accumulated QueryState and forwards it to the model
    delegate, so any interception registered on the client applies.
    """

    def _args(self, **overrides: Any) -> dict[str, Any]:
        return {**self._state.to_args(), **overrides}

    async def find_many(self) -> list[Record]:
        return await self._require_delegate().find_many(self._args())

    async def find_first(self) -> Record | None:
        return await self._require_delegate().find_first(self._args())

    async def find_unique(self) -> Record | None:
        return await self._require_delegate().find_unique(self._args())

    async def find_first_or_throw(self) -> Record:
        """
        Raises:
            RecordNotFoundError: If no record matches.
        """
        return await self._require_delegate().find_first_or_throw(self._args())

    async def find_unique_or_throw(self) -> Record:
        return await self._require_delegate().find_unique_or_throw(self._args())

    async def count(self) -> int:
        return await self._require_delegate().count(self._args())

    async def _aggregate(self, key: str, field: str) -> Any:
        args: dict[str, Any] = {key: {field: True}}
        if self._state.where:
            args["where"] = self._state.where
        result = await self._require_delegate().aggregate(args)
        return result[key][field]

    async def sum(self, field: str) -> Any:
        return await self._aggregate("_sum", field)

    async def avg(self, field: str) -> Any:
        return await self._aggregate("_avg", field)

    async def min(self, field: str) -> Any:
        return await self._aggregate("_min", field)

    async def max(self, field: str) -> Any:
        return await self._aggregate("_max", field)

    async def pluck(self, field: str) -> list[Any]:
        """
        Return ``field`` of every matching record.

        Example:
            >>> await client.from_("user").where({"status": "active"}).pluck("email")
            ['a@example.com', 'b@example.com']
        """
        rows = await self._require_delegate().find_many(self._args(select={field: True}))
        return [row[field] for row in rows]

    async def only(self, field: str) -> Any:
        """Return ``field`` of the first matching record, or None."""
        row = await self._require_delegate().find_first(self._args(select={field: True}))
        return None if row is None else row[field]

    async def exists(self, key: str | None = None) -> bool:
        """True if any record matches. ``key`` defaults to the primary key."""
        delegate = self._require_delegate()
        args: dict[str, Any] = {"select": {key or delegate.primary_key: True}}
        if self._state.where:
            args["where"] = self._state.where
        return await delegate.find_first(args) is not None

    async def paginate(self, page: int = 1, per_page: int | None = None) -> PaginatedResult[Record]:
        """
        Fetch one page of results together with pagination metadata.

        ``per_page`` defaults to ``DEFAULT_PER_PAGE`` and is capped at
        ``MAX_PER_PAGE``.

        Example:
            >>> result = await client.from_("post").order({"id": "asc"}).paginate(2, 10)
            >>> result.meta.current_page, result.meta.prev
            (2, 1)
        """
        if per_page is None:
            per_page = flash_settings.DEFAULT_PER_PAGE
        if page < 1 or per_page < 1:
            msg = "page and per_page must be positive integers"
            raise InvalidArgumentError(msg)
        per_page = min(per_page, flash_settings.MAX_PER_PAGE)

        self._state.skip = (page - 1) * per_page
        self._state.take = per_page

        delegate = self._require_delegate()
        count_args = {"where": self._state.where} if self._state.where else {}
        total = await delegate.count(count_args)
        data = await delegate.find_many(self._args())

        return PaginatedResult[Record](
            data=data,
            meta=PaginationMeta.for_page(total=total, page=page, per_page=per_page),
        )

    async def chunk(
        self,
        size: int,
        callback: Callable[[list[Record]], Awaitable[Any] | Any],
    ) -> None:
        """
        Walk all matching records in batches of ``size``.

        ``callback`` may be sync or async. The builder's skip/take are restored
        afterwards, even when the callback raises.

        Example:
            >>> async def reindex(rows):
            ...     await search.index(rows)
            >>> await client.from_("post").order({"id": "asc"}).chunk(100, reindex)
        """
        if size < 1:
            msg = "Chunk size must be a positive integer"
            raise InvalidArgumentError(msg)

        delegate = self._require_delegate()
        original_skip, original_take = self._state.skip, self._state.take
        page = 0
        try:
            while True:
                self._state.skip = page * size
                self._state.take = size
                rows = await delegate.find_many(self._args())
                if not rows:
                    break

                result = callback(rows)
                if inspect.isawaitable(result):
                    await result

                page += 1
                if len(rows) < size:
                    break
        finally:
            self._state.skip, self._state.take = original_skip, original_take
        logger.debug("Processed %d chunk(s) of %s", page, getattr(delegate, "name", "?"))

    async def find_groups(self, aggregates: dict[str, Any] | None = None) -> list[Record]:
        """
        Run a grouped aggregate using ``group_by``, ``having`` and ``where``.

        Example:
            >>> await (client.from_("post").group_by("author_id")
            ...        .having({"_count": {"id": {"gt": 1}}})
            ...        .find_groups({"_count": {"id": True}, "_sum": {"views": True}}))
            [{'author_id': 1, '_count': {'id': 2}, '_sum': {'views': 30}}]
        """
        if not self._state.group_by:
            msg = "find_groups requires group_by()"
            raise InvalidArgumentError(msg)
        args = self._state.to_args()
        args.pop("select", None)
        args.pop("include", None)
        args.pop("distinct", None)
        args.update(aggregates or {})
        return await self._require_delegate().group_by(args)
