from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from .execution import BuilderExecution, Record

if TYPE_CHECKING:
    from flash_flare.client.types import CallOptions


class BuilderWrite(BuilderExecution):
    """
    Terminal write operations.

    Writes go through the same delegate as reads, so before/after hooks and
    column-change hooks registered on the client fire for them. Each accepts
    an optional ``CallOptions`` for per-call behaviour.

    Example:
        >>> await client.from_("post").with_id(1).update(
        ...     {"status": "published"}, options=CallOptions(skip_column_hooks=True))
    """

    async def create(self, data: Mapping[str, Any], options: CallOptions | None = None) -> Record:
        return await self._require_delegate().create(self._args(data=data), options)

    async def create_many(
        self, data: list[Mapping[str, Any]], options: CallOptions | None = None
    ) -> dict[str, int]:
        return await self._require_delegate().create_many(self._args(data=data), options)

    async def update(self, data: Mapping[str, Any], options: CallOptions | None = None) -> Record:
        """
        Update the single record matched by ``where``.

        Raises:
            RecordNotFoundError: If nothing matches.
        """
        return await self._require_delegate().update(self._args(data=data), options)

    async def update_many(
        self, data: Mapping[str, Any], options: CallOptions | None = None
    ) -> dict[str, int]:
        return await self._require_delegate().update_many(self._args(data=data), options)

    async def delete(
        self, args: Mapping[str, Any] | None = None, options: CallOptions | None = None
    ) -> Record:
        return await self._require_delegate().delete(self._args(**(args or {})), options)

    async def delete_many(
        self, args: Mapping[str, Any] | None = None, options: CallOptions | None = None
    ) -> dict[str, int]:
        return await self._require_delegate().delete_many(self._args(**(args or {})), options)

    async def upsert(
        self, args: Mapping[str, Any] | None = None, options: CallOptions | None = None
    ) -> Record:
        """
        Update the record matched by ``where`` or create it.

        Example:
            >>> await client.from_("user").where({"email": "a@b.c"}).upsert(
            ...     {"create": {"email": "a@b.c", "name": "A"}, "update": {"name": "A"}})
        """
        return await self._require_delegate().upsert(self._args(**(args or {})), options)
