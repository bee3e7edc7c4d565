from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine, TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from flash_core.logging import get_logger
from flash_flare.builder import QueryBuilder
from flash_flare.db import create_engine, create_session_factory
from flash_flare.exceptions import ModelNotFoundError
from flash_flare.registry import ModelRegistry, default_model_registry

from .delegate import ModelDelegate
from .types import CallOptions, Interceptor, Middleware, NextFn, OperationParams

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

T = TypeVar("T")


def _mapped_classes(models: Any) -> list[type[Any]]:
    """Accept a declarative base or an iterable of mapped classes."""
    registry = getattr(models, "registry", None)
    if registry is not None and hasattr(registry, "mappers"):
        return sorted(
            (mapper.class_ for mapper in registry.mappers),
            key=lambda cls: cls.__name__,
        )
    return list(models)


def _link(middleware: Middleware, next_fn: NextFn) -> NextFn:
    async def handler(params: OperationParams) -> Any:
        return await middleware(params, next_fn)

    return handler


def _as_middleware(interceptor: Interceptor) -> Middleware:
    """Adapt a ``(model, operation, args, query, *, options, client)`` interceptor."""

    async def middleware(params: OperationParams, next_fn: NextFn) -> Any:
        async def query(args: dict[str, Any]) -> Any:
            return await next_fn(params.with_args(args))

        return await interceptor(
            params.model,
            params.action,
            params.args,
            query,
            options=params.options,
            client=params.client,
        )

    middleware.__wrapped__ = interceptor  # type: ignore[attr-defined]
    return middleware


@dataclass
class _SharedState:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    models: dict[str, type[Any]]
    tasks: set[asyncio.Task[Any]] = field(default_factory=set)


class FlareClient:
    """
    Database client exposing one ``ModelDelegate`` per mapped model.

    Every delegate call is dispatched through the client's interception chain,
    built from ``use()`` middlewares and ``extend()`` interceptors, before it
    reaches the database.

    Example:
        >>> client = FlareClient("sqlite+aiosqlite:///app.db", Model)
        >>> await client.user.find_many({"where": {"status": "active"}})
        >>> await client.from_("user").where({"status": "active"}).count()
    """

    def __init__(
        self,
        bind: AsyncEngine | str,
        models: Any,
        *,
        model_registry: ModelRegistry | None = None,
    ):
        engine = bind if isinstance(bind, AsyncEngine) else create_engine(bind)
        classes = {cls.__name__.lower(): cls for cls in _mapped_classes(models)}
        self._state = _SharedState(
            engine=engine,
            session_factory=create_session_factory(engine),
            models=classes,
        )
        self.model_registry = (
            model_registry if model_registry is not None else default_model_registry
        )
        self._middlewares: list[Middleware] = []
        self._session: AsyncSession | None = None
        self._delegates: dict[str, ModelDelegate] = {}

    def _derive(self, *, session: AsyncSession | None = None) -> FlareClient:
        """Return a sibling client over the same engine and models."""
        clone = object.__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone._middlewares = list(self._middlewares)
        clone._delegates = {}
        if session is not None:
            clone._session = session
        return clone

    def detached(self) -> FlareClient:
        """Return a sibling client that is not bound to this client's transaction."""
        clone = self._derive()
        clone._session = None
        return clone

    def __repr__(self) -> str:
        return f"<{type(self).__name__} models={sorted(self._state.models)}>"

    def __getattr__(self, name: str) -> ModelDelegate:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.delegate(name)
        except ModelNotFoundError as e:
            raise AttributeError(str(e)) from e

    # --- Models ---

    @property
    def engine(self) -> AsyncEngine:
        return self._state.engine

    @property
    def model_names(self) -> list[str]:
        return sorted(self._state.models)

    def delegate(self, name: str | type[Any]) -> ModelDelegate:
        """
        Return the delegate of a model by name or mapped class.

        Raises:
            ModelNotFoundError: If the model is not part of this client.
        """
        key = (name if isinstance(name, str) else name.__name__).lower()
        if key not in self._delegates:
            model = self._state.models.get(key)
            if model is None:
                msg = f"Model '{key}' is not registered on this client"
                raise ModelNotFoundError(msg)
            self._delegates[key] = ModelDelegate(self, key, model)
        return self._delegates[key]

    def from_(self, name: str) -> QueryBuilder:
        """
        Start a builder for ``name``, using its registered builder class if any.
        """
        delegate = self.delegate(name)
        builder = self.model_registry.create(name, delegate)
        if builder is None:
            builder = QueryBuilder(delegate, registry=self.model_registry)
        return builder

    async def create_tables(self) -> None:
        metadata = {cls.metadata for cls in self._state.models.values()}
        async with self.engine.begin() as conn:
            for meta in metadata:
                await conn.run_sync(meta.create_all)

    async def drop_tables(self) -> None:
        metadata = {cls.metadata for cls in self._state.models.values()}
        async with self.engine.begin() as conn:
            for meta in metadata:
                await conn.run_sync(meta.drop_all)

    # --- Interception ---

    def use(self, middleware: Middleware) -> Middleware:
        """
        Register a ``(params, next)`` middleware on this client in place.

        Middlewares run in registration order, the first one outermost.
        """
        self._middlewares.append(middleware)
        return middleware

    def extend(self, interceptor: Interceptor) -> FlareClient:
        """
        Return a new client whose operations run through ``interceptor``.

        The interceptor is called as ``interceptor(model, operation, args, query,
        options=..., client=...)`` and continues the call with ``await query(args)``. This
        client is left untouched.
        """
        extended = self._derive()
        extended._middlewares.append(_as_middleware(interceptor))
        return extended

    async def _dispatch(
        self,
        model: str | None,
        action: str,
        args: dict[str, Any],
        options: CallOptions | None = None,
    ) -> Any:
        params = OperationParams(
            model=model,
            action=action,
            args=args,
            options=options or CallOptions(),
            client=self,
        )
        handler: NextFn = self._terminal
        for middleware in reversed(self._middlewares):
            handler = _link(middleware, handler)
        return await handler(params)

    async def _terminal(self, params: OperationParams) -> Any:
        if params.model is None:
            return await self._run_raw(params.args)
        return await self.execute(params.model, params.action, params.args)

    async def execute(self, model: str, action: str, args: dict[str, Any]) -> Any:
        """
        Run one operation against the database, bypassing interception.

        Used by middlewares that need to read without re-entering the chain.
        """
        delegate = self.delegate(model)
        if self._session is not None:
            return await delegate.execute(self._session, action, args)
        async with self._state.session_factory() as session:
            async with session.begin():
                return await delegate.execute(session, action, args)

    async def _run_raw(self, args: dict[str, Any]) -> Any:
        stmt = text(args["sql"])
        params = args.get("params") or {}
        if self._session is not None:
            return self._raw_result(await self._session.execute(stmt, params))
        async with self._state.session_factory() as session:
            async with session.begin():
                return self._raw_result(await session.execute(stmt, params))

    @staticmethod
    def _raw_result(result: Any) -> Any:
        if result.returns_rows:
            return [dict(row._mapping) for row in result.all()]
        return {"count": result.rowcount}

    async def query_raw(self, sql: str, **params: Any) -> Any:
        """
        Execute raw SQL. The call carries no model context, so model hooks
        never see it.

        Example:
            >>> await client.query_raw("SELECT * FROM users WHERE id = :id", id=1)
        """
        return await self._dispatch(None, "query_raw", {"sql": sql, "params": params})

    # --- Transactions ---

    async def transaction(self, fn: Callable[[FlareClient], Awaitable[T]]) -> T:
        """
        Run ``fn(tx_client)`` inside one transaction.

        Commits when ``fn`` returns and rolls back when it raises. Calling it
        on a client that is already inside a transaction opens a SAVEPOINT.

        Example:
            >>> async def move(tx):
            ...     await tx.account.update({"where": {"id": 1}, "data": {...}})
            ...     await tx.account.update({"where": {"id": 2}, "data": {...}})
            >>> await client.transaction(move)
        """
        if self._session is not None:
            async with self._session.begin_nested():
                return await fn(self)

        async with self._state.session_factory() as session:
            async with session.begin():
                return await fn(self._derive(session=session))

    # --- Background work ---

    def run_in_background(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """
        Schedule ``coro`` without awaiting it.

        The task is referenced until it finishes so it cannot be garbage
        collected mid-flight. It inherits the caller's context variables.
        """
        task = asyncio.create_task(coro)
        self._state.tasks.add(task)
        task.add_done_callback(self._state.tasks.discard)
        return task

    async def wait_for_hooks(self) -> None:
        """Wait until every scheduled background task has finished."""
        while self._state.tasks:
            await asyncio.gather(*list(self._state.tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.wait_for_hooks()
        await self.engine.dispose()
        logger.debug("Client closed")
