from __future__ import annotations

import asyncio
from typing import Any, Mapping

from flash_core.logging import get_logger, new_correlation_id, scoped_correlation_id
from flash_flare.client.types import (
    META_OPTIONS_KEY,
    UPDATE_ACTIONS,
    CallOptions,
    Interceptor,
    NextFn,
    OperationParams,
)

from .registry import HookRegistry, default_hook_registry

logger = get_logger(__name__)

Record = dict[str, Any]


def strip_meta_options(params: OperationParams) -> OperationParams:
    """
    Move a legacy ``__flare`` options bag out of the args into ``params.options``.

    The bag may sit at the top level of the args or inside ``data``; the
    client never sees it.
    """
    args = params.args
    bags: list[Any] = []

    if META_OPTIONS_KEY in args:
        args = dict(args)
        bags.append(args.pop(META_OPTIONS_KEY))

    data = args.get("data")
    if isinstance(data, Mapping) and META_OPTIONS_KEY in data:
        data = dict(data)
        bags.append(data.pop(META_OPTIONS_KEY))
        args = {**args, "data": data}

    if not bags:
        return params

    options = params.options
    for bag in bags:
        if isinstance(bag, Mapping):
            options = options.merge(CallOptions.from_mapping(bag))
    logger.debug("Stripped legacy %s options from %s.%s", META_OPTIONS_KEY, params.model, params.action)
    return OperationParams(
        model=params.model,
        action=params.action,
        args=args,
        options=options,
        client=params.client,
    )


class HookMiddleware:
    """
    Runs registered hooks around every model operation of a client.

    Per call:
        1. Calls without a model (raw SQL) pass through untouched.
        2. Before hooks run one at a time; an exception aborts the call before
           the database is touched.
        3. For ``update``/``update_many`` with column hooks, the matching records
           are snapshotted (watched columns plus the primary key), unless the call skips
           column hooks or the snapshot exceeds ``max_refetch``.
        4. The operation executes; its result or error is the caller's.
        5. The snapshotted records are re-read by primary key, and after hooks plus column
           hooks for changed values are scheduled in the background. Their
           errors are logged, never raised.

    Usable as a ``(params, next)`` middleware (``client.use(middleware)``) or,
    through ``as_interceptor()``, with ``client.extend``.
    """

    def __init__(self, registry: HookRegistry | None = None):
        self.registry = registry if registry is not None else default_hook_registry

    def __repr__(self) -> str:
        return f"<HookMiddleware {self.registry!r}>"

    async def __call__(self, params: OperationParams, next_fn: NextFn) -> Any:
        if params.model is None:
            return await next_fn(params)

        params = strip_meta_options(params)
        with scoped_correlation_id(new_correlation_id(params.action)):
            return await self._run(params, next_fn)

    def as_interceptor(self) -> Interceptor:
        async def interceptor(
            model: str | None,
            operation: str,
            args: dict[str, Any],
            query: Any,
            *,
            options: CallOptions | None = None,
            client: Any = None,
        ) -> Any:
            params = OperationParams(
                model=model,
                action=operation,
                args=args,
                options=options or CallOptions(),
                client=client,
            )

            async def next_fn(forwarded: OperationParams) -> Any:
                return await query(forwarded.args)

            return await self(params, next_fn)

        interceptor.__name__ = "hook_interceptor"
        return interceptor

    async def _run(self, params: OperationParams, next_fn: NextFn) -> Any:
        model, action, client = params.model, params.action, params.client

        await self.registry.run_before_hooks(model, action, params.args, client)

        before: list[Record] = []
        identity: str | None = None
        track_columns = False
        if action in UPDATE_ACTIONS and self.registry.should_run_column_hooks(model, 0, params.options):
            identity = client.delegate(model).primary_key
            before = await self._snapshot(params, identity)
            track_columns = self.registry.should_run_column_hooks(model, len(before), params.options)

        result = await next_fn(params)

        after: list[Record] = []
        if track_columns and before:
            after = await self._refetch(params, before, identity)

        if after or self.registry.get_hooks(model, action, "after"):
            client.run_in_background(
                self._after(params, result, before, after, identity, client.detached())
            )
        return result

    async def _snapshot(self, params: OperationParams, identity: str) -> list[Record]:
        fields = self.registry.relevant_fields(params.model, identity)
        args: dict[str, Any] = {"select": {field: True for field in fields}}
        if params.args.get("where"):
            args["where"] = params.args["where"]
        return await params.client.execute(params.model, "find_many", args)

    async def _refetch(
        self, params: OperationParams, before: list[Record], identity: str
    ) -> list[Record]:
        keys = [record[identity] for record in before]
        try:
            return await params.client.execute(
                params.model, "find_many", {"where": {identity: {"in": keys}}}
            )
        except Exception:
            logger.exception(
                "Could not re-read %d %s record(s) for column hooks", len(keys), params.model
            )
            return []

    async def _after(
        self,
        params: OperationParams,
        result: Any,
        before: list[Record],
        after: list[Record],
        identity: str | None,
        client: Any,
    ) -> None:
        model, action = params.model, params.action
        jobs = [self.registry.run_after_hooks(model, action, params.args, result, client)]
        if before and after:
            jobs.append(
                self.registry.run_column_hooks(model, before, after, client, identity=identity)
            )

        for outcome in await asyncio.gather(*jobs, return_exceptions=True):
            if isinstance(outcome, Exception):
                logger.error("Hook processing for %s.%s failed", model, action, exc_info=outcome)
