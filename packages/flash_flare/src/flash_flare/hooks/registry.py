from __future__ import annotations

import asyncio
import inspect
from functools import partial
from typing import TYPE_CHECKING, Any, Callable

from flash_core.logging import get_logger
from flash_flare.client.types import ACTIONS, CallOptions
from flash_flare.exceptions import InvalidArgumentError

from .equality import values_equal
from .types import TIMINGS, ColumnHookEntry, HookConfig, HookEntry, HookTiming

if TYPE_CHECKING:
    from flash_core import FlashSettings

logger = get_logger(__name__)

DEFAULT_IDENTITY_FIELD = "id"


async def call_hook(callback: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async hook and return its result."""
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result


class HookRegistry:
    """
    Storage of lifecycle hooks and column-change hooks, plus their config.

    Hooks are keyed by lower-cased model name. Every registration method
    returns the callback, or a decorator when the callback is omitted:

    Example:
        >>> hooks = HookRegistry()
        >>> @hooks.before_create("user")
        ... async def normalize_email(args, client):
        ...     args["data"]["email"] = args["data"]["email"].lower()
        >>> hooks.after_change("post", "status", notify_status_change)
    """

    def __init__(self, config: HookConfig | None = None):
        self._defaults = config.model_copy() if config is not None else HookConfig()
        self._config = self._defaults.model_copy()
        self._hooks: dict[tuple[str, str, HookTiming], list[HookEntry]] = {}
        self._column_hooks: dict[tuple[str, str], list[ColumnHookEntry]] = {}
        self._field_cache: dict[str, list[str]] = {}

    @classmethod
    def from_settings(cls, settings: FlashSettings) -> HookRegistry:
        return cls(HookConfig.from_settings(settings))

    def __repr__(self) -> str:
        return (
            f"<HookRegistry hooks={sum(map(len, self._hooks.values()))} "
            f"column_hooks={sum(map(len, self._column_hooks.values()))}>"
        )

    # --- Configuration ---

    def configure(self, **changes: Any) -> HookConfig:
        """
        Update the configuration.

        Example:
            >>> hooks.configure(max_refetch=5000, warn_on_skip=False)

        Raises:
            pydantic.ValidationError: On unknown keys or invalid values.
        """
        self._config = HookConfig.model_validate({**self._config.model_dump(), **changes})
        return self._config

    def get_config(self) -> HookConfig:
        return self._config.model_copy()

    def reset_config(self) -> None:
        self._config = self._defaults.model_copy()

    # --- Registration ---

    def add_hook(self, model: str, action: str, timing: HookTiming, callback: Callable[..., Any]) -> Callable[..., Any]:
        if timing not in TIMINGS:
            msg = f"Unsupported hook timing '{timing}'. Expected 'before' or 'after'"
            raise InvalidArgumentError(msg)
        if action not in ACTIONS:
            msg = f"Unsupported hook action '{action}'"
            raise InvalidArgumentError(msg)

        entry = HookEntry(model=model.lower(), action=action, timing=timing, callback=callback)
        self._hooks.setdefault((entry.model, action, timing), []).append(entry)
        return callback

    def add_column_hook(self, model: str, column: str, callback: Callable[..., Any]) -> Callable[..., Any]:
        entry = ColumnHookEntry(model=model.lower(), column=column, callback=callback)
        self._column_hooks.setdefault((entry.model, column), []).append(entry)
        self._field_cache.pop(entry.model, None)
        return callback

    def _register(self, model: str, action: str, timing: HookTiming, callback: Callable[..., Any] | None) -> Any:
        if callback is None:
            return partial(self.add_hook, model, action, timing)
        return self.add_hook(model, action, timing, callback)

    def before_create(self, model: str, callback: Callable[..., Any] | None = None) -> Any:
        return self._register(model, "create", "before", callback)

    def after_create(self, model: str, callback: Callable[..., Any] | None = None) -> Any:
        return self._register(model, "create", "after", callback)

    def before_update(self, model: str, callback: Callable[..., Any] | None = None) -> Any:
        return self._register(model, "update", "before", callback)

    def after_update(self, model: str, callback: Callable[..., Any] | None = None) -> Any:
        return self._register(model, "update", "after", callback)

    def before_delete(self, model: str, callback: Callable[..., Any] | None = None) -> Any:
        return self._register(model, "delete", "before", callback)

    def after_delete(self, model: str, callback: Callable[..., Any] | None = None) -> Any:
        return self._register(model, "delete", "after", callback)

    def after_upsert(self, model: str, callback: Callable[..., Any] | None = None) -> Any:
        return self._register(model, "upsert", "after", callback)

    def after_change(self, model: str, column: str, callback: Callable[..., Any] | None = None) -> Any:
        """
        Register a hook fired as ``callback(old, new, record, client)`` when
        an update changes ``column``.
        """
        if callback is None:
            return partial(self.add_column_hook, model, column)
        return self.add_column_hook(model, column, callback)

    # --- Lookup ---

    def get_hooks(self, model: str, action: str, timing: HookTiming) -> list[HookEntry]:
        return list(self._hooks.get((model.lower(), action, timing), ()))

    def get_column_hooks(self, model: str, column: str) -> list[ColumnHookEntry]:
        return list(self._column_hooks.get((model.lower(), column), ()))

    def has_column_hooks(self, model: str) -> bool:
        model = model.lower()
        return any(key[0] == model for key in self._column_hooks)

    def relevant_fields(self, model: str, identity: str = DEFAULT_IDENTITY_FIELD) -> list[str]:
        """Watched columns of ``model`` (cached) followed by its ``identity`` field."""
        model = model.lower()
        watched = self._field_cache.get(model)
        if watched is None:
            watched = list(dict.fromkeys(column for m, column in self._column_hooks if m == model))
            self._field_cache[model] = watched
        return list(dict.fromkeys([*watched, identity]))

    def should_run_column_hooks(
        self, model: str, record_count: int, options: CallOptions | None = None
    ) -> bool:
        """
        Decide whether the column-change protocol runs for one call.

        Skips are not errors. Exceeding ``max_refetch`` logs a warning when
        ``warn_on_skip`` is set.
        """
        if options is not None and options.skip_column_hooks:
            return False
        if not self._config.enable_column_hooks:
            return False
        if not self.has_column_hooks(model):
            return False

        limit = self._config.max_refetch
        if limit > 0 and record_count > limit:
            if self._config.warn_on_skip:
                logger.warning(
                    "Skipping column hooks for %s: %d records exceeds max_refetch of %d. "
                    "Raise it with configure(max_refetch=...)",
                    model,
                    record_count,
                    limit,
                )
            return False
        return True

    # --- Execution ---

    async def run_before_hooks(self, model: str, action: str, args: dict[str, Any], client: Any) -> None:
        """Run before hooks one at a time; the first exception propagates."""
        for entry in self.get_hooks(model, action, "before"):
            await call_hook(entry.callback, args, client)

    async def run_after_hooks(
        self, model: str, action: str, args: dict[str, Any], result: Any, client: Any
    ) -> None:
        hooks = self.get_hooks(model, action, "after")
        if not hooks:
            return
        outcomes = await asyncio.gather(
            *(call_hook(entry.callback, args, result, client) for entry in hooks),
            return_exceptions=True,
        )
        for entry, outcome in zip(hooks, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "After-%s hook %r for %s failed",
                    action,
                    entry.callback,
                    model,
                    exc_info=outcome,
                )

    async def run_column_hooks(
        self,
        model: str,
        before: list[dict[str, Any]],
        after: list[dict[str, Any]],
        client: Any,
        *,
        identity: str = DEFAULT_IDENTITY_FIELD,
    ) -> int:
        """
        Compare snapshots matched by the ``identity`` field (the model's primary
        key) and fire hooks for changed columns.

        Returns:
            The number of hook invocations.
        """
        fields = self.relevant_fields(model, identity)
        after_by_id = {record.get(identity): record for record in after}

        calls: list[tuple[ColumnHookEntry, Any, Any, dict[str, Any]]] = []
        for old_record in before:
            new_record = after_by_id.get(old_record.get(identity))
            if new_record is None:
                continue
            for column in fields:
                hooks = self.get_column_hooks(model, column)
                if not hooks:
                    continue
                old, new = old_record.get(column), new_record.get(column)
                if values_equal(old, new):
                    continue
                calls.extend((entry, old, new, new_record) for entry in hooks)

        outcomes = await asyncio.gather(
            *(call_hook(entry.callback, old, new, record, client) for entry, old, new, record in calls),
            return_exceptions=True,
        )
        for (entry, *_), outcome in zip(calls, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "Column hook %r for %s.%s failed",
                    entry.callback,
                    model,
                    entry.column,
                    exc_info=outcome,
                )
        return len(calls)

    def clear_all(self) -> None:
        """Drop every hook and restore the default configuration."""
        self._hooks.clear()
        self._column_hooks.clear()
        self._field_cache.clear()
        self.reset_config()


default_hook_registry = HookRegistry()
