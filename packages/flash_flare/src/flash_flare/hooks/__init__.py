"""
Lifecycle hooks and column-change hooks.

The module-level functions register on ``default_hook_registry``; every one
returns the callback, or a decorator when the callback is omitted::

    from flash_flare.hooks import after_change, before_create

    @before_create("user")
    def lower_email(args, client):
        args["data"]["email"] = args["data"]["email"].lower()

    @after_change("post", "status")
    async def on_status(old, new, record, client):
        ...
"""

from __future__ import annotations

from typing import Any, Callable

from .equality import values_equal
from .loader import load_callbacks
from .middleware import HookMiddleware, strip_meta_options
from .registry import HookRegistry, call_hook, default_hook_registry
from .types import ColumnHookEntry, HookConfig, HookEntry, HookTiming

Callback = Callable[..., Any]


def before_create(model: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.before_create(model, callback)


def after_create(model: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.after_create(model, callback)


def before_update(model: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.before_update(model, callback)


def after_update(model: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.after_update(model, callback)


def before_delete(model: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.before_delete(model, callback)


def after_delete(model: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.after_delete(model, callback)


def after_upsert(model: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.after_upsert(model, callback)


def after_change(model: str, column: str, callback: Callback | None = None) -> Any:
    return default_hook_registry.after_change(model, column, callback)


def add_hook(model: str, action: str, timing: HookTiming, callback: Callback) -> Callback:
    return default_hook_registry.add_hook(model, action, timing, callback)


def add_column_hook(model: str, column: str, callback: Callback) -> Callback:
    return default_hook_registry.add_column_hook(model, column, callback)


def configure(**changes: Any) -> HookConfig:
    return default_hook_registry.configure(**changes)


def get_config() -> HookConfig:
    return default_hook_registry.get_config()


def clear_all() -> None:
    default_hook_registry.clear_all()


__all__ = [
    "ColumnHookEntry",
    "HookConfig",
    "HookEntry",
    "HookMiddleware",
    "HookRegistry",
    "HookTiming",
    "add_column_hook",
    "add_hook",
    "after_change",
    "after_create",
    "after_delete",
    "after_update",
    "after_upsert",
    "before_create",
    "before_delete",
    "before_update",
    "call_hook",
    "clear_all",
    "configure",
    "default_hook_registry",
    "get_config",
    "load_callbacks",
    "strip_meta_options",
    "values_equal",
]
