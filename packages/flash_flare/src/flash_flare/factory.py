from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncEngine

from flash_core.logging import get_logger

from .client import FlareClient
from .db import create_engine, create_engine_from_settings
from .hooks import HookConfig, HookMiddleware, HookRegistry, default_hook_registry

if TYPE_CHECKING:
    from flash_core import FlashSettings

    from .registry import ModelRegistry

logger = get_logger(__name__)


def with_hooks(
    client: FlareClient,
    hook_registry: HookRegistry | None = None,
    *,
    legacy_middleware: bool = False,
) -> FlareClient:
    """
    Attach hook processing to ``client``.

    By default returns a new client extended with the hook interceptor and
    leaves ``client`` untouched. With ``legacy_middleware=True`` the hooks are
    installed on ``client`` itself as a ``(params, next)`` middleware and the
    same client is returned.
    """
    middleware = HookMiddleware(hook_registry)
    if legacy_middleware:
        client.use(middleware)
        return client
    return client.extend(middleware.as_interceptor())


def create_flare_client(
    bind: AsyncEngine | str | None,
    models: Any,
    *,
    callbacks: bool = True,
    hook_registry: HookRegistry | None = None,
    model_registry: ModelRegistry | None = None,
    legacy_middleware: bool = False,
    settings: FlashSettings | None = None,
) -> FlareClient:
    """
    Build a client and, unless ``callbacks`` is False, wrap it with hooks.

    Args:
        bind: Engine or database URL. ``None`` reads ``DATABASE_URL`` from
            ``settings``.
        models: Declarative base or iterable of mapped classes.
        callbacks: Attach hook processing.
        hook_registry: Hooks to run. Defaults to the process-wide registry.
        model_registry: Builder factories used by ``from_()`` and includes.
        legacy_middleware: Install hooks in place via ``use()`` instead of
            returning an extended client.
        settings: Engine options when ``bind`` is None. Without an explicit
            ``hook_registry`` its ``FLARE_*`` values also reconfigure the
            process-wide ``default_hook_registry``, which every client using
            the default shares. Pass a ``hook_registry`` (for example
            ``HookRegistry.from_settings(settings)``) to keep the change local.

    Example:
        >>> client = create_flare_client("sqlite+aiosqlite:///app.db", Model)
        >>> await client.from_("user").with_id(1).update({"status": "active"})
    """
    if bind is None:
        if settings is None:
            from flash_core import flash_settings as settings
        bind = create_engine_from_settings(settings)
    elif isinstance(bind, str):
        bind = create_engine(bind, echo=settings.DB_ECHO if settings is not None else False)

    base = FlareClient(bind, models, model_registry=model_registry)
    if not callbacks:
        return base

    if hook_registry is None:
        hook_registry = default_hook_registry
        if settings is not None:
            logger.debug("Configuring the shared hook registry from settings")
            hook_registry.configure(**HookConfig.from_settings(settings).model_dump())

    logger.debug("Attaching hooks to %r", base)
    return with_hooks(base, hook_registry, legacy_middleware=legacy_middleware)
