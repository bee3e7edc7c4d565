from .builder import QueryBuilder
from .client import CallOptions, FlareClient, ModelDelegate, OperationParams
from .exceptions import (
    FlareError,
    InvalidArgumentError,
    ModelNotFoundError,
    RecordNotFoundError,
)
from .expressions import F
from .factory import create_flare_client, with_hooks
from .hooks import (
    HookConfig,
    HookMiddleware,
    HookRegistry,
    after_change,
    after_create,
    after_delete,
    after_update,
    after_upsert,
    before_create,
    before_delete,
    before_update,
    clear_all,
    configure,
    default_hook_registry,
    get_config,
    load_callbacks,
)
from .models import Model, TimestampMixin
from .registry import ModelRegistry, default_model_registry
from .state import QueryState

__all__ = [
    "CallOptions",
    "F",
    "FlareClient",
    "FlareError",
    "HookConfig",
    "HookMiddleware",
    "HookRegistry",
    "InvalidArgumentError",
    "Model",
    "ModelDelegate",
    "ModelNotFoundError",
    "ModelRegistry",
    "OperationParams",
    "QueryBuilder",
    "QueryState",
    "RecordNotFoundError",
    "TimestampMixin",
    "after_change",
    "after_create",
    "after_delete",
    "after_update",
    "after_upsert",
    "before_create",
    "before_delete",
    "before_update",
    "clear_all",
    "configure",
    "create_flare_client",
    "default_hook_registry",
    "default_model_registry",
    "get_config",
    "load_callbacks",
    "with_hooks",
]
