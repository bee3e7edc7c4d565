from .client import FlareClient
from .delegate import ModelDelegate
from .types import (
    ACTIONS,
    READ_ACTIONS,
    UPDATE_ACTIONS,
    WRITE_ACTIONS,
    CallOptions,
    Interceptor,
    Middleware,
    OperationParams,
)

__all__ = [
    "ACTIONS",
    "READ_ACTIONS",
    "UPDATE_ACTIONS",
    "WRITE_ACTIONS",
    "CallOptions",
    "FlareClient",
    "Interceptor",
    "Middleware",
    "ModelDelegate",
    "OperationParams",
]
