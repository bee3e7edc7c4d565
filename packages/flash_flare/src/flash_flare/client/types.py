"""Shared types of the client interception layer."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Mapping

# Every operation a model delegate exposes
READ_ACTIONS = (
    "find_many",
    "find_first",
    "find_unique",
    "find_first_or_throw",
    "find_unique_or_throw",
    "count",
    "aggregate",
    "group_by",
)
WRITE_ACTIONS = (
    "create",
    "create_many",
    "update",
    "update_many",
    "delete",
    "delete_many",
    "upsert",
)
ACTIONS = READ_ACTIONS + WRITE_ACTIONS

# Operations whose effect the column-change protocol observes
UPDATE_ACTIONS = frozenset({"update", "update_many"})

# Legacy key carrying call options inside the args or their data payload
META_OPTIONS_KEY = "__flare"


@dataclass(frozen=True)
class CallOptions:
    """
    Out-of-band options for a single delegate call.

    Attributes:
        skip_column_hooks: Bypass column-change detection for this call only;
            before/after hooks still run.
    """

    skip_column_hooks: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CallOptions":
        """Build options from a ``{"skip_column_hooks": True}`` style bag."""
        skip = data.get("skip_column_hooks", False)
        return cls(skip_column_hooks=skip is True)

    def merge(self, other: "CallOptions | None") -> "CallOptions":
        if other is None:
            return self
        return CallOptions(
            skip_column_hooks=self.skip_column_hooks or other.skip_column_hooks
        )


@dataclass
class OperationParams:
    """
    One intercepted delegate call, as seen by ``(params, next)`` middlewares.

    ``model`` is None for calls without a model context (raw SQL). ``client``
    is the client the call was issued on, bound to its transaction if any.
    """

    model: str | None
    action: str
    args: dict[str, Any] = field(default_factory=dict)
    options: CallOptions = field(default_factory=CallOptions)
    client: Any = None

    def with_args(self, args: dict[str, Any]) -> "OperationParams":
        return replace(self, args=args)


NextFn = Callable[[OperationParams], Awaitable[Any]]
QueryFn = Callable[[dict[str, Any]], Awaitable[Any]]

# (params, next) -> result
Middleware = Callable[[OperationParams, NextFn], Awaitable[Any]]

# (model, operation, args, query, *, options, client) -> result
Interceptor = Callable[..., Awaitable[Any]]
