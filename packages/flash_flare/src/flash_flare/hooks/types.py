from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from flash_core import FlashSettings

HookTiming = Literal["before", "after"]
TIMINGS: tuple[HookTiming, ...] = ("before", "after")

# Hooks may be plain functions or coroutine functions
BeforeHook = Callable[..., Union[Awaitable[None], None]]  # (args, client)
AfterHook = Callable[..., Union[Awaitable[None], None]]  # (args, result, client)
ColumnHook = Callable[..., Union[Awaitable[None], None]]  # (old, new, record, client)


@dataclass(frozen=True)
class HookEntry:
    model: str
    action: str
    timing: HookTiming
    callback: Callable[..., Any]


@dataclass(frozen=True)
class ColumnHookEntry:
    model: str
    column: str
    callback: ColumnHook


class HookConfig(BaseModel):
    """
    Runtime switches of the column-change protocol.

    Attributes:
        enable_column_hooks: Master switch for ``after_change`` hooks.
        max_refetch: Largest number of records an update may touch before
            column-change detection is skipped for that call. 0 disables the
            ceiling.
        warn_on_skip: Log a warning when ``max_refetch`` causes a skip.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    enable_column_hooks: bool = True
    max_refetch: int = Field(default=1000, ge=0)
    warn_on_skip: bool = True

    @classmethod
    def from_settings(cls, settings: FlashSettings) -> HookConfig:
        return cls(
            enable_column_hooks=settings.FLARE_ENABLE_COLUMN_HOOKS,
            max_refetch=settings.FLARE_MAX_REFETCH,
            warn_on_skip=settings.FLARE_WARN_ON_SKIP,
        )
