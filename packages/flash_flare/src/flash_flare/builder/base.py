from __future__ import annotations

from typing import Any, TypeVar

from flash_flare.exceptions import FlareError
from flash_flare.registry import ModelRegistry, default_model_registry
from flash_flare.state import QueryState

B = TypeVar("B", bound="BuilderBase")


class BuilderBase:
    """
    Fundamental state and identity of a builder.

    Holds the model delegate terminal methods forward to, the model registry
    used to resolve relation builders, and the QueryState being accumulated.
    """

    def __init__(
        self,
        delegate: Any = None,
        registry: ModelRegistry | None = None,
        *,
        state: QueryState | None = None,
    ):
        self.delegate = delegate
        self.registry: ModelRegistry = (
            registry if registry is not None else default_model_registry
        )
        self._state = state if state is not None else QueryState()

    def __repr__(self) -> str:
        model = getattr(self.delegate, "name", None)
        return f"<{type(self).__name__} model={model!r} query={self._state.to_args()!r}>"

    def _new(self: B, delegate: Any = None) -> B:
        """A fresh builder of the same class sharing the registry."""
        return type(self)(delegate, self.registry)

    def clone(self: B) -> B:
        """
        Return an independent copy of this builder.

        The copy targets the same delegate and registry; its QueryState is a deep
        copy, so changing either builder never affects the other.

        Example:
            >>> base = client.from_("post").where({"published": True})
            >>> recent = base.clone().order({"created_at": "desc"}).limit(5)
        """
        clone = self._new(self.delegate)
        clone._state = self._state.copy()
        return clone

    def get_query(self) -> QueryState:
        return self._state

    def _require_delegate(self) -> Any:
        if self.delegate is None:
            msg = f"{type(self).__name__} is not bound to a model delegate"
            raise FlareError(msg)
        return self.delegate
