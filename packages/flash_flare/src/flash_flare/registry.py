from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Mapping

from flash_core.logging import get_logger

if TYPE_CHECKING:
    from .builder import QueryBuilder

logger = get_logger(__name__)

# Called as factory(delegate, registry)
BuilderFactory = Callable[[Any, "ModelRegistry"], "QueryBuilder"]


class ModelRegistry:
    """
    Table of model or relation name to builder factory.

    Lets ``include(relation, callback)`` and ``client.from_(name)`` hand out the
    caller's own builder subclass, so its custom query methods stay available
    inside nested includes. Names are matched case-insensitively.

    Example:
        >>> class PostQuery(QueryBuilder):
        ...     def published(self):
        ...         return self.where({"published": True})
        >>> registry = ModelRegistry()
        >>> registry.register("post", PostQuery)
        >>> registry.register("posts", PostQuery)
    """

    def __init__(self) -> None:
        self._factories: dict[str, BuilderFactory] = {}

    def __repr__(self) -> str:
        return f"<ModelRegistry {sorted(self._factories)}>"

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def register(self, name: str, factory: BuilderFactory) -> BuilderFactory:
        """Register ``factory`` under ``name``. A later registration wins."""
        key = name.lower()
        if key in self._factories:
            logger.debug("Replacing builder factory for '%s'", key)
        self._factories[key] = factory
        return factory

    def register_many(self, factories: Mapping[str, BuilderFactory]) -> None:
        for name, factory in factories.items():
            self.register(name, factory)

    def get(self, name: str) -> BuilderFactory | None:
        return self._factories.get(name.lower())

    def has(self, name: str) -> bool:
        return name.lower() in self._factories

    def create(self, name: str, delegate: Any = None) -> QueryBuilder | None:
        """
        Build the registered builder for ``name`` bound to ``delegate``.

        Returns:
            The builder, or None when nothing is registered under ``name``.
        """
        factory = self.get(name)
        if factory is None:
            return None
        return factory(delegate, self)

    def registered_models(self) -> list[str]:
        return list(self._factories)

    def clear(self) -> None:
        self._factories.clear()


# Shared by every import of this module; pass an explicit ModelRegistry to
# clients and builders to keep registrations isolated.
default_model_registry = ModelRegistry()
