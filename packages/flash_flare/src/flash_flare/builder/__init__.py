from __future__ import annotations

from .write import BuilderWrite


class QueryBuilder(BuilderWrite):
    """
    Fluent, mutable query builder for one model delegate.

    Chainable methods (``where``, ``or_where``, ``where_group``, ``include``,
    ``order``, ``limit``, ...) mutate the builder and return it. Terminal
    methods (``find_many``, ``count``, ``update``, ``paginate``, ...) forward the
    accumulated query to the model delegate.

    Subclass it to add model-specific query methods and register the subclass
    in a ``ModelRegistry`` so ``client.from_()`` and nested includes hand it
    out:

    Example:
        >>> class PostQuery(QueryBuilder):
        ...     def published(self):
        ...         return self.where({"published": True})
        >>> registry.register("post", PostQuery)
        >>> await client.from_("post").published().order({"id": "desc"}).find_many()

    Notes:
        - Builders are not immutable; use ``clone()`` to branch a query.
        - A builder without a delegate can still compose queries (for example
          inside ``where_group``) but raises FlareError on terminal calls.
    """


__all__ = ["QueryBuilder"]
