from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from .exceptions import InvalidArgumentError

Condition = dict[str, Any]
IncludeValue = Union[Literal[True], "QueryState"]

COMBINATORS = ("AND", "OR")


def is_empty_condition(node: Condition | None) -> bool:
    return not node


def combine(existing: Condition | None, predicate: Condition | None, mode: str = "AND") -> Condition | None:
    """
    Fold ``predicate`` into ``existing`` under ``mode``.

    The newest predicate wraps the whole accumulated tree, so repeated calls
    build a left-leaning tree::

        combine(combine(A, B), C, "OR") == {"OR": [{"AND": [A, B]}, C]}

    An empty side is dropped instead of producing a one-element combinator.
    """
    if mode not in COMBINATORS:
        msg = f"Unsupported condition mode '{mode}'. Expected one of: {', '.join(COMBINATORS)}"
        raise InvalidArgumentError(msg)
    if is_empty_condition(predicate):
        return existing
    if is_empty_condition(existing):
        return predicate
    return {mode: [existing, predicate]}


@dataclass
class QueryState:
    """
    Mutable descriptor accumulated by a builder.

    ``to_args()`` renders it into the options dict a model delegate accepts;
    ``group_by`` is sent under the ``by`` key and nested include states are
    rendered recursively.
    """

    where: Condition | None = None
    order_by: Any = None
    select: dict[str, Any] | None = None
    include: dict[str, IncludeValue] = field(default_factory=dict)
    skip: int | None = None
    take: int | None = None
    distinct: list[str] | None = None
    group_by: list[str] | None = None
    having: Condition | None = None

    def is_empty(self) -> bool:
        return not self.to_args()

    def copy(self) -> QueryState:
        """Deep copy: nested conditions and include states are not shared."""
        return copy.deepcopy(self)

    def to_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {}
        if self.where:
            args["where"] = self.where
        if self.order_by:
            args["order_by"] = self.order_by
        if self.select:
            args["select"] = self.select
        if self.include:
            args["include"] = {
                relation: value if value is True else value.to_args()
                for relation, value in self.include.items()
            }
        if self.skip is not None:
            args["skip"] = self.skip
        if self.take is not None:
            args["take"] = self.take
        if self.distinct:
            args["distinct"] = self.distinct
        if self.group_by:
            args["by"] = self.group_by
        if self.having:
            args["having"] = self.having
        return args
