"""
Type-aware comparison of column values for change detection.
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def _epoch_ms(value: datetime.datetime | datetime.date) -> int:
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return (value - _EPOCH) // datetime.timedelta(milliseconds=1)


def _mappings_equal(a: dict[Any, Any], b: dict[Any, Any]) -> bool:
    if a.keys() != b.keys():
        return False
    return all(values_equal(a[key], b[key]) for key in a)


def _sequences_equal(a: list[Any] | tuple[Any, ...], b: list[Any] | tuple[Any, ...]) -> bool:
    return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))


def values_equal(a: Any, b: Any) -> bool:
    """
    Return True if two column values should be treated as unchanged.

    - ``None`` only equals ``None``.
    - Dates and datetimes compare by epoch milliseconds (naive values are
      taken as UTC).
    - Decimals compare by their canonical string form, so ``Decimal("1.0")``
      equals ``Decimal("1.00")``.
    - Dicts and lists (JSON columns) compare structurally: same keys or
      length, with every nested value compared by these same rules.
    - Booleans never equal non-boolean numbers (``True != 1``).
    - Anything else compares with ``==``.

    >>> values_equal(Decimal("10.5"), Decimal("10.5"))
    True
    >>> values_equal({"a": [1, 2]}, {"a": [1, 2]})
    True
    >>> values_equal(True, 1)
    False
    """
    if a is None or b is None:
        return a is None and b is None
    if a is b:
        return True

    if isinstance(a, (datetime.date, datetime.datetime)) and isinstance(
        b, (datetime.date, datetime.datetime)
    ):
        return _epoch_ms(a) == _epoch_ms(b)

    if isinstance(a, Decimal) and isinstance(b, Decimal):
        return str(a.normalize()) == str(b.normalize())

    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b

    if isinstance(a, dict) or isinstance(b, dict):
        return isinstance(a, dict) and isinstance(b, dict) and _mappings_equal(a, b)

    if isinstance(a, (list, tuple)) or isinstance(b, (list, tuple)):
        return (
            isinstance(a, (list, tuple))
            and isinstance(b, (list, tuple))
            and _sequences_equal(a, b)
        )

    return a == b
