"""ent listing sort strategies.

A strategy is a closed tagged variant: no-op, by key, or by modification
time, each ascending or descending. It round-trips through the listing
sort token ``<+|-><key|lastModified>``.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol, TypeVar

from ent.storage.errors import InvalidParamError

ORDER_ASCENDING = "+"
ORDER_DESCENDING = "-"
ORDER_KEY = "key"
ORDER_LAST_MODIFIED = "lastModified"


class Sortable(Protocol):
    """Anything carrying the attributes a strategy compares."""

    @property
    def key(self) -> str: ...

    @property
    def last_modified(self) -> datetime: ...


T = TypeVar("T", bound=Sortable)


class SortCriterion(str, Enum):
    """Attribute a listing is ordered by."""

    NO_OP = ""
    KEY = ORDER_KEY
    LAST_MODIFIED = ORDER_LAST_MODIFIED


@dataclass(frozen=True)
class SortStrategy:
    """Ordering rule applied to listing results.

    Attributes:
        criterion: Attribute to order by.
        ascending: Direction; ignored for NO_OP.
    """

    criterion: SortCriterion = SortCriterion.NO_OP
    ascending: bool = True

    @classmethod
    def no_op(cls) -> SortStrategy:
        """Strategy that keeps the order the source produced."""
        return cls(SortCriterion.NO_OP)

    @classmethod
    def by_key(cls, ascending: bool = True) -> SortStrategy:
        """Strategy ordering by key, compared as UTF-8 bytes."""
        return cls(SortCriterion.KEY, ascending)

    @classmethod
    def by_last_modified(cls, ascending: bool = True) -> SortStrategy:
        """Strategy ordering chronologically by modification time."""
        return cls(SortCriterion.LAST_MODIFIED, ascending)

    @classmethod
    def decode(cls, token: str | None) -> SortStrategy:
        """Parse a sort token.

        Args:
            token: ``"+key"``, ``"-lastModified"`` etc. Empty or None means no-op.

        Returns:
            The decoded strategy.

        Raises:
            InvalidParamError: If the order marker or criterion is unknown.
        """
        if not token:
            return cls.no_op()
        if len(token) == 1:
            raise InvalidParamError(f"sort param {token!r} has no criterion", operation="sort")

        order, criterion = token[:1], token[1:]
        if order == ORDER_ASCENDING:
            ascending = True
        elif order == ORDER_DESCENDING:
            ascending = False
        else:
            raise InvalidParamError(
                f"sort param {token!r} must start with '+' or '-'", operation="sort"
            )

        if criterion == ORDER_KEY:
            return cls.by_key(ascending)
        if criterion == ORDER_LAST_MODIFIED:
            return cls.by_last_modified(ascending)
        raise InvalidParamError(
            f"sort param {token!r} has unknown criterion {criterion!r}", operation="sort"
        )

    def encode_param(self) -> str:
        """Return the canonical token, empty for no-op."""
        if self.criterion is SortCriterion.NO_OP:
            return ""
        order = ORDER_ASCENDING if self.ascending else ORDER_DESCENDING
        return f"{order}{self.criterion.value}"

    def less(self, a: Sortable, b: Sortable) -> bool:
        """Report whether a sorts before b.

        Descending by key treats equal keys as "less", which keeps listings
        that were produced with that rule reproducible.
        """
        if self.criterion is SortCriterion.KEY:
            a_key = a.key.encode("utf-8")
            b_key = b.key.encode("utf-8")
            if self.ascending:
                return a_key < b_key
            return a_key >= b_key
        if self.criterion is SortCriterion.LAST_MODIFIED:
            if self.ascending:
                return a.last_modified < b.last_modified
            return a.last_modified > b.last_modified
        return False

    def sort(self, items: Iterable[T]) -> list[T]:
        """Return items in strategy order as a new list."""
        ordered = list(items)
        if self.criterion is SortCriterion.NO_OP:
            return ordered
        return sorted(ordered, key=functools.cmp_to_key(self._compare))

    def _compare(self, a: Sortable, b: Sortable) -> int:
        if self.less(a, b):
            return -1
        if self.less(b, a):
            return 1
        return 0

    def __str__(self) -> str:
        return self.encode_param() or "none"


NO_OP = SortStrategy.no_op()
