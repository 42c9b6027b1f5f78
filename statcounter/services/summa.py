from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Dict, Iterator, Mapping, Tuple

from ..models.stat_daily import FLOAT_FIELDS, INT_FIELDS

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def round2(value: float) -> float:
    """
    Round to 2 decimals, half away from zero, on the shortest decimal text of
    the float. Keeps repeated +/- from accumulating binary drift:
    0.1 + 0.2 -> 0.3, not 0.30000000000000004.

    Non-finite values pass through unchanged; the payload schema keeps them
    out of the store.
    """
    value = float(value)
    if not math.isfinite(value):
        return value
    exact = Decimal(repr(value))
    with localcontext() as ctx:
        # Enough digits for the integer part plus the two kept decimals.
        ctx.prec = max(28, exact.adjusted() + 4)
        return float(exact.quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class RegionAggregate:
    """
    Running elementwise sum of every report in one region.

    Instances are immutable, so handing one out is already a value copy.
    """

    seed_plan: float = 0.0
    seed_fact: float = 0.0
    seed_dif: float = 0.0
    pumpkin_plan: float = 0.0
    pumpkin_fact: float = 0.0
    pumpkin_dif: float = 0.0
    peanut_plan: float = 0.0
    peanut_fact: float = 0.0
    peanut_dif: float = 0.0

    akb1: int = 0
    akb2: int = 0
    newtt: int = 0
    mix: int = 0
    npone: int = 0
    set_shelving: int = 0
    dmp: int = 0
    top_five: int = 0
    news: int = 0

    @classmethod
    def zero(cls) -> "RegionAggregate":
        return cls()

    @classmethod
    def from_values(cls, source: Any) -> "RegionAggregate":
        """
        Build from a StatDaily row, a pydantic payload or a plain mapping.
        Missing fields count as zero.
        """
        if isinstance(source, RegionAggregate):
            return source

        def _get(name: str) -> Any:
            if isinstance(source, Mapping):
                return source.get(name)
            return getattr(source, name, None)

        values: Dict[str, Any] = {}
        for name in FLOAT_FIELDS:
            values[name] = float(_get(name) or 0.0)
        for name in INT_FIELDS:
            values[name] = int(_get(name) or 0)
        return cls(**values)

    def plus(self, other: "RegionAggregate") -> "RegionAggregate":
        return self._combine(other, 1)

    def minus(self, other: "RegionAggregate") -> "RegionAggregate":
        return self._combine(other, -1)

    def _combine(self, other: "RegionAggregate", sign: int) -> "RegionAggregate":
        changes: Dict[str, Any] = {}
        for name in FLOAT_FIELDS:
            changes[name] = round2(getattr(self, name) + sign * getattr(other, name))
        for name in INT_FIELDS:
            # No clamp: a mismatched correction may legitimately drive this negative.
            changes[name] = getattr(self, name) + sign * getattr(other, name)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ReadWriteLock:
    """
    Many concurrent readers or one writer. Waiting writers block new readers
    so a steady stream of GETs cannot starve submissions.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class AggregateStore:
    """
    In-memory per-region running totals ("summa").

    A lossy convenience cache: the reports table is the source of truth and
    the retention job wipes this store on every purge. Every public method
    takes the lock exactly once and never does I/O while holding it.

    Drift: update() trusts the caller's old values. Passing values that were
    never added desynchronizes the aggregate silently until the next reset.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._stats: Dict[int, RegionAggregate] = {}
        self._counts: Dict[int, int] = {}

    def _current(self, region_id: int) -> RegionAggregate:
        # Missing region reads as the zero aggregate.
        return self._stats.get(region_id, RegionAggregate.zero())

    # -------------------------
    # Mutations
    # -------------------------

    def add(self, region_id: int, report: Any) -> None:
        delta = RegionAggregate.from_values(report)
        with self._lock.write():
            self._stats[region_id] = self._current(region_id).plus(delta)
            self._counts[region_id] = self._counts.get(region_id, 0) + 1
        logger.debug("summa add region=%s delta=%s", region_id, delta)

    def update(self, region_id: int, old_report: Any, new_report: Any) -> None:
        old = RegionAggregate.from_values(old_report)
        new = RegionAggregate.from_values(new_report)
        with self._lock.write():
            self._stats[region_id] = self._current(region_id).minus(old).plus(new)
        logger.debug("summa update region=%s old=%s new=%s", region_id, old, new)

    def clear_region(self, region_id: int) -> None:
        with self._lock.write():
            self._stats.pop(region_id, None)
            self._counts.pop(region_id, None)

    def clear_all(self) -> None:
        with self._lock.write():
            self._stats = {}
            self._counts = {}
        logger.debug("summa cleared")

    # -------------------------
    # Reads (snapshots only)
    # -------------------------

    def get_for_region(self, region_id: int) -> Tuple[RegionAggregate, int]:
        with self._lock.read():
            return self._current(region_id), self._counts.get(region_id, 0)

    def get_all(self) -> Dict[int, RegionAggregate]:
        with self._lock.read():
            return dict(self._stats)

    def get_all_counts(self) -> Dict[int, int]:
        with self._lock.read():
            return dict(self._counts)

    def get_total(self) -> Tuple[RegionAggregate, int]:
        """Grand total across all regions and the total report count."""
        with self._lock.read():
            stats = list(self._stats.values())
            count = sum(self._counts.values())
        total = RegionAggregate.zero()
        for stat in stats:
            total = total.plus(stat)
        return total, count
