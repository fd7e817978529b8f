"""Calculation cache keyed by (tariff code, interval type, period start, period end).

Closed periods are computed once and then served from the store. A period that is
still accumulating data (its end is after the reference time) is recomputed on every
request and the stored entry is overwritten. Concurrent requests for the same key share
one computation.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Protocol

from .models import CacheKey, CachedCalculationEntry, IntervalType, TariffCalculation

_LOGGER = logging.getLogger(__name__)

ComputeFn = Callable[[], Awaitable[TariffCalculation]]


class CalculationStore(Protocol):
    """Persistent key-value store for calculations."""

    async def get(self, key: CacheKey) -> CachedCalculationEntry | None:
        ...

    async def put(self, entry: CachedCalculationEntry) -> None:
        ...


class MemoryCalculationStore:
    """CalculationStore backed by a dict."""

    def __init__(self):
        self.entries: dict[CacheKey, CachedCalculationEntry] = {}

    async def get(self, key: CacheKey) -> CachedCalculationEntry | None:
        return self.entries.get(key)

    async def put(self, entry: CachedCalculationEntry) -> None:
        self.entries[entry.key] = entry


def is_closed(period_end: datetime, reference: datetime) -> bool:
    """A period is closed once its end is not after the reference (data coverage max)."""
    return period_end <= reference


class CalculationCache:
    """Get-or-compute over a CalculationStore with one computation in flight per key."""

    def __init__(self, store: CalculationStore):
        self.store = store
        self._in_flight: dict[CacheKey, tuple[asyncio.Task, bool]] = {}

    async def get(
        self,
        tariff_code: str,
        interval_type: IntervalType,
        period_start: datetime,
        period_end: datetime,
    ) -> CachedCalculationEntry | None:
        """Exact-match lookup."""
        return await self.store.get(CacheKey(tariff_code, interval_type, period_start, period_end))

    async def get_or_compute(
        self,
        tariff_code: str,
        interval_type: IntervalType,
        period_start: datetime,
        period_end: datetime,
        compute: ComputeFn,
        now: datetime,
        force: bool = False,
    ) -> TariffCalculation:
        """Return the cached calculation for a closed period, computing it otherwise.

        now is the reference used to decide whether the period is closed. force skips
        the stored entry. A caller that is cancelled does not cancel the shared
        computation, which still stores its result.
        """
        key = CacheKey(tariff_code, interval_type, period_start, period_end)

        while True:
            in_flight = self._in_flight.get(key)
            if in_flight is None or in_flight[0].done():
                break
            task, forced = in_flight
            if forced or not force:
                _LOGGER.debug("Joining in-flight calculation for %s", _describe(key))
                return await asyncio.shield(task)
            # A forced refresh must not be served by a lookup that may hit the store.
            await asyncio.wait([task])

        task = asyncio.create_task(self._resolve(key, compute, now, force))
        self._in_flight[key] = (task, force)
        task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: CacheKey, task: asyncio.Task) -> None:
        in_flight = self._in_flight.get(key)
        if in_flight is not None and in_flight[0] is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            _LOGGER.debug("Calculation for %s failed: %s", _describe(key), task.exception())

    async def _resolve(
        self, key: CacheKey, compute: ComputeFn, now: datetime, force: bool
    ) -> TariffCalculation:
        if not force:
            entry = await self.store.get(key)
            if entry is not None and is_closed(key.period_end, now):
                _LOGGER.debug("Cache hit for %s", _describe(key))
                return entry.calculation
            if entry is not None:
                _LOGGER.debug("Recomputing open period %s", _describe(key))

        _LOGGER.debug("Computing %s", _describe(key))
        calculation = await compute()
        await self.store.put(
            CachedCalculationEntry(
                tariff_code=key.tariff_code,
                interval_type=key.interval_type,
                period_start=key.period_start,
                period_end=key.period_end,
                calculation=calculation,
                updated_at=datetime.now(timezone.utc),
            )
        )
        return calculation


def _describe(key: CacheKey) -> str:
    return f"[{key.tariff_code}][{key.interval_type.value}] {key.period_start} - {key.period_end}"
