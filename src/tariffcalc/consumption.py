"""Metered consumption lookup and coverage tracking."""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Protocol

from .models import ConsumptionRecord

_LOGGER = logging.getLogger(__name__)


class ConsumptionSource(Protocol):
    """Read-only access to stored consumption."""

    async def fetch_consumption(self, start: datetime, end: datetime) -> list[ConsumptionRecord]:
        ...

    async def coverage_bounds(self) -> tuple[datetime, datetime] | None:
        ...


class ConsumptionAggregator:
    """Fetch consumption for a range without filling gaps.

    Missing slots stay missing: totals are the sum of the records that exist.
    The most recently seen coverage bounds are kept on the instance.
    """

    def __init__(self, source: ConsumptionSource):
        self.source = source
        self.min_available: datetime | None = None
        self.max_available: datetime | None = None

    async def consumption_for(self, start: datetime, end: datetime) -> list[ConsumptionRecord]:
        """Records overlapping [start, end), ordered by interval_start."""
        fetched = await self.source.fetch_consumption(start, end)
        records = sorted(
            (r for r in fetched if r.interval_start < end and r.interval_end > start),
            key=lambda r: r.interval_start,
        )
        _LOGGER.debug("Fetched %d consumption records for [%s, %s)", len(records), start, end)
        return records

    async def coverage_bounds(self) -> tuple[datetime, datetime] | None:
        """(earliest interval_start, latest interval_end) of stored data, or None."""
        bounds = await self.source.coverage_bounds()
        if bounds is not None:
            self.min_available, self.max_available = bounds
        return bounds

    async def total_kwh(self, start: datetime, end: datetime) -> float:
        records = await self.consumption_for(start, end)
        return sum(r.consumption_kwh for r in records)

    async def half_hourly(self, start: datetime, end: datetime) -> list[tuple[datetime, float]]:
        """kWh per slot start, summing duplicate readings for the same slot."""
        slots: dict[datetime, float] = defaultdict(float)
        for record in await self.consumption_for(start, end):
            slots[record.interval_start] += record.consumption_kwh
        return sorted(slots.items())
