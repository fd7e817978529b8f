"""Tariff cost calculation over a period.

Consumption is priced slot by slot against the unit rates whose validity overlaps the
slot. A slot that spans a rate change (or a sub-range boundary) is split in proportion
to the overlap duration. Standing charges are added once per calendar day touched by
the range, using the charge applicable as of that day. Accounts with several
agreements are split at agreement boundaries and each sub-range is priced with its own
tariff.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import NamedTuple

from .consumption import ConsumptionAggregator
from .errors import NoConsumptionData, NoRatesFound, RateResolutionFailed
from .models import (
    Account,
    AccountAgreement,
    ConsumptionRecord,
    IntervalType,
    RateInterval,
    TariffCalculation,
)
from .periods import start_of_day
from .rates import RateResolver

_LOGGER = logging.getLogger(__name__)

# kWh left unpriced below this are rounding noise
UNPRICED_TOLERANCE_KWH = 1e-9

Target = str | Account | Sequence[AccountAgreement]


class SubRange(NamedTuple):
    """A slice of the requested period priced with a single tariff."""

    start: datetime
    end: datetime
    tariff_code: str


def _overlap_seconds(
    start: datetime, end: datetime, other_start: datetime, other_end: datetime | None
) -> float:
    latest_start = max(start, other_start)
    earliest_end = end if other_end is None else min(end, other_end)
    return max(0.0, (earliest_end - latest_start).total_seconds())


def split_by_agreements(
    start: datetime, end: datetime, agreements: Sequence[AccountAgreement]
) -> list[SubRange]:
    """Clip each agreement to [start, end), ordered by valid_from.

    Agreements that do not overlap the range are dropped; parts of the range that no
    agreement covers produce no sub-range.
    """
    ordered = sorted(agreements, key=lambda a: (a.valid_from is not None, a.valid_from or start))
    sub_ranges = []
    for agreement in ordered:
        sub_start = max(start, agreement.valid_from) if agreement.valid_from else start
        sub_end = min(end, agreement.valid_to) if agreement.valid_to else end
        if sub_end <= sub_start:
            continue
        sub_ranges.append(SubRange(sub_start, sub_end, agreement.tariff_code))
    return sub_ranges


def uncovered_ranges(
    start: datetime, end: datetime, sub_ranges: Sequence[SubRange]
) -> list[tuple[datetime, datetime]]:
    """Parts of [start, end) that no sub-range covers."""
    gaps = []
    cursor = start
    for sub_range in sorted(sub_ranges, key=lambda s: s.start):
        if sub_range.start > cursor:
            gaps.append((cursor, sub_range.start))
        cursor = max(cursor, sub_range.end)
    if cursor < end:
        gaps.append((cursor, end))
    return gaps


def touches(record: ConsumptionRecord, start: datetime, end: datetime) -> bool:
    """True when the record has any part inside [start, end)."""
    if record.interval_end <= record.interval_start:
        return start <= record.interval_start < end
    return record.interval_start < end and record.interval_end > start


def clip_kwh(record: ConsumptionRecord, start: datetime, end: datetime) -> float:
    """Share of a record's kWh that falls within [start, end)."""
    duration = (record.interval_end - record.interval_start).total_seconds()
    if duration <= 0:
        return record.consumption_kwh if start <= record.interval_start < end else 0.0
    overlap = _overlap_seconds(record.interval_start, record.interval_end, start, end)
    return record.consumption_kwh * overlap / duration


def price_record(
    record: ConsumptionRecord, rates: list[RateInterval], start: datetime, end: datetime
) -> tuple[float, float, float]:
    """Price the part of a record inside [start, end).

    Returns (priced_kwh, cost_exc_vat, cost_inc_vat).
    """
    window_start = max(start, record.interval_start)
    window_end = min(end, record.interval_end)
    duration = (record.interval_end - record.interval_start).total_seconds()

    if duration <= 0:
        for rate in rates:
            if rate.valid_from <= record.interval_start and (
                rate.valid_to is None or record.interval_start < rate.valid_to
            ):
                kwh = record.consumption_kwh
                return kwh, kwh * rate.unit_rate_exc_vat, kwh * rate.unit_rate_inc_vat
        return 0.0, 0.0, 0.0

    priced = cost_exc = cost_inc = 0.0
    for rate in rates:
        overlap = _overlap_seconds(window_start, window_end, rate.valid_from, rate.valid_to)
        if overlap <= 0:
            continue
        share = record.consumption_kwh * overlap / duration
        priced += share
        cost_exc += share * rate.unit_rate_exc_vat
        cost_inc += share * rate.unit_rate_inc_vat
    return priced, cost_exc, cost_inc


class TariffCalculationEngine:
    """Combine consumption and rates into a cost summary.

    The engine owns no storage: it reads from the resolver and the aggregator and
    returns a TariffCalculation. A calculation is all-or-nothing; any failure in a
    sub-range discards the others.
    """

    def __init__(self, rates: RateResolver, consumption: ConsumptionAggregator):
        self.rates = rates
        self.consumption = consumption

    async def calculate(
        self,
        start: datetime,
        end: datetime,
        target: Target,
        interval_type: IntervalType | None = None,
    ) -> TariffCalculation:
        """Calculate usage and cost over [start, end) for a tariff code or an account.

        Raises NoConsumptionData when no records overlap the range and
        RateResolutionFailed when consumption cannot be priced.
        """
        sub_ranges = self._sub_ranges(start, end, target)
        _LOGGER.debug(
            "Calculating %s [%s, %s) over %d sub-range(s)",
            interval_type.value if interval_type else "period", start, end, len(sub_ranges),
        )

        records = await self.consumption.consumption_for(start, end)
        if not records:
            raise NoConsumptionData(start, end)

        # Consumption outside every agreement has no tariff to price it with.
        for gap_start, gap_end in uncovered_ranges(start, end, sub_ranges):
            kwh = sum(clip_kwh(r, gap_start, gap_end) for r in records if touches(r, gap_start, gap_end))
            if kwh > UNPRICED_TOLERANCE_KWH:
                code = target.cache_code if isinstance(target, Account) else "account"
                raise RateResolutionFailed(NoRatesFound(code, gap_start, gap_end))

        parts = [await self._calculate_sub_range(sub_range, records) for sub_range in sub_ranges]
        return TariffCalculation.combine(parts, start, end)

    def _sub_ranges(self, start: datetime, end: datetime, target: Target) -> list[SubRange]:
        if isinstance(target, str):
            return [SubRange(start, end, target)]
        agreements = target.agreements if isinstance(target, Account) else target
        return split_by_agreements(start, end, agreements)

    async def _calculate_sub_range(
        self, sub_range: SubRange, records: list[ConsumptionRecord]
    ) -> TariffCalculation:
        start, end, tariff_code = sub_range
        in_range = [r for r in records if touches(r, start, end)]
        total_kwh = sum(clip_kwh(r, start, end) for r in in_range)

        try:
            rates = await self.rates.rates_for(tariff_code, start, end)
        except NoRatesFound as err:
            if total_kwh > 0:
                raise RateResolutionFailed(err) from err
            rates = []

        cost_exc = cost_inc = unpriced = 0.0
        for record in in_range:
            priced, record_exc, record_inc = price_record(record, rates, start, end)
            cost_exc += record_exc
            cost_inc += record_inc
            unpriced += clip_kwh(record, start, end) - priced
        if unpriced > UNPRICED_TOLERANCE_KWH:
            _LOGGER.warning("%.3f kWh in [%s, %s) has no %s rate", unpriced, start, end, tariff_code)

        standing_exc, standing_inc = await self._standing_charges(tariff_code, start, end)
        return TariffCalculation.from_totals(
            start,
            end,
            total_kwh=total_kwh,
            cost_exc_vat=cost_exc + standing_exc,
            cost_inc_vat=cost_inc + standing_inc,
            standing_charge_exc_vat=standing_exc,
            standing_charge_inc_vat=standing_inc,
        )

    async def _standing_charges(
        self, tariff_code: str, start: datetime, end: datetime
    ) -> tuple[float, float]:
        # One charge per calendar day touched; a partial day counts in full.
        total_exc = total_inc = 0.0
        day = start_of_day(start)
        while day < end:
            charge = await self.rates.latest_standing_charge(tariff_code, max(day, start))
            total_exc += charge.exc_vat
            total_inc += charge.inc_vat
            day += timedelta(days=1)
        return total_exc, total_inc
