"""Data models for rates, consumption, agreements and calculation results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple


class IntervalType(str, Enum):
    """Reporting interval for a cost summary."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"

    @classmethod
    def parse(cls, value: "str | IntervalType") -> "IntervalType":
        """Accept an IntervalType or a case-insensitive name ('daily', 'Monthly')."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


@dataclass(frozen=True)
class RateInterval:
    """A unit rate (or standing charge) valid over [valid_from, valid_to).

    valid_to of None means open-ended. Values are in pence per kWh for unit rates
    and pence per day for standing charges.
    """

    tariff_code: str
    valid_from: datetime
    valid_to: datetime | None
    unit_rate_exc_vat: float
    unit_rate_inc_vat: float
    is_standing_charge: bool = False

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test against [start, end)."""
        return self.valid_from < end and (self.valid_to is None or self.valid_to > start)


@dataclass(frozen=True)
class StandingCharge:
    """Daily standing charge in pence."""

    exc_vat: float = 0.0
    inc_vat: float = 0.0


@dataclass(frozen=True)
class ConsumptionRecord:
    """Metered consumption for one interval (usually half an hour)."""

    interval_start: datetime
    interval_end: datetime
    consumption_kwh: float


@dataclass(frozen=True)
class AccountAgreement:
    """A tariff agreement on the electricity meter, valid over [valid_from, valid_to)."""

    tariff_code: str
    valid_from: datetime | None = None
    valid_to: datetime | None = None


@dataclass
class Account:
    """An account and its agreements (tariff switches) over time."""

    number: str
    agreements: list[AccountAgreement] = field(default_factory=list)

    @property
    def cache_code(self) -> str:
        """Cache key component used in place of a tariff code."""
        return f"account:{self.number}"


@dataclass(frozen=True)
class IntervalBoundary:
    """A reporting period [start, end)."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def overlaps_with_data(self, min_date: datetime, max_date: datetime) -> bool:
        """True when [start, end) intersects the closed data range [min_date, max_date]."""
        return self.start <= max_date and self.end > min_date

    def is_after_data(self, max_date: datetime) -> bool:
        """True when the period starts after the last available data."""
        return self.start > max_date


@dataclass(frozen=True)
class TariffCalculation:
    """Cost and usage summary for a period. Costs in pence, rates in pence/kWh."""

    period_start: datetime
    period_end: datetime
    total_kwh: float
    cost_exc_vat: float
    cost_inc_vat: float
    average_unit_rate_exc_vat: float
    average_unit_rate_inc_vat: float
    standing_charge_exc_vat: float
    standing_charge_inc_vat: float

    @classmethod
    def from_totals(
        cls,
        period_start: datetime,
        period_end: datetime,
        total_kwh: float,
        cost_exc_vat: float,
        cost_inc_vat: float,
        standing_charge_exc_vat: float,
        standing_charge_inc_vat: float,
    ) -> "TariffCalculation":
        """Build a calculation, deriving the average unit rates.

        cost_* already include the standing charge; the averages exclude it.
        """
        if total_kwh > 0:
            avg_exc = (cost_exc_vat - standing_charge_exc_vat) / total_kwh
            avg_inc = (cost_inc_vat - standing_charge_inc_vat) / total_kwh
        else:
            avg_exc = avg_inc = 0.0
        return cls(
            period_start=period_start,
            period_end=period_end,
            total_kwh=total_kwh,
            cost_exc_vat=cost_exc_vat,
            cost_inc_vat=cost_inc_vat,
            average_unit_rate_exc_vat=avg_exc,
            average_unit_rate_inc_vat=avg_inc,
            standing_charge_exc_vat=standing_charge_exc_vat,
            standing_charge_inc_vat=standing_charge_inc_vat,
        )

    @classmethod
    def combine(
        cls, parts: "list[TariffCalculation]", period_start: datetime, period_end: datetime
    ) -> "TariffCalculation":
        """Sum several calculations into one covering [period_start, period_end)."""
        return cls.from_totals(
            period_start,
            period_end,
            total_kwh=sum(p.total_kwh for p in parts),
            cost_exc_vat=sum(p.cost_exc_vat for p in parts),
            cost_inc_vat=sum(p.cost_inc_vat for p in parts),
            standing_charge_exc_vat=sum(p.standing_charge_exc_vat for p in parts),
            standing_charge_inc_vat=sum(p.standing_charge_inc_vat for p in parts),
        )


class CacheKey(NamedTuple):
    """Composite key of a cached calculation."""

    tariff_code: str
    interval_type: IntervalType
    period_start: datetime
    period_end: datetime


@dataclass(frozen=True)
class CachedCalculationEntry:
    """A stored calculation for a nominal period.

    The key holds the nominal period; calculation.period_start/end hold the range
    that was actually covered by data (shorter for a partial period).
    """

    tariff_code: str
    interval_type: IntervalType
    period_start: datetime
    period_end: datetime
    calculation: TariffCalculation
    updated_at: datetime | None = None

    @property
    def key(self) -> CacheKey:
        return CacheKey(self.tariff_code, self.interval_type, self.period_start, self.period_end)
