"""Period cost summaries: boundary, coverage clamp, cache, engine."""

import asyncio
import logging
from datetime import datetime

from . import db
from .cache import CalculationCache
from .config import Settings
from .consumption import ConsumptionAggregator
from .engine import TariffCalculationEngine
from .errors import CalculationTimeout, NoConsumptionData
from .models import Account, IntervalBoundary, IntervalType, TariffCalculation
from .periods import boundary, neighbours, shift
from .rates import FlatRateSource, FlatRateTariff, RateResolver, RatesSource

_LOGGER = logging.getLogger(__name__)


def cache_code(target: str | Account) -> str:
    return target.cache_code if isinstance(target, Account) else target


def partial_range(
    period: IntervalBoundary, min_available: datetime, max_available: datetime
) -> IntervalBoundary | None:
    """Intersect a period with the data coverage, or None if they do not overlap."""
    start = max(period.start, min_available)
    end = min(period.end, max_available)
    if end <= start:
        return None
    return IntervalBoundary(start, end)


class TariffService:
    """Serve cost summaries for reporting periods.

    The nominal period is used as the cache key; the engine only sees the part of it
    covered by consumption data. A period counts as closed once its nominal end is not
    after the latest consumption timestamp.
    """

    def __init__(
        self,
        engine: TariffCalculationEngine,
        cache: CalculationCache,
        billing_day: int = 1,
        timeout_seconds: float | None = None,
    ):
        self.engine = engine
        self.cache = cache
        self.billing_day = billing_day
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings, manual: FlatRateTariff | None = None) -> "TariffService":
        """Wire SQLite-backed collaborators; a manual plan replaces the stored rates."""
        rates_source: RatesSource = FlatRateSource(manual) if manual else db.SqliteRatesSource(settings.db_path)
        engine = TariffCalculationEngine(
            RateResolver(rates_source),
            ConsumptionAggregator(db.SqliteConsumptionSource(settings.db_path)),
        )
        cache = CalculationCache(db.SqliteCalculationStore(settings.db_path))
        return cls(engine, cache, settings.billing_day, settings.timeout_seconds)

    def boundary(self, moment: datetime, interval_type: IntervalType | str) -> IntervalBoundary:
        return boundary(moment, interval_type, self.billing_day)

    async def calculate(
        self,
        moment: datetime,
        interval_type: IntervalType | str,
        target: str | Account,
        force: bool = False,
    ) -> TariffCalculation:
        """Cost summary for the period of interval_type containing moment.

        Raises NoConsumptionData, RateResolutionFailed, or CalculationTimeout when the
        configured deadline passes first. A timed-out computation keeps running and
        still fills the cache.
        """
        interval_type = IntervalType.parse(interval_type)
        if interval_type is IntervalType.QUARTERLY:
            call = self._quarter(moment, target, force)
        else:
            call = self._period(self.boundary(moment, interval_type), interval_type, target, force)

        if self.timeout_seconds is None:
            return await call
        try:
            return await asyncio.wait_for(call, self.timeout_seconds)
        except asyncio.TimeoutError as err:
            raise CalculationTimeout(self.timeout_seconds) from err

    async def _coverage(self, period: IntervalBoundary) -> tuple[datetime, datetime]:
        bounds = await self.engine.consumption.coverage_bounds()
        if bounds is None:
            raise NoConsumptionData(period.start, period.end)
        return bounds

    async def _period(
        self,
        period: IntervalBoundary,
        interval_type: IntervalType,
        target: str | Account,
        force: bool,
    ) -> TariffCalculation:
        min_available, max_available = await self._coverage(period)
        covered = partial_range(period, min_available, max_available)
        if covered is None:
            raise NoConsumptionData(period.start, period.end)
        if covered != period:
            _LOGGER.debug("Partial coverage for %s: [%s, %s)", interval_type.value, covered.start, covered.end)

        async def compute() -> TariffCalculation:
            return await self.engine.calculate(covered.start, covered.end, target, interval_type)

        return await self.cache.get_or_compute(
            cache_code(target),
            interval_type,
            period.start,
            period.end,
            compute,
            now=max_available,
            force=force,
        )

    async def _quarter(self, moment: datetime, target: str | Account, force: bool) -> TariffCalculation:
        # A quarter is the sum of its billing months, each cached on its own.
        quarter = self.boundary(moment, IntervalType.QUARTERLY)
        min_available, max_available = await self._coverage(quarter)

        parts = []
        month_start = quarter.start
        while month_start < quarter.end:
            month = self.boundary(month_start, IntervalType.MONTHLY)
            if month.overlaps_with_data(min_available, max_available):
                try:
                    parts.append(await self._period(month, IntervalType.MONTHLY, target, force))
                except NoConsumptionData:
                    _LOGGER.debug("No consumption in [%s, %s), leaving it out of the quarter", month.start, month.end)
            month_start = month.end

        if not parts:
            raise NoConsumptionData(quarter.start, quarter.end)
        return TariffCalculation.combine(parts, parts[0].period_start, parts[-1].period_end)

    async def navigation(
        self, moment: datetime, interval_type: IntervalType | str
    ) -> tuple[datetime | None, datetime | None]:
        """Starts of the previous and next periods that still hold data."""
        bounds = await self.engine.consumption.coverage_bounds()
        if bounds is None:
            return None, None
        return neighbours(moment, interval_type, self.billing_day, *bounds)

    def shift(self, moment: datetime, interval_type: IntervalType | str, steps: int) -> datetime:
        return shift(moment, interval_type, steps, self.billing_day)
