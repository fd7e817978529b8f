"""Shared in-memory sources for calculation tests."""

import asyncio
from datetime import datetime, timedelta

import pytest
from tariffcalc.cache import CalculationCache, MemoryCalculationStore
from tariffcalc.consumption import ConsumptionAggregator
from tariffcalc.engine import TariffCalculationEngine
from tariffcalc.models import ConsumptionRecord, RateInterval, StandingCharge
from tariffcalc.rates import RateResolver
from tariffcalc.service import TariffService


class FakeConsumptionSource:
    """Serves every stored record; the aggregator does the filtering."""

    def __init__(self, records, delay=0.0):
        self.records = list(records)
        self.delay = delay
        self.fetches = 0

    async def fetch_consumption(self, start, end):
        self.fetches += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.records)

    async def coverage_bounds(self):
        if not self.records:
            return None
        return (
            min(r.interval_start for r in self.records),
            max(r.interval_end for r in self.records),
        )


class FakeRatesSource:
    def __init__(self, rates=()):
        self.rates = list(rates)

    async def fetch_rates(self, tariff_code, start, end):
        return [r for r in self.rates if r.tariff_code == tariff_code and not r.is_standing_charge]

    async def fetch_latest_standing_charge(self, tariff_code, as_of):
        candidates = [
            r for r in self.rates
            if r.tariff_code == tariff_code and r.is_standing_charge and r.valid_from <= as_of
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda r: r.valid_from)
        return StandingCharge(latest.unit_rate_exc_vat, latest.unit_rate_inc_vat)


def slots(start: datetime, count: int, kwh: float = 0.5, minutes: int = 30) -> list[ConsumptionRecord]:
    """Consecutive consumption records of equal size."""
    step = timedelta(minutes=minutes)
    return [ConsumptionRecord(start + i * step, start + (i + 1) * step, kwh) for i in range(count)]


def unit_rate(code, exc, inc, valid_from, valid_to=None) -> RateInterval:
    return RateInterval(code, valid_from, valid_to, exc, inc)


def standing_charge(code, exc, inc, valid_from, valid_to=None) -> RateInterval:
    return RateInterval(code, valid_from, valid_to, exc, inc, is_standing_charge=True)


@pytest.fixture
def build_engine():
    def build(records, rates=(), delay=0.0):
        return TariffCalculationEngine(
            RateResolver(FakeRatesSource(rates)),
            ConsumptionAggregator(FakeConsumptionSource(records, delay)),
        )

    return build


@pytest.fixture
def build_service(build_engine):
    def build(records, rates=(), billing_day=1, timeout_seconds=None, delay=0.0):
        engine = build_engine(records, rates, delay)
        store = MemoryCalculationStore()
        return TariffService(engine, CalculationCache(store), billing_day, timeout_seconds)

    return build
