"""Unit rate and standing charge resolution for a tariff."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .errors import NoRatesFound, OverlappingRates
from .models import RateInterval, StandingCharge

_LOGGER = logging.getLogger(__name__)

MANUAL_TARIFF_CODE = "MANUAL"


class RatesSource(Protocol):
    """Read-only access to stored rates."""

    async def fetch_rates(self, tariff_code: str, start: datetime, end: datetime) -> list[RateInterval]:
        ...

    async def fetch_latest_standing_charge(self, tariff_code: str, as_of: datetime) -> StandingCharge | None:
        ...


class RateResolver:
    """Select the unit rates and standing charges that apply over a range."""

    def __init__(self, source: RatesSource):
        self.source = source

    async def rates_for(self, tariff_code: str, start: datetime, end: datetime) -> list[RateInterval]:
        """Unit rates overlapping [start, end), ordered by valid_from.

        Raises NoRatesFound when the source has nothing for the tariff in range and
        OverlappingRates when two of the windows overlap.
        """
        fetched = await self.source.fetch_rates(tariff_code, start, end)
        rates = sorted(
            (r for r in fetched if not r.is_standing_charge and r.overlaps(start, end)),
            key=lambda r: r.valid_from,
        )
        _LOGGER.debug("Resolved %d rates for %s in [%s, %s)", len(rates), tariff_code, start, end)
        if not rates:
            raise NoRatesFound(tariff_code, start, end)
        for earlier, later in zip(rates, rates[1:]):
            if earlier.valid_to is None or earlier.valid_to > later.valid_from:
                raise OverlappingRates(tariff_code, earlier.valid_from, later.valid_from)
        return rates

    async def latest_standing_charge(self, tariff_code: str, as_of: datetime) -> StandingCharge:
        """Standing charge with the latest valid_from <= as_of, or zero if none."""
        charge = await self.source.fetch_latest_standing_charge(tariff_code, as_of)
        if charge is None:
            _LOGGER.debug("No standing charge for %s as of %s, using zero", tariff_code, as_of)
            return StandingCharge()
        return charge


def manual_tariff_code(*values: float) -> str:
    """Code for a manual plan, distinct for every combination of its prices."""
    parts = (f"{v:.4f}".rstrip("0").rstrip(".") for v in values)
    return ":".join([MANUAL_TARIFF_CODE, *parts])


@dataclass
class FlatRateTariff:
    """A manual plan: one unit rate and one daily standing charge, in pence.

    Without an explicit tariff_code the plan is keyed by its prices, so plans with
    different rates never share cached calculations.
    """

    unit_rate_exc_vat: float
    unit_rate_inc_vat: float
    standing_charge_exc_vat: float = 0.0
    standing_charge_inc_vat: float = 0.0
    tariff_code: str | None = None

    def __post_init__(self):
        if self.tariff_code is None:
            self.tariff_code = manual_tariff_code(
                self.unit_rate_exc_vat,
                self.unit_rate_inc_vat,
                self.standing_charge_exc_vat,
                self.standing_charge_inc_vat,
            )

    @classmethod
    def from_exc_vat(
        cls, unit_rate: float, standing_charge: float = 0.0, vat_rate: float = 0.05,
        tariff_code: str | None = None,
    ) -> "FlatRateTariff":
        """Derive inc-VAT values from exc-VAT ones."""
        return cls(
            unit_rate_exc_vat=unit_rate,
            unit_rate_inc_vat=unit_rate * (1 + vat_rate),
            standing_charge_exc_vat=standing_charge,
            standing_charge_inc_vat=standing_charge * (1 + vat_rate),
            tariff_code=tariff_code,
        )


class FlatRateSource:
    """RatesSource serving flat-rate tariffs that are valid at all times."""

    def __init__(self, *tariffs: FlatRateTariff):
        self.tariffs = {t.tariff_code: t for t in tariffs}

    async def fetch_rates(self, tariff_code: str, start: datetime, end: datetime) -> list[RateInterval]:
        tariff = self.tariffs.get(tariff_code)
        if tariff is None:
            return []
        return [
            RateInterval(
                tariff_code=tariff_code,
                valid_from=start,
                valid_to=end,
                unit_rate_exc_vat=tariff.unit_rate_exc_vat,
                unit_rate_inc_vat=tariff.unit_rate_inc_vat,
            )
        ]

    async def fetch_latest_standing_charge(self, tariff_code: str, as_of: datetime) -> StandingCharge | None:
        tariff = self.tariffs.get(tariff_code)
        if tariff is None:
            return None
        return StandingCharge(tariff.standing_charge_exc_vat, tariff.standing_charge_inc_vat)
