"""Exceptions raised by the calculation core."""

from datetime import datetime


class TariffCalcError(Exception):
    """Base exception for tariff calculation errors."""
    pass


class NoConsumptionData(TariffCalcError):
    """The requested range has no overlapping consumption records."""

    def __init__(self, start: datetime, end: datetime):
        self.start = start
        self.end = end
        super().__init__(f"No consumption data between {start.isoformat()} and {end.isoformat()}")


class NoRatesFound(TariffCalcError):
    """No unit rates are known for a tariff over a range."""

    def __init__(self, tariff_code: str, start: datetime, end: datetime):
        self.tariff_code = tariff_code
        self.start = start
        self.end = end
        super().__init__(
            f"No rates found for tariff {tariff_code} between {start.isoformat()} and {end.isoformat()}"
        )


class RateResolutionFailed(TariffCalcError):
    """A sub-range with consumption could not be priced."""

    def __init__(self, cause: NoRatesFound):
        self.tariff_code = cause.tariff_code
        super().__init__(f"Rate resolution failed: {cause}")


class CalculationTimeout(TariffCalcError):
    """A caller-imposed deadline expired before the calculation finished."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__(f"Calculation did not finish within {seconds:g}s")


class InvalidBillingDay(TariffCalcError, ValueError):
    """Billing day outside 1..31."""

    def __init__(self, billing_day: int):
        self.billing_day = billing_day
        super().__init__(f"Billing day must be between 1 and 31, got {billing_day}")


class OverlappingRates(TariffCalcError):
    """Two unit-rate windows of one tariff overlap, so a slot would be priced twice."""

    def __init__(self, tariff_code: str, first_from: datetime, second_from: datetime):
        self.tariff_code = tariff_code
        super().__init__(
            f"Unit rates for tariff {tariff_code} from {first_from.isoformat()} "
            f"and {second_from.isoformat()} overlap"
        )
