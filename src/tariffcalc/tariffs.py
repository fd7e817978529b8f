"""Tariff, account and manual plan loading from YAML config."""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path

import yaml

from .db import save_rates
from .models import Account, AccountAgreement, RateInterval
from .rates import FlatRateTariff

DEFAULT_CONFIG_NAME = Path("config") / "tariffs.yaml"


@dataclass
class TariffConfig:
    """Everything defined in a tariffs.yaml file."""

    rates: list[RateInterval] = field(default_factory=list)
    account: Account | None = None
    manual: FlatRateTariff | None = None

    @property
    def tariff_codes(self) -> list[str]:
        return sorted({r.tariff_code for r in self.rates})


def parse_datetime(value) -> datetime | None:
    """Accept datetimes, dates and ISO strings (YAML may already have parsed them)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return datetime.fromisoformat(str(value))


def _parse_entries(code: str, entries: list[dict], standing: bool) -> list[RateInterval]:
    return [
        RateInterval(
            tariff_code=code,
            valid_from=parse_datetime(e["valid_from"]),
            valid_to=parse_datetime(e.get("valid_to")),
            unit_rate_exc_vat=float(e["exc_vat"]),
            unit_rate_inc_vat=float(e["inc_vat"]),
            is_standing_charge=standing,
        )
        for e in entries
    ]


def parse_tariff_config(data: dict | None, vat_rate: float = 0.05) -> TariffConfig:
    """Build a TariffConfig from already-loaded YAML data."""
    data = data or {}
    config = TariffConfig()

    for t in data.get("tariffs", []):
        code = t["code"]
        config.rates.extend(_parse_entries(code, t.get("unit_rates", []), standing=False))
        config.rates.extend(_parse_entries(code, t.get("standing_charges", []), standing=True))

    account = data.get("account")
    if account:
        config.account = Account(
            number=str(account.get("number", "account")),
            agreements=[
                AccountAgreement(
                    tariff_code=a["tariff_code"],
                    valid_from=parse_datetime(a.get("valid_from")),
                    valid_to=parse_datetime(a.get("valid_to")),
                )
                for a in account.get("agreements", [])
            ],
        )

    manual = data.get("manual")
    if manual:
        config.manual = FlatRateTariff.from_exc_vat(
            unit_rate=float(manual["unit_rate"]),
            standing_charge=float(manual.get("standing_charge", 0.0)),
            vat_rate=float(manual.get("vat_rate", vat_rate)),
        )

    return config


def load_tariffs_from_yaml(config_path: Path, vat_rate: float = 0.05) -> TariffConfig:
    """Load tariff definitions from a YAML config file."""
    with open(config_path) as f:
        data = yaml.safe_load(f)
    return parse_tariff_config(data, vat_rate)


def save_tariffs_to_db(config: TariffConfig, db_path: Path | None = None) -> int:
    """Save configured rates to the database. Returns number of new rate entries."""
    return save_rates(config.rates, db_path)
