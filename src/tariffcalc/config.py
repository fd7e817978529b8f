"""Runtime settings from the environment (and a .env file)."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .periods import validate_billing_day
from .tariffs import DEFAULT_CONFIG_NAME


@dataclass
class Settings:
    """Settings shared by the CLI and the calculation service."""

    db_path: Path | None = None
    config_path: Path | None = None
    billing_day: int = 1
    timeout_seconds: float | None = None
    vat_rate: float = 0.05


def find_config_path() -> Path | None:
    """Find the tariffs.yaml config file."""
    candidates = [
        Path.cwd() / DEFAULT_CONFIG_NAME,
        Path.home() / ".config" / "tariff-calc" / "tariffs.yaml",
    ]
    for path in candidates:
        if path.exists():
            return path
    return None


def load_settings(env: dict[str, str] | None = None) -> Settings:
    """Load settings from TARIFFCALC_* environment variables.

    Raises InvalidBillingDay for a billing day outside 1..31 and ValueError for
    values that do not parse.
    """
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    db_path = env.get("TARIFFCALC_DB_PATH")
    config_path = env.get("TARIFFCALC_CONFIG")
    timeout = env.get("TARIFFCALC_TIMEOUT")

    return Settings(
        db_path=Path(db_path).expanduser() if db_path else None,
        config_path=Path(config_path).expanduser() if config_path else find_config_path(),
        billing_day=validate_billing_day(int(env.get("TARIFFCALC_BILLING_DAY", "1"))),
        timeout_seconds=float(timeout) if timeout else None,
        vat_rate=float(env.get("TARIFFCALC_VAT_RATE", "0.05")),
    )
