"""Database connection, schema management and async adapters over SQLite."""

import asyncio
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .models import (
    CacheKey,
    CachedCalculationEntry,
    ConsumptionRecord,
    IntervalType,
    RateInterval,
    StandingCharge,
    TariffCalculation,
)

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "tariff-calc" / "tariffs.db"

SCHEMA = """
-- Half-hourly metered consumption
CREATE TABLE IF NOT EXISTS consumption (
    id INTEGER PRIMARY KEY,
    interval_start TEXT NOT NULL,
    interval_end TEXT NOT NULL,
    consumption_kwh REAL NOT NULL,
    UNIQUE(interval_start)
);

-- Unit rates and standing charges per tariff code
CREATE TABLE IF NOT EXISTS rates (
    id INTEGER PRIMARY KEY,
    tariff_code TEXT NOT NULL,
    valid_from TEXT NOT NULL,
    valid_to TEXT,
    value_exc_vat REAL NOT NULL,
    value_inc_vat REAL NOT NULL,
    is_standing_charge INTEGER NOT NULL DEFAULT 0,
    UNIQUE(tariff_code, is_standing_charge, valid_from)
);

-- Cached period calculations
CREATE TABLE IF NOT EXISTS tariff_calculations (
    id INTEGER PRIMARY KEY,
    tariff_code TEXT NOT NULL,
    interval_type TEXT NOT NULL,
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    calculated_start TEXT NOT NULL,
    calculated_end TEXT NOT NULL,
    total_consumption_kwh REAL NOT NULL,
    total_cost_exc_vat REAL NOT NULL,
    total_cost_inc_vat REAL NOT NULL,
    average_unit_rate_exc_vat REAL NOT NULL,
    average_unit_rate_inc_vat REAL NOT NULL,
    standing_charge_cost_exc_vat REAL NOT NULL,
    standing_charge_cost_inc_vat REAL NOT NULL,
    updated_at TEXT,
    UNIQUE(tariff_code, interval_type, period_start, period_end)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_consumption_start ON consumption(interval_start);
CREATE INDEX IF NOT EXISTS idx_rates_lookup ON rates(tariff_code, is_standing_charge, valid_from);
"""


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed."""
    db_path = Path(DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        conn.commit()


def to_db(moment: datetime | None) -> str | None:
    """ISO text for storage; aware datetimes are stored in UTC so text order is time order."""
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.isoformat()


def from_db(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    with get_connection(db_path) as conn:
        stats = {}

        row = conn.execute(
            """SELECT COUNT(*) as count, MIN(interval_start) as earliest, MAX(interval_end) as latest,
                      SUM(consumption_kwh) as total_kwh
               FROM consumption"""
        ).fetchone()
        stats["consumption"] = {
            "count": row["count"],
            "earliest": row["earliest"],
            "latest": row["latest"],
            "total_kwh": row["total_kwh"] or 0.0,
        }

        rows = conn.execute(
            """SELECT tariff_code, SUM(1 - is_standing_charge) as unit_rates,
                      SUM(is_standing_charge) as standing_charges
               FROM rates GROUP BY tariff_code ORDER BY tariff_code"""
        ).fetchall()
        stats["rates_by_tariff"] = {
            row["tariff_code"]: {
                "unit_rates": row["unit_rates"],
                "standing_charges": row["standing_charges"],
            }
            for row in rows
        }

        row = conn.execute("SELECT COUNT(*) as count FROM tariff_calculations").fetchone()
        stats["tariff_calculations"] = {"count": row["count"]}

        return stats


# Consumption


def save_consumption(records: list[ConsumptionRecord], db_path: Path | None = None) -> dict:
    """Save consumption records, skipping slots already stored.

    Returns dict with 'imported' and 'skipped' counts.
    """
    imported = 0
    skipped = 0

    with get_connection(db_path) as conn:
        for record in records:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO consumption (interval_start, interval_end, consumption_kwh)
                   VALUES (?, ?, ?)""",
                (to_db(record.interval_start), to_db(record.interval_end), record.consumption_kwh),
            )
            if cursor.rowcount:
                imported += 1
            else:
                skipped += 1
        conn.commit()

    return {"imported": imported, "skipped": skipped}


def load_consumption(start: datetime, end: datetime, db_path: Path | None = None) -> list[ConsumptionRecord]:
    """Records overlapping [start, end), ordered by interval_start."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            """SELECT interval_start, interval_end, consumption_kwh
               FROM consumption
               WHERE interval_start < ? AND interval_end > ?
               ORDER BY interval_start""",
            (to_db(end), to_db(start)),
        ).fetchall()
    return [
        ConsumptionRecord(
            interval_start=from_db(row["interval_start"]),
            interval_end=from_db(row["interval_end"]),
            consumption_kwh=row["consumption_kwh"],
        )
        for row in rows
    ]


def load_coverage_bounds(db_path: Path | None = None) -> tuple[datetime, datetime] | None:
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT MIN(interval_start) as earliest, MAX(interval_end) as latest FROM consumption"
        ).fetchone()
    if not row["earliest"]:
        return None
    return from_db(row["earliest"]), from_db(row["latest"])


# Rates


def save_rates(rates: list[RateInterval], db_path: Path | None = None) -> int:
    """Insert rates, keeping existing entries untouched. Returns number inserted or closed.

    The one permitted change is closing an open-ended window: re-saving an entry with a
    valid_to sets it on a stored entry whose valid_to is still NULL.
    """
    count = 0
    with get_connection(db_path) as conn:
        for rate in rates:
            cursor = conn.execute(
                """INSERT INTO rates
                   (tariff_code, valid_from, valid_to, value_exc_vat, value_inc_vat, is_standing_charge)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(tariff_code, is_standing_charge, valid_from) DO UPDATE
                   SET valid_to = excluded.valid_to
                   WHERE rates.valid_to IS NULL AND excluded.valid_to IS NOT NULL""",
                (
                    rate.tariff_code,
                    to_db(rate.valid_from),
                    to_db(rate.valid_to),
                    rate.unit_rate_exc_vat,
                    rate.unit_rate_inc_vat,
                    int(rate.is_standing_charge),
                ),
            )
            count += cursor.rowcount
        conn.commit()
    return count


def _rate_from_row(row: sqlite3.Row) -> RateInterval:
    return RateInterval(
        tariff_code=row["tariff_code"],
        valid_from=from_db(row["valid_from"]),
        valid_to=from_db(row["valid_to"]),
        unit_rate_exc_vat=row["value_exc_vat"],
        unit_rate_inc_vat=row["value_inc_vat"],
        is_standing_charge=bool(row["is_standing_charge"]),
    )


def load_rates(tariff_code: str, start: datetime, end: datetime, db_path: Path | None = None) -> list[RateInterval]:
    """Unit rates for a tariff overlapping [start, end), ordered by valid_from."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            """SELECT tariff_code, valid_from, valid_to, value_exc_vat, value_inc_vat, is_standing_charge
               FROM rates
               WHERE tariff_code = ? AND is_standing_charge = 0
                 AND valid_from < ? AND (valid_to IS NULL OR valid_to > ?)
               ORDER BY valid_from""",
            (tariff_code, to_db(end), to_db(start)),
        ).fetchall()
    return [_rate_from_row(row) for row in rows]


def load_latest_standing_charge(
    tariff_code: str, as_of: datetime, db_path: Path | None = None
) -> StandingCharge | None:
    with get_connection(db_path) as conn:
        row = conn.execute(
            """SELECT value_exc_vat, value_inc_vat
               FROM rates
               WHERE tariff_code = ? AND is_standing_charge = 1 AND valid_from <= ?
               ORDER BY valid_from DESC LIMIT 1""",
            (tariff_code, to_db(as_of)),
        ).fetchone()
    if not row:
        return None
    return StandingCharge(exc_vat=row["value_exc_vat"], inc_vat=row["value_inc_vat"])


# Calculations


def save_calculation(entry: CachedCalculationEntry, db_path: Path | None = None) -> None:
    """Insert or overwrite the calculation stored under the entry's key."""
    calc = entry.calculation
    with get_connection(db_path) as conn:
        conn.execute(
            """INSERT OR REPLACE INTO tariff_calculations
               (tariff_code, interval_type, period_start, period_end, calculated_start, calculated_end,
                total_consumption_kwh, total_cost_exc_vat, total_cost_inc_vat,
                average_unit_rate_exc_vat, average_unit_rate_inc_vat,
                standing_charge_cost_exc_vat, standing_charge_cost_inc_vat, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                entry.tariff_code,
                entry.interval_type.value,
                to_db(entry.period_start),
                to_db(entry.period_end),
                to_db(calc.period_start),
                to_db(calc.period_end),
                calc.total_kwh,
                calc.cost_exc_vat,
                calc.cost_inc_vat,
                calc.average_unit_rate_exc_vat,
                calc.average_unit_rate_inc_vat,
                calc.standing_charge_exc_vat,
                calc.standing_charge_inc_vat,
                to_db(entry.updated_at),
            ),
        )
        conn.commit()


def load_calculation(key: CacheKey, db_path: Path | None = None) -> CachedCalculationEntry | None:
    with get_connection(db_path) as conn:
        row = conn.execute(
            """SELECT * FROM tariff_calculations
               WHERE tariff_code = ? AND interval_type = ? AND period_start = ? AND period_end = ?""",
            (key.tariff_code, key.interval_type.value, to_db(key.period_start), to_db(key.period_end)),
        ).fetchone()
    if not row:
        return None
    return CachedCalculationEntry(
        tariff_code=row["tariff_code"],
        interval_type=IntervalType(row["interval_type"]),
        period_start=from_db(row["period_start"]),
        period_end=from_db(row["period_end"]),
        calculation=TariffCalculation(
            period_start=from_db(row["calculated_start"]),
            period_end=from_db(row["calculated_end"]),
            total_kwh=row["total_consumption_kwh"],
            cost_exc_vat=row["total_cost_exc_vat"],
            cost_inc_vat=row["total_cost_inc_vat"],
            average_unit_rate_exc_vat=row["average_unit_rate_exc_vat"],
            average_unit_rate_inc_vat=row["average_unit_rate_inc_vat"],
            standing_charge_exc_vat=row["standing_charge_cost_exc_vat"],
            standing_charge_inc_vat=row["standing_charge_cost_inc_vat"],
        ),
        updated_at=from_db(row["updated_at"]),
    )


# Async adapters: sqlite3 blocks, so each query runs in a worker thread.


class SqliteConsumptionSource:
    """ConsumptionSource over the consumption table."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    async def fetch_consumption(self, start: datetime, end: datetime) -> list[ConsumptionRecord]:
        return await asyncio.to_thread(load_consumption, start, end, self.db_path)

    async def coverage_bounds(self) -> tuple[datetime, datetime] | None:
        return await asyncio.to_thread(load_coverage_bounds, self.db_path)


class SqliteRatesSource:
    """RatesSource over the rates table."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    async def fetch_rates(self, tariff_code: str, start: datetime, end: datetime) -> list[RateInterval]:
        return await asyncio.to_thread(load_rates, tariff_code, start, end, self.db_path)

    async def fetch_latest_standing_charge(self, tariff_code: str, as_of: datetime) -> StandingCharge | None:
        return await asyncio.to_thread(load_latest_standing_charge, tariff_code, as_of, self.db_path)


class SqliteCalculationStore:
    """CalculationStore over the tariff_calculations table."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    async def get(self, key: CacheKey) -> CachedCalculationEntry | None:
        return await asyncio.to_thread(load_calculation, key, self.db_path)

    async def put(self, entry: CachedCalculationEntry) -> None:
        await asyncio.to_thread(save_calculation, entry, self.db_path)
