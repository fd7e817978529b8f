"""Consumption importer for CSV exports.

Accepts the Octopus dashboard export (columns "Consumption (kwh)", "Start", "End")
or a plain export with interval_start, interval_end, consumption_kwh columns.
"""

import csv
from datetime import datetime
from pathlib import Path

from ..db import save_consumption
from ..models import ConsumptionRecord

COLUMN_ALIASES = {
    "interval_start": ("interval_start", "Start", " Start"),
    "interval_end": ("interval_end", "End", " End"),
    "consumption_kwh": ("consumption_kwh", "Consumption (kwh)", "Consumption (kWh)", "consumption"),
}


def _column(row: dict, field: str) -> str:
    for alias in COLUMN_ALIASES[field]:
        if alias in row and row[alias] not in (None, ""):
            return row[alias].strip()
    raise ValueError(f"Missing {field} column in row: {row}")


def parse_csv(csv_path: Path) -> list[ConsumptionRecord]:
    """Parse a consumption CSV export file."""
    records = []
    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            records.append(
                ConsumptionRecord(
                    interval_start=datetime.fromisoformat(_column(row, "interval_start")),
                    interval_end=datetime.fromisoformat(_column(row, "interval_end")),
                    consumption_kwh=float(_column(row, "consumption_kwh")),
                )
            )
    return records


def import_from_csv(csv_path: Path, db_path: Path | None = None) -> dict:
    """Import consumption records from a CSV file.

    Returns dict with 'imported' and 'skipped' counts.
    """
    records = parse_csv(csv_path)
    return save_consumption(records, db_path)
