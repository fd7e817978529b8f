import json

import pytest
from click.testing import CliRunner
from tariffcalc.cli import cli, parse_moment

CONFIG = """
tariffs:
  - code: T
    unit_rates:
      - valid_from: "2024-01-01T00:00:00+00:00"
        exc_vat: 20.0
        inc_vat: 24.0
    standing_charges:
      - valid_from: "2024-01-01T00:00:00+00:00"
        exc_vat: 45.0
        inc_vat: 54.0
manual:
  unit_rate: 10.0
"""


def consumption_csv() -> str:
    lines = ["interval_start,interval_end,consumption_kwh"]
    for i in range(48):
        start = f"2024-01-15T{i // 2:02d}:{(i % 2) * 30:02d}:00+00:00"
        end_minutes = (i + 1) * 30
        if end_minutes == 24 * 60:
            end = "2024-01-16T00:00:00+00:00"
        else:
            end = f"2024-01-15T{end_minutes // 60:02d}:{end_minutes % 60:02d}:00+00:00"
        lines.append(f"{start},{end},0.5")
    return "\n".join(lines) + "\n"


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "tariffs.yaml").write_text(CONFIG)
    (tmp_path / "usage.csv").write_text(consumption_csv())
    return tmp_path


def invoke(workspace, *args):
    base = ["--db-path", str(workspace / "test.db"), "--config", str(workspace / "tariffs.yaml")]
    return CliRunner().invoke(cli, base + list(args), env={"TARIFFCALC_BILLING_DAY": "1"})


def test_parse_moment_follows_data_timezone():
    from datetime import datetime, timezone

    reference = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_moment("2024-01-15", reference) == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert parse_moment("2024-01-15T00:00:00+00:00", datetime(2024, 1, 1)) == datetime(2024, 1, 15)


def test_import_load_and_cost(workspace):
    assert invoke(workspace, "database", "init").exit_code == 0

    result = invoke(workspace, "import", "consumption", "--csv", str(workspace / "usage.csv"))
    assert result.exit_code == 0
    assert "Imported 48 readings" in result.output

    result = invoke(workspace, "tariff", "load")
    assert result.exit_code == 0

    result = invoke(workspace, "cost", "--date", "2024-01-15", "--interval", "daily", "--tariff", "T", "--json")
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["cost_pence"] == {"exc_vat": 525.0, "inc_vat": 630.0}
    assert data["period"]["label"] == "15 January 2024"
    assert data["tariff"] == "T"


def test_cost_with_manual_plan(workspace):
    invoke(workspace, "import", "consumption", "--csv", str(workspace / "usage.csv"))

    result = invoke(workspace, "cost", "--date", "2024-01-15", "--interval", "daily", "--manual")

    assert result.exit_code == 0, result.output
    assert "£2.52 inc VAT" in result.output


def test_manual_rates_are_not_shared_in_cache(workspace):
    """Pricing the same closed period at two unit rates gives two different costs."""
    invoke(workspace, "import", "consumption", "--csv", str(workspace / "usage.csv"))
    args = ["cost", "--date", "2024-01-15", "--interval", "daily", "--json"]

    cheap = invoke(workspace, *args, "--unit-rate", "10")
    dear = invoke(workspace, *args, "--unit-rate", "30")

    assert cheap.exit_code == 0, cheap.output
    assert dear.exit_code == 0, dear.output
    assert json.loads(cheap.output)["cost_pence"]["exc_vat"] == 240.0
    assert json.loads(dear.output)["cost_pence"]["exc_vat"] == 720.0
    assert json.loads(dear.output)["tariff"].startswith("MANUAL:30")


def test_cost_without_data_reports_error(workspace):
    result = invoke(workspace, "cost", "--date", "2024-01-15", "--interval", "daily", "--tariff", "T")

    assert result.exit_code == 1
    assert "No consumption data" in result.output


def test_invalid_billing_day_option(workspace):
    invoke(workspace, "import", "consumption", "--csv", str(workspace / "usage.csv"))

    result = invoke(workspace, "cost", "--interval", "monthly", "--billing-day", "40", "--tariff", "T")

    assert result.exit_code == 1
    assert "Billing day" in result.output


def test_periods_table(workspace):
    invoke(workspace, "import", "consumption", "--csv", str(workspace / "usage.csv"))

    result = invoke(workspace, "periods", "--date", "2024-01-16", "--interval", "daily", "--count", "3")

    assert result.exit_code == 0, result.output
    assert "15 January 2024" in result.output
    assert "complete" in result.output
