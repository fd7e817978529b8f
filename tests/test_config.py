from pathlib import Path

import pytest
from tariffcalc.config import find_config_path, load_settings
from tariffcalc.errors import InvalidBillingDay


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def test_defaults(isolated):
    settings = load_settings({})
    assert settings.db_path is None
    assert settings.config_path is None
    assert settings.billing_day == 1
    assert settings.timeout_seconds is None
    assert settings.vat_rate == 0.05


def test_environment_values(isolated):
    settings = load_settings(
        {
            "TARIFFCALC_DB_PATH": "/tmp/tariffs.db",
            "TARIFFCALC_CONFIG": "/tmp/tariffs.yaml",
            "TARIFFCALC_BILLING_DAY": "15",
            "TARIFFCALC_TIMEOUT": "2.5",
            "TARIFFCALC_VAT_RATE": "0.2",
        }
    )
    assert settings.db_path == Path("/tmp/tariffs.db")
    assert settings.config_path == Path("/tmp/tariffs.yaml")
    assert settings.billing_day == 15
    assert settings.timeout_seconds == 2.5
    assert settings.vat_rate == 0.2


def test_invalid_billing_day(isolated):
    with pytest.raises(InvalidBillingDay):
        load_settings({"TARIFFCALC_BILLING_DAY": "32"})


def test_find_config_path_in_working_directory(isolated):
    assert find_config_path() is None
    config = isolated / "config" / "tariffs.yaml"
    config.parent.mkdir()
    config.write_text("tariffs: []\n")
    assert find_config_path() == config
    assert load_settings({}).config_path == config
