"""
Configuration loader tests.

Verifies:
- The packaged defaults load on their own
- A settings file overrides only the keys it names
- Unknown keys and bad values are refused
- Relative chart paths resolve against the settings file
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from ledger_config import (
    DEFAULT_CHART_PATH,
    LedgerSettings,
    load_chart,
    load_settings,
)


def write_yaml(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()

        assert settings.database_url.startswith("sqlite:///")
        assert settings.entry_number_prefix == "JE"
        assert settings.entry_number_width == 6
        assert settings.retained_earnings_account_code == "3100"
        assert settings.log_level == "INFO"
        assert settings.chart_of_accounts == DEFAULT_CHART_PATH

    def test_override_merges_with_defaults(self, tmp_path):
        path = write_yaml(
            tmp_path / "ledger.yaml",
            {"database_url": "sqlite:///shop.db", "entry_number_prefix": "POS", "log_level": "debug"},
        )

        settings = load_settings(path)

        assert settings.database_url == "sqlite:///shop.db"
        assert settings.entry_number_prefix == "POS"
        assert settings.log_level == "DEBUG"
        assert settings.entry_number_width == 6

    def test_unknown_key_rejected(self, tmp_path):
        path = write_yaml(tmp_path / "ledger.yaml", {"entry_prefix": "POS"})

        with pytest.raises(ValueError, match="entry_prefix"):
            load_settings(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_settings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_relative_chart_path(self, tmp_path):
        (tmp_path / "charts").mkdir()
        path = write_yaml(tmp_path / "ledger.yaml", {"chart_of_accounts": "charts/shop.yaml"})

        settings = load_settings(path)

        assert settings.chart_of_accounts == tmp_path / "charts" / "shop.yaml"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"entry_number_prefix": ""},
            {"entry_number_width": 0},
            {"default_page_size": 0},
            {"default_page_size": 50, "max_page_size": 10},
        ],
    )
    def test_settings_validation(self, kwargs):
        with pytest.raises(ValueError):
            LedgerSettings(database_url="sqlite://", **kwargs)


class TestLoadChart:
    def test_packaged_chart(self):
        chart = load_chart()
        codes = [a.code for a in chart]

        assert len(chart) == 19
        assert codes == sorted(codes)
        system = {a.code for a in chart if a.is_system}
        assert {"1000", "3100", "4000", "5000"} <= system

    def test_custom_chart(self, tmp_path):
        path = write_yaml(
            tmp_path / "chart.yaml",
            {
                "accounts": [
                    {"code": "1000", "name": "Cash", "account_type": "asset", "subtype": "cash",
                     "opening_balance": "25.50"},
                    {"code": 1001, "name": "Till", "account_type": "asset", "subtype": "cash",
                     "parent_code": 1000},
                ]
            },
        )

        cash, till = load_chart(path)

        assert cash.opening_balance == Decimal("25.50")
        assert till.code == "1001"
        assert till.parent_code == "1000"
        assert not till.is_system

    def test_duplicate_codes_rejected(self, tmp_path):
        entry = {"code": "1000", "name": "Cash", "account_type": "asset", "subtype": "cash"}
        path = write_yaml(tmp_path / "chart.yaml", {"accounts": [entry, entry]})

        with pytest.raises(ValueError, match="Duplicate"):
            load_chart(path)

    def test_missing_key_rejected(self, tmp_path):
        path = write_yaml(
            tmp_path / "chart.yaml",
            {"accounts": [{"code": "1000", "name": "Cash", "account_type": "asset"}]},
        )

        with pytest.raises(ValueError, match="subtype"):
            load_chart(path)

    def test_accounts_list_required(self, tmp_path):
        path = write_yaml(tmp_path / "chart.yaml", {"chart": []})

        with pytest.raises(ValueError):
            load_chart(path)
