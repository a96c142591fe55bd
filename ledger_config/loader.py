"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads the ledger settings YAML and chart of accounts YAML files and parses
them into the frozen dataclasses of ``ledger_config.schema``.

Architecture position
---------------------
**Config layer**.  Has no dependency on the kernel; ``LedgerAPI`` and the
CLI consume its output.

Invariants enforced
-------------------
* Settings files only override: keys they omit come from the packaged
  ``defaults/ledger.yaml``.
* Unknown keys raise ``ValueError`` rather than being ignored, so a typo
  never silently falls back to a default.
* Relative ``chart_of_accounts`` paths resolve against the directory of
  the settings file that names them.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown or missing keys, wrong shapes  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import ChartAccountDef, LedgerSettings

DEFAULTS_DIR = Path(__file__).parent / "defaults"
DEFAULT_SETTINGS_PATH = DEFAULTS_DIR / "ledger.yaml"
DEFAULT_CHART_PATH = DEFAULTS_DIR / "chart_of_accounts.yaml"

_SETTINGS_KEYS = frozenset(f.name for f in fields(LedgerSettings))
_CHART_KEYS = frozenset(f.name for f in fields(ChartAccountDef))
_CHART_REQUIRED = frozenset({"code", "name", "account_type", "subtype"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _settings_dict(path: Path) -> dict[str, Any]:
    data = load_yaml_file(path)
    unknown = set(data) - _SETTINGS_KEYS
    if unknown:
        raise ValueError(f"{path}: unknown settings keys {sorted(unknown)}")
    chart = data.get("chart_of_accounts")
    if chart is not None:
        chart_path = Path(chart)
        if not chart_path.is_absolute():
            chart_path = path.parent / chart_path
        data["chart_of_accounts"] = chart_path
    return data


def load_settings(path: str | Path | None = None) -> LedgerSettings:
    """
    Load ledger settings.

    Args:
        path: Settings YAML overriding the packaged defaults.  None loads
            the defaults alone.

    Returns:
        Frozen LedgerSettings.
    """
    merged = _settings_dict(DEFAULT_SETTINGS_PATH)
    if path is not None:
        merged.update(_settings_dict(Path(path)))

    for key in ("entry_number_width", "default_page_size", "max_page_size"):
        merged[key] = int(merged[key])
    for key in ("database_url", "entry_number_prefix", "retained_earnings_account_code", "log_level"):
        merged[key] = str(merged[key])
    merged["log_level"] = merged["log_level"].upper()

    return LedgerSettings(**merged)


def parse_chart_account(data: dict[str, Any]) -> ChartAccountDef:
    """Parse one chart entry."""
    if not isinstance(data, dict):
        raise ValueError(f"Chart entry must be a mapping, got {data!r}")
    unknown = set(data) - _CHART_KEYS
    if unknown:
        raise ValueError(f"Chart entry {data.get('code')!r}: unknown keys {sorted(unknown)}")
    missing = _CHART_REQUIRED - set(data)
    if missing:
        raise ValueError(f"Chart entry {data.get('code')!r}: missing keys {sorted(missing)}")

    return ChartAccountDef(
        code=str(data["code"]),
        name=str(data["name"]),
        account_type=str(data["account_type"]),
        subtype=str(data["subtype"]),
        parent_code=str(data["parent_code"]) if data.get("parent_code") is not None else None,
        name_local=data.get("name_local"),
        description=data.get("description"),
        is_system=bool(data.get("is_system", False)),
        opening_balance=Decimal(str(data.get("opening_balance", "0.00"))),
    )


def load_chart(path: str | Path | None = None) -> tuple[ChartAccountDef, ...]:
    """
    Load a chart of accounts YAML (the packaged default when path is None).

    The file holds an ``accounts`` list; parents must precede children.
    """
    data = load_yaml_file(Path(path) if path is not None else DEFAULT_CHART_PATH)
    accounts = data.get("accounts")
    if not isinstance(accounts, list):
        raise ValueError("Chart of accounts file needs an 'accounts' list")

    chart = tuple(parse_chart_account(entry) for entry in accounts)
    codes = [a.code for a in chart]
    duplicates = sorted({c for c in codes if codes.count(c) > 1})
    if duplicates:
        raise ValueError(f"Duplicate account codes in chart: {duplicates}")
    return chart
