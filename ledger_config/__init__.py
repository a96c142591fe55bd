"""
ledger_config -- ledger settings and chart of accounts definitions.

Responsibility:
    Reads YAML configuration into frozen dataclasses.  ``load_settings()``
    and ``load_chart()`` are the only entrypoints; callers never read the
    YAML files themselves.

Architecture position:
    Configuration.  Sits beside ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``; ``LedgerAPI`` passes the settings values into kernel
    services as plain arguments.
"""

from ledger_config.loader import (
    DEFAULT_CHART_PATH,
    DEFAULT_SETTINGS_PATH,
    load_chart,
    load_settings,
)
from ledger_config.schema import ChartAccountDef, LedgerSettings

__all__ = [
    "ChartAccountDef",
    "DEFAULT_CHART_PATH",
    "DEFAULT_SETTINGS_PATH",
    "LedgerSettings",
    "load_chart",
    "load_settings",
]
