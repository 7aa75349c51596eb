from __future__ import annotations

import os
from dataclasses import dataclass, field

# NOTE:
# - Paths should be absolute on the user's machine.
# - You can override ANY value with environment variables if you prefer.
#
# Suggested env overrides:
#   BANKREC_AMOUNT_TOL         (float, default 0.01)
#   BANKREC_AMOUNT_MODE        (lenient/strict)
#   BANKREC_TEMPLATES_FILE
#   BANKREC_OUTPUT_DIR
#   BANKREC_TELEMETRY_ENABLED  (1/0)
#   BANKREC_TELEMETRY_URL
#   BANKREC_TIMEZONE           (default US/Eastern)
#   BANKREC_PORT               (default 8000)

_HOME = os.path.expanduser("~")


@dataclass(frozen=True)
class LedgerAColumns:
    """Header names of the internal cash-receipt journal export."""
    account: str = "Bank Account Description"
    batch_number: str = "Batch Number"
    amount: str = "Amount"
    batch_description: str = "Batch Description"
    posting_date: str = "Posting Date"

    @property
    def required(self) -> tuple:
        # A file is only treated as an internal ledger if these are present
        return (self.account, self.batch_number, self.amount)


@dataclass(frozen=True)
class ReconSettings:
    # Matching tolerance in currency units; a batch matches when abs(diff) < tol
    amount_tolerance: float = float(os.environ.get("BANKREC_AMOUNT_TOL", "0.01"))

    # "lenient" coerces bad amount cells to 0, "strict" rejects them
    amount_mode: str = os.environ.get("BANKREC_AMOUNT_MODE", "lenient")

    # Named column-mapping templates (JSON document)
    templates_file: str = os.environ.get(
        "BANKREC_TEMPLATES_FILE", os.path.join(_HOME, ".bankrec", "templates.json")
    )

    # Output folder for reconciliation workbooks (xlsx)
    output_dir: str = os.environ.get(
        "BANKREC_OUTPUT_DIR", os.path.join(_HOME, ".bankrec", "_output")
    )

    # Usage telemetry is off unless both flags are set
    telemetry_enabled: bool = os.environ.get("BANKREC_TELEMETRY_ENABLED", "0") == "1"
    telemetry_url: str = os.environ.get("BANKREC_TELEMETRY_URL", "")
    telemetry_timeout: float = float(os.environ.get("BANKREC_TELEMETRY_TIMEOUT", "2.0"))

    timezone: str = os.environ.get("BANKREC_TIMEZONE", "US/Eastern")
    port: int = int(os.environ.get("BANKREC_PORT", "8000"))

    ledger_a_columns: LedgerAColumns = field(default_factory=LedgerAColumns)


DEFAULT_SETTINGS = ReconSettings()
