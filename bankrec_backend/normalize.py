"""
Row Normalizer

Turns heterogeneous rows (bank statements with arbitrary headers, journal
exports with known headers) into typed records. Lookups never raise: an
unbound role, a missing column and an empty cell all come back as None.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Optional

import pandas as pd

from .models import (
    AmountParseMode,
    BankTransaction,
    ColumnMapping,
    ColumnRole,
    InvalidAmountError,
    LedgerARecord,
)
from .settings import LedgerAColumns


def is_absent(value: Any) -> bool:
    """None, NaN/NaT and whitespace-only strings count as no value."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if pd.api.types.is_scalar(value):
        try:
            return bool(pd.isna(value))
        except (TypeError, ValueError):
            return False
    return False


def get_field(row: Dict[str, Any], mapping: ColumnMapping, role: ColumnRole) -> Optional[Any]:
    column = mapping.column_for(role)
    if not column:
        return None
    value = row.get(column)
    if is_absent(value):
        return None
    return value


def parse_amount(value: Any, mode: AmountParseMode = AmountParseMode.LENIENT) -> float:
    """
    Parse amount from various formats.

    Handles plain numbers, thousands separators, a leading currency sign and
    accounting-style parentheses for negatives. In lenient mode anything
    unparsable (including an empty cell) becomes 0.0.
    """
    mode = AmountParseMode(mode)
    parsed = _try_parse_amount(value)
    if parsed is None:
        if mode == AmountParseMode.STRICT:
            raise InvalidAmountError(f"Invalid amount: {value!r}")
        return 0.0
    return parsed


def _try_parse_amount(value: Any) -> Optional[float]:
    if is_absent(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return f if math.isfinite(f) else None
    s = str(value).strip().replace(",", "").replace("$", "")
    if s.startswith("(") and s.endswith(")"):
        s = "-" + s[1:-1]
    try:
        f = float(s)
    except ValueError:
        return None
    return f if math.isfinite(f) else None


def identifier_key(value: Any) -> Optional[str]:
    """
    String form used to compare account identifiers.

    Plain string-cast equality: "5" and "05" stay different. Integral floats
    render without a trailing ".0" so 5.0 read from a spreadsheet equals "5".
    """
    if is_absent(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def batch_key(value: Any) -> str:
    """Batches are grouped by the string form of their number (1 and "1" are one batch)."""
    key = identifier_key(value)
    return "" if key is None else key


# =============================================================================
# Record builders
# =============================================================================

def to_bank_transaction(
    row: Dict[str, Any],
    mapping: ColumnMapping,
    mode: AmountParseMode = AmountParseMode.LENIENT,
) -> BankTransaction:
    description = get_field(row, mapping, ColumnRole.DESCRIPTION)
    return BankTransaction(
        identifier=identifier_key(get_field(row, mapping, ColumnRole.IDENTIFIER)),
        amount=parse_amount(get_field(row, mapping, ColumnRole.AMOUNT), mode),
        date=get_field(row, mapping, ColumnRole.DATE),
        description="" if description is None else str(description),
        row=dict(row),
    )


def to_ledger_a_record(
    row: Dict[str, Any],
    columns: LedgerAColumns,
    mode: AmountParseMode = AmountParseMode.LENIENT,
) -> LedgerARecord:
    account = row.get(columns.account)
    description = row.get(columns.batch_description)
    posting_date = row.get(columns.posting_date)
    return LedgerARecord(
        account="" if is_absent(account) else str(account),
        batch_number=row.get(columns.batch_number),
        amount=parse_amount(row.get(columns.amount), mode),
        batch_description="" if is_absent(description) else str(description),
        posting_date=None if is_absent(posting_date) else posting_date,
        raw=dict(row),
    )
