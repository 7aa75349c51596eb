"""
Source Adapters

Each adapter reads an exported file into plain row dicts the engine can consume.
Rows keep their original column names; values are converted to native Python
types (NaN -> None, numpy scalars -> int/float/str) so results stay serializable.

Supported sources:
- Internal ledger (cash-receipt journal export, known headers)
- Bank statement (any layout, resolved later through a ColumnMapping)
"""
from __future__ import annotations

import io
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .models import LedgerFormatError
from .normalize import is_absent
from .settings import DEFAULT_SETTINGS, LedgerAColumns

Row = Dict[str, Any]
Source = Union[str, Path, Tuple[str, bytes]]

SUPPORTED_SUFFIXES = [".csv", ".xlsx", ".xls"]


def _source_name(source: Source) -> str:
    return Path(source[0] if isinstance(source, tuple) else source).name


def _to_native(value: Any) -> Any:
    """Convert numpy/pandas cell values to plain Python values"""
    if is_absent(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        # Match how spreadsheet tools render whole numbers (batch/account ids)
        return int(value)
    return value


def frame_to_rows(df: pd.DataFrame) -> List[Row]:
    rows: List[Row] = []
    for record in df.to_dict(orient="records"):
        row = {str(k): _to_native(v) for k, v in record.items()}
        if all(v is None for v in row.values()):
            continue
        rows.append(row)
    return rows


# =============================================================================
# Base Adapter
# =============================================================================

class BaseAdapter(ABC):
    """Base class for all file adapters"""

    def can_handle(self, name: str) -> bool:
        """Check if this adapter can read the given file"""
        return Path(name).suffix.lower() in SUPPORTED_SUFFIXES

    @abstractmethod
    def parse(self, source: Source) -> List[Row]:
        """Parse file and return rows"""

    def _read_file(self, source: Source) -> Tuple[str, pd.DataFrame]:
        """Read a path or an (filename, bytes) upload into a DataFrame"""
        if isinstance(source, tuple):
            name, data = source
        else:
            name, data = str(source), None

        ext = Path(name).suffix.lower()
        if ext not in SUPPORTED_SUFFIXES:
            raise ValueError(f"Unsupported file type: {ext or name}")

        try:
            if ext in [".xlsx", ".xls"]:
                # First sheet only
                target = io.BytesIO(data) if data is not None else name
                return name, pd.read_excel(target, sheet_name=0)
            for encoding in ["utf-8", "latin-1", "cp1252"]:
                try:
                    target = io.BytesIO(data) if data is not None else name
                    return name, pd.read_csv(target, encoding=encoding, skip_blank_lines=True)
                except UnicodeDecodeError:
                    continue
            target = io.BytesIO(data) if data is not None else name
            return name, pd.read_csv(target, encoding="utf-8", encoding_errors="ignore")
        except pd.errors.EmptyDataError:
            print(f"[WARN] Empty file: {name}")
            return name, pd.DataFrame()


# =============================================================================
# Internal Ledger Adapter
# =============================================================================

class LedgerAAdapter(BaseAdapter):
    """
    Adapter for the internal cash-receipt journal.

    Requires the account, batch-number and amount columns; rows without an
    account description are dropped (subtotal and footer lines).
    """

    def __init__(self, columns: Optional[LedgerAColumns] = None):
        self.columns = columns or DEFAULT_SETTINGS.ledger_a_columns

    def parse(self, source: Source) -> List[Row]:
        name, df = self._read_file(source)
        missing = [c for c in self.columns.required if c not in df.columns]
        if missing:
            raise LedgerFormatError(
                f"File '{Path(name).name}' doesn't appear to be a valid cash receipt journal "
                f"(missing columns: {', '.join(missing)})"
            )
        rows = [r for r in frame_to_rows(df) if not is_absent(r.get(self.columns.account))]
        print(f"[FILE] {Path(name).name}: {len(rows)} ledger rows")
        return rows

    def parse_files(self, sources: Sequence[Source]) -> List[Row]:
        """Parse several exports and concatenate; invalid files are skipped"""
        all_rows: List[Row] = []
        for source in sources:
            try:
                all_rows.extend(self.parse(source))
            except (ValueError, OSError) as e:
                print(f"[WARN] Skipping {_source_name(source)}: {e}")
        print(f"[DATA] Total ledger rows: {len(all_rows)}")
        return all_rows


# =============================================================================
# Bank Statement Adapter
# =============================================================================

class BankStatementAdapter(BaseAdapter):
    """Adapter for bank statements with an arbitrary column layout"""

    def parse(self, source: Source) -> List[Row]:
        return self.parse_with_columns(source)[0]

    def parse_with_columns(self, source: Source) -> Tuple[List[Row], List[str]]:
        name, df = self._read_file(source)
        columns = [str(c) for c in df.columns]
        rows = frame_to_rows(df)
        print(f"[FILE] {Path(name).name}: {len(rows)} bank rows, columns={columns[:15]}")
        return rows, columns
