"""
Output Formatting

Generates the reconciliation workbook:
- Summary sheet with totals, difference and MATCHED/DISCREPANCY status
- Matches: each batch alongside the bank transaction it consumed
- Batches Without Bank Match
- Bank Without Batch Match
"""
from __future__ import annotations

import io
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import pytz
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .models import ReconciliationResult, ReconStatus
from .settings import DEFAULT_SETTINGS


# =============================================================================
# Style Constants
# =============================================================================

HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF")

GREEN_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
RED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")

THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)

CURRENCY_FORMAT = '_("$"* #,##0.00_);_("$"* (#,##0.00);_("$"* "-"??_);_(@_)'

SUMMARY_SHEET = "Summary"
MATCHES_SHEET = "Matches"
UNMATCHED_BATCHES_SHEET = "Batches Without Bank Match"
UNMATCHED_BANK_SHEET = "Bank Without Batch Match"

MATCH_COLUMNS = [
    "Batch Number", "Batch Description", "Posting Date", "Batch Amount",
    "Bank Identifier", "Bank Date", "Bank Description", "Bank Amount",
]
BATCH_COLUMNS = ["Batch Number", "Batch Description", "Posting Date", "Transactions", "Batch Amount"]
BANK_COLUMNS = ["Bank Identifier", "Bank Date", "Bank Description", "Bank Amount"]
CURRENCY_COLUMNS = {"Batch Amount", "Bank Amount"}


def now_local(tz_name: Optional[str] = None) -> datetime:
    tz = pytz.timezone(tz_name or DEFAULT_SETTINGS.timezone)
    return datetime.now(tz)


def export_filename(account: str, when: Optional[datetime] = None) -> str:
    when = when or now_local()
    safe = re.sub(r"[^a-zA-Z0-9]", "_", account)
    stamp = when.strftime("%Y-%m-%dT%H-%M-%S")
    return f"Bank_Reconciliation_{safe}_{stamp}.xlsx"


# =============================================================================
# Tabular views
# =============================================================================

def result_frames(result: ReconciliationResult) -> Dict[str, pd.DataFrame]:
    """The three detail sheets as DataFrames, keyed by sheet name."""
    match_rows: List[Dict[str, Any]] = []
    for m in result.matches:
        b, t = m.batch, m.bank_transaction
        match_rows.append({
            "Batch Number": b.batch_number,
            "Batch Description": b.description,
            "Posting Date": b.posting_date,
            "Batch Amount": b.total_amount,
            "Bank Identifier": t.identifier,
            "Bank Date": t.date,
            "Bank Description": t.description,
            "Bank Amount": t.amount,
        })

    batch_rows = [{
        "Batch Number": b.batch_number,
        "Batch Description": b.description,
        "Posting Date": b.posting_date,
        "Transactions": b.transaction_count,
        "Batch Amount": b.total_amount,
    } for b in result.unmatched_batches]

    bank_rows = [{
        "Bank Identifier": t.identifier,
        "Bank Date": t.date,
        "Bank Description": t.description,
        "Bank Amount": t.amount,
    } for t in result.unmatched_bank]

    return {
        MATCHES_SHEET: pd.DataFrame(match_rows, columns=MATCH_COLUMNS),
        UNMATCHED_BATCHES_SHEET: pd.DataFrame(batch_rows, columns=BATCH_COLUMNS),
        UNMATCHED_BANK_SHEET: pd.DataFrame(bank_rows, columns=BANK_COLUMNS),
    }


# =============================================================================
# Main Output Function
# =============================================================================

def write_recon_xlsx(
    output: Union[io.BytesIO, Path, str],
    result: ReconciliationResult,
    generated_at: Optional[datetime] = None,
) -> None:
    """
    Write a reconciliation result to Excel.

    Sheets:
    - Summary
    - Matches
    - Batches Without Bank Match
    - Bank Without Batch Match
    """
    wb = Workbook()
    wb.remove(wb.active)

    _create_summary_sheet(wb, result, generated_at or now_local())
    for sheet_name, df in result_frames(result).items():
        _create_table_sheet(wb, sheet_name, df)

    if isinstance(output, io.BytesIO):
        wb.save(output)
        output.seek(0)
    else:
        wb.save(str(output))


def recon_xlsx_bytes(result: ReconciliationResult, generated_at: Optional[datetime] = None) -> bytes:
    bio = io.BytesIO()
    write_recon_xlsx(bio, result, generated_at)
    return bio.getvalue()


# =============================================================================
# Summary Sheet
# =============================================================================

def _create_summary_sheet(wb: Workbook, result: ReconciliationResult, generated_at: datetime):
    ws = wb.create_sheet(SUMMARY_SHEET)

    ws["A1"] = "Bank Reconciliation Report"
    ws["A1"].font = Font(bold=True, size=14)
    ws["A2"] = "Generated on:"
    ws["B2"] = generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()

    ws["A4"] = "Bank Reconciliation Summary"
    ws["A4"].font = Font(bold=True)
    ws["A5"] = "Bank Account:"
    ws["B5"] = result.account
    ws["A6"] = "Bank Identifier:"
    ws["B6"] = result.bank_identifier
    ws["A7"] = "Mapping Template:"
    ws["B7"] = result.template_name or ""

    ws["A9"] = "Financial Summary"
    ws["A9"].font = Font(bold=True)
    row = 10
    for label, amount in [
        ("Batch Total:", result.batch_total),
        ("Bank Total:", result.bank_total),
        ("Difference:", result.difference),
    ]:
        ws[f"A{row}"] = label
        ws[f"B{row}"] = round(amount, 2)
        ws[f"B{row}"].number_format = CURRENCY_FORMAT
        row += 1

    ws[f"A{row}"] = "Status:"
    ws[f"B{row}"] = result.status.value
    ws[f"B{row}"].fill = GREEN_FILL if result.status == ReconStatus.MATCHED else RED_FILL
    ws[f"B{row}"].alignment = Alignment(horizontal="center")

    row += 2
    ws[f"A{row}"] = "Counts"
    ws[f"A{row}"].font = Font(bold=True)
    row += 1
    for label, value in [
        ("Batches:", result.batch_count),
        ("Bank Transactions:", result.bank_count),
        ("Matches:", result.total_matches),
        ("Batches Without Bank Match:", len(result.unmatched_batches)),
        ("Bank Without Batch Match:", len(result.unmatched_bank)),
    ]:
        ws[f"A{row}"] = label
        ws[f"B{row}"] = value
        row += 1

    _auto_width(ws)


# =============================================================================
# Detail Sheets
# =============================================================================

def _create_table_sheet(wb: Workbook, title: str, df: pd.DataFrame):
    ws = wb.create_sheet(title)

    headers = list(df.columns)
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER

    row = 2
    if df.empty:
        ws.cell(row=row, column=1, value="None")
    for record in df.to_dict(orient="records"):
        for col, header in enumerate(headers, 1):
            value = record[header]
            if value is not None and pd.isna(value):
                value = None
            cell = ws.cell(row=row, column=col, value=value)
            cell.border = THIN_BORDER
            if header in CURRENCY_COLUMNS:
                cell.number_format = CURRENCY_FORMAT
        row += 1

    _auto_width(ws)


# =============================================================================
# Helpers
# =============================================================================

def _auto_width(ws):
    """Auto-adjust column widths"""
    for column in ws.columns:
        max_length = 0
        column_letter = get_column_letter(column[0].column)

        for cell in column:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))

        ws.column_dimensions[column_letter].width = min(max_length + 2, 50)
