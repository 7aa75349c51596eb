from pathlib import Path

import pandas as pd
import pytest

from bankrec_backend.adapters import BankStatementAdapter, LedgerAAdapter, frame_to_rows
from bankrec_backend.models import LedgerFormatError

LEDGER_CSV = """Bank Account Description,Batch Number,Amount,Batch Description,Posting Date
Main,1,100.00,Deposit A,2025-01-15
Main,1,20.00,Deposit A,2025-01-15
,,,,
Payroll,2,55.25,Payroll dep,2025-01-16
"""


def write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


def test_ledger_adapter_reads_csv_and_drops_blank_accounts(tmp_path):
    path = write(tmp_path / "journal.csv", LEDGER_CSV)

    rows = LedgerAAdapter().parse(path)

    assert len(rows) == 3
    assert [r["Bank Account Description"] for r in rows] == ["Main", "Main", "Payroll"]
    assert rows[0]["Batch Number"] == 1
    assert isinstance(rows[0]["Batch Number"], int)
    assert rows[2]["Amount"] == pytest.approx(55.25)


def test_ledger_adapter_rejects_wrong_layout(tmp_path):
    path = write(tmp_path / "not_a_journal.csv", "Date,Amount\n2025-01-01,10\n")

    with pytest.raises(LedgerFormatError):
        LedgerAAdapter().parse(path)


def test_ledger_adapter_parse_files_skips_invalid(tmp_path, capsys):
    good = write(tmp_path / "journal.csv", LEDGER_CSV)
    bad = write(tmp_path / "bank.csv", "Date,Amount\n2025-01-01,10\n")

    rows = LedgerAAdapter().parse_files([good, bad])

    assert len(rows) == 3
    assert "[WARN]" in capsys.readouterr().out


def test_ledger_adapter_parse_files_skips_unreadable(tmp_path, capsys):
    good = write(tmp_path / "journal.csv", LEDGER_CSV)
    notes = write(tmp_path / "notes.txt", "not a journal")
    missing = tmp_path / "gone.csv"

    rows = LedgerAAdapter().parse_files([good, notes, missing])

    assert len(rows) == 3
    out = capsys.readouterr().out
    assert "[WARN] Skipping notes.txt" in out
    assert "[WARN] Skipping gone.csv" in out


def test_ledger_adapter_accepts_upload_bytes():
    rows = LedgerAAdapter().parse(("journal.csv", LEDGER_CSV.encode("utf-8")))
    assert len(rows) == 3


def test_bank_adapter_returns_columns_in_file_order(tmp_path):
    path = write(tmp_path / "statement.csv", "Posted,Account,Memo,Amount\n2025-01-16,ACC1,DEP,120\n2025-01-17,ACC1,,80.5\n")

    rows, columns = BankStatementAdapter().parse_with_columns(path)

    assert columns == ["Posted", "Account", "Memo", "Amount"]
    assert rows[0] == {"Posted": "2025-01-16", "Account": "ACC1", "Memo": "DEP", "Amount": 120}
    assert rows[1]["Memo"] is None
    assert rows[1]["Amount"] == pytest.approx(80.5)


def test_bank_adapter_reads_xlsx_first_sheet(tmp_path):
    path = tmp_path / "statement.xlsx"
    pd.DataFrame({"Account": [1001, 1001], "Amount": [10.0, 12.5], "Date": ["2025-01-01", "2025-01-02"]}).to_excel(
        path, index=False
    )

    rows = BankStatementAdapter().parse(path)

    assert len(rows) == 2
    assert rows[0]["Account"] == 1001
    assert rows[1]["Amount"] == pytest.approx(12.5)


def test_bank_adapter_latin1_fallback(tmp_path):
    path = tmp_path / "statement.csv"
    path.write_bytes("Account,Amount,Memo\nACC1,5,Caf\xe9\n".encode("latin-1"))

    rows = BankStatementAdapter().parse(path)

    assert rows[0]["Memo"] == "Caf\xe9"


def test_unsupported_extension(tmp_path):
    path = write(tmp_path / "statement.txt", "a,b\n1,2\n")
    with pytest.raises(ValueError):
        BankStatementAdapter().parse(path)


def test_frame_to_rows_converts_numpy_values():
    df = pd.DataFrame({"id": [1.0, None], "amount": [1.5, 2.0], "flag": [True, False]})

    rows = frame_to_rows(df)

    assert rows[0] == {"id": 1, "amount": 1.5, "flag": True}
    assert type(rows[0]["id"]) is int
    assert rows[1]["id"] is None
    assert rows[1]["amount"] == 2
