import pytest

from bankrec_backend.models import ColumnMapping


def ledger_row(account, batch, amount, description="", posting_date="2025-01-15"):
    return {
        "Bank Account Description": account,
        "Batch Number": batch,
        "Amount": amount,
        "Batch Description": description,
        "Posting Date": posting_date,
    }


def bank_row(acct, amount, date="2025-01-16", memo=""):
    return {"Acct": acct, "Amt": amount, "Txn Date": date, "Memo": memo}


@pytest.fixture
def mapping():
    return ColumnMapping(identifier="Acct", amount="Amt", date="Txn Date", description="Memo")


@pytest.fixture
def ledger_rows():
    return [
        ledger_row("Main", "1", 120.00, "Deposit 1"),
        ledger_row("Main", "2", 75.50, "Deposit 2"),
    ]


@pytest.fixture
def bank_rows():
    return [
        bank_row("ACC1", 120.00, memo="DEP 120"),
        bank_row("ACC1", 80.00, memo="DEP 80"),
    ]


@pytest.fixture
def account_mapping():
    return {"Main": "ACC1"}
