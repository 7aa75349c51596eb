import io

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from bankrec_backend import api_app
from bankrec_backend.templates import MemoryStore, TemplateRepository

LEDGER_CSV = """Bank Account Description,Batch Number,Amount,Batch Description,Posting Date
Main,1,120.00,Deposit 1,2025-01-15
Main,2,75.50,Deposit 2,2025-01-15
Payroll,3,10.00,Payroll,2025-01-15
"""

BANK_CSV = """Acct,Amt,Txn Date,Memo
ACC1,120.00,2025-01-16,DEP 120
ACC1,80.00,2025-01-16,DEP 80
ACC2,10.00,2025-01-16,PAY
"""

MAPPING = {"identifier": "Acct", "amount": "Amt", "date": "Txn Date", "description": "Memo"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(api_app, "_templates", TemplateRepository(MemoryStore()))
    monkeypatch.setattr(api_app, "_downloads", {})
    return TestClient(api_app.app)


def reconcile_body(ledger_rows, bank_rows, **overrides):
    body = {
        "ledger_a_rows": ledger_rows,
        "bank_rows": bank_rows,
        "account": "Main",
        "column_mapping": MAPPING,
        "account_mapping": {"Main": "ACC1"},
    }
    body.update(overrides)
    return body


def test_health(client):
    assert client.get("/health").json() == {"ok": True, "status": "running"}


def test_parse_ledger_a_lists_accounts(client):
    resp = client.post(
        "/ledger-a/parse",
        files=[
            ("files", ("journal.csv", LEDGER_CSV, "text/csv")),
            ("files", ("other.csv", "Date,Amount\n2025-01-01,1\n", "text/csv")),
        ],
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 3
    assert data["accounts"] == ["Main", "Payroll"]
    assert data["skipped_files"] == ["other.csv"]


def test_parse_ledger_a_rejects_only_invalid_files(client):
    resp = client.post("/ledger-a/parse", files=[("files", ("bank.csv", BANK_CSV, "text/csv"))])
    assert resp.status_code == 400


def test_parse_bank(client):
    resp = client.post(
        "/bank/parse",
        params={"identifier_column": "Acct"},
        files={"file": ("statement.csv", BANK_CSV, "text/csv")},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["columns"] == ["Acct", "Amt", "Txn Date", "Memo"]
    assert data["count"] == 3
    assert data["identifiers"] == ["ACC1", "ACC2"]


def test_reconcile_end_to_end(client):
    ledger = client.post("/ledger-a/parse", files=[("files", ("journal.csv", LEDGER_CSV, "text/csv"))]).json()["rows"]
    bank = client.post("/bank/parse", files={"file": ("statement.csv", BANK_CSV, "text/csv")}).json()["rows"]

    resp = client.post("/reconcile", json=reconcile_body(ledger, bank))

    assert resp.status_code == 200
    data = resp.json()
    assert data["batch_total"] == pytest.approx(195.5)
    assert data["bank_total"] == pytest.approx(200.0)
    assert data["difference"] == pytest.approx(-4.5)
    assert data["status"] == "DISCREPANCY"
    assert data["counts"]["matches"] == 1
    assert data["unmatched_batches"][0]["batch_number"] == 2
    assert data["unmatched_bank"][0]["amount"] == pytest.approx(80.0)

    download = client.get(f"/download/{data['download_token']}")
    assert download.status_code == 200
    wb = load_workbook(io.BytesIO(download.content))
    assert wb.sheetnames[0] == "Summary"


def test_reconcile_missing_role_is_400(client):
    body = reconcile_body([], [], column_mapping={"identifier": "Acct", "amount": "Amt"})
    resp = client.post("/reconcile", json=body)

    assert resp.status_code == 400
    assert "date" in resp.json()["detail"]


def test_reconcile_missing_account_mapping_is_400(client):
    resp = client.post("/reconcile", json=reconcile_body([], [], account_mapping={}))
    assert resp.status_code == 400


def test_reconcile_strict_rejects_bad_amount(client):
    ledger = [{"Bank Account Description": "Main", "Batch Number": 1, "Amount": "oops"}]
    resp = client.post("/reconcile", json=reconcile_body(ledger, [], strict=True))
    assert resp.status_code == 400


def test_unknown_download_token(client):
    assert client.get("/download/nope").status_code == 404


def test_template_crud(client):
    resp = client.put("/templates/Chase", json={"column_mapping": MAPPING, "account_mapping": {"Main": "ACC1"}})
    assert resp.status_code == 200
    assert resp.json()["name"] == "Chase"

    listed = client.get("/templates").json()
    assert listed["count"] == 1
    assert listed["templates"][0]["column_mapping"]["identifier"] == "Acct"

    assert client.get("/templates/Chase").json()["account_mapping"] == {"Main": "ACC1"}

    assert client.delete("/templates/Chase").json() == {"deleted": True, "name": "Chase"}
    assert client.get("/templates/Chase").status_code == 404
    assert client.delete("/templates/Chase").status_code == 404


def test_template_requires_bound_roles(client):
    resp = client.put("/templates/Bad", json={"column_mapping": {"identifier": "Acct"}})
    assert resp.status_code == 400


def test_reconcile_with_template(client):
    client.put("/templates/Chase", json={"column_mapping": MAPPING, "account_mapping": {"Main": "ACC1"}})
    ledger = [{"Bank Account Description": "Main", "Batch Number": 1, "Amount": 120.0}]
    bank = [{"Acct": "ACC1", "Amt": 120.0, "Txn Date": "2025-01-16"}]

    body = {"ledger_a_rows": ledger, "bank_rows": bank, "account": "Main", "template_name": "Chase"}
    resp = client.post("/reconcile", json=body)

    assert resp.status_code == 200
    data = resp.json()
    assert data["template_name"] == "Chase"
    assert data["status"] == "MATCHED"


def test_reconcile_unknown_template_is_404(client):
    body = {"ledger_a_rows": [], "bank_rows": [], "account": "Main", "template_name": "nope"}
    assert client.post("/reconcile", json=body).status_code == 404


def test_reconcile_sends_telemetry(client, monkeypatch):
    events = []
    monkeypatch.setattr(api_app, "send_run_event", lambda event, settings: events.append(event))

    client.post("/reconcile", json=reconcile_body([], []))
    client.post("/reconcile", json=reconcile_body([], [], account_mapping={}))

    assert [e["status"] for e in events] == ["success", "failure"]


def test_reconcile_accepts_numeric_bank_id(client):
    ledger = [{"Bank Account Description": "Main", "Batch Number": 1, "Amount": 50.0}]
    bank = [{"Acct": 1002, "Amt": 50.0, "Txn Date": "2025-01-16"}]

    resp = client.post("/reconcile", json=reconcile_body(ledger, bank, account_mapping={"Main": 1002}))

    assert resp.status_code == 200
    data = resp.json()
    assert data["bank_identifier"] == "1002"
    assert data["status"] == "MATCHED"


def test_template_numeric_bank_id_is_stored_as_text(client):
    client.put("/templates/Chase", json={"column_mapping": MAPPING, "account_mapping": {"Main": 1002}})
    assert client.get("/templates/Chase").json()["account_mapping"] == {"Main": "1002"}


def test_download_store_is_capped(client, monkeypatch):
    monkeypatch.setattr(api_app, "MAX_DOWNLOADS", 2)

    tokens = [client.post("/reconcile", json=reconcile_body([], [])).json()["download_token"] for _ in range(3)]

    assert list(api_app._downloads) == tokens[1:]
    assert client.get(f"/download/{tokens[0]}").status_code == 404
    assert client.get(f"/download/{tokens[2]}").status_code == 200


def test_failed_run_telemetry_runs_after_response(client, monkeypatch):
    events = []
    monkeypatch.setattr(api_app, "send_run_event", lambda event, settings: events.append(event))

    resp = client.post("/reconcile", json=reconcile_body([], [], account_mapping={}))

    assert resp.status_code == 400
    assert "No bank identifier" in resp.json()["detail"]
    assert [e["error"] for e in events] == [resp.json()["detail"]]
