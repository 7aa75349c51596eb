from __future__ import annotations

import io
import uuid
from typing import Any, Dict, List, Optional, Tuple, Union

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from .adapters import BankStatementAdapter, LedgerAAdapter
from .engine import list_accounts, list_identifiers, reconcile
from .models import (
    AmountParseMode,
    ColumnMapping,
    ConfigurationError,
    InvalidAmountError,
    TemplateNotFoundError,
)
from .outputs import export_filename, recon_xlsx_bytes
from .settings import DEFAULT_SETTINGS, ReconSettings
from .telemetry import build_run_event, send_run_event
from .templates import JsonFileStore, MappingTemplate, TemplateRepository


app = FastAPI(title="Bank Reconciliation API", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_settings: ReconSettings = DEFAULT_SETTINGS

_templates = TemplateRepository(JsonFileStore(_settings.templates_file))

# In-memory token store for downloads: token -> (filename, xlsx bytes), oldest first
_downloads: Dict[str, Tuple[str, bytes]] = {}
MAX_DOWNLOADS = 50

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ============================================================================
# Request Models
# ============================================================================

class ColumnMappingModel(BaseModel):
    identifier: Optional[str] = None
    amount: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None

    def to_mapping(self) -> ColumnMapping:
        return ColumnMapping(
            identifier=self.identifier or None,
            amount=self.amount or None,
            date=self.date or None,
            description=self.description or None,
        )


class ReconcileRequest(BaseModel):
    ledger_a_rows: List[Dict[str, Any]]
    bank_rows: List[Dict[str, Any]]
    account: str
    column_mapping: Optional[ColumnMappingModel] = None
    account_mapping: Dict[str, Union[str, int]] = {}
    template_name: Optional[str] = None
    tolerance: Optional[float] = None
    strict: bool = False


class TemplateBody(BaseModel):
    column_mapping: ColumnMappingModel
    account_mapping: Dict[str, Union[str, int]] = {}


# ============================================================================
# Helper Functions
# ============================================================================

def _not_found(e: TemplateNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


async def _read_upload(upload: UploadFile) -> Tuple[str, bytes]:
    return upload.filename or "upload.csv", await upload.read()


def _resolve_inputs(req: ReconcileRequest) -> Tuple[ColumnMapping, Dict[str, Any]]:
    """Request values win over the named template's stored values."""
    mapping = req.column_mapping.to_mapping() if req.column_mapping else None
    account_mapping: Dict[str, Union[str, int]] = {}

    if req.template_name:
        template = _templates.get(req.template_name)
        account_mapping.update(template.account_mapping)
        if mapping is None:
            mapping = template.column_mapping

    account_mapping.update(req.account_mapping)
    return mapping or ColumnMapping(), account_mapping


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health")
def health():
    """Simple health check endpoint"""
    return {"ok": True, "status": "running"}


@app.post("/ledger-a/parse")
async def parse_ledger_a(files: List[UploadFile] = File(...)):
    """Parse one or more cash-receipt journal exports."""
    adapter = LedgerAAdapter(_settings.ledger_a_columns)
    rows: List[Dict[str, Any]] = []
    skipped: List[str] = []
    for upload in files:
        source = await _read_upload(upload)
        try:
            rows.extend(adapter.parse(source))
        except ValueError as e:
            print(f"[WARN] {e}")
            skipped.append(source[0])

    if not rows:
        raise HTTPException(status_code=400, detail="No valid cash receipt journal rows found")

    return {
        "rows": rows,
        "count": len(rows),
        "accounts": list_accounts(rows, _settings.ledger_a_columns),
        "skipped_files": skipped,
    }


@app.post("/bank/parse")
async def parse_bank(file: UploadFile = File(...), identifier_column: Optional[str] = None):
    """Parse a bank statement; optionally list identifiers for a chosen column."""
    source = await _read_upload(file)
    try:
        rows, columns = BankStatementAdapter().parse_with_columns(source)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not rows:
        raise HTTPException(status_code=400, detail="Bank file has no rows")

    identifiers = list_identifiers(rows, ColumnMapping(identifier=identifier_column)) if identifier_column else []
    return {"rows": rows, "columns": columns, "count": len(rows), "identifiers": identifiers}


@app.post("/reconcile")
def reconcile_endpoint(req: ReconcileRequest, background_tasks: BackgroundTasks):
    """Run one reconciliation and stash the workbook for download."""
    try:
        mapping, account_mapping = _resolve_inputs(req)
        result = reconcile(
            req.ledger_a_rows,
            req.bank_rows,
            mapping,
            account_mapping,
            req.account,
            tolerance=req.tolerance if req.tolerance is not None else _settings.amount_tolerance,
            amount_mode=AmountParseMode.STRICT if req.strict else AmountParseMode(_settings.amount_mode),
            columns=_settings.ledger_a_columns,
            template_name=req.template_name,
        )
    except TemplateNotFoundError as e:
        raise _not_found(e)
    except (ConfigurationError, InvalidAmountError) as e:
        event = build_run_event(req.account, template_name=req.template_name, success=False, error=str(e))
        background_tasks.add_task(send_run_event, event, _settings)
        return JSONResponse(status_code=400, content={"detail": str(e)}, background=background_tasks)

    background_tasks.add_task(send_run_event, build_run_event(req.account, result), _settings)

    data = recon_xlsx_bytes(result)
    filename = export_filename(result.account)
    token = uuid.uuid4().hex
    _downloads[token] = (filename, data)
    while len(_downloads) > MAX_DOWNLOADS:
        _downloads.pop(next(iter(_downloads)))
    print(f"[OK] Reconciled {result.account} -> {result.bank_identifier}: "
          f"{result.total_matches} matches, difference={result.difference:,.2f}")

    payload = result.to_dict()
    payload["download_token"] = token
    payload["filename"] = filename
    return payload


@app.get("/download/{token}")
def download(token: str):
    """Download reconciliation Excel file by token"""
    if token not in _downloads:
        raise HTTPException(status_code=404, detail="Unknown token")
    filename, data = _downloads[token]
    return StreamingResponse(
        io.BytesIO(data),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ============================================================================
# Template Endpoints
# ============================================================================

@app.get("/templates")
def list_templates():
    templates = _templates.list()
    return {"templates": [t.to_dict() for t in templates], "count": len(templates)}


@app.get("/templates/{name}")
def get_template(name: str):
    try:
        return _templates.get(name).to_dict()
    except TemplateNotFoundError as e:
        raise _not_found(e)


@app.put("/templates/{name}")
def save_template(name: str, body: TemplateBody):
    mapping = body.column_mapping.to_mapping()
    try:
        mapping.validate()
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    account_mapping = {k: str(v) for k, v in body.account_mapping.items()}
    template = _templates.save(MappingTemplate(name=name, column_mapping=mapping, account_mapping=account_mapping))
    print(f"[OK] Saved template: {name}")
    return template.to_dict()


@app.delete("/templates/{name}")
def delete_template(name: str):
    try:
        _templates.delete(name)
    except TemplateNotFoundError as e:
        raise _not_found(e)
    return {"deleted": True, "name": name}
