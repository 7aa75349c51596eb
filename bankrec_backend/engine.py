from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    AmountParseMode,
    BankTransaction,
    Batch,
    ColumnMapping,
    ColumnRole,
    ConfigurationError,
    LedgerARecord,
    Match,
    ReconciliationResult,
)
from .normalize import (
    batch_key,
    get_field,
    identifier_key,
    is_absent,
    to_bank_transaction,
    to_ledger_a_record,
)
from .settings import DEFAULT_SETTINGS, LedgerAColumns

Row = Dict[str, Any]


# -----------------------------
# Wizard helpers: what can be reconciled
# -----------------------------
def list_accounts(rows: Iterable[Row], columns: Optional[LedgerAColumns] = None) -> List[str]:
    """Distinct internal account descriptions, in order of first appearance."""
    columns = columns or DEFAULT_SETTINGS.ledger_a_columns
    seen: Dict[str, None] = {}
    for row in rows:
        value = row.get(columns.account)
        if is_absent(value):
            continue
        seen.setdefault(str(value), None)
    return list(seen)


def list_identifiers(rows: Iterable[Row], mapping: ColumnMapping) -> List[str]:
    """Distinct external account identifiers found in a bank statement."""
    seen: Dict[str, None] = {}
    for row in rows:
        key = identifier_key(get_field(row, mapping, ColumnRole.IDENTIFIER))
        if key is not None:
            seen.setdefault(key, None)
    return list(seen)


# -----------------------------
# Batch aggregation (ledger A)
# -----------------------------
def aggregate_batches(records: Iterable[LedgerARecord], account: Optional[str] = None) -> Dict[str, Batch]:
    """
    Group ledger-A records into batches keyed by batch number.

    The first record seen for a batch number supplies the description and
    posting date; later records only add to the total. Iteration order of the
    returned dict is the order in which batch numbers first appear.
    """
    working: Dict[str, Dict[str, Any]] = {}
    for rec in records:
        if account is not None and rec.account != account:
            continue
        key = batch_key(rec.batch_number)
        if key not in working:
            working[key] = {
                "batch_number": rec.batch_number,
                "description": rec.batch_description,
                "posting_date": rec.posting_date,
                "total_amount": 0.0,
                "transactions": [],
            }
        working[key]["total_amount"] += rec.amount
        working[key]["transactions"].append(rec)

    return {
        key: Batch(
            batch_number=w["batch_number"],
            description=w["description"],
            posting_date=w["posting_date"],
            total_amount=w["total_amount"],
            transactions=tuple(w["transactions"]),
        )
        for key, w in working.items()
    }


# -----------------------------
# Amount matching
# -----------------------------
def match_amounts(
    batches: Sequence[Batch],
    bank_transactions: Sequence[BankTransaction],
    tolerance: float = DEFAULT_SETTINGS.amount_tolerance,
) -> Tuple[List[Match], List[Batch], List[BankTransaction]]:
    """
    Greedy first-fit: each batch, in order, takes the first unconsumed bank
    transaction with abs(amount - batch total) < tolerance.

    Order-dependent by definition. When amounts collide the earlier batch wins
    the earlier transaction; this is not an optimal assignment.
    """
    consumed: set = set()
    matches: List[Match] = []
    unmatched_batches: List[Batch] = []

    for batch in batches:
        hit = None
        for idx, txn in enumerate(bank_transactions):
            if idx in consumed:
                continue
            if abs(txn.amount - batch.total_amount) < tolerance:
                hit = idx
                break
        if hit is None:
            unmatched_batches.append(batch)
            continue
        consumed.add(hit)
        matches.append(Match(batch=batch, bank_transaction=bank_transactions[hit], difference=0.0))

    unmatched_bank = [txn for idx, txn in enumerate(bank_transactions) if idx not in consumed]
    return matches, unmatched_batches, unmatched_bank


# -----------------------------
# Orchestration
# -----------------------------
def resolve_bank_identifier(account_mapping: Dict[str, Any], account: str) -> str:
    if not account:
        raise ConfigurationError("No account selected")
    mapped = account_mapping.get(account) if account_mapping else None
    key = identifier_key(mapped)
    if key is None:
        raise ConfigurationError(f"No bank identifier mapped for account: {account}")
    return key


def select_ledger_a(
    rows: Iterable[Row],
    account: str,
    columns: LedgerAColumns,
    amount_mode: AmountParseMode = AmountParseMode.LENIENT,
) -> List[LedgerARecord]:
    selected: List[LedgerARecord] = []
    for row in rows:
        value = row.get(columns.account)
        if is_absent(value) or str(value) != account:
            continue
        selected.append(to_ledger_a_record(row, columns, amount_mode))
    return selected


def select_bank(
    rows: Iterable[Row],
    mapping: ColumnMapping,
    bank_identifier: str,
    amount_mode: AmountParseMode = AmountParseMode.LENIENT,
) -> List[BankTransaction]:
    selected: List[BankTransaction] = []
    for row in rows:
        key = identifier_key(get_field(row, mapping, ColumnRole.IDENTIFIER))
        if key != bank_identifier:
            continue
        selected.append(to_bank_transaction(row, mapping, amount_mode))
    return selected


def reconcile(
    ledger_a_rows: Sequence[Row],
    bank_rows: Sequence[Row],
    mapping: ColumnMapping,
    account_mapping: Dict[str, Any],
    account: str,
    tolerance: Optional[float] = None,
    amount_mode: Optional[AmountParseMode] = None,
    columns: Optional[LedgerAColumns] = None,
    template_name: Optional[str] = None,
) -> ReconciliationResult:
    """
    Reconcile one internal account against its bank account.

    Raises ConfigurationError (before any work) when a required mapping role
    is unbound or the account has no bank identifier. In strict amount mode an
    unparsable amount in the selected rows raises InvalidAmountError.
    """
    tolerance = DEFAULT_SETTINGS.amount_tolerance if tolerance is None else float(tolerance)
    amount_mode = AmountParseMode(amount_mode or DEFAULT_SETTINGS.amount_mode)
    columns = columns or DEFAULT_SETTINGS.ledger_a_columns

    mapping.validate()
    bank_identifier = resolve_bank_identifier(account_mapping, account)

    records = select_ledger_a(ledger_a_rows, account, columns, amount_mode)
    batches = list(aggregate_batches(records).values())
    bank_txns = select_bank(bank_rows, mapping, bank_identifier, amount_mode)

    batch_total = sum(b.total_amount for b in batches)
    bank_total = sum(t.amount for t in bank_txns)

    matches, unmatched_batches, unmatched_bank = match_amounts(batches, bank_txns, tolerance)

    return ReconciliationResult(
        account=account,
        bank_identifier=bank_identifier,
        batch_total=float(batch_total),
        bank_total=float(bank_total),
        difference=float(batch_total - bank_total),
        matches=tuple(matches),
        unmatched_batches=tuple(unmatched_batches),
        unmatched_bank=tuple(unmatched_bank),
        tolerance=tolerance,
        template_name=template_name,
    )
