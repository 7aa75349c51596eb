"""
Reconciliation Data Models

This module defines the core data structures for batch-to-bank reconciliation:
- Ledger A: the internal cash-receipt journal, grouped into batches
- Ledger B: the external bank statement, addressed through a ColumnMapping

Key concepts:
- A Batch is the sum of all ledger-A rows sharing a batch number
- Each Batch is matched one-to-one against a single bank transaction
- A ReconciliationResult is immutable and fully serializable via to_dict()
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# Errors
# =============================================================================

class ReconError(Exception):
    """Base class for all reconciliation errors"""


class ConfigurationError(ReconError, ValueError):
    """Mapping role unbound or no account-identifier mapping for the account"""


class InvalidAmountError(ReconError, ValueError):
    """Amount cell could not be parsed (strict mode only)"""


class LedgerFormatError(ReconError, ValueError):
    """Internal ledger file is missing required columns"""


class TemplateNotFoundError(ReconError):
    """No mapping template stored under the requested name"""


# =============================================================================
# Enums
# =============================================================================

class ColumnRole(str, Enum):
    """Semantic roles a bank-statement column can be bound to"""
    IDENTIFIER = "identifier"
    AMOUNT = "amount"
    DATE = "date"
    DESCRIPTION = "description"    # optional


REQUIRED_ROLES: Tuple[ColumnRole, ...] = (
    ColumnRole.IDENTIFIER,
    ColumnRole.AMOUNT,
    ColumnRole.DATE,
)


class AmountParseMode(str, Enum):
    """How unparsable amount cells are treated"""
    LENIENT = "lenient"   # coerce to 0.0
    STRICT = "strict"     # raise InvalidAmountError


class ReconStatus(str, Enum):
    """Headline status of a run"""
    MATCHED = "MATCHED"
    DISCREPANCY = "DISCREPANCY"


# =============================================================================
# Column Mapping
# =============================================================================

@dataclass(frozen=True)
class ColumnMapping:
    """
    Binding of semantic roles to concrete column names in a bank statement.
    An empty string is treated the same as an unbound role.
    """
    identifier: Optional[str] = None
    amount: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None

    def column_for(self, role: ColumnRole) -> Optional[str]:
        column = getattr(self, ColumnRole(role).value)
        return column or None

    def missing_roles(self) -> List[ColumnRole]:
        return [role for role in REQUIRED_ROLES if not self.column_for(role)]

    def validate(self) -> None:
        missing = self.missing_roles()
        if missing:
            names = ", ".join(role.value for role in missing)
            raise ConfigurationError(f"Column mapping is missing required roles: {names}")

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "identifier": self.identifier,
            "amount": self.amount,
            "date": self.date,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ColumnMapping":
        data = data or {}
        # Older templates stored the identifier under "bankIdentifier"
        identifier = data.get("identifier") or data.get("bankIdentifier")
        return cls(
            identifier=identifier or None,
            amount=data.get("amount") or None,
            date=data.get("date") or None,
            description=data.get("description") or None,
        )


# =============================================================================
# Core Data Models
# =============================================================================

@dataclass(frozen=True)
class LedgerARecord:
    """One row of the internal ledger (cash-receipt journal)."""
    account: str                     # Bank Account Description
    batch_number: Any                # str or int, groups rows into a batch
    amount: float
    batch_description: str = ""
    posting_date: Any = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "batch_number": self.batch_number,
            "amount": self.amount,
            "batch_description": self.batch_description,
            "posting_date": self.posting_date,
            "raw": dict(self.raw),
        }


@dataclass(frozen=True)
class BankTransaction:
    """One row of the bank statement, viewed through a ColumnMapping."""
    identifier: Optional[str]
    amount: float
    date: Any = None
    description: str = ""
    row: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "amount": self.amount,
            "date": self.date,
            "description": self.description,
            "row": dict(self.row),
        }


@dataclass(frozen=True)
class Batch:
    """
    Aggregate of ledger-A rows sharing a batch number.
    Description and posting date come from the first contributing row.
    """
    batch_number: Any
    description: str
    posting_date: Any
    total_amount: float
    transactions: Tuple[LedgerARecord, ...] = ()

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_number": self.batch_number,
            "description": self.description,
            "posting_date": self.posting_date,
            "total_amount": self.total_amount,
            "transaction_count": self.transaction_count,
            "transactions": [t.to_dict() for t in self.transactions],
        }


@dataclass(frozen=True)
class Match:
    """A batch paired with the bank transaction it consumed."""
    batch: Batch
    bank_transaction: BankTransaction
    difference: float = 0.0          # 0 by construction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch": self.batch.to_dict(),
            "bank_transaction": self.bank_transaction.to_dict(),
            "difference": self.difference,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Output of a single reconciliation run.
    This is the primary object consumed by the API, CLI and export.
    """
    account: str                     # internal account description
    bank_identifier: str             # external account identifier
    batch_total: float
    bank_total: float
    difference: float                # batch_total - bank_total
    matches: Tuple[Match, ...] = ()
    unmatched_batches: Tuple[Batch, ...] = ()
    unmatched_bank: Tuple[BankTransaction, ...] = ()
    tolerance: float = 0.01
    template_name: Optional[str] = None

    @property
    def total_matches(self) -> int:
        return len(self.matches)

    @property
    def batch_count(self) -> int:
        return len(self.matches) + len(self.unmatched_batches)

    @property
    def bank_count(self) -> int:
        return len(self.matches) + len(self.unmatched_bank)

    @property
    def status(self) -> ReconStatus:
        if abs(self.difference) < self.tolerance:
            return ReconStatus.MATCHED
        return ReconStatus.DISCREPANCY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "bank_identifier": self.bank_identifier,
            "template_name": self.template_name,
            "batch_total": self.batch_total,
            "bank_total": self.bank_total,
            "difference": self.difference,
            "tolerance": self.tolerance,
            "status": self.status.value,
            "counts": {
                "batches": self.batch_count,
                "bank_transactions": self.bank_count,
                "matches": self.total_matches,
                "unmatched_batches": len(self.unmatched_batches),
                "unmatched_bank": len(self.unmatched_bank),
            },
            "matches": [m.to_dict() for m in self.matches],
            "unmatched_batches": [b.to_dict() for b in self.unmatched_batches],
            "unmatched_bank": [t.to_dict() for t in self.unmatched_bank],
        }
