"""
Snapshot and transaction records consumed by the engine.

Snapshots are produced once per invocation by a SnapshotProvider and are
read-only to every component.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from .errors import InvalidRange


@dataclass(frozen=True)
class LedgerSnapshot:
    """One ledger account. Positive balances are debit-natured."""
    name: str
    parent_group: str
    opening_balance: Decimal = Decimal("0")
    closing_balance: Decimal = Decimal("0")
    gstin: Optional[str] = None
    gst_registration_type: Optional[str] = None
    pan: Optional[str] = None
    tds_deductee_type: Optional[str] = None
    state: Optional[str] = None
    gst_applicable: Optional[bool] = None
    tds_applicable: Optional[bool] = None

    @property
    def abs_balance(self) -> Decimal:
        return abs(self.closing_balance)


@dataclass(frozen=True)
class StockItemSnapshot:
    """One stock item master. ``tax_rate`` of None means not configured."""
    name: str
    classification_code: Optional[str] = None
    tax_rate: Optional[Decimal] = None
    unit_of_measure: Optional[str] = None
    opening_quantity: Decimal = Decimal("0")
    closing_quantity: Decimal = Decimal("0")
    opening_value: Decimal = Decimal("0")
    closing_value: Decimal = Decimal("0")


@dataclass(frozen=True)
class CompanyProfile:
    name: str
    gstin: Optional[str] = None
    pan: Optional[str] = None
    tan: Optional[str] = None
    state: Optional[str] = None


@dataclass(frozen=True)
class TransactionRecord:
    """
    A dated, amounted record used by both sides of a reconciliation.

    ``date`` may be None only for aging inputs (treated as not yet aged).
    ``cleared_date`` is the bank clearing date for book-side bank lines.
    """
    date: Optional[date]
    external_reference: str
    counterparty_id: str
    amount: Decimal
    instrument_id: Optional[str] = None
    category: Optional[str] = None
    record_id: Optional[str] = None
    narration: str = ""
    cleared_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "date": self.date.isoformat() if self.date else None,
            "external_reference": self.external_reference,
            "counterparty_id": self.counterparty_id,
            "amount": float(self.amount),
            "instrument_id": self.instrument_id,
            "category": self.category,
            "narration": self.narration,
            "cleared_date": self.cleared_date.isoformat() if self.cleared_date else None,
        }


@dataclass(frozen=True)
class DateRange:
    """Inclusive date window. Construction fails if start is after end."""
    start: date
    end: date

    def __post_init__(self):
        if not isinstance(self.start, date) or not isinstance(self.end, date):
            raise InvalidRange(f"Date range bounds must be dates, got {self.start!r}..{self.end!r}")
        if self.start > self.end:
            raise InvalidRange(f"Date range start {self.start} is after end {self.end}")

    def contains(self, value: Optional[date]) -> bool:
        return value is not None and self.start <= value <= self.end
