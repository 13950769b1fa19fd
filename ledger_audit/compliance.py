"""
Compliance reconciliations built on the generic matcher and aging calculator:
GST return matching, bank statement matching, bank reconciliation
statement, uncleared instrument aging and party-wise receivable/payable
aging.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from config import AgingConfig, ReconciliationConfig
from .aging import AgingBuckets, AgingCalculator, BucketTotal, age_in_days
from .errors import InvalidRange
from .models import DateRange, LedgerSnapshot, TransactionRecord
from .reconcile import ReconciliationMatcher, ReconciliationReport

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Cheques are valid for three months from issue
CHEQUE_VALIDITY_DAYS = 90
UNCLEARED_BUCKETS: Tuple[Tuple[int, str], ...] = (
    (7, "within_7_days"),
    (30, "within_30_days"),
    (90, "within_90_days"),
)
UNCLEARED_ABOVE = "above_90_days"


def _require_date(as_of) -> date:
    if not isinstance(as_of, date):
        raise InvalidRange(f"As-of date must be a date, got {as_of!r}")
    return as_of


def _in_period(records: Sequence[TransactionRecord], period: Optional[DateRange]) -> List[TransactionRecord]:
    if period is None:
        return list(records)
    return [record for record in records if period.contains(record.date)]


def gst_instrument_id(record: TransactionRecord) -> str:
    """Party GSTIN and invoice number, upper-cased: the exact-match key for returns."""
    return f"{record.counterparty_id.strip()}/{record.external_reference.strip()}".upper()


@dataclass(frozen=True)
class ValueMismatch:
    """Same invoice on both sides, different value."""
    book_record: TransactionRecord
    external_record: TransactionRecord

    @property
    def difference(self) -> Decimal:
        return self.book_record.amount - self.external_record.amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instrument_id": self.book_record.instrument_id,
            "book_value": float(self.book_record.amount),
            "return_value": float(self.external_record.amount),
            "difference": float(self.difference),
        }


@dataclass
class GstReturnReconciliation:
    report: ReconciliationReport
    value_mismatches: List[ValueMismatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = self.report.to_dict()
        result["value_mismatches"] = [m.to_dict() for m in self.value_mismatches]
        return result


@dataclass
class TaxTotalsComparison:
    """Per-head comparison of two sets of tax totals (e.g. GSTR-1 vs GSTR-3B)."""
    books: Dict[str, Decimal]
    filed: Dict[str, Decimal]
    differences: Dict[str, Decimal]
    is_reconciled: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "books": {k: float(v) for k, v in self.books.items()},
            "filed": {k: float(v) for k, v in self.filed.items()},
            "differences": {k: float(v) for k, v in self.differences.items()},
            "is_reconciled": self.is_reconciled,
        }


@dataclass
class BankReconciliationStatement:
    as_of: date
    balance_as_per_books: Decimal
    uncleared_cheques: List[TransactionRecord]
    uncleared_deposits: List[TransactionRecord]

    @property
    def uncleared_cheques_total(self) -> Decimal:
        return sum((abs(r.amount) for r in self.uncleared_cheques), ZERO)

    @property
    def uncleared_deposits_total(self) -> Decimal:
        return sum((abs(r.amount) for r in self.uncleared_deposits), ZERO)

    @property
    def balance_as_per_bank(self) -> Decimal:
        """Books + cheques issued not presented - deposits not credited."""
        return self.balance_as_per_books + self.uncleared_cheques_total - self.uncleared_deposits_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "balance_as_per_books": float(self.balance_as_per_books),
            "balance_as_per_bank": float(self.balance_as_per_bank),
            "uncleared_cheques_total": float(self.uncleared_cheques_total),
            "uncleared_deposits_total": float(self.uncleared_deposits_total),
            "uncleared_cheques": [r.to_dict() for r in self.uncleared_cheques],
            "uncleared_deposits": [r.to_dict() for r in self.uncleared_deposits],
        }


@dataclass
class UnclearedAging:
    as_of: date
    cheques: Dict[str, BucketTotal]
    deposits: Dict[str, BucketTotal]
    stale_cheques: List[TransactionRecord]

    @property
    def stale_cheques_total(self) -> Decimal:
        return sum((abs(r.amount) for r in self.stale_cheques), ZERO)

    @property
    def remarks(self) -> str:
        if self.stale_cheques:
            return f"{len(self.stale_cheques)} stale cheques found. Consider writing back to income."
        return "No stale cheques found."

    def to_dict(self) -> Dict[str, Any]:
        def side(buckets: Dict[str, BucketTotal]) -> Dict[str, Any]:
            return {
                label: {"amount": float(abs(total.amount)), "count": len(total.records)}
                for label, total in buckets.items()
            }
        return {
            "as_of": self.as_of.isoformat(),
            "cheques": side(self.cheques),
            "deposits": side(self.deposits),
            "stale_cheques": [r.to_dict() for r in self.stale_cheques],
            "stale_cheques_total": float(self.stale_cheques_total),
            "remarks": self.remarks,
        }


@dataclass
class PartyAging:
    party: str
    total: Decimal
    buckets: AgingBuckets

    def to_dict(self) -> Dict[str, Any]:
        result = {"party": self.party, "total": float(self.total)}
        result.update(self.buckets.to_dict())
        return result


class ComplianceReconciler:
    """Reconciliation and aging reports over book and external records."""

    def __init__(
        self,
        recon_config: Optional[ReconciliationConfig] = None,
        aging_config: Optional[AgingConfig] = None,
    ):
        self.recon_config = recon_config or ReconciliationConfig()
        self.aging_config = aging_config or AgingConfig()
        self.matcher = ReconciliationMatcher(self.recon_config)
        self.aging = AgingCalculator(self.aging_config.stale_threshold_days)

    # ==================== Matching ====================

    def reconcile_gst_return(
        self,
        book: Sequence[TransactionRecord],
        filed: Sequence[TransactionRecord],
        period: Optional[DateRange] = None,
    ) -> GstReturnReconciliation:
        """
        Match purchase/sales register lines against return data.

        Both sides are keyed on GSTIN/invoice and compared on absolute
        invoice value. Fuzzy pairing stays within one GSTIN.
        """
        def prepare(records):
            return [
                replace(r, instrument_id=gst_instrument_id(r), amount=abs(r.amount))
                for r in _in_period(records, period)
            ]

        report = self.matcher.match(prepare(book), prepare(filed), same_counterparty=True)

        unmatched_book = {}
        for result in report.unmatched_book:
            unmatched_book.setdefault(result.book_record.instrument_id, []).append(result.book_record)
        mismatches = []
        for result in report.unmatched_external:
            candidates = unmatched_book.get(result.external_record.instrument_id)
            if candidates:
                mismatches.append(ValueMismatch(candidates.pop(0), result.external_record))

        logger.info(
            f"[RECON] GST return reconciliation: {report.matched_count} matched, "
            f"{len(mismatches)} value mismatches"
        )
        return GstReturnReconciliation(report=report, value_mismatches=mismatches)

    def reconcile_bank_statement(
        self,
        book: Sequence[TransactionRecord],
        statement: Sequence[TransactionRecord],
        period: Optional[DateRange] = None,
    ) -> ReconciliationReport:
        """
        Match bank book lines against statement lines on cheque/reference
        number, then amount and date. Statement lines must be in book sign
        (deposits positive, withdrawals negative).
        """
        return self.matcher.match(_in_period(book, period), _in_period(statement, period))

    def compare_tax_totals(
        self,
        books: Mapping[str, Decimal],
        filed: Mapping[str, Decimal],
    ) -> TaxTotalsComparison:
        """Per-head differences (books - filed); a head missing on one side counts as zero."""
        heads = list(books) + [head for head in filed if head not in books]
        book_totals = {head: Decimal(books.get(head, ZERO)) for head in heads}
        filed_totals = {head: Decimal(filed.get(head, ZERO)) for head in heads}
        differences = {head: book_totals[head] - filed_totals[head] for head in heads}
        tolerance = self.recon_config.amount_tolerance
        return TaxTotalsComparison(
            books=book_totals,
            filed=filed_totals,
            differences=differences,
            is_reconciled=all(abs(diff) < tolerance for diff in differences.values()),
        )

    # ==================== Bank ====================

    def bank_reconciliation_statement(
        self,
        book: Sequence[TransactionRecord],
        as_of: date,
    ) -> BankReconciliationStatement:
        """
        Balance per books up to as_of, plus instruments not cleared by the
        bank on that date. Negative book amounts are cheques issued,
        positive ones deposits.
        """
        as_of = _require_date(as_of)
        balance = ZERO
        cheques, deposits = [], []
        for record in book:
            if record.date is not None and record.date > as_of:
                continue
            balance += record.amount
            if record.cleared_date is not None and record.cleared_date <= as_of:
                continue
            if record.amount < 0:
                cheques.append(record)
            elif record.amount > 0:
                deposits.append(record)

        return BankReconciliationStatement(
            as_of=as_of,
            balance_as_per_books=balance,
            uncleared_cheques=cheques,
            uncleared_deposits=deposits,
        )

    def uncleared_instrument_aging(
        self,
        book: Sequence[TransactionRecord],
        as_of: date,
    ) -> UnclearedAging:
        brs = self.bank_reconciliation_statement(book, as_of)

        def bucket(records):
            buckets = {label: BucketTotal() for _, label in UNCLEARED_BUCKETS}
            buckets[UNCLEARED_ABOVE] = BucketTotal()
            for record in records:
                age = age_in_days(record.date, as_of) if record.date is not None else 0
                label = next((lbl for upper, lbl in UNCLEARED_BUCKETS if age <= upper), UNCLEARED_ABOVE)
                buckets[label].add(record)
            return buckets

        stale = [
            r for r in brs.uncleared_cheques
            if r.date is not None and age_in_days(r.date, as_of) > CHEQUE_VALIDITY_DAYS
        ]
        return UnclearedAging(
            as_of=brs.as_of,
            cheques=bucket(brs.uncleared_cheques),
            deposits=bucket(brs.uncleared_deposits),
            stale_cheques=stale,
        )

    # ==================== Parties ====================

    def receivables_aging(
        self,
        ledgers: Sequence[LedgerSnapshot],
        bills: Sequence[TransactionRecord],
        as_of: date,
    ) -> List[PartyAging]:
        """Debit-balance parties; bills are matched to parties on counterparty_id."""
        return self._party_aging(ledgers, bills, as_of, payable=False)

    def payables_aging(
        self,
        ledgers: Sequence[LedgerSnapshot],
        bills: Sequence[TransactionRecord],
        as_of: date,
    ) -> List[PartyAging]:
        """Credit-balance parties, aged on absolute amounts."""
        return self._party_aging(ledgers, bills, as_of, payable=True)

    def _party_aging(self, ledgers, bills, as_of, payable: bool) -> List[PartyAging]:
        as_of = _require_date(as_of)
        bills_by_party: Dict[str, List[TransactionRecord]] = {}
        for bill in bills:
            bills_by_party.setdefault(bill.counterparty_id, []).append(bill)

        result = []
        for ledger in ledgers:
            balance = ledger.closing_balance
            if (payable and balance >= 0) or (not payable and balance <= 0):
                continue
            total = abs(balance)

            party_bills = bills_by_party.get(ledger.name, [])
            if payable:
                party_bills = [replace(b, amount=abs(b.amount)) for b in party_bills]
            if not party_bills:
                # Without bill-wise details the whole balance is current
                party_bills = [TransactionRecord(
                    date=None,
                    external_reference="",
                    counterparty_id=ledger.name,
                    amount=total,
                )]

            result.append(PartyAging(
                party=ledger.name,
                total=total,
                buckets=self.aging.bucket(party_bills, as_of),
            ))
        return result
