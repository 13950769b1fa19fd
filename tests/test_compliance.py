from datetime import date
from decimal import Decimal

import pytest

from config import AgingConfig
from ledger_audit.aging import AgingBucket
from ledger_audit.compliance import ComplianceReconciler, gst_instrument_id
from ledger_audit.errors import InvalidRange
from ledger_audit.models import DateRange, LedgerSnapshot, TransactionRecord
from ledger_audit.reconcile import MatchType

AS_OF = date(2024, 3, 31)


@pytest.fixture
def reconciler(recon_config):
    return ComplianceReconciler(recon_config, AgingConfig(stale_threshold_days=180))


def bank_line(day, amount, cleared=None, cheque=None):
    return TransactionRecord(
        date=day,
        external_reference=cheque or "",
        counterparty_id="HDFC Bank",
        amount=Decimal(amount),
        instrument_id=cheque,
        cleared_date=cleared,
    )


def invoice(gstin, number, amount, day=date(2024, 3, 5)):
    return TransactionRecord(date=day, external_reference=number, counterparty_id=gstin, amount=Decimal(amount))


def test_bank_reconciliation_statement_arithmetic(reconciler):
    book = [
        bank_line(date(2024, 3, 1), "10000", cleared=date(2024, 3, 2)),
        bank_line(date(2024, 3, 10), "-3000", cheque="CHQ501"),
        bank_line(date(2024, 3, 30), "2000", cleared=date(2024, 4, 2)),
        bank_line(date(2024, 4, 5), "-500", cheque="CHQ502"),
    ]

    brs = reconciler.bank_reconciliation_statement(book, AS_OF)

    assert brs.balance_as_per_books == Decimal("9000")
    assert brs.uncleared_cheques_total == Decimal("3000")
    assert brs.uncleared_deposits_total == Decimal("2000")
    assert brs.balance_as_per_bank == Decimal("10000")
    assert [r.instrument_id for r in brs.uncleared_cheques] == ["CHQ501"]


def test_uncleared_aging_flags_stale_cheques(reconciler):
    book = [
        bank_line(date(2023, 12, 1), "-700", cheque="CHQ1"),
        bank_line(date(2024, 3, 28), "-300", cheque="CHQ2"),
        bank_line(date(2024, 3, 1), "450"),
    ]

    aging = reconciler.uncleared_instrument_aging(book, AS_OF)

    assert [r.instrument_id for r in aging.stale_cheques] == ["CHQ1"]
    assert aging.stale_cheques_total == Decimal("700")
    assert aging.remarks == "1 stale cheques found. Consider writing back to income."
    assert len(aging.cheques["above_90_days"].records) == 1
    assert len(aging.cheques["within_7_days"].records) == 1
    assert len(aging.deposits["within_30_days"].records) == 1


def test_no_stale_cheques_remark(reconciler):
    aging = reconciler.uncleared_instrument_aging([], AS_OF)

    assert aging.remarks == "No stale cheques found."


def test_bank_statement_matching_respects_period(reconciler):
    book = [bank_line(date(2024, 3, 10), "-3000", cheque="CHQ501"), bank_line(date(2024, 2, 1), "100")]
    statement = [bank_line(date(2024, 3, 14), "-3000", cheque="CHQ501"), bank_line(date(2024, 2, 1), "100")]

    report = reconciler.reconcile_bank_statement(book, statement, DateRange(date(2024, 3, 1), AS_OF))

    assert report.matched_count == 1
    assert report.matches[0].match_type == MatchType.EXACT
    assert report.unmatched_book == [] and report.unmatched_external == []


def test_date_range_must_be_ordered():
    with pytest.raises(InvalidRange):
        DateRange(date(2024, 4, 1), date(2024, 3, 1))


def test_gst_return_matching_and_value_mismatch(reconciler):
    book = [
        invoice("27AAPFU0939F1ZV", "inv-1", "-11800"),
        invoice("27AAPFU0939F1ZV", "INV-2", "5900"),
        invoice("29AABCT1332L1ZT", "INV-9", "1234"),
    ]
    filed = [
        invoice("27AAPFU0939F1ZV", "INV-1", "11800"),
        invoice("27AAPFU0939F1ZV", "INV-2", "5000"),
    ]

    result = reconciler.reconcile_gst_return(book, filed)

    assert result.report.matched_count == 1
    assert result.report.matches[0].book_record.instrument_id == "27AAPFU0939F1ZV/INV-1"
    assert len(result.value_mismatches) == 1
    mismatch = result.value_mismatches[0]
    assert mismatch.difference == Decimal("900")
    assert result.report.unmatched_book_count == 2
    assert result.to_dict()["value_mismatches"][0]["instrument_id"] == "27AAPFU0939F1ZV/INV-2"


def test_gst_instrument_id_is_normalized():
    assert gst_instrument_id(invoice(" 27aapfu0939f1zv ", "inv/7 ", "1")) == "27AAPFU0939F1ZV/INV/7"


def test_tax_totals_comparison(reconciler):
    books = {"IGST": Decimal("1000"), "CGST": Decimal("500")}

    close = reconciler.compare_tax_totals(books, {"IGST": Decimal("1000.50"), "CGST": Decimal("500")})
    off = reconciler.compare_tax_totals(books, {"IGST": Decimal("1000"), "CGST": Decimal("498")})
    missing_head = reconciler.compare_tax_totals(books, {"IGST": Decimal("1000"), "CGST": Decimal("500"),
                                                         "CESS": Decimal("25")})

    assert close.is_reconciled
    assert close.differences["IGST"] == Decimal("-0.50")
    assert not off.is_reconciled
    assert off.differences["CGST"] == Decimal("2")
    assert not missing_head.is_reconciled
    assert missing_head.books["CESS"] == Decimal("0")


def test_receivables_skip_non_debit_parties(reconciler):
    ledgers = [
        LedgerSnapshot("Alpha Stores", "Sundry Debtors", closing_balance=Decimal("5000")),
        LedgerSnapshot("Beta Mart", "Sundry Debtors", closing_balance=Decimal("0")),
        LedgerSnapshot("Gamma Ltd", "Sundry Debtors", closing_balance=Decimal("-100")),
        LedgerSnapshot("Delta Co", "Sundry Debtors", closing_balance=Decimal("800")),
    ]
    bills = [
        invoice("Alpha Stores", "S-1", "3000", day=date(2024, 3, 20)),
        invoice("Alpha Stores", "S-2", "2000", day=date(2023, 12, 1)),
    ]

    aging = reconciler.receivables_aging(ledgers, bills, AS_OF)

    assert [p.party for p in aging] == ["Alpha Stores", "Delta Co"]
    alpha, delta = aging
    assert alpha.total == Decimal("5000")
    assert alpha.buckets[AgingBucket.DAYS_30].amount == Decimal("3000")
    assert alpha.buckets[AgingBucket.DAYS_180].amount == Decimal("2000")
    # No bill-wise details: the whole balance is current
    assert delta.buckets[AgingBucket.CURRENT].amount == Decimal("800")


def test_payables_use_absolute_amounts(reconciler):
    ledgers = [
        LedgerSnapshot("Steel Supplier", "Sundry Creditors", closing_balance=Decimal("-4500")),
        LedgerSnapshot("Advance Paid", "Sundry Creditors", closing_balance=Decimal("250")),
    ]
    bills = [invoice("Steel Supplier", "P-1", "-4500", day=date(2024, 1, 15))]

    aging = reconciler.payables_aging(ledgers, bills, AS_OF)

    assert [p.party for p in aging] == ["Steel Supplier"]
    assert aging[0].total == Decimal("4500")
    assert aging[0].buckets[AgingBucket.DAYS_90].amount == Decimal("4500")
    assert aging[0].to_dict()["total"] == 4500.0


def test_as_of_must_be_a_date(reconciler):
    with pytest.raises(InvalidRange):
        reconciler.bank_reconciliation_statement([], "2024-03-31")
    with pytest.raises(InvalidRange):
        reconciler.payables_aging([], [], None)


def test_gst_fuzzy_match_needs_same_gstin(reconciler):
    book = [invoice("27AAPFU0939F1ZV", "INV-1", "5000", date(2024, 3, 5))]
    filed = [invoice("29AABCT1332L1ZT", "X-77", "5000", date(2024, 3, 6))]

    result = reconciler.reconcile_gst_return(book, filed)

    assert result.report.matched_count == 0
    assert result.report.unmatched_book_count == 1
    assert result.report.unmatched_external_count == 1


def test_gst_fuzzy_match_within_same_gstin(reconciler):
    book = [invoice(" 27aapfu0939f1zv", "INV-4", "5000", date(2024, 3, 5))]
    filed = [invoice("27AAPFU0939F1ZV", "INV-4A", "5000", date(2024, 3, 7))]

    result = reconciler.reconcile_gst_return(book, filed)

    assert result.report.matched_count == 1
    assert result.report.matches[0].days_difference == 2


def test_value_mismatch_not_hidden_by_other_party(reconciler):
    book = [
        invoice("29AABCT1332L1ZT", "B-9", "5000"),
        invoice("27AAPFU0939F1ZV", "INV-2", "5900"),
    ]
    filed = [invoice("27AAPFU0939F1ZV", "INV-2", "5000")]

    result = reconciler.reconcile_gst_return(book, filed)

    assert result.report.matched_count == 0
    assert len(result.value_mismatches) == 1
    assert result.value_mismatches[0].difference == Decimal("900")
    assert result.value_mismatches[0].external_record.instrument_id == "27AAPFU0939F1ZV/INV-2"
