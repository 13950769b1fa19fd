from datetime import date
from decimal import Decimal

from config import EngineConfig
from ledger_audit import (
    AuditEngine,
    CompanyProfile,
    CompanySnapshot,
    LedgerSnapshot,
    StockItemSnapshot,
)
from ledger_audit.errors import DataUnavailable
from ledger_audit.findings import AuditCategory, FixKind, Issue, Severity
from ledger_audit.rules import DataSource, Rule, RuleContext, RuleRegistry

from conftest import tax_ledger

AUDIT_DATE = date(2024, 3, 31)


class LedgersUnavailable(CompanySnapshot):
    """Snapshot whose ledger export failed."""

    def fetch_ledgers(self):
        raise DataUnavailable("ledgers", "export timed out")


def ids(issues):
    return [issue.id for issue in issues]


def test_missing_output_gst_ledgers_are_critical_and_fixable(engine, company_profile):
    snapshot = CompanySnapshot(
        company_profile=company_profile,
        ledgers=tuple(tax_ledger(name) for name in ("Output CGST", "Input IGST", "Input CGST", "Input SGST")),
    )

    report = engine.run_audit(snapshot, AUDIT_DATE)

    gst = report.issues_by_category(AuditCategory.GST)
    critical = [issue for issue in gst if issue.severity == Severity.CRITICAL]
    assert ids(critical) == ["GST_OUTPUT_IGST_MISSING", "GST_OUTPUT_SGST_MISSING"]
    for issue in critical:
        assert issue.auto_fixable
        assert issue.fix_action.kind == FixKind.CREATE_SUBJECT
        assert issue.fix_action.changes["parent"] == "Duties & Taxes"
        assert issue.fix_action.changes["gst_duty_head"] == "Output"
    assert report.category(AuditCategory.GST).score == 60
    assert report.category(AuditCategory.GST).status == "Needs Attention"


def test_complete_tax_ledgers_raise_no_presence_issues(engine, snapshot):
    report = engine.run_audit(snapshot, AUDIT_DATE)

    assert not [i for i in report.issues if i.id.endswith("_MISSING")]
    assert report.category(AuditCategory.COMPANY_INFO).issues == []
    assert report.category(AuditCategory.COMPANY_INFO).score == 100
    assert report.category(AuditCategory.COMPANY_INFO).status == "Good"


def test_audit_is_deterministic(engine, snapshot):
    first = engine.run_audit(snapshot, AUDIT_DATE)
    second = engine.run_audit(snapshot, AUDIT_DATE)

    assert first.to_dict() == second.to_dict()


def test_sequential_and_parallel_runs_agree(catalog, snapshot):
    parallel = AuditEngine(catalog, engine_config=EngineConfig(parallel=True, max_workers=4))
    sequential = AuditEngine(catalog, engine_config=EngineConfig(parallel=False, max_workers=1))

    assert parallel.run_audit(snapshot, AUDIT_DATE).to_dict() == sequential.run_audit(snapshot, AUDIT_DATE).to_dict()


def test_categories_follow_declared_order(engine, snapshot):
    report = engine.run_audit(snapshot, AUDIT_DATE)

    assert [result.category for result in report.categories] == list(AuditCategory)


def test_failed_source_degrades_only_its_categories(engine):
    snapshot = LedgersUnavailable(
        company_profile=CompanyProfile(name="Acme Traders"),
        stock_items=(StockItemSnapshot(name="Widget"),),
    )

    report = engine.run_audit(snapshot, AUDIT_DATE)

    degraded = set(report.degraded_categories)
    assert degraded == {
        AuditCategory.GST, AuditCategory.TDS,
        AuditCategory.LEDGER_CLASSIFICATION, AuditCategory.PARTY_MASTER,
    }
    gst = report.category(AuditCategory.GST)
    assert gst.score is None
    assert gst.status == "Unknown"
    assert "export timed out" in gst.diagnostic

    assert not report.category(AuditCategory.STOCK_ITEM).degraded
    assert ids(report.issues_by_category(AuditCategory.STOCK_ITEM)) == [
        "STOCK_NO_HSN", "STOCK_NO_GST_RATE", "STOCK_NO_UNIT",
    ]
    assert "COMP_GSTIN_MISSING" in ids(report.issues_by_category(AuditCategory.COMPANY_INFO))
    assert report.company_name == "Acme Traders"


def test_company_identity_checks(engine, complete_tax_ledgers):
    snapshot = CompanySnapshot(
        company_profile=CompanyProfile(name="Acme", gstin=None, pan="BAD-PAN", tan="MUMA12345B", state="Goa"),
        ledgers=complete_tax_ledgers,
    )

    issues = engine.run_audit(snapshot, AUDIT_DATE).issues_by_category(AuditCategory.COMPANY_INFO)

    assert ids(issues) == ["COMP_GSTIN_MISSING", "COMP_PAN_INVALID"]
    assert issues[0].severity == Severity.CRITICAL
    assert issues[1].severity == Severity.HIGH
    assert not any(issue.auto_fixable for issue in issues)


def test_expense_ledger_needs_tds(engine, company_profile, complete_tax_ledgers):
    ledgers = complete_tax_ledgers + (
        LedgerSnapshot("Freight Charges", "Indirect Expenses", closing_balance=Decimal("45000")),
        LedgerSnapshot("Legal Fees", "Indirect Expenses", closing_balance=Decimal("9000"), tds_applicable=True),
        LedgerSnapshot("Stationery", "Indirect Expenses", closing_balance=Decimal("1200")),
    )
    snapshot = CompanySnapshot(company_profile=company_profile, ledgers=ledgers)

    issues = engine.run_audit(snapshot, AUDIT_DATE).issues_by_category(AuditCategory.TDS)

    assert ids(issues) == ["TDS_EXPENSE_Freight Charges_194C"]
    action = issues[0].fix_action
    assert action.kind == FixKind.ENABLE_ATTRIBUTE
    assert dict(action.changes) == {"tds_applicable": True, "tds_section": "194C"}


def test_ledger_classification_rules(engine, company_profile):
    ledgers = (
        LedgerSnapshot("Rent Received", "Direct Incomes", closing_balance=Decimal("-12000")),
        LedgerSnapshot("Unknown Receipts", "Suspense A/c", closing_balance=Decimal("500")),
        LedgerSnapshot("Parked Entries", "Suspense A/c"),
        LedgerSnapshot("HDFC Bank", "Bank Accounts", closing_balance=Decimal("1000")),
        LedgerSnapshot("HDFC Bank A/c", "Bank Accounts"),
    )
    snapshot = CompanySnapshot(company_profile=company_profile, ledgers=ledgers)

    issues = engine.run_audit(snapshot, AUDIT_DATE).issues_by_category(AuditCategory.LEDGER_CLASSIFICATION)

    assert ids(issues) == [
        "LEDGER_SUSPENSE_Unknown Receipts",
        "LEDGER_MISCLASS_Rent Received",
        "LEDGER_DUPLICATE_HDFC Bank",
    ]
    suspense, misclass, duplicate = issues
    assert suspense.severity == Severity.CRITICAL
    assert misclass.fix_action.kind == FixKind.RECLASSIFY
    assert misclass.fix_action.changes == {"parent": "Indirect Incomes"}
    assert duplicate.affected_subjects == ("HDFC Bank", "HDFC Bank A/c")
    assert not duplicate.auto_fixable


def test_party_completeness_is_aggregated_with_full_subject_list(engine, company_profile):
    debtors = tuple(
        LedgerSnapshot(f"Customer {n:02d}", "Sundry Debtors", closing_balance=Decimal("1000"), state="Goa")
        for n in range(20)
    )
    settled = LedgerSnapshot("Settled Customer", "Sundry Debtors", closing_balance=Decimal("0"))
    snapshot = CompanySnapshot(company_profile=company_profile, ledgers=debtors + (settled,))

    report = engine.run_audit(snapshot, AUDIT_DATE)
    issues = report.issues_by_category(AuditCategory.PARTY_MASTER)

    assert ids(issues) == ["PARTY_DEBTORS_NO_GSTIN"]
    issue = issues[0]
    assert issue.affected_count == 20
    assert "Settled Customer" not in issue.affected_subjects
    assert issue.description.startswith("20 debtors")

    shown = issue.to_dict(display_limit=15)
    assert len(shown["affected_subjects"]) == 15
    assert shown["affected_count"] == 20


def test_invalid_creditor_gstin_is_critical(engine, company_profile):
    creditors = (
        LedgerSnapshot("Steel Supplier", "Sundry Creditors", closing_balance=Decimal("-5000"), gstin="27ABC"),
        LedgerSnapshot("Good Supplier", "Sundry Creditors", closing_balance=Decimal("-5000"),
                       gstin="27AAPFU0939F1ZV"),
    )
    snapshot = CompanySnapshot(company_profile=company_profile, ledgers=creditors)

    issues = engine.run_audit(snapshot, AUDIT_DATE).issues_by_category(AuditCategory.PARTY_MASTER)

    assert ids(issues) == ["PARTY_CREDITORS_INVALID_GSTIN"]
    assert issues[0].severity == Severity.CRITICAL
    assert issues[0].affected_subjects == ("Steel Supplier (27ABC)",)


def test_recommendations_and_overall_score(engine, company_profile):
    snapshot = CompanySnapshot(company_profile=company_profile, ledgers=())

    report = engine.run_audit(snapshot, AUDIT_DATE)

    assert report.recommendations[0].startswith("Address 6 CRITICAL issues")
    assert 0 <= report.overall_score < 100
    assert any("auto-fixed" in line for line in report.recommendations)


class DoubleRule(Rule):
    rule_id = "STOCK_DOUBLE"
    rule_name = "Emits the same issue twice"
    category = AuditCategory.STOCK_ITEM
    applies_to = frozenset({DataSource.STOCK_ITEMS})

    def evaluate(self, context):
        issue = Issue(id="STOCK_DOUBLE", category=self.category, severity=Severity.LOW,
                      title="Double", description="Same id twice")
        return [issue, issue]


def test_registry_drops_duplicate_issue_ids(catalog):
    registry = RuleRegistry()
    registry.register(DoubleRule())
    context = RuleContext(category=AuditCategory.STOCK_ITEM, catalog=catalog)

    issues = registry.evaluate_category(AuditCategory.STOCK_ITEM, context)

    assert ids(issues) == ["STOCK_DOUBLE"]
    assert registry.data_sources_for(AuditCategory.STOCK_ITEM) == frozenset({DataSource.STOCK_ITEMS})
    assert registry.data_sources_for(AuditCategory.GST) == frozenset()
    assert registry.get_rule("STOCK_DOUBLE") is not None


def test_gst_ledger_without_component_is_ambiguous(engine, company_profile, complete_tax_ledgers):
    snapshot = CompanySnapshot(
        company_profile=company_profile,
        ledgers=complete_tax_ledgers + (tax_ledger("GST Payable"), tax_ledger("GST Cess Payable")),
    )

    gst = engine.run_audit(snapshot, AUDIT_DATE).issues_by_category(AuditCategory.GST)

    assert ids(gst) == ["GST_AMBIGUOUS_GST Payable"]
    assert not gst[0].auto_fixable
