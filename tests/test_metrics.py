from datetime import date
from decimal import Decimal

import pytest

from config import ScoringConfig
from ledger_audit.findings import AuditCategory, Issue, Severity
from ledger_audit.metrics import (
    calculate_reconciliation_kpis,
    category_score,
    category_summary,
    generate_recommendations,
    overall_score,
)
from ledger_audit.models import TransactionRecord
from ledger_audit.reconcile import ReconciliationMatcher


def make_issue(n, severity, category=AuditCategory.GST):
    return Issue(id=f"ISSUE_{n}", category=category, severity=severity, title="t", description="d")


def test_scores_deduct_per_severity():
    issues = [make_issue(1, Severity.CRITICAL), make_issue(2, Severity.LOW)]

    assert category_score(issues) == 100 - 20 - 2
    assert overall_score(issues) == 100 - 15 - 1


def test_score_is_clamped_at_zero():
    issues = [make_issue(n, Severity.CRITICAL) for n in range(10)]

    assert category_score(issues) == 0
    assert overall_score(issues) == 0


def test_adding_an_issue_never_raises_the_score():
    issues = []
    previous = category_score(issues)
    for n, severity in enumerate([Severity.LOW, Severity.HIGH, Severity.MEDIUM, Severity.CRITICAL] * 3):
        issues.append(make_issue(n, severity))
        current = category_score(issues)
        assert current <= previous
        previous = current


def test_custom_weights():
    scoring = ScoringConfig(category_weights={"Critical": 50, "High": 0, "Medium": 0, "Low": 0})

    assert category_score([make_issue(1, Severity.CRITICAL)], scoring) == 50


@pytest.mark.parametrize("score,status", [
    (100, "Good"), (80, "Good"), (79, "Needs Attention"),
    (50, "Needs Attention"), (49, "Critical"), (None, "Unknown"),
])
def test_status_thresholds(score, status):
    assert ScoringConfig().status_for(score) == status


def test_category_summary():
    assert category_summary("GST", []) == "GST configuration looks good!"
    summary = category_summary("GST", [make_issue(1, Severity.HIGH)])
    assert summary.startswith("Found 1 issue(s): 0 critical, 1 high")


def test_recommendations_for_clean_audit(catalog):
    assert generate_recommendations([], catalog) == ["Configuration looks good for compliance reporting."]


def test_recommendations_include_category_hints(catalog):
    issues = [make_issue(1, Severity.HIGH, AuditCategory.STOCK_ITEM)]

    recommendations = generate_recommendations(issues, catalog)

    assert recommendations == [catalog.recommendation_hints["Stock Item"]]


def test_reconciliation_kpis(recon_config):
    def record(day, amount, instrument=None):
        return TransactionRecord(date(2024, 1, day), "REF", "Bank", Decimal(amount), instrument_id=instrument)

    book = [record(1, "100", "CHQ1"), record(2, "200"), record(3, "300")]
    external = [record(1, "100", "CHQ1"), record(4, "200"), record(5, "50")]
    frame = ReconciliationMatcher(recon_config).match(book, external).results_frame()

    kpis = calculate_reconciliation_kpis(frame)

    assert kpis["exact_matches"] == 1
    assert kpis["fuzzy_matches"] == 1
    assert kpis["unmatched_book"] == 1
    assert kpis["unmatched_external"] == 1
    assert kpis["match_rate"] == pytest.approx(50.0)
    assert kpis["matched_book_amount"] == pytest.approx(300.0)
    assert kpis["unmatched_book_amount"] == pytest.approx(300.0)
    assert kpis["unmatched_external_amount"] == pytest.approx(50.0)


def test_reconciliation_kpis_empty(recon_config):
    frame = ReconciliationMatcher(recon_config).match([], []).results_frame()

    assert calculate_reconciliation_kpis(frame)["total_results"] == 0
