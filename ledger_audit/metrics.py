"""
Scores, status labels, recommendations and reconciliation KPIs.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from config import ScoringConfig
from .canonical_fields import CanonicalField
from .catalog import RuleCatalog
from .findings import Issue, Severity, count_by_severity
from .reconcile import MatchType


def deduct(issues: Sequence[Issue], weights: Mapping[str, int]) -> int:
    """100 minus the weighted severity counts, clamped to [0, 100]."""
    counts = count_by_severity(issues)
    score = 100
    for severity, count in counts.items():
        score -= weights.get(severity.value, 0) * count
    return max(0, min(100, score))


def category_score(issues: Sequence[Issue], scoring: Optional[ScoringConfig] = None) -> int:
    scoring = scoring or ScoringConfig()
    return deduct(issues, scoring.category_weights)


def overall_score(issues: Sequence[Issue], scoring: Optional[ScoringConfig] = None) -> int:
    """Overall score over the union of issues; weighted separately from categories."""
    scoring = scoring or ScoringConfig()
    return deduct(issues, scoring.overall_weights)


def category_summary(category_name: str, issues: Sequence[Issue]) -> str:
    if not issues:
        return f"{category_name} configuration looks good!"
    counts = count_by_severity(issues)
    return (
        f"Found {len(issues)} issue(s): {counts[Severity.CRITICAL]} critical, "
        f"{counts[Severity.HIGH]} high, {counts[Severity.MEDIUM]} medium, {counts[Severity.LOW]} low"
    )


def generate_recommendations(issues: Sequence[Issue], catalog: RuleCatalog) -> List[str]:
    """One line per triggered concern, most urgent first."""
    recommendations = []

    critical = [i for i in issues if i.severity == Severity.CRITICAL]
    if critical:
        recommendations.append(
            f"Address {len(critical)} CRITICAL issues immediately before proceeding with compliance work."
        )

    categories = {issue.category.value for issue in issues}
    for category_value, hint in catalog.recommendation_hints.items():
        if category_value in categories:
            recommendations.append(hint)

    fixable = [i for i in issues if i.auto_fixable]
    if fixable:
        recommendations.append(f"{len(fixable)} issues can be auto-fixed. Use the fix tools to apply corrections.")

    if not recommendations:
        recommendations.append("Configuration looks good for compliance reporting.")
    return recommendations


def calculate_reconciliation_kpis(results: pd.DataFrame) -> Dict[str, Any]:
    """
    Calculate KPIs from a reconciliation results frame.

    Args:
        results: Output of ReconciliationReport.results_frame()

    Returns:
        Dictionary with KPI values
    """
    total_rows = len(results)
    if total_rows == 0:
        return {
            "total_results": 0,
            "exact_matches": 0,
            "fuzzy_matches": 0,
            "unmatched_book": 0,
            "unmatched_external": 0,
            "match_rate": 0.0,
            "matched_book_amount": 0.0,
            "unmatched_book_amount": 0.0,
            "unmatched_external_amount": 0.0,
        }

    match_type = results[CanonicalField.MATCH_TYPE.value]
    matched = results[match_type != MatchType.UNMATCHED.value]
    unmatched = results[match_type == MatchType.UNMATCHED.value]
    unmatched_book = unmatched[unmatched[CanonicalField.BOOK_AMOUNT.value].notna()]
    unmatched_external = unmatched[unmatched[CanonicalField.BOOK_AMOUNT.value].isna()]

    exact = int((match_type == MatchType.EXACT.value).sum())
    fuzzy = len(matched) - exact

    return {
        "total_results": int(total_rows),
        "exact_matches": exact,
        "fuzzy_matches": int(fuzzy),
        "unmatched_book": int(len(unmatched_book)),
        "unmatched_external": int(len(unmatched_external)),
        "match_rate": float(len(matched) / total_rows * 100),
        "matched_book_amount": float(matched[CanonicalField.BOOK_AMOUNT.value].sum()),
        "unmatched_book_amount": float(unmatched_book[CanonicalField.BOOK_AMOUNT.value].sum()),
        "unmatched_external_amount": float(unmatched_external[CanonicalField.EXTERNAL_AMOUNT.value].sum()),
    }
