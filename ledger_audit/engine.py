"""
Audit engine: evaluates every category of a rule registry against a
snapshot, scores the results and assembles the report.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from config import EngineConfig, ScoringConfig
from .catalog import RuleCatalog
from .errors import DataUnavailable
from .findings import AuditCategory, Issue, Severity, count_by_severity, generate_issue_frame
from .io import SnapshotProvider
from .metrics import category_score, category_summary, generate_recommendations, overall_score
from .rules import DataSource, RuleContext, RuleRegistry, build_default_registry

logger = logging.getLogger(__name__)


@dataclass
class CategoryResult:
    """
    Outcome of one category.

    A degraded category could not read its data: it has no issues, no
    score and status "Unknown". Treat it as unknown, never as clean.
    """
    category: AuditCategory
    issues: List[Issue] = field(default_factory=list)
    score: Optional[int] = None
    status: str = "Unknown"
    summary: str = ""
    degraded: bool = False
    diagnostic: Optional[str] = None

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    def to_dict(self, display_limit: Optional[int] = None) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "score": self.score,
            "status": self.status,
            "issue_count": self.issue_count,
            "summary": self.summary,
            "degraded": self.degraded,
            "diagnostic": self.diagnostic,
            "issues": [issue.to_dict(display_limit) for issue in self.issues],
        }


@dataclass
class AuditReport:
    company_name: str
    audit_date: date
    categories: List[CategoryResult]
    overall_score: int
    recommendations: List[str] = field(default_factory=list)
    catalog_name: str = ""

    @property
    def issues(self) -> List[Issue]:
        """All issues, in category order then rule order."""
        return [issue for result in self.categories for issue in result.issues]

    @property
    def category_scores(self) -> Dict[AuditCategory, Optional[int]]:
        return {result.category: result.score for result in self.categories}

    @property
    def severity_counts(self) -> Dict[Severity, int]:
        return count_by_severity(self.issues)

    @property
    def degraded_categories(self) -> List[AuditCategory]:
        return [result.category for result in self.categories if result.degraded]

    def category(self, category: AuditCategory) -> CategoryResult:
        for result in self.categories:
            if result.category == category:
                return result
        raise KeyError(category)

    def issues_by_category(self, category: AuditCategory) -> List[Issue]:
        return list(self.category(category).issues)

    def auto_fixable_issues(self) -> List[Issue]:
        return [issue for issue in self.issues if issue.auto_fixable]

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        for issue in self.issues:
            if issue.id == issue_id:
                return issue
        return None

    def to_dict(self, display_limit: Optional[int] = None) -> Dict[str, Any]:
        counts = self.severity_counts
        return {
            "company_name": self.company_name,
            "audit_date": self.audit_date.isoformat(),
            "catalog": self.catalog_name,
            "overall_score": self.overall_score,
            "total_issues": len(self.issues),
            "critical_issues": counts[Severity.CRITICAL],
            "high_issues": counts[Severity.HIGH],
            "medium_issues": counts[Severity.MEDIUM],
            "low_issues": counts[Severity.LOW],
            "categories": [result.to_dict(display_limit) for result in self.categories],
            "recommendations": list(self.recommendations),
        }

    def issues_frame(self, run_id: str) -> pd.DataFrame:
        return generate_issue_frame(self.issues, run_id)


class AuditEngine:
    """
    Runs a rule registry against a snapshot.

    Categories share no mutable state and run concurrently on a thread pool
    (or one after another when parallelism is disabled). Scoring waits for
    every category to finish or degrade.
    """

    def __init__(
        self,
        catalog: RuleCatalog,
        registry: Optional[RuleRegistry] = None,
        scoring: Optional[ScoringConfig] = None,
        engine_config: Optional[EngineConfig] = None,
    ):
        self.catalog = catalog
        self.registry = registry or build_default_registry(catalog)
        self.scoring = scoring or ScoringConfig()
        self.engine_config = engine_config or EngineConfig()

    def run_audit(self, snapshot: SnapshotProvider, audit_date: Optional[date] = None) -> AuditReport:
        categories = list(AuditCategory)
        logger.info(
            f"[AUDIT] Starting audit: {len(categories)} categories, "
            f"{len(self.registry.get_all_rules())} rules, catalog '{self.catalog.name}'"
        )

        if self.engine_config.parallel and len(categories) > 1:
            workers = max(1, min(self.engine_config.max_workers, len(categories)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    category: executor.submit(self._evaluate_category, category, snapshot)
                    for category in categories
                }
                results = [futures[category].result() for category in categories]
        else:
            results = [self._evaluate_category(category, snapshot) for category in categories]

        issues = [issue for result in results for issue in result.issues]
        report = AuditReport(
            company_name=self._company_name(snapshot),
            audit_date=audit_date or date.today(),
            categories=results,
            overall_score=overall_score(issues, self.scoring),
            recommendations=generate_recommendations(issues, self.catalog),
            catalog_name=self.catalog.name,
        )

        counts = report.severity_counts
        logger.info(
            f"[AUDIT] Audit complete: score={report.overall_score}, issues={len(issues)} "
            f"(critical={counts[Severity.CRITICAL]}, high={counts[Severity.HIGH]}, "
            f"medium={counts[Severity.MEDIUM]}, low={counts[Severity.LOW]}), "
            f"degraded={[c.value for c in report.degraded_categories]}"
        )
        return report

    def build_context(self, category: AuditCategory, snapshot: SnapshotProvider) -> RuleContext:
        """Fetch only the data the category's rules declared."""
        sources = self.registry.data_sources_for(category)
        context = RuleContext(category=category, catalog=self.catalog)
        if DataSource.LEDGERS in sources:
            context.ledgers = tuple(snapshot.fetch_ledgers())
        if DataSource.STOCK_ITEMS in sources:
            context.stock_items = tuple(snapshot.fetch_stock_items())
        if DataSource.COMPANY_PROFILE in sources:
            context.company_profile = snapshot.fetch_company_profile()
        return context

    def _evaluate_category(self, category: AuditCategory, snapshot: SnapshotProvider) -> CategoryResult:
        try:
            context = self.build_context(category, snapshot)
        except DataUnavailable as e:
            logger.warning(f"[AUDIT] Category '{category.value}' degraded: {e}")
            return CategoryResult(
                category=category,
                status=self.scoring.status_for(None),
                summary=f"{category.value} could not be audited",
                degraded=True,
                diagnostic=str(e),
            )

        issues = self.registry.evaluate_category(category, context)
        score = category_score(issues, self.scoring)
        logger.debug(f"[AUDIT] Category '{category.value}': {len(issues)} issues, score {score}")
        return CategoryResult(
            category=category,
            issues=issues,
            score=score,
            status=self.scoring.status_for(score),
            summary=category_summary(category.value, issues),
        )

    def _company_name(self, snapshot: SnapshotProvider) -> str:
        try:
            return snapshot.fetch_company_profile().name
        except DataUnavailable:
            return ""
