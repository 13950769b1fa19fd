"""
Ledger Audit - configuration audit, reconciliation and aging engine.
"""
from .aging import AgingBucket, AgingBuckets, AgingCalculator
from .catalog import RuleCatalog, default_catalog
from .compliance import ComplianceReconciler
from .engine import AuditEngine, AuditReport, CategoryResult
from .errors import AuditError, DataUnavailable, InvalidRange, MutationFailed, NotFixable
from .findings import AuditCategory, FixAction, FixKind, Issue, Severity
from .fixes import ApplyResult, BatchApplyResult, FixPlanner, FixPreview, MutationSink
from .io import CompanySnapshot, ExcelSnapshotProvider, SnapshotProvider
from .models import CompanyProfile, DateRange, LedgerSnapshot, StockItemSnapshot, TransactionRecord
from .reconcile import MatchOptions, MatchResult, MatchType, ReconciliationMatcher, ReconciliationReport
from .rules import Rule, RuleContext, RuleRegistry, build_default_registry
from .similarity import distance, is_similar, normalize_name, similarity

__all__ = [
    "AgingBucket",
    "AgingBuckets",
    "AgingCalculator",
    "RuleCatalog",
    "default_catalog",
    "ComplianceReconciler",
    "AuditEngine",
    "AuditReport",
    "CategoryResult",
    "AuditError",
    "DataUnavailable",
    "InvalidRange",
    "MutationFailed",
    "NotFixable",
    "AuditCategory",
    "FixAction",
    "FixKind",
    "Issue",
    "Severity",
    "ApplyResult",
    "BatchApplyResult",
    "FixPlanner",
    "FixPreview",
    "MutationSink",
    "CompanySnapshot",
    "ExcelSnapshotProvider",
    "SnapshotProvider",
    "CompanyProfile",
    "DateRange",
    "LedgerSnapshot",
    "StockItemSnapshot",
    "TransactionRecord",
    "MatchOptions",
    "MatchResult",
    "MatchType",
    "ReconciliationMatcher",
    "ReconciliationReport",
    "Rule",
    "RuleContext",
    "RuleRegistry",
    "build_default_registry",
    "distance",
    "is_similar",
    "normalize_name",
    "similarity",
]
