"""
Issue records produced by audit rules, and their tabular form.
"""
import pandas as pd
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .canonical_fields import CanonicalField, ISSUE_FIELDS, get_field_names


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class AuditCategory(str, Enum):
    """Independent audit categories, evaluated in this order."""
    COMPANY_INFO = "Company Info"
    GST = "GST"
    TDS = "TDS"
    LEDGER_CLASSIFICATION = "Ledger Classification"
    PARTY_MASTER = "Party Master"
    STOCK_ITEM = "Stock Item"


class FixKind(str, Enum):
    CREATE_SUBJECT = "create_subject"
    RECLASSIFY = "reclassify"
    ENABLE_ATTRIBUTE = "enable_attribute"
    RENAME = "rename"


@dataclass(frozen=True)
class FixAction:
    """Pure description of a change; execution belongs to a MutationSink."""
    kind: FixKind
    target_subject: str
    changes: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "target_subject": self.target_subject,
            "changes": dict(self.changes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FixAction":
        return cls(
            kind=FixKind(data["kind"]),
            target_subject=data["target_subject"],
            changes=dict(data.get("changes") or {}),
        )


@dataclass(frozen=True)
class Issue:
    """Structured audit issue. ``id`` is stable across runs on the same snapshot."""
    id: str
    category: AuditCategory
    severity: Severity
    title: str
    description: str
    current_value: Optional[str] = None
    suggested_value: Optional[str] = None
    affected_subjects: Tuple[str, ...] = ()
    auto_fixable: bool = False
    fix_action: Optional[FixAction] = None

    def __post_init__(self):
        if not isinstance(self.severity, Severity):
            raise ValueError(f"Issue {self.id} has invalid severity {self.severity!r}")
        if self.auto_fixable and self.fix_action is None:
            raise ValueError(f"Issue {self.id} is auto-fixable but has no fix action")

    @property
    def affected_count(self) -> int:
        return len(self.affected_subjects)

    def to_dict(self, display_limit: Optional[int] = None) -> Dict[str, Any]:
        """Convert to dictionary, truncating affected subjects for display only."""
        subjects = list(self.affected_subjects)
        if display_limit is not None:
            subjects = subjects[:display_limit]
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "current_value": self.current_value,
            "suggested_value": self.suggested_value,
            "affected_subjects": subjects,
            "affected_count": self.affected_count,
            "auto_fixable": self.auto_fixable,
            "fix_action": self.fix_action.to_dict() if self.fix_action else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Issue":
        """Rebuild an issue stored with to_dict() (without a display limit)."""
        fix_action = data.get("fix_action")
        return cls(
            id=data["id"],
            category=AuditCategory(data["category"]),
            severity=Severity(data["severity"]),
            title=data["title"],
            description=data["description"],
            current_value=data.get("current_value"),
            suggested_value=data.get("suggested_value"),
            affected_subjects=tuple(data.get("affected_subjects") or ()),
            auto_fixable=bool(data.get("auto_fixable")),
            fix_action=FixAction.from_dict(fix_action) if fix_action else None,
        )


def count_by_severity(issues: Sequence[Issue]) -> Dict[Severity, int]:
    counts = {severity: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity] += 1
    return counts


def generate_issue_frame(issues: Sequence[Issue], run_id: str) -> pd.DataFrame:
    """
    Convert issues to a DataFrame for persistence.

    Args:
        issues: Issues from an audit run
        run_id: Current audit run ID

    Returns:
        DataFrame with one row per issue, canonical columns
    """
    columns = list(get_field_names(ISSUE_FIELDS))
    if not issues:
        return pd.DataFrame(columns=columns)

    rows: List[Dict[str, Any]] = []
    for issue in issues:
        rows.append({
            CanonicalField.ISSUE_ID.value: issue.id,
            CanonicalField.RUN_ID.value: run_id,
            CanonicalField.CATEGORY.value: issue.category.value,
            CanonicalField.SEVERITY.value: issue.severity.value,
            CanonicalField.TITLE.value: issue.title,
            CanonicalField.DESCRIPTION.value: issue.description,
            CanonicalField.CURRENT_VALUE.value: issue.current_value,
            CanonicalField.SUGGESTED_VALUE.value: issue.suggested_value,
            CanonicalField.AFFECTED_SUBJECTS.value: "; ".join(issue.affected_subjects),
            CanonicalField.AFFECTED_COUNT.value: issue.affected_count,
            CanonicalField.AUTO_FIXABLE.value: issue.auto_fixable,
            CanonicalField.FIX_KIND.value: issue.fix_action.kind.value if issue.fix_action else None,
            CanonicalField.FIX_TARGET.value: issue.fix_action.target_subject if issue.fix_action else None,
        })

    return pd.DataFrame(rows, columns=columns)
