"""
Fix planning and application.

FixPlanner turns an auto-fixable Issue's FixAction into calls on a
MutationSink. Every fix commits or fails on its own; a batch never rolls
back fixes that already went through.

An enable-attribute fix makes one sink call per attribute, so it can be
left partly applied; its error then names the attributes already set.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import MutationFailed, NotFixable
from .findings import FixAction, FixKind, Issue

logger = logging.getLogger(__name__)

PREVIEW_WARNING = "This is a preview. No changes have been made yet."


class MutationSink(ABC):
    """Applies master-data changes to the ERP (or queues them for it)."""

    @abstractmethod
    def create_subject(self, name: str, attributes: Mapping[str, Any]) -> None:
        pass

    @abstractmethod
    def reclassify(self, subject: str, new_classification: str) -> None:
        pass

    @abstractmethod
    def set_attribute(self, subject: str, attribute: str, value: Any) -> None:
        pass

    @abstractmethod
    def rename(self, subject: str, new_name: str) -> None:
        pass


@dataclass(frozen=True)
class FixPreview:
    issue_id: str
    kind: FixKind
    target_subject: str
    changes: Mapping[str, Any]
    description: str
    warning: str = PREVIEW_WARNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "action": self.kind.value,
            "target": self.target_subject,
            "changes": dict(self.changes),
            "description": self.description,
            "warning": self.warning,
        }


@dataclass(frozen=True)
class ApplyResult:
    issue_id: str
    success: bool
    message: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "success": self.success,
            "message": self.message,
            "error": self.error,
        }


@dataclass
class BatchApplyResult:
    results: List[ApplyResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def successes(self) -> List[ApplyResult]:
        return [r for r in self.results if r.success]

    @property
    def errors(self) -> List[ApplyResult]:
        return [r for r in self.results if not r.success]

    @property
    def success(self) -> bool:
        return not self.errors and not self.skipped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "success_count": len(self.successes),
            "error_count": len(self.errors),
            "cancelled": self.cancelled,
            "results": [r.to_dict() for r in self.successes],
            "errors": [r.to_dict() for r in self.errors],
            "skipped": list(self.skipped),
        }


def describe_action(action: FixAction) -> str:
    changes = action.changes
    if action.kind == FixKind.CREATE_SUBJECT:
        parent = changes.get("parent")
        return f'Create "{action.target_subject}"' + (f' under "{parent}"' if parent else "")
    if action.kind == FixKind.RECLASSIFY:
        return f'Move "{action.target_subject}" under "{changes.get("parent")}"'
    if action.kind == FixKind.ENABLE_ATTRIBUTE:
        settings = ", ".join(f"{key}={value}" for key, value in changes.items())
        return f'Set {settings} on "{action.target_subject}"'
    if action.kind == FixKind.RENAME:
        return f'Rename "{action.target_subject}" to "{changes.get("new_name")}"'
    return f"{action.kind.value} on {action.target_subject}"


class FixPlanner:
    """Preview and apply the fixes attached to auto-fixable issues."""

    def __init__(self, sink: MutationSink):
        self.sink = sink

    @staticmethod
    def find_issue(report, issue_id: str) -> Issue:
        """Look up an issue on an AuditReport; unknown ids are not fixable."""
        issue = report.get_issue(issue_id)
        if issue is None:
            raise NotFixable(issue_id, "not found")
        return issue

    @staticmethod
    def _require_fixable(issue: Issue) -> FixAction:
        if not issue.auto_fixable or issue.fix_action is None:
            raise NotFixable(issue.id)
        return issue.fix_action

    def preview(self, issue: Issue) -> FixPreview:
        """Describe the change without touching the sink."""
        action = self._require_fixable(issue)
        return FixPreview(
            issue_id=issue.id,
            kind=action.kind,
            target_subject=action.target_subject,
            changes=dict(action.changes),
            description=describe_action(action),
        )

    def apply(self, issue: Issue) -> ApplyResult:
        """
        Apply one fix. Raises NotFixable for non-fixable issues; sink
        failures are reported on the result, not raised.
        """
        action = self._require_fixable(issue)
        try:
            self._execute(action)
        except MutationFailed as e:
            logger.warning(f"[FIX] Fix for {issue.id} rejected: {e}")
            return ApplyResult(issue.id, False, error=str(e))
        except Exception as e:
            logger.error(f"[FIX] Sink error applying {issue.id}: {e}", exc_info=True)
            failure = MutationFailed(action.target_subject, str(e), cause=e)
            return ApplyResult(issue.id, False, error=str(failure))

        logger.info(f"[FIX] Applied {action.kind.value} on '{action.target_subject}' for {issue.id}")
        return ApplyResult(issue.id, True, message=f"Successfully applied fix for: {issue.title}")

    def apply_many(
        self,
        issues: Sequence[Issue],
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchApplyResult:
        """
        Apply fixes one by one, continuing past failures.

        Setting ``cancel_event`` stops the batch before the next fix; fixes
        already applied stay applied and the rest are reported as skipped.
        """
        batch = BatchApplyResult()
        for position, issue in enumerate(issues):
            if cancel_event is not None and cancel_event.is_set():
                batch.cancelled = True
                batch.skipped.extend(i.id for i in issues[position:])
                logger.info(f"[FIX] Batch cancelled, {len(batch.skipped)} fixes skipped")
                break
            try:
                batch.results.append(self.apply(issue))
            except NotFixable as e:
                batch.results.append(ApplyResult(issue.id, False, error=str(e)))

        logger.info(
            f"[FIX] Batch complete: {len(batch.successes)} applied, "
            f"{len(batch.errors)} failed, {len(batch.skipped)} skipped"
        )
        return batch

    def _execute(self, action: FixAction) -> None:
        changes = dict(action.changes)
        if action.kind == FixKind.CREATE_SUBJECT:
            self.sink.create_subject(action.target_subject, changes)
        elif action.kind == FixKind.RECLASSIFY:
            self.sink.reclassify(action.target_subject, changes["parent"])
        elif action.kind == FixKind.ENABLE_ATTRIBUTE:
            self._set_attributes(action.target_subject, changes)
        elif action.kind == FixKind.RENAME:
            self.sink.rename(action.target_subject, changes["new_name"])
        else:
            raise MutationFailed(action.target_subject, f"unknown fix kind {action.kind!r}")

    def _set_attributes(self, subject: str, changes: Dict[str, Any]) -> None:
        """One sink call per attribute; a failure part way names what already went through."""
        applied = []
        for attribute, value in changes.items():
            try:
                self.sink.set_attribute(subject, attribute, value)
            except Exception as e:
                if not applied:
                    raise
                reason = e.reason if isinstance(e, MutationFailed) else str(e)
                raise MutationFailed(
                    subject, f"{reason} (partially applied: {', '.join(applied)})", cause=e
                ) from e
            applied.append(attribute)
