"""
Exception taxonomy for the audit and reconciliation engine.
"""
from typing import Optional


class AuditError(Exception):
    """Base class for all engine errors."""


class DataUnavailable(AuditError):
    """
    A snapshot provider call failed.

    Scoped to the audit category (or reconciliation call) that needed the
    data; sibling categories keep running.
    """

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        self.reason = reason
        message = f"Data source '{source}' unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class NotFixable(AuditError):
    """Fix requested for an issue that is unknown or not auto-fixable."""

    def __init__(self, issue_id: str, reason: str = "not auto-fixable"):
        self.issue_id = issue_id
        super().__init__(f'Issue "{issue_id}" is {reason}')


class MutationFailed(AuditError):
    """The mutation sink rejected a fix action."""

    def __init__(self, target: str, reason: str, cause: Optional[BaseException] = None):
        self.target = target
        self.reason = reason
        self.cause = cause
        super().__init__(f"Failed to apply fix on '{target}': {reason}")


class InvalidRange(AuditError):
    """Malformed date window passed to reconciliation or aging."""
