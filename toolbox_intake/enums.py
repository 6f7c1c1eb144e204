"""
Canonical enums for intakes, tools and conversion jobs.
"""

from enum import Enum


class IntakeStatus(str, Enum):
    """Review lifecycle of a tool intake."""

    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CHANGES = "needs_changes"
    CONVERTED_TO_TOOL = "converted_to_tool"


class ReviewAction(str, Enum):
    """Admin review actions and the status each one produces."""

    APPROVE = "approve"
    REJECT = "reject"
    NEEDS_CHANGES = "needs_changes"

    @property
    def target_status(self) -> IntakeStatus:
        return {
            ReviewAction.APPROVE: IntakeStatus.APPROVED,
            ReviewAction.REJECT: IntakeStatus.REJECTED,
            ReviewAction.NEEDS_CHANGES: IntakeStatus.NEEDS_CHANGES,
        }[self]


class ToolStatus(str, Enum):
    ACTIVE = "active"
    DEPRECATED = "deprecated"
    DELETED = "deleted"


class ToolUpdateStatus(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    VALIDATION_FAILED = "validation_failed"


class ConversionJobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class MultiConnection(str, Enum):
    """Allowed values for ``features.multiConnection``."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    NONE = "none"


# Statuses from which each review action may be applied.
REVIEWABLE_STATUSES = (IntakeStatus.PENDING_REVIEW, IntakeStatus.NEEDS_CHANGES)

ACTIVE_JOB_STATUSES = (ConversionJobStatus.QUEUED, ConversionJobStatus.RUNNING)


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    LINKED = "linked"
