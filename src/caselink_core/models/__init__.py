"""
Shared data models for the case lifecycle engine.

This package provides the pydantic models persisted by the stores and
returned by the lifecycle service.
"""

from caselink_core.config import DocumentKind
from caselink_core.models.case import (
    # Core case model
    Case,
    CaseStatus,
    ReviewStatus,
    EscalationLevel,
    ACTIVE_STATUSES,
    calculate_completion_percent,

    # Documents and contacts
    DocumentArtifact,
    SubmitterContact,

    # Lifecycle phase union
    LifecyclePhase,
    OpenPhase,
    InProgressPhase,
    SubmittedPhase,
    RejectedPhase,
    CompletedPhase,
    ExpiredPhase,
)
from caselink_core.models.audit import AuditAction, AuditEvent
from caselink_core.models.api_models import (
    OperationError,
    OperationResult,
    CaseCreated,
    SubmitterView,
    CaseKpis,
)

__all__ = [
    # Core case
    "Case", "CaseStatus", "ReviewStatus", "EscalationLevel", "ACTIVE_STATUSES",
    "DocumentKind", "calculate_completion_percent",
    # Documents
    "DocumentArtifact", "SubmitterContact",
    # Phases
    "LifecyclePhase", "OpenPhase", "InProgressPhase", "SubmittedPhase",
    "RejectedPhase", "CompletedPhase", "ExpiredPhase",
    # Audit
    "AuditAction", "AuditEvent",
    # Results and projections
    "OperationError", "OperationResult", "CaseCreated", "SubmitterView", "CaseKpis",
]
