"""Result and projection models returned by the lifecycle service.

These models sit between the domain Case and the outer (HTTP/UI) layer:
- OperationResult: structured success/failure of one operation
- CaseCreated: new case plus the path of the submitter link
- SubmitterView: what the submitter may see through the access token
- CaseKpis: counts for the supervisor dashboard
"""

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from caselink_core.config import REQUIRED_DOCUMENT_KINDS, SUBMITTER_LINK_PREFIX, DocumentKind
from caselink_core.errors import CaseEngineError, ErrorKind, InvalidStateError, InvalidStateReason
from caselink_core.models.case import Case, CaseStatus, ReviewStatus

T = TypeVar("T")


# ============================================================
# Operation results
# ============================================================

class OperationError(BaseModel):
    """Failure detail safe to show outside the engine."""

    kind: ErrorKind
    reason: Optional[InvalidStateReason] = None
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: CaseEngineError) -> "OperationError":
        if isinstance(exc, InvalidStateError):
            return cls(kind=exc.kind, reason=exc.reason, message=exc.message, details=exc.details)
        return cls(kind=exc.kind, message=exc.message)


class OperationResult(BaseModel, Generic[T]):
    """Outcome of one lifecycle operation.

    Usage:
        result = await service.submit(token)
        if result.ok:
            case = result.value
        elif result.error.reason == InvalidStateReason.INCOMPLETE_DOCUMENTS:
            ...
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[OperationError] = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: CaseEngineError) -> "OperationResult":
        return cls(ok=False, error=OperationError.from_exception(exc))

    @property
    def is_conflict(self) -> bool:
        return self.error is not None and self.error.kind == ErrorKind.CONFLICT


# ============================================================
# Projections
# ============================================================

class CaseCreated(BaseModel):
    case: Case
    submitter_link: str = Field(description="Path the submitter opens, e.g. /customer/<token>")

    @classmethod
    def for_case(cls, case: Case) -> "CaseCreated":
        return cls(case=case, submitter_link=f"{SUBMITTER_LINK_PREFIX}/{case.access_token}")


class SubmitterView(BaseModel):
    """Case as seen through the access token; no owner or audit details."""

    case_id: str
    submitter_name: Optional[str] = None
    status: CaseStatus
    completion_percent: int
    review_status: ReviewStatus
    review_comment: Optional[str] = None
    rejected_slots: List[DocumentKind] = Field(default_factory=list)
    slots_pending_resubmission: List[DocumentKind] = Field(default_factory=list)
    document_status: Dict[DocumentKind, bool]
    required_kinds: List[DocumentKind] = Field(default_factory=lambda: list(REQUIRED_DOCUMENT_KINDS))
    expired_at: Optional[datetime] = None
    is_read_only: bool

    @classmethod
    def from_case(cls, case: Case) -> "SubmitterView":
        return cls(
            case_id=case.id,
            submitter_name=case.submitter.name,
            status=case.status,
            completion_percent=case.completion_percent,
            review_status=case.review_status,
            review_comment=case.review_comment,
            rejected_slots=list(case.rejected_slots),
            slots_pending_resubmission=case.slots_pending_resubmission(),
            document_status=case.document_status,
            expired_at=case.expired_at,
            is_read_only=case.is_read_only_for_submitter,
        )


class CaseKpis(BaseModel):
    total: int = 0
    open: int = 0
    in_progress: int = 0
    submitted: int = 0
    completed: int = 0
    expired: int = 0
    approved: int = 0
    rejected: int = 0
    escalated: int = 0

    @classmethod
    def from_cases(cls, cases: List[Case]) -> "CaseKpis":
        kpis = cls(total=len(cases))
        for case in cases:
            if case.status == CaseStatus.OPEN:
                kpis.open += 1
            elif case.status == CaseStatus.IN_PROGRESS:
                kpis.in_progress += 1
            elif case.status == CaseStatus.SUBMITTED:
                kpis.submitted += 1
            elif case.status == CaseStatus.COMPLETED:
                kpis.completed += 1
            elif case.status == CaseStatus.EXPIRED:
                kpis.expired += 1

            if case.review_status == ReviewStatus.APPROVED:
                kpis.approved += 1
            elif case.review_status == ReviewStatus.REJECTED:
                kpis.rejected += 1

            if case.escalation_level > 0:
                kpis.escalated += 1
        return kpis
