"""Case data models - document collection lifecycle.

Key Models:
- Case: Root record of one document-collection workflow
- CaseStatus: Lifecycle status (OPEN → IN_PROGRESS → SUBMITTED → COMPLETED, EXPIRED)
- ReviewStatus: Review sub-state (PENDING → APPROVED | REJECTED)
- DocumentArtifact: The current upload occupying one document slot
- LifecyclePhase: Tagged union view of (status, review_status)

Architecture:
- Two fields persisted (status + review_status), one phase derived
- Invariants enforced by model validators, so every constructed Case is legal
- Mutations build a new Case (see caselink_core.core.transition.evolve)
- Repository abstraction (no direct database imports)
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Annotated, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from caselink_core.config import REQUIRED_DOCUMENT_KINDS, DocumentKind


# ============================================================
# Status & Lifecycle Enums
# ============================================================

class CaseStatus(str, Enum):
    """
    Case lifecycle status.

    Lifecycle Flow:
      OPEN ⇄ IN_PROGRESS → SUBMITTED → COMPLETED (terminal)
                                     ↘ IN_PROGRESS (rejected)
      any non-COMPLETED → EXPIRED (SLA sweeper) → OPEN (reopen)
    """

    OPEN = "OPEN"
    """Created; the submitter may start uploading."""

    IN_PROGRESS = "IN_PROGRESS"
    """Owner actively working the case, or a rejection is being addressed."""

    SUBMITTED = "SUBMITTED"
    """Submitter handed in a complete document set; awaiting review."""

    COMPLETED = "COMPLETED"
    """TERMINAL STATE: review approved. No further transitions."""

    EXPIRED = "EXPIRED"
    """
    SLA exceeded before completion.

    Read-only for the submitter; the owner or a supervisor may reopen it.
    """

    @property
    def is_terminal(self) -> bool:
        """Completed and expired cases are out of reach of the escalation rules"""
        return self in (CaseStatus.COMPLETED, CaseStatus.EXPIRED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class EscalationLevel(IntEnum):
    """Reminder nagging stage shown to the owner."""

    NONE = 0
    FIRST = 1   # 24h after creation
    SECOND = 2  # 48h after the owner acknowledged the first reminder


ACTIVE_STATUSES = frozenset({CaseStatus.OPEN, CaseStatus.IN_PROGRESS, CaseStatus.SUBMITTED})


def calculate_completion_percent(filled: int, total: int) -> int:
    """Integer percentage of filled slots, rounded half up.

    Exact integer arithmetic: round(100 * filled / total) with .5 going up.

    >>> calculate_completion_percent(1, 4)
    25
    >>> calculate_completion_percent(1, 8)
    13
    """
    if total <= 0:
        raise ValueError("total must be positive")
    if filled < 0 or filled > total:
        raise ValueError(f"filled must be between 0 and {total}, got {filled}")
    return (200 * filled + total) // (2 * total)


# ============================================================
# Documents
# ============================================================

class DocumentArtifact(BaseModel):
    """
    The artifact currently occupying a document slot.

    A re-upload replaces the artifact; prior artifacts are not retained.
    """

    model_config = ConfigDict(frozen=True)

    blob_path: str = Field(
        description="Reference returned by the blob store",
        min_length=1
    )

    uploaded_at: datetime = Field(
        description="When this artifact was recorded on the case"
    )

    filename: Optional[str] = Field(
        default=None,
        description="Original filename supplied by the submitter",
        max_length=255
    )

    content_type: Optional[str] = Field(
        default=None,
        description="MIME type supplied by the submitter"
    )

    size_bytes: int = Field(
        default=0,
        ge=0,
        description="Size of the uploaded content"
    )

    checksum: Optional[str] = Field(
        default=None,
        description="sha256 hex digest of the uploaded content"
    )


class SubmitterContact(BaseModel):
    """Who the case link is sent to."""

    name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=320)
    reference: Dict[str, str] = Field(
        default_factory=dict,
        description="Free-form external references (dealer id, vehicle id, ...)"
    )


# ============================================================
# Lifecycle Phase (tagged union)
# ============================================================

class OpenPhase(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["open"] = "open"


class InProgressPhase(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["in_progress"] = "in_progress"


class SubmittedPhase(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["submitted"] = "submitted"
    review_pending: bool = True


class RejectedPhase(BaseModel):
    """A rejection is waiting for the named slots to be re-uploaded."""

    model_config = ConfigDict(frozen=True)
    kind: Literal["rejected"] = "rejected"
    slots: List[DocumentKind]
    comment: str
    rejected_at: Optional[datetime] = None
    status: CaseStatus = CaseStatus.IN_PROGRESS


class CompletedPhase(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["completed"] = "completed"
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class ExpiredPhase(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["expired"] = "expired"
    expired_at: datetime


LifecyclePhase = Annotated[
    Union[OpenPhase, InProgressPhase, SubmittedPhase, RejectedPhase, CompletedPhase, ExpiredPhase],
    Field(discriminator="kind"),
]


# ============================================================
# Case (root record)
# ============================================================

class Case(BaseModel):
    """
    One document-collection workflow between an owner and a submitter.

    The record is never mutated in place by the engine: every transition builds
    a new Case, which re-runs the validators below. An illegal combination of
    fields therefore cannot be persisted.
    """

    model_config = ConfigDict(validate_assignment=True, use_enum_values=False)

    # ============================================================
    # Identity
    # ============================================================
    id: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Opaque unique identifier (immutable)"
    )

    owner_id: str = Field(
        description="Staff member responsible for the case (changes only via reassignment)",
        min_length=1
    )

    access_token: str = Field(
        description="High-entropy token; the only key by which the submitter reaches the case",
        min_length=16
    )

    submitter: SubmitterContact = Field(
        default_factory=SubmitterContact,
        description="Submitter contact details"
    )

    # ============================================================
    # Lifecycle
    # ============================================================
    status: CaseStatus = Field(default=CaseStatus.OPEN)

    review_status: ReviewStatus = Field(default=ReviewStatus.PENDING)

    rejected_slots: List[DocumentKind] = Field(
        default_factory=list,
        description="Slots the submitter must re-upload; empty unless review_status is REJECTED"
    )

    review_comment: Optional[str] = Field(default=None, max_length=2000)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    # ============================================================
    # Documents
    # ============================================================
    documents: Dict[DocumentKind, DocumentArtifact] = Field(
        default_factory=dict,
        description="Occupied slots only; a missing key is an empty slot"
    )

    completion_percent: int = Field(
        default=0,
        ge=0,
        le=100,
        description="Derived from documents; recomputed on every document mutation"
    )

    # ============================================================
    # Escalation
    # ============================================================
    escalation_level: EscalationLevel = Field(default=EscalationLevel.NONE)

    last_escalation_confirmed_at: Optional[datetime] = Field(
        default=None,
        description="When the owner last acknowledged a reminder"
    )

    # ============================================================
    # Free text
    # ============================================================
    notes: str = Field(default="", max_length=5000)

    # ============================================================
    # Timestamps & concurrency
    # ============================================================
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expired_at: Optional[datetime] = None

    version: int = Field(
        default=0,
        ge=0,
        description="Optimistic concurrency token, bumped by the store on every write"
    )

    # ============================================================
    # Computed Properties
    # ============================================================
    @property
    def document_status(self) -> Dict[DocumentKind, bool]:
        """Upload status per required kind"""
        return {kind: kind in self.documents for kind in REQUIRED_DOCUMENT_KINDS}

    @property
    def missing_documents(self) -> List[DocumentKind]:
        return [kind for kind in REQUIRED_DOCUMENT_KINDS if kind not in self.documents]

    @property
    def is_complete(self) -> bool:
        return not self.missing_documents

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_read_only_for_submitter(self) -> bool:
        return self.status in (CaseStatus.EXPIRED, CaseStatus.COMPLETED)

    @property
    def phase(self) -> LifecyclePhase:
        """
        The lifecycle phase as a single tagged value.

        Status dominates: an expired case is Expired whatever its review state.
        A rejection is visible while the case is OPEN or IN_PROGRESS.
        """
        if self.status == CaseStatus.EXPIRED:
            return ExpiredPhase(expired_at=self.expired_at)
        if self.status == CaseStatus.COMPLETED:
            return CompletedPhase(reviewed_by=self.reviewed_by, reviewed_at=self.reviewed_at)
        if self.status == CaseStatus.SUBMITTED:
            return SubmittedPhase(review_pending=self.review_status == ReviewStatus.PENDING)
        if self.review_status == ReviewStatus.REJECTED:
            return RejectedPhase(
                slots=list(self.rejected_slots),
                comment=self.review_comment or "",
                rejected_at=self.reviewed_at,
                status=self.status,
            )
        if self.status == CaseStatus.IN_PROGRESS:
            return InProgressPhase()
        return OpenPhase()

    def slots_pending_resubmission(self) -> List[DocumentKind]:
        """
        Rejected slots not yet re-uploaded after the rejection.

        A slot counts as re-uploaded only when its artifact is strictly newer
        than the rejection timestamp; an upload made before the rejection does
        not satisfy it.
        """
        if self.review_status != ReviewStatus.REJECTED:
            return []
        pending = []
        for kind in self.rejected_slots:
            artifact = self.documents.get(kind)
            if artifact is None or self.reviewed_at is None or artifact.uploaded_at <= self.reviewed_at:
                pending.append(kind)
        return pending

    # ============================================================
    # Validation
    # ============================================================
    @field_validator("rejected_slots")
    @classmethod
    def rejected_slots_unique(cls, v):
        """Keep rejected slots unique and in the canonical slot order"""
        requested = set(v)
        return [kind for kind in REQUIRED_DOCUMENT_KINDS if kind in requested]

    @field_validator("documents")
    @classmethod
    def documents_are_required_kinds(cls, v):
        unknown = [kind for kind in v if kind not in REQUIRED_DOCUMENT_KINDS]
        if unknown:
            raise ValueError(f"Unknown document slots: {unknown}")
        return v

    @model_validator(mode="after")
    def validate_completion_percent(self) -> "Case":
        expected = calculate_completion_percent(len(self.documents), len(REQUIRED_DOCUMENT_KINDS))
        if self.completion_percent != expected:
            raise ValueError(
                f"completion_percent ({self.completion_percent}) does not match "
                f"occupied slots ({len(self.documents)}/{len(REQUIRED_DOCUMENT_KINDS)} → {expected})"
            )
        return self

    @model_validator(mode="after")
    def validate_status_consistency(self) -> "Case":
        """
        Enforce the status / review / timestamp invariants.

        - SUBMITTED requires every slot occupied
        - EXPIRED requires expired_at; any other status forbids it
        - REJECTED requires rejected slots and a comment; other review states forbid slots
        - APPROVED requires COMPLETED and COMPLETED requires APPROVED
        """
        if self.status == CaseStatus.SUBMITTED and not self.is_complete:
            raise ValueError(f"SUBMITTED status requires all documents, missing {self.missing_documents}")

        if self.status == CaseStatus.EXPIRED and self.expired_at is None:
            raise ValueError("EXPIRED status requires expired_at timestamp")
        if self.status != CaseStatus.EXPIRED and self.expired_at is not None:
            raise ValueError(f"expired_at can only be set when status is EXPIRED (current: {self.status.value})")

        if self.review_status == ReviewStatus.REJECTED:
            if not self.rejected_slots:
                raise ValueError("REJECTED review requires at least one rejected slot")
            if not self.review_comment or not self.review_comment.strip():
                raise ValueError("REJECTED review requires a review comment")
        elif self.rejected_slots:
            raise ValueError(
                f"rejected_slots must be empty unless review is REJECTED (current: {self.review_status.value})"
            )

        if self.review_status == ReviewStatus.APPROVED and self.status != CaseStatus.COMPLETED:
            raise ValueError(f"APPROVED review requires COMPLETED status (current: {self.status.value})")
        if self.status == CaseStatus.COMPLETED and self.review_status != ReviewStatus.APPROVED:
            raise ValueError(f"COMPLETED status requires APPROVED review (current: {self.review_status.value})")

        return self

    @model_validator(mode="after")
    def validate_timestamp_ordering(self) -> "Case":
        if self.created_at > self.updated_at:
            raise ValueError(
                f"created_at ({self.created_at}) cannot be after updated_at ({self.updated_at})"
            )
        if self.expired_at and self.created_at > self.expired_at:
            raise ValueError(
                f"created_at ({self.created_at}) cannot be after expired_at ({self.expired_at})"
            )
        return self
