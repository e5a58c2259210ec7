"""Document Completion Tracker.

Computes occupancy of the required document slots and records uploads.
Storing and deleting the blobs themselves is the service's job; this module
only replaces the artifact reference on the case.
"""

import logging
from datetime import datetime

from caselink_core.auth.identity import Actor
from caselink_core.config import REQUIRED_DOCUMENT_KINDS, DocumentKind
from caselink_core.core.transition import Transition, audit_event, evolve
from caselink_core.errors import InvalidStateError, InvalidStateReason
from caselink_core.models.audit import AuditAction
from caselink_core.models.case import (
    Case,
    CaseStatus,
    DocumentArtifact,
    ReviewStatus,
    calculate_completion_percent,
)

logger = logging.getLogger(__name__)


def completion_percent(filled: int, total: int = len(REQUIRED_DOCUMENT_KINDS)) -> int:
    """Integer completion percentage, rounded half up."""
    return calculate_completion_percent(filled, total)


def is_complete(case: Case) -> bool:
    """True iff every required slot kind has a current artifact."""
    return all(kind in case.documents for kind in REQUIRED_DOCUMENT_KINDS)


def parse_document_kind(value, case_id: str = None) -> DocumentKind:
    """Coerce a raw slot identifier into a DocumentKind.

    Raises:
        InvalidStateError: INVALID_DOCUMENT_KIND for anything outside the required set
    """
    if isinstance(value, DocumentKind):
        return value
    try:
        return DocumentKind(str(value).strip().upper())
    except ValueError:
        raise InvalidStateError(
            InvalidStateReason.INVALID_DOCUMENT_KIND,
            f"Invalid document type '{value}'",
            case_id=case_id,
            details={"allowed": [kind.value for kind in REQUIRED_DOCUMENT_KINDS]},
        ) from None


def ensure_upload_allowed(case: Case) -> None:
    """Guard shared by record_upload and the service (checked before the blob is stored)."""
    if case.status == CaseStatus.EXPIRED:
        raise InvalidStateError(
            InvalidStateReason.ALREADY_EXPIRED,
            "This case has expired; documents can no longer be uploaded",
            case_id=case.id,
        )
    if case.status == CaseStatus.COMPLETED:
        raise InvalidStateError(
            InvalidStateReason.CASE_COMPLETED,
            "This case is closed; documents can no longer be uploaded",
            case_id=case.id,
        )
    if case.review_status == ReviewStatus.APPROVED:
        raise InvalidStateError(
            InvalidStateReason.ALREADY_APPROVED,
            "This case has already been approved",
            case_id=case.id,
        )


def record_upload(
    case: Case,
    kind: DocumentKind,
    artifact: DocumentArtifact,
    actor: Actor,
    now: datetime,
) -> Transition:
    """Replace the artifact in one slot and recompute completion.

    Args:
        case: Current persisted case
        kind: Slot being uploaded
        artifact: Reference to the newly stored blob
        actor: Usually the submitter
        now: Injected clock time

    Returns:
        Transition with the updated case and a DOCUMENT_UPLOADED event

    Raises:
        InvalidStateError: Case expired, completed or approved
    """
    ensure_upload_allowed(case)

    previous = case.documents.get(kind)
    documents = dict(case.documents)
    documents[kind] = artifact
    percent = completion_percent(len(documents))

    updated = evolve(case, now, documents=documents, completion_percent=percent)
    event = audit_event(
        updated,
        AuditAction.DOCUMENT_UPLOADED,
        actor,
        now,
        metadata={
            "document_type": kind.value,
            "blob_path": artifact.blob_path,
            "replaced_blob_path": previous.blob_path if previous else None,
            "completion_percent": percent,
        },
    )
    logger.debug(f"Upload recorded: case={case.id}, kind={kind.value}, completion={percent}%")
    return Transition(case=updated, event=event)
