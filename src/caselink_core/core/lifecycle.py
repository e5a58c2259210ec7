"""
Lifecycle State Machine

The single authority for legal status / review transitions. Every operation is
a pure function of (case, operation arguments, actor, now) that returns a
Transition or raises a typed CaseEngineError. Nothing here touches storage,
blobs or the audit sink; the service and the sweeper do that around these calls.

Transitions:

    OPEN ──owner──▶ IN_PROGRESS ──owner──▶ OPEN
    OPEN / IN_PROGRESS ──submit──▶ SUBMITTED
    SUBMITTED ──approve──▶ COMPLETED (terminal)
    SUBMITTED ──reject──▶ IN_PROGRESS (review REJECTED, slots to re-upload)
    any but COMPLETED ──SLA sweeper──▶ EXPIRED ──reopen──▶ OPEN

Escalation (reminder) levels move independently of status, see escalate().
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

from caselink_core.auth.identity import SYSTEM_ACTOR, Actor
from caselink_core.config import (
    FIRST_REMINDER_AFTER,
    SECOND_REMINDER_AFTER,
    SLA_EXPIRY_AFTER,
)
from caselink_core.core.tracker import is_complete, parse_document_kind
from caselink_core.core.transition import Transition, audit_event, evolve
from caselink_core.errors import InvalidStateError, InvalidStateReason
from caselink_core.models.audit import AuditAction
from caselink_core.models.case import (
    ACTIVE_STATUSES,
    Case,
    CaseStatus,
    EscalationLevel,
    ReviewStatus,
)

logger = logging.getLogger(__name__)


class ReviewDecision(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


# Status targets an owner may set directly. EXPIRED is never a target (only the
# SLA sweeper sets it) and neither COMPLETED nor EXPIRED is a source (reopen is
# the only way out of EXPIRED). SUBMITTED and COMPLETED targets carry the same
# guards and effects as submit() and review(APPROVE).
OWNER_STATUS_TRANSITIONS: Dict[CaseStatus, FrozenSet[CaseStatus]] = {
    CaseStatus.OPEN: frozenset({CaseStatus.IN_PROGRESS, CaseStatus.SUBMITTED}),
    CaseStatus.IN_PROGRESS: frozenset({CaseStatus.OPEN, CaseStatus.SUBMITTED}),
    CaseStatus.SUBMITTED: frozenset({CaseStatus.OPEN, CaseStatus.IN_PROGRESS, CaseStatus.COMPLETED}),
    CaseStatus.COMPLETED: frozenset(),
    CaseStatus.EXPIRED: frozenset(),
}


# =============================================================================
# GUARDS
# =============================================================================

def _ensure_not_expired(case: Case, message: str) -> None:
    if case.status == CaseStatus.EXPIRED:
        raise InvalidStateError(InvalidStateReason.ALREADY_EXPIRED, message, case_id=case.id)


def _ensure_not_completed(case: Case, message: str) -> None:
    if case.status == CaseStatus.COMPLETED:
        raise InvalidStateError(InvalidStateReason.CASE_COMPLETED, message, case_id=case.id)


def _submission_changes(case: Case) -> dict:
    """Validate the submit() guard and return the fields it sets."""
    _ensure_not_expired(case, "Cannot submit an expired case")
    if case.review_status == ReviewStatus.APPROVED or case.status == CaseStatus.COMPLETED:
        raise InvalidStateError(
            InvalidStateReason.ALREADY_APPROVED,
            "This case has already been approved",
            case_id=case.id,
        )
    if case.status == CaseStatus.SUBMITTED:
        raise InvalidStateError(
            InvalidStateReason.ALREADY_SUBMITTED,
            "This case has already been submitted and is awaiting review",
            case_id=case.id,
        )
    if not is_complete(case):
        missing = [kind.value for kind in case.missing_documents]
        raise InvalidStateError(
            InvalidStateReason.INCOMPLETE_DOCUMENTS,
            "Upload all required documents before submitting",
            case_id=case.id,
            details={"missing": missing},
        )
    pending = case.slots_pending_resubmission()
    if pending:
        raise InvalidStateError(
            InvalidStateReason.INCOMPLETE_DOCUMENTS,
            "Re-upload the rejected documents before submitting",
            case_id=case.id,
            details={"pending_resubmission": [kind.value for kind in pending]},
        )
    return {
        "status": CaseStatus.SUBMITTED,
        "review_status": ReviewStatus.PENDING,
        "rejected_slots": [],
        "completion_percent": 100,
    }


def _approval_changes(case: Case, actor: Actor, now: datetime, comment: Optional[str]) -> dict:
    if case.status != CaseStatus.SUBMITTED:
        _ensure_not_expired(case, "Cannot review an expired case")
        _ensure_not_completed(case, "This case has already been approved")
        raise InvalidStateError(
            InvalidStateReason.NOT_SUBMITTED,
            "Only submitted cases can be approved",
            case_id=case.id,
        )
    return {
        "status": CaseStatus.COMPLETED,
        "review_status": ReviewStatus.APPROVED,
        "rejected_slots": [],
        "review_comment": (comment or "").strip() or None,
        "reviewed_by": actor.actor_id,
        "reviewed_at": now,
    }


# =============================================================================
# ACTOR-TRIGGERED TRANSITIONS
# =============================================================================

def submit(case: Case, actor: Actor, now: datetime) -> Transition:
    """Submitter hands in the complete document set.

    Guard: every slot occupied, not expired, not approved, and every slot named
    by a previous rejection re-uploaded strictly after that rejection.
    """
    changes = _submission_changes(case)
    was_rejected = case.review_status == ReviewStatus.REJECTED
    updated = evolve(case, now, **changes)
    event = audit_event(
        updated,
        AuditAction.CASE_SUBMITTED,
        actor,
        now,
        metadata={"previous_status": case.status.value, "resubmission": was_rejected},
    )
    return Transition(case=updated, event=event)


def review(
    case: Case,
    decision: ReviewDecision,
    actor: Actor,
    now: datetime,
    comment: Optional[str] = None,
    slots: Optional[Iterable] = None,
) -> Transition:
    """Approve or reject a submitted case.

    APPROVE → COMPLETED with review APPROVED.
    REJECT → IN_PROGRESS with review REJECTED; requires a comment and at least
    one slot the submitter has to re-upload.
    """
    decision = ReviewDecision(decision)

    if decision == ReviewDecision.APPROVE:
        updated = evolve(case, now, **_approval_changes(case, actor, now, comment))
        event = audit_event(
            updated,
            AuditAction.REVIEW_APPROVED,
            actor,
            now,
            metadata={"comment": updated.review_comment},
        )
        return Transition(case=updated, event=event)

    if case.status != CaseStatus.SUBMITTED:
        _ensure_not_expired(case, "Cannot review an expired case")
        _ensure_not_completed(case, "This case has already been approved")
        raise InvalidStateError(
            InvalidStateReason.NOT_SUBMITTED,
            "Only submitted cases can be rejected",
            case_id=case.id,
        )
    if not comment or not comment.strip():
        raise InvalidStateError(
            InvalidStateReason.COMMENT_REQUIRED,
            "A comment is required when rejecting",
            case_id=case.id,
        )
    # A single kind (DocumentKind values are str too)
    if isinstance(slots, str):
        slots = [slots]
    rejected = [parse_document_kind(slot, case_id=case.id) for slot in (slots or [])]
    if not rejected:
        raise InvalidStateError(
            InvalidStateReason.NO_SLOTS_SELECTED,
            "Select at least one document for the submitter to re-upload",
            case_id=case.id,
        )

    updated = evolve(
        case,
        now,
        status=CaseStatus.IN_PROGRESS,
        review_status=ReviewStatus.REJECTED,
        rejected_slots=rejected,
        review_comment=comment.strip(),
        reviewed_by=actor.actor_id,
        reviewed_at=now,
    )
    event = audit_event(
        updated,
        AuditAction.REVIEW_REJECTED,
        actor,
        now,
        metadata={
            "comment": updated.review_comment,
            "rejected_slots": [kind.value for kind in updated.rejected_slots],
        },
    )
    return Transition(case=updated, event=event)


def change_status(case: Case, target: CaseStatus, actor: Actor, now: datetime) -> Transition:
    """Owner edit of the status field.

    Setting the current status is a no-op. EXPIRED can never be set manually,
    and expired or completed cases cannot be moved (use reopen for EXPIRED).
    """
    target = CaseStatus(target)

    if target == case.status:
        return Transition(case=case)
    if target == CaseStatus.EXPIRED:
        raise InvalidStateError(
            InvalidStateReason.INVALID_TRANSITION,
            "EXPIRED cannot be set manually",
            case_id=case.id,
        )
    _ensure_not_expired(case, "Expired cases can only be reopened")
    _ensure_not_completed(case, "Completed cases cannot change status")

    allowed = OWNER_STATUS_TRANSITIONS.get(case.status, frozenset())
    if target not in allowed:
        reason = (
            InvalidStateReason.NOT_SUBMITTED
            if target == CaseStatus.COMPLETED
            else InvalidStateReason.INVALID_TRANSITION
        )
        raise InvalidStateError(
            reason,
            f"Cannot change status from {case.status.value} to {target.value}",
            case_id=case.id,
            details={"allowed": sorted(status.value for status in allowed)},
        )

    if target == CaseStatus.SUBMITTED:
        changes = _submission_changes(case)
    elif target == CaseStatus.COMPLETED:
        changes = _approval_changes(case, actor, now, comment=None)
    else:
        changes = {"status": target}

    updated = evolve(case, now, **changes)
    event = audit_event(
        updated,
        AuditAction.STATUS_CHANGED,
        actor,
        now,
        metadata={"old_status": case.status.value, "new_status": target.value},
    )
    return Transition(case=updated, event=event)


def update_notes(case: Case, notes: str, actor: Actor, now: datetime) -> Transition:
    """Owner notes have no workflow effect and are editable in every status."""
    notes = notes or ""
    if notes == case.notes:
        return Transition(case=case)
    updated = evolve(case, now, notes=notes)
    return Transition(case=updated, event=audit_event(updated, AuditAction.NOTES_UPDATED, actor, now))


def confirm_escalation(case: Case, actor: Actor, now: datetime) -> Transition:
    """Owner acknowledges a reminder: level back to NONE, acknowledgement time recorded.

    The second reminder is measured from this acknowledgement.
    """
    _ensure_not_expired(case, "Cannot confirm a reminder for an expired case")
    _ensure_not_completed(case, "Cannot confirm a reminder for a completed case")
    updated = evolve(
        case,
        now,
        escalation_level=EscalationLevel.NONE,
        last_escalation_confirmed_at=now,
    )
    event = audit_event(
        updated,
        AuditAction.ESCALATION_CONFIRMED,
        actor,
        now,
        metadata={"previous_level": int(case.escalation_level)},
    )
    return Transition(case=updated, event=event)


def reopen(case: Case, actor: Actor, now: datetime) -> Transition:
    """EXPIRED → OPEN; clears expiry and resets escalation."""
    if case.status != CaseStatus.EXPIRED:
        raise InvalidStateError(
            InvalidStateReason.NOT_EXPIRED,
            "Only expired cases can be reopened",
            case_id=case.id,
        )
    updated = evolve(
        case,
        now,
        status=CaseStatus.OPEN,
        expired_at=None,
        escalation_level=EscalationLevel.NONE,
        last_escalation_confirmed_at=None,
    )
    event = audit_event(
        updated,
        AuditAction.CASE_REOPENED,
        actor,
        now,
        metadata={"expired_at": case.expired_at.isoformat() if case.expired_at else None},
    )
    return Transition(case=updated, event=event)


def reassign(case: Case, new_owner_id: str, actor: Actor, now: datetime) -> Transition:
    """Hand the case to another owner. Validity of the owner is checked by the caller."""
    _ensure_not_expired(case, "Expired cases must be reopened before reassignment")
    if not new_owner_id:
        raise InvalidStateError(
            InvalidStateReason.INVALID_TRANSITION,
            "A new owner is required",
            case_id=case.id,
        )
    if new_owner_id == case.owner_id:
        return Transition(case=case)
    updated = evolve(case, now, owner_id=new_owner_id)
    event = audit_event(
        updated,
        AuditAction.CASE_REASSIGNED,
        actor,
        now,
        metadata={"old_owner_id": case.owner_id, "new_owner_id": new_owner_id},
    )
    return Transition(case=updated, event=event)


# =============================================================================
# TIME-TRIGGERED TRANSITIONS (used by the sweeper)
# =============================================================================

def is_expiry_due(case: Case, now: datetime) -> bool:
    """SLA measured from created_at only; completed and expired cases are never due."""
    if case.status in (CaseStatus.COMPLETED, CaseStatus.EXPIRED):
        return False
    return now - case.created_at >= SLA_EXPIRY_AFTER


def sweeper_expire(case: Case, now: datetime, actor: Actor = SYSTEM_ACTOR) -> Transition:
    """SLA sweeper transition to EXPIRED."""
    _ensure_not_expired(case, "Case is already expired")
    _ensure_not_completed(case, "Completed cases never expire")
    if not is_expiry_due(case, now):
        raise InvalidStateError(
            InvalidStateReason.NOT_DUE,
            "SLA has not been exceeded yet",
            case_id=case.id,
        )
    updated = evolve(case, now, status=CaseStatus.EXPIRED, expired_at=now)
    age_hours = (now - case.created_at).total_seconds() / 3600
    event = audit_event(
        updated,
        AuditAction.CASE_EXPIRED,
        actor,
        now,
        metadata={"previous_status": case.status.value, "age_hours": round(age_hours, 1)},
    )
    return Transition(case=updated, event=event)


def next_escalation_level(case: Case, now: datetime) -> Optional[EscalationLevel]:
    """The level the reminder rules call for, or None when nothing is due.

    - NONE → FIRST once the case is 24h old
    - FIRST → SECOND 48h after the owner's last acknowledgement
    - SECOND stays until acknowledged
    """
    if case.status not in ACTIVE_STATUSES:
        return None
    if case.escalation_level == EscalationLevel.NONE:
        if now - case.created_at >= FIRST_REMINDER_AFTER:
            return EscalationLevel.FIRST
    elif case.escalation_level == EscalationLevel.FIRST and case.last_escalation_confirmed_at:
        if now - case.last_escalation_confirmed_at >= SECOND_REMINDER_AFTER:
            return EscalationLevel.SECOND
    return None


def escalate(case: Case, now: datetime, actor: Actor = SYSTEM_ACTOR) -> Transition:
    """Apply the reminder rules; a no-op Transition when nothing is due."""
    level = next_escalation_level(case, now)
    if level is None:
        return Transition(case=case)
    updated = evolve(case, now, escalation_level=level)
    event = audit_event(
        updated,
        AuditAction.ESCALATION_RAISED,
        actor,
        now,
        metadata={"from_level": int(case.escalation_level), "to_level": int(level)},
    )
    return Transition(case=updated, event=event)


__all__ = [
    "ReviewDecision",
    "OWNER_STATUS_TRANSITIONS",
    "submit",
    "review",
    "change_status",
    "update_notes",
    "confirm_escalation",
    "reopen",
    "reassign",
    "is_expiry_due",
    "sweeper_expire",
    "next_escalation_level",
    "escalate",
]
