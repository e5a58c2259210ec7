"""Building blocks shared by the tracker, the state machine and the sweeper."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from caselink_core.auth.identity import Actor
from caselink_core.models.audit import AuditAction, AuditEvent
from caselink_core.models.case import Case


@dataclass(frozen=True)
class Transition:
    """Result of applying one operation to a case.

    event is None for a no-op (the operation asked for the current state);
    callers must not write or audit in that case.
    """

    case: Case
    event: Optional[AuditEvent] = None

    @property
    def changed(self) -> bool:
        return self.event is not None


def evolve(case: Case, now: datetime, **changes: Any) -> Case:
    """Build the successor of a case and re-run every invariant check.

    updated_at is always set to now. pydantic raises ValidationError if the
    result would violate an invariant.
    """
    data = case.model_dump()
    data.update(changes)
    data["updated_at"] = now
    return Case.model_validate(data)


def audit_event(
    case: Case,
    action: AuditAction,
    actor: Actor,
    now: datetime,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditEvent:
    return AuditEvent(
        actor_id=actor.actor_id,
        action=action,
        case_id=case.id,
        timestamp=now,
        ip=actor.ip,
        metadata=metadata or {},
    )
