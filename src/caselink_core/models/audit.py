"""Audit event model.

An AuditEvent is an immutable fact about one committed mutation. The engine
produces exactly one per successful transition and hands it to the external
audit sink after the store write.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class AuditAction(str, Enum):
    CASE_CREATED = "CASE_CREATED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    CASE_SUBMITTED = "CASE_SUBMITTED"
    REVIEW_APPROVED = "REVIEW_APPROVED"
    REVIEW_REJECTED = "REVIEW_REJECTED"
    STATUS_CHANGED = "STATUS_CHANGED"
    NOTES_UPDATED = "NOTES_UPDATED"
    ESCALATION_RAISED = "ESCALATION_RAISED"
    ESCALATION_CONFIRMED = "ESCALATION_CONFIRMED"
    CASE_EXPIRED = "CASE_EXPIRED"
    CASE_REOPENED = "CASE_REOPENED"
    CASE_REASSIGNED = "CASE_REASSIGNED"
    CASE_DELETED = "CASE_DELETED"


class AuditEvent(BaseModel):
    """Record of one mutation, attributed to an actor ("system" for sweepers)."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid4().hex)

    actor_id: str = Field(
        description="Staff user id, 'submitter' or 'system'",
        min_length=1
    )

    action: AuditAction

    case_id: str = Field(min_length=1)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    ip: Optional[str] = Field(
        default=None,
        description="Client address of the request that triggered the mutation"
    )

    metadata: Dict[str, Any] = Field(default_factory=dict)
