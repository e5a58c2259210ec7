"""Error taxonomy for the case lifecycle engine.

Four kinds of failure leave a lifecycle operation:

- NOT_FOUND: unknown case id, access token or owner
- FORBIDDEN: the actor does not own the case or lacks the role
- INVALID_STATE: a transition guard failed (carries an InvalidStateReason)
- CONFLICT: the record changed between read and write; retry the whole cycle

They are raised as exceptions inside the engine and converted into structured
results at the service boundary (see caselink_core.core.service).
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"


class InvalidStateReason(str, Enum):
    """Machine-readable reason attached to every InvalidStateError."""

    INCOMPLETE_DOCUMENTS = "INCOMPLETE_DOCUMENTS"
    ALREADY_APPROVED = "ALREADY_APPROVED"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    COMMENT_REQUIRED = "COMMENT_REQUIRED"
    NO_SLOTS_SELECTED = "NO_SLOTS_SELECTED"
    NOT_EXPIRED = "NOT_EXPIRED"
    ALREADY_EXPIRED = "ALREADY_EXPIRED"
    CASE_COMPLETED = "CASE_COMPLETED"
    NOT_SUBMITTED = "NOT_SUBMITTED"
    NOT_DUE = "NOT_DUE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_DOCUMENT_KIND = "INVALID_DOCUMENT_KIND"
    INVALID_INPUT = "INVALID_INPUT"


class CaseEngineError(Exception):
    """Base class for every failure a lifecycle operation can report."""

    kind: ErrorKind

    def __init__(self, message: str, case_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.case_id = case_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "case_id": self.case_id,
        }


class CaseNotFoundError(CaseEngineError):
    kind = ErrorKind.NOT_FOUND


class CaseForbiddenError(CaseEngineError):
    kind = ErrorKind.FORBIDDEN


class InvalidStateError(CaseEngineError):
    kind = ErrorKind.INVALID_STATE

    def __init__(
        self,
        reason: InvalidStateReason,
        message: str,
        case_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, case_id=case_id)
        self.reason = reason
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason.value
        if self.details:
            data["details"] = self.details
        return data


class CaseConflictError(CaseEngineError):
    """Raised by a store when the expected version no longer matches."""

    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        case_id: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        super().__init__(
            f"Case {case_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            case_id=case_id,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version
