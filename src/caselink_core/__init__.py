"""CaseLink Core Library

Case lifecycle and escalation engine for document-collection workflows:
models, state machine, escalation sweeper, audit emitter and storage adapters.
"""

__version__ = "0.1.0"

# Export shared models first (no dependencies)
from caselink_core.models import (
    Case, CaseStatus, ReviewStatus, EscalationLevel, DocumentKind,
    DocumentArtifact, SubmitterContact, AuditAction, AuditEvent,
    OperationResult, SubmitterView, CaseKpis,
)
from caselink_core.errors import (
    CaseEngineError, CaseNotFoundError, CaseForbiddenError,
    InvalidStateError, InvalidStateReason, CaseConflictError,
)
from caselink_core.auth import Actor, ActorRole, InMemoryOwnerDirectory
from caselink_core.core import (
    CaseLifecycleService, EscalationSweeper, SweepScheduler, ReviewDecision,
    FixedClock, SystemClock, AuditEmitter, InMemoryAuditSink, LoggingAuditSink,
)
from caselink_core.infrastructure.store import InMemoryCaseStore
from caselink_core.infrastructure.blob_store import InMemoryBlobStore


# Lazy import for HTTP adapters so importing the engine does not pull in httpx
def __getattr__(name):
    """Lazy import for HttpBlobStore and HttpAuditSink."""
    if name in ("HttpBlobStore", "HttpAuditSink"):
        from caselink_core import clients
        return getattr(clients, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Models
    "Case", "CaseStatus", "ReviewStatus", "EscalationLevel", "DocumentKind",
    "DocumentArtifact", "SubmitterContact", "AuditAction", "AuditEvent",
    "OperationResult", "SubmitterView", "CaseKpis",
    # Errors
    "CaseEngineError", "CaseNotFoundError", "CaseForbiddenError",
    "InvalidStateError", "InvalidStateReason", "CaseConflictError",
    # Identity
    "Actor", "ActorRole", "InMemoryOwnerDirectory",
    # Engine
    "CaseLifecycleService", "EscalationSweeper", "SweepScheduler", "ReviewDecision",
    "FixedClock", "SystemClock", "AuditEmitter", "InMemoryAuditSink", "LoggingAuditSink",
    # Storage
    "InMemoryCaseStore", "InMemoryBlobStore",
    # HTTP adapters (lazy loaded)
    "HttpBlobStore", "HttpAuditSink",
]
