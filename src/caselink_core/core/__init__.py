"""Case lifecycle engine: tracker, state machine, sweeper, audit emitter and service."""

from caselink_core.core.clock import Clock, SystemClock, FixedClock
from caselink_core.core.transition import Transition
from caselink_core.core.tracker import (
    completion_percent,
    is_complete,
    parse_document_kind,
    record_upload,
)
from caselink_core.core.lifecycle import ReviewDecision, OWNER_STATUS_TRANSITIONS
from caselink_core.core.audit import (
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    AuditEmitter,
)
from caselink_core.core.sweeper import EscalationSweeper, SweepReport, SweepScheduler
from caselink_core.core.service import CaseLifecycleService

__all__ = [
    # Clock
    "Clock", "SystemClock", "FixedClock",
    # Tracker and state machine
    "Transition", "completion_percent", "is_complete", "parse_document_kind", "record_upload",
    "ReviewDecision", "OWNER_STATUS_TRANSITIONS",
    # Audit
    "AuditSink", "InMemoryAuditSink", "LoggingAuditSink", "AuditEmitter",
    # Sweeper
    "EscalationSweeper", "SweepReport", "SweepScheduler",
    # Service
    "CaseLifecycleService",
]
