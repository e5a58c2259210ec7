"""Audit Emitter

Appends one AuditEvent per committed mutation to an external sink. The store
write is the source of truth: a sink failure never fails or rolls back the
operation that produced the event, it is logged once and the event is dropped.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from caselink_core.models.audit import AuditAction, AuditEvent

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Append-only destination for audit events."""

    @abstractmethod
    async def append(self, event: AuditEvent) -> None:
        pass


class InMemoryAuditSink(AuditSink):
    """Keeps events in append order (tests and local runs)."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def append(self, event: AuditEvent) -> None:
        self.events.append(event)

    def events_for(self, case_id: str, action: Optional[AuditAction] = None) -> List[AuditEvent]:
        return [
            event for event in self.events
            if event.case_id == case_id and (action is None or event.action == action)
        ]

    def clear(self) -> None:
        self.events.clear()


class LoggingAuditSink(AuditSink):
    """Writes each event as one structured log line."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO):
        self._log = log or logging.getLogger("caselink_core.audit")
        self._level = level

    async def append(self, event: AuditEvent) -> None:
        self._log.log(self._level, f"[Audit] {event.model_dump_json()}")


class AuditEmitter:
    """Hands events to the sink after commit. Never raises.

    Usage:
        emitter = AuditEmitter(InMemoryAuditSink())
        await emitter.emit(transition.event)
    """

    def __init__(self, sink: AuditSink):
        self.sink = sink

    async def emit(self, event: Optional[AuditEvent]) -> bool:
        """Append an event; returns False when it was dropped."""
        if event is None:
            return False
        try:
            await self.sink.append(event)
        except Exception as e:
            logger.warning(
                f"[Audit] Dropped {event.action.value} event for case {event.case_id}: "
                f"{type(e).__name__}: {e}"
            )
            return False
        return True
