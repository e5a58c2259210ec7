"""HTTP client for the external audit log service."""

import logging
from typing import Optional

import httpx

from caselink_core.clients.base import BaseServiceClient
from caselink_core.config import get_audit_service_url
from caselink_core.core.audit import AuditSink
from caselink_core.models.audit import AuditEvent

logger = logging.getLogger(__name__)


class HttpAuditSink(BaseServiceClient, AuditSink):
    """AuditSink that POSTs each event to /api/v1/audit-events.

    Errors propagate to the AuditEmitter, which logs and drops the event. The
    emitter awaits each append, so an unreachable audit service is given a
    short connect timeout and operations are not held up for long.

    Usage:
        emitter = AuditEmitter(HttpAuditSink(base_url="http://audit-service:8000"))
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        connect_timeout: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            transport=transport,
        )

    @classmethod
    def from_env(cls, **kwargs) -> "HttpAuditSink":
        """Build from CASELINK_AUDIT_SERVICE_URL."""
        base_url = get_audit_service_url()
        if not base_url:
            raise ValueError("CASELINK_AUDIT_SERVICE_URL environment variable is required")
        return cls(base_url=base_url, **kwargs)

    async def append(self, event: AuditEvent) -> None:
        async with self._get_client() as client:
            response = await client.post(
                f"{self.base_url}/api/v1/audit-events",
                json=event.model_dump(mode="json"),
                headers=self._headers(user_id=event.actor_id),
            )
            response.raise_for_status()
        logger.debug(f"Audit event {event.event_id} delivered ({event.action.value})")
