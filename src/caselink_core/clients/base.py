"""Base service client for internal service-to-service calls."""

import json
import logging
from typing import List, Optional, Union

import httpx

logger = logging.getLogger(__name__)


class BaseServiceClient:
    """Base class for the HTTP adapters of external collaborators.

    Services call each other directly without JWT authentication. Actor
    context is propagated via X-User-* headers.

    Usage:
        class AuditServiceClient(BaseServiceClient):
            async def post_event(self, event: AuditEvent) -> None:
                async with self._get_client() as client:
                    response = await client.post(
                        f"{self.base_url}/api/v1/audit-events",
                        json=event.model_dump(mode="json"),
                        headers=self._headers(user_id=event.actor_id),
                    )
                    response.raise_for_status()
    """

    def __init__(
        self,
        base_url: str,
        timeout: Union[float, httpx.Timeout] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize service client.

        Args:
            base_url: Service base URL (e.g., http://blob-gateway:8000)
            timeout: Request timeout in seconds, or an httpx.Timeout (default: 30.0)
            transport: Optional httpx transport (httpx.MockTransport in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

        logger.info(f"Initialized {self.__class__.__name__} with base_url={base_url}")

    def _headers(
        self,
        user_id: Optional[str] = None,
        user_roles: Optional[List[str]] = None,
        correlation_id: Optional[str] = None,
        content_type: Optional[str] = "application/json",
    ) -> dict:
        """Generate request headers with actor context.

        Args:
            user_id: Actor ID for X-User-ID header
            user_roles: Roles for X-User-Roles header (JSON array)
            correlation_id: Optional correlation ID for request tracing
            content_type: Body content type, None to let httpx decide

        Returns:
            Headers dict with X-User-* headers and correlation ID
        """
        headers = {}
        if content_type:
            headers["Content-Type"] = content_type

        if user_id:
            headers["X-User-ID"] = user_id

        if user_roles:
            headers["X-User-Roles"] = json.dumps(user_roles)

        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client instance with configured timeout.

        Returns:
            Configured AsyncClient ready for use with async context manager
        """
        if self._transport is not None:
            return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return httpx.AsyncClient(timeout=self.timeout)

    async def close(self):
        """Close any persistent connections.

        Override this if your client maintains a persistent httpx.AsyncClient.
        """
        pass
