"""HTTP client for the object-storage gateway that holds uploaded documents."""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from caselink_core.clients.base import BaseServiceClient
from caselink_core.config import get_blob_service_url
from caselink_core.infrastructure.blob_store import BlobStore

logger = logging.getLogger(__name__)


class HttpBlobStore(BaseServiceClient, BlobStore):
    """BlobStore backed by a storage gateway REST API.

    Endpoints:
        PUT    /api/v1/blobs/{path}   body = raw bytes, returns {"path": "..."}
        DELETE /api/v1/blobs/{path}   404 when the blob is already gone

    Usage:
        blobs = HttpBlobStore(base_url="http://blob-gateway:8000")
        ref = await blobs.store("cases/abc/ID/1700000000000_id.pdf", data, "application/pdf")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_env(cls, **kwargs) -> "HttpBlobStore":
        """Build from CASELINK_BLOB_SERVICE_URL."""
        base_url = get_blob_service_url()
        if not base_url:
            raise ValueError("CASELINK_BLOB_SERVICE_URL environment variable is required")
        return cls(base_url=base_url, **kwargs)

    def _blob_url(self, path: str) -> str:
        return f"{self.base_url}/api/v1/blobs/{quote(path.lstrip('/'), safe='/')}"

    async def store(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Upload the blob and return the reference reported by the gateway.

        Raises:
            httpx.HTTPStatusError: Gateway rejected the upload
        """
        async with self._get_client() as client:
            response = await client.put(
                self._blob_url(path),
                content=data,
                headers=self._headers(content_type=content_type or "application/octet-stream"),
            )
            response.raise_for_status()
            body = response.json() if response.content else {}
            return body.get("path") or path

    async def delete(self, path: str) -> bool:
        async with self._get_client() as client:
            response = await client.delete(self._blob_url(path), headers=self._headers(content_type=None))
            if response.status_code == 404:
                logger.debug(f"Blob already absent: {path}")
                return False
            response.raise_for_status()
            return True
