"""Binary document storage abstraction.

The engine never reads document bytes back; it only stores them, keeps the
returned reference on the case, and deletes superseded blobs best-effort.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    @abstractmethod
    async def store(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Persist data under path and return the reference to keep on the case."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove a blob; returns False when it did not exist."""
        pass


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.blobs: Dict[str, Tuple[bytes, Optional[str]]] = {}

    async def store(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        self.blobs[path] = (bytes(data), content_type)
        return path

    async def delete(self, path: str) -> bool:
        return self.blobs.pop(path, None) is not None

    def __contains__(self, path: str) -> bool:
        return path in self.blobs
