"""HTTP adapters for external collaborators."""

from caselink_core.clients.base import BaseServiceClient
from caselink_core.clients.blob_client import HttpBlobStore
from caselink_core.clients.audit_client import HttpAuditSink

__all__ = [
    "BaseServiceClient",
    "HttpBlobStore",
    "HttpAuditSink",
]
