"""Persistence adapters: case stores, blob stores and the Redis factory."""

from caselink_core.infrastructure.store import CaseStore, InMemoryCaseStore
from caselink_core.infrastructure.blob_store import BlobStore, InMemoryBlobStore
from caselink_core.infrastructure.redis_store import RedisCaseStore
from caselink_core.infrastructure.redis_setup import (
    get_redis_client,
    create_case_store,
    parse_sentinel_hosts,
)

__all__ = [
    "CaseStore",
    "InMemoryCaseStore",
    "BlobStore",
    "InMemoryBlobStore",
    "RedisCaseStore",
    "get_redis_client",
    "create_case_store",
    "parse_sentinel_hosts",
]
