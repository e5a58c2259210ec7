"""Shared fixtures for the case lifecycle engine tests."""

from datetime import datetime, timezone

import pytest

from caselink_core.auth.identity import Actor, InMemoryOwnerDirectory
from caselink_core.config import REQUIRED_DOCUMENT_KINDS
from caselink_core.core.audit import AuditEmitter, InMemoryAuditSink
from caselink_core.core.clock import FixedClock
from caselink_core.core.service import CaseLifecycleService, generate_access_token
from caselink_core.core.sweeper import EscalationSweeper
from caselink_core.infrastructure.blob_store import InMemoryBlobStore
from caselink_core.infrastructure.store import InMemoryCaseStore
from caselink_core.models.case import Case, DocumentArtifact, calculate_completion_percent

START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

OWNER_ID = "agent-1"
OTHER_OWNER_ID = "agent-2"
SUPERVISOR_ID = "manager-1"


def make_artifact(kind, uploaded_at, name=None):
    return DocumentArtifact(
        blob_path=f"cases/test/{kind.value}/{name or 'file'}",
        uploaded_at=uploaded_at,
        filename=name,
    )


def make_case(now=START, kinds=(), **overrides):
    """Build a valid Case with the given slots filled at `now`."""
    documents = {kind: make_artifact(kind, now) for kind in kinds}
    data = dict(
        owner_id=OWNER_ID,
        access_token=generate_access_token(),
        documents=documents,
        completion_percent=calculate_completion_percent(len(documents), len(REQUIRED_DOCUMENT_KINDS)),
        created_at=now,
        updated_at=now,
    )
    data.update(overrides)
    return Case(**data)


async def upload_all(service, token, kinds=REQUIRED_DOCUMENT_KINDS):
    results = []
    for kind in kinds:
        result = await service.upload_document(token, kind, f"{kind.value} scan".encode(), filename=f"{kind.value}.pdf")
        assert result.ok, result.error
        results.append(result.value)
    return results


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def store():
    return InMemoryCaseStore()


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def sink():
    return InMemoryAuditSink()


@pytest.fixture
def owners():
    return InMemoryOwnerDirectory(owners=[OWNER_ID, OTHER_OWNER_ID])


@pytest.fixture
def service(store, blobs, sink, clock, owners):
    return CaseLifecycleService(
        store=store,
        blob_store=blobs,
        audit=sink,
        clock=clock,
        owner_directory=owners,
    )


@pytest.fixture
def sweeper(store, sink, clock):
    return EscalationSweeper(store, AuditEmitter(sink), clock)


@pytest.fixture
def owner():
    return Actor.owner(OWNER_ID, ip="10.0.0.1")


@pytest.fixture
def other_owner():
    return Actor.owner(OTHER_OWNER_ID)


@pytest.fixture
def supervisor():
    return Actor.supervisor(SUPERVISOR_ID)
