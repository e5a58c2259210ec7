"""
Case Lifecycle Service

Async facade used by the outer (HTTP/UI) layer. Each operation follows the
same cycle:

    1. read the case (by id for staff, by access token for submitters)
    2. authorize the actor against it
    3. apply a pure transition from tracker / lifecycle
    4. write with the version that was read (CaseConflictError if it moved)
    5. emit the audit event after the commit

Every public method returns an OperationResult. NOT_FOUND, FORBIDDEN,
INVALID_STATE and CONFLICT are reported in the result and never raised;
infrastructure failures outside that taxonomy (store unreachable) propagate.
"""

import functools
import hashlib
import logging
import re
import secrets
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from caselink_core.auth.identity import Actor, ActorRole, OwnerDirectory
from caselink_core.config import DocumentKind
from caselink_core.core import lifecycle, tracker
from caselink_core.core.audit import AuditEmitter, AuditSink
from caselink_core.core.clock import Clock, SystemClock
from caselink_core.core.lifecycle import ReviewDecision
from caselink_core.core.transition import Transition, audit_event
from caselink_core.errors import (
    CaseConflictError,
    CaseEngineError,
    CaseForbiddenError,
    CaseNotFoundError,
    InvalidStateError,
    InvalidStateReason,
)
from caselink_core.infrastructure.blob_store import BlobStore
from caselink_core.infrastructure.store import CaseStore
from caselink_core.models.api_models import CaseCreated, CaseKpis, OperationResult, SubmitterView
from caselink_core.models.audit import AuditAction
from caselink_core.models.case import Case, CaseStatus, DocumentArtifact, SubmitterContact

logger = logging.getLogger(__name__)

ACCESS_TOKEN_BYTES = 32

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def operation(func):
    """Convert engine errors raised by an operation into a failed OperationResult."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs) -> OperationResult:
        try:
            value = await func(self, *args, **kwargs)
        except CaseConflictError as e:
            logger.warning(f"{func.__name__} conflict on case {e.case_id}: {e.message}")
            return OperationResult.failure(e)
        except CaseEngineError as e:
            logger.warning(f"{func.__name__} rejected (case={e.case_id}): {e.message}")
            return OperationResult.failure(e)
        except ValidationError as e:
            logger.warning(f"{func.__name__} rejected: {e.error_count()} invalid fields")
            return OperationResult.failure(
                InvalidStateError(
                    InvalidStateReason.INVALID_INPUT,
                    "Invalid input",
                    details={"errors": [err["msg"] for err in e.errors()]},
                )
            )
        return OperationResult.success(value)

    return wrapper


def generate_access_token() -> str:
    """256 bits of randomness, URL-safe base64 without padding."""
    return secrets.token_urlsafe(ACCESS_TOKEN_BYTES)


def build_blob_path(case_id: str, kind: DocumentKind, millis: int, filename: Optional[str]) -> str:
    """Unique per call, so a rolled-back upload never shares a path with another upload."""
    name = _UNSAFE_FILENAME_CHARS.sub("_", (filename or "").rsplit("/", 1)[-1]) or kind.value.lower()
    return f"cases/{case_id}/{kind.value}/{millis}_{uuid4().hex}_{name}"


class CaseLifecycleService:
    """Operation boundary of the engine.

    Usage:
        service = CaseLifecycleService(
            store=InMemoryCaseStore(),
            blob_store=InMemoryBlobStore(),
            audit=InMemoryAuditSink(),
        )
        created = await service.create_case(Actor.owner("agent-1"), submitter={"name": "Ada"})
        token = created.value.case.access_token
        await service.upload_document(token, "ID", b"...", filename="id.pdf")
    """

    def __init__(
        self,
        store: CaseStore,
        blob_store: BlobStore,
        audit: Union[AuditEmitter, AuditSink],
        clock: Optional[Clock] = None,
        owner_directory: Optional[OwnerDirectory] = None,
    ):
        """
        Args:
            store: Case persistence
            blob_store: Document content storage
            audit: Emitter, or a bare sink to wrap in one
            clock: Time source (SystemClock by default)
            owner_directory: Validates owner ids on create/reassign; None accepts any id
        """
        self.store = store
        self.blob_store = blob_store
        self.emitter = audit if isinstance(audit, AuditEmitter) else AuditEmitter(audit)
        self.clock = clock or SystemClock()
        self.owner_directory = owner_directory

    # ============================================================
    # Internal helpers
    # ============================================================

    async def _load(self, case_id: str) -> Case:
        case = await self.store.get(case_id)
        if case is None:
            raise CaseNotFoundError(f"Case {case_id} not found", case_id=case_id)
        return case

    async def _load_by_token(self, access_token: str) -> Case:
        case = await self.store.get_by_token(access_token) if access_token else None
        if case is None:
            raise CaseNotFoundError("Invalid or unknown link")
        return case

    @staticmethod
    def _with_ip(actor: Actor, ip: Optional[str]) -> Actor:
        return replace(actor, ip=ip) if ip else actor

    @staticmethod
    def _authorize(actor: Actor, case: Case, allow_supervisor: bool = False) -> None:
        if actor.role == ActorRole.OWNER and actor.actor_id == case.owner_id:
            return
        if allow_supervisor and actor.role == ActorRole.SUPERVISOR:
            return
        raise CaseForbiddenError(f"{actor.actor_id} may not act on case {case.id}", case_id=case.id)

    @staticmethod
    def _require_role(actor: Actor, *roles: ActorRole) -> None:
        if actor.role not in roles:
            raise CaseForbiddenError(f"Role {actor.role.value} may not perform this operation")

    async def _ensure_valid_owner(self, owner_id: str, case_id: Optional[str] = None) -> None:
        if self.owner_directory is None:
            return
        if not await self.owner_directory.is_valid_owner(owner_id):
            raise CaseNotFoundError(f"Owner {owner_id} not found", case_id=case_id)

    async def _commit(self, case: Case, transition: Transition) -> Case:
        """Write a transition conditioned on the version read, then audit it."""
        if not transition.changed:
            return case
        stored = await self.store.put(case.id, case.version, transition.case)
        await self.emitter.emit(transition.event)
        logger.info(
            f"Case {case.id}: {transition.event.action.value} by {transition.event.actor_id} "
            f"(status={stored.status.value}, version={stored.version})"
        )
        return stored

    async def _delete_blob_quietly(self, path: str) -> None:
        try:
            await self.blob_store.delete(path)
        except Exception as e:
            logger.warning(f"Failed to delete blob {path}: {type(e).__name__}: {e}")

    # ============================================================
    # Staff: creation and queries
    # ============================================================

    @operation
    async def create_case(
        self,
        actor: Actor,
        submitter: Optional[Union[SubmitterContact, Dict[str, Any]]] = None,
        owner_id: Optional[str] = None,
        notes: str = "",
        ip: Optional[str] = None,
    ) -> CaseCreated:
        """Open a case and issue its access token.

        Owners create cases for themselves; supervisors may create for any
        valid owner.
        """
        actor = self._with_ip(actor, ip)
        self._require_role(actor, ActorRole.OWNER, ActorRole.SUPERVISOR)
        owner_id = owner_id or actor.actor_id
        if actor.role == ActorRole.OWNER and owner_id != actor.actor_id:
            raise CaseForbiddenError("Owners can only create cases for themselves")
        if owner_id != actor.actor_id:
            await self._ensure_valid_owner(owner_id)

        now = self.clock.now()
        contact = submitter if isinstance(submitter, SubmitterContact) else SubmitterContact(**(submitter or {}))
        case = Case(
            owner_id=owner_id,
            access_token=generate_access_token(),
            submitter=contact,
            notes=notes or "",
            created_at=now,
            updated_at=now,
        )
        stored = await self.store.create(case)
        await self.emitter.emit(
            audit_event(stored, AuditAction.CASE_CREATED, actor, now, metadata={"owner_id": owner_id})
        )
        logger.info(f"Case {stored.id} created for owner {owner_id} by {actor.actor_id}")
        return CaseCreated.for_case(stored)

    @operation
    async def get_case(self, actor: Actor, case_id: str) -> Case:
        case = await self._load(case_id)
        self._authorize(actor, case, allow_supervisor=True)
        return case

    @operation
    async def list_cases(
        self,
        actor: Actor,
        status: Optional[CaseStatus] = None,
        owner_id: Optional[str] = None,
    ) -> List[Case]:
        """Newest first. Owners only see their own cases."""
        self._require_role(actor, ActorRole.OWNER, ActorRole.SUPERVISOR)
        if actor.role == ActorRole.OWNER:
            if owner_id and owner_id != actor.actor_id:
                raise CaseForbiddenError("Owners can only list their own cases")
            owner_id = actor.actor_id

        statuses = [CaseStatus(status)] if status else None
        cases = [
            case async for case in self.store.scan(
                statuses=statuses,
                predicate=(lambda c: c.owner_id == owner_id) if owner_id else None,
            )
        ]
        cases.sort(key=lambda c: c.created_at, reverse=True)
        return cases

    @operation
    async def get_kpis(self, actor: Actor, owner_id: Optional[str] = None) -> CaseKpis:
        """Supervisor dashboard counts, optionally for one owner."""
        self._require_role(actor, ActorRole.SUPERVISOR)
        cases = [
            case async for case in self.store.scan(
                predicate=(lambda c: c.owner_id == owner_id) if owner_id else None,
            )
        ]
        return CaseKpis.from_cases(cases)

    # ============================================================
    # Submitter (access token)
    # ============================================================

    @operation
    async def get_submitter_view(self, access_token: str) -> SubmitterView:
        case = await self._load_by_token(access_token)
        return SubmitterView.from_case(case)

    @operation
    async def upload_document(
        self,
        access_token: str,
        kind: Union[DocumentKind, str],
        content: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> Case:
        """Store a document in a slot, replacing any previous upload.

        The blob is stored before the case write; if the artifact is invalid or
        the write fails the new blob is removed again, and on success the
        superseded blob is removed. Both deletions are best effort.
        """
        case = await self._load_by_token(access_token)
        kind = tracker.parse_document_kind(kind, case_id=case.id)
        tracker.ensure_upload_allowed(case)

        now = self.clock.now()
        path = build_blob_path(case.id, kind, int(now.timestamp() * 1000), filename)
        blob_ref = await self.blob_store.store(path, content, content_type)
        previous = case.documents.get(kind)

        try:
            artifact = DocumentArtifact(
                blob_path=blob_ref,
                uploaded_at=now,
                filename=filename,
                content_type=content_type,
                size_bytes=len(content),
                checksum=hashlib.sha256(content).hexdigest(),
            )
            transition = tracker.record_upload(case, kind, artifact, Actor.submitter(ip=ip), now)
            stored = await self._commit(case, transition)
        except Exception:
            await self._delete_blob_quietly(blob_ref)
            raise

        if previous is not None and previous.blob_path != blob_ref:
            await self._delete_blob_quietly(previous.blob_path)
        return stored

    @operation
    async def submit(self, access_token: str, ip: Optional[str] = None) -> Case:
        case = await self._load_by_token(access_token)
        transition = lifecycle.submit(case, Actor.submitter(ip=ip), self.clock.now())
        return await self._commit(case, transition)

    # ============================================================
    # Staff: transitions
    # ============================================================

    @operation
    async def review(
        self,
        actor: Actor,
        case_id: str,
        decision: Union[ReviewDecision, str],
        comment: Optional[str] = None,
        slots: Optional[Iterable[Union[DocumentKind, str]]] = None,
        ip: Optional[str] = None,
    ) -> Case:
        actor = self._with_ip(actor, ip)
        case = await self._load(case_id)
        self._authorize(actor, case)
        try:
            decision = ReviewDecision(str(getattr(decision, "value", decision)).upper())
        except ValueError:
            raise InvalidStateError(
                InvalidStateReason.INVALID_INPUT,
                f"Unknown review decision '{decision}'",
                case_id=case_id,
            ) from None
        transition = lifecycle.review(case, decision, actor, self.clock.now(), comment=comment, slots=slots)
        return await self._commit(case, transition)

    @operation
    async def change_status(
        self,
        actor: Actor,
        case_id: str,
        status: Union[CaseStatus, str],
        ip: Optional[str] = None,
    ) -> Case:
        actor = self._with_ip(actor, ip)
        case = await self._load(case_id)
        self._authorize(actor, case)
        try:
            target = CaseStatus(status)
        except ValueError:
            raise InvalidStateError(
                InvalidStateReason.INVALID_TRANSITION,
                f"Unknown status '{status}'",
                case_id=case_id,
            ) from None
        transition = lifecycle.change_status(case, target, actor, self.clock.now())
        return await self._commit(case, transition)

    @operation
    async def update_notes(self, actor: Actor, case_id: str, notes: str, ip: Optional[str] = None) -> Case:
        actor = self._with_ip(actor, ip)
        case = await self._load(case_id)
        self._authorize(actor, case)
        transition = lifecycle.update_notes(case, notes, actor, self.clock.now())
        return await self._commit(case, transition)

    @operation
    async def confirm_escalation(self, actor: Actor, case_id: str, ip: Optional[str] = None) -> Case:
        actor = self._with_ip(actor, ip)
        case = await self._load(case_id)
        self._authorize(actor, case)
        transition = lifecycle.confirm_escalation(case, actor, self.clock.now())
        return await self._commit(case, transition)

    @operation
    async def reopen(self, actor: Actor, case_id: str, ip: Optional[str] = None) -> Case:
        actor = self._with_ip(actor, ip)
        case = await self._load(case_id)
        self._authorize(actor, case, allow_supervisor=True)
        transition = lifecycle.reopen(case, actor, self.clock.now())
        return await self._commit(case, transition)

    @operation
    async def reassign(self, actor: Actor, case_id: str, new_owner_id: str, ip: Optional[str] = None) -> Case:
        actor = self._with_ip(actor, ip)
        self._require_role(actor, ActorRole.SUPERVISOR)
        case = await self._load(case_id)
        await self._ensure_valid_owner(new_owner_id, case_id=case_id)
        transition = lifecycle.reassign(case, new_owner_id, actor, self.clock.now())
        return await self._commit(case, transition)

    @operation
    async def delete_case(self, actor: Actor, case_id: str, ip: Optional[str] = None) -> Case:
        """Remove a case and, best effort, every blob it references.

        Blobs are only touched once the record delete has committed, and the
        ones removed are those of the record as deleted.
        """
        actor = self._with_ip(actor, ip)
        case = await self._load(case_id)
        self._authorize(actor, case)

        deleted = await self.store.delete(case.id)
        if deleted is None:
            raise CaseNotFoundError(f"Case {case_id} not found", case_id=case_id)
        case = deleted
        for artifact in case.documents.values():
            await self._delete_blob_quietly(artifact.blob_path)

        now = self.clock.now()
        await self.emitter.emit(
            audit_event(
                case,
                AuditAction.CASE_DELETED,
                actor,
                now,
                metadata={"status": case.status.value, "documents": len(case.documents)},
            )
        )
        logger.info(f"Case {case.id} deleted by {actor.actor_id}")
        return case
