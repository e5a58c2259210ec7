"""Case persistence abstraction.

Every write is conditioned on the version the caller read: put() fails with
CaseConflictError when someone else committed in between, so a transition is
never applied on top of state it did not validate against.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Dict, Iterable, Optional

from caselink_core.errors import CaseConflictError, CaseNotFoundError
from caselink_core.models.case import Case, CaseStatus

logger = logging.getLogger(__name__)

CasePredicate = Callable[[Case], bool]


class CaseStore(ABC):
    """Repository for Case records with optimistic concurrency."""

    @abstractmethod
    async def get(self, case_id: str) -> Optional[Case]:
        pass

    @abstractmethod
    async def get_by_token(self, access_token: str) -> Optional[Case]:
        pass

    @abstractmethod
    async def create(self, case: Case) -> Case:
        """Insert a new record; the stored copy has version 1."""
        pass

    @abstractmethod
    async def put(self, case_id: str, expected_version: int, case: Case) -> Case:
        """Replace a record if its version still equals expected_version.

        Returns:
            The stored case, with version expected_version + 1

        Raises:
            CaseNotFoundError: No record with that id
            CaseConflictError: The persisted version differs
        """
        pass

    @abstractmethod
    async def delete(self, case_id: str) -> Optional[Case]:
        """Remove a record.

        Returns:
            The case as it was when removed, None if there was no such record
        """
        pass

    @abstractmethod
    def scan(
        self,
        statuses: Optional[Iterable[CaseStatus]] = None,
        predicate: Optional[CasePredicate] = None,
    ) -> AsyncIterator[Case]:
        """Iterate over cases, optionally filtered by status and predicate.

        A record that cannot be read or parsed is logged and skipped, so one bad
        record never ends the iteration.
        """
        pass


class InMemoryCaseStore(CaseStore):
    """Process-local store holding serialized copies, so callers never share instances."""

    def __init__(self):
        self._records: Dict[str, str] = {}
        self._tokens: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, case_id: str) -> Optional[Case]:
        raw = self._records.get(case_id)
        return Case.model_validate_json(raw) if raw else None

    async def get_by_token(self, access_token: str) -> Optional[Case]:
        case_id = self._tokens.get(access_token)
        return await self.get(case_id) if case_id else None

    async def create(self, case: Case) -> Case:
        async with self._lock:
            if case.id in self._records:
                raise CaseConflictError(case.id, expected_version=0, actual_version=self._version_of(case.id))
            stored = case.model_copy(update={"version": 1})
            self._records[case.id] = stored.model_dump_json()
            self._tokens[case.access_token] = case.id
        logger.debug(f"Created case {case.id}")
        return stored

    async def put(self, case_id: str, expected_version: int, case: Case) -> Case:
        async with self._lock:
            if case_id not in self._records:
                raise CaseNotFoundError(f"Case {case_id} not found", case_id=case_id)
            actual = self._version_of(case_id)
            if actual != expected_version:
                raise CaseConflictError(case_id, expected_version=expected_version, actual_version=actual)
            stored = case.model_copy(update={"version": expected_version + 1})
            self._records[case_id] = stored.model_dump_json()
            self._tokens[case.access_token] = case_id
        return stored

    async def delete(self, case_id: str) -> Optional[Case]:
        async with self._lock:
            raw = self._records.pop(case_id, None)
            if raw is None:
                return None
            removed = Case.model_validate_json(raw)
            self._tokens.pop(removed.access_token, None)
        return removed

    async def scan(
        self,
        statuses: Optional[Iterable[CaseStatus]] = None,
        predicate: Optional[CasePredicate] = None,
    ) -> AsyncIterator[Case]:
        wanted = set(statuses) if statuses is not None else None
        # Snapshot so passes may write while iterating
        async with self._lock:
            snapshot = list(self._records.values())
        for raw in snapshot:
            case = Case.model_validate_json(raw)
            if wanted is not None and case.status not in wanted:
                continue
            if predicate is not None and not predicate(case):
                continue
            yield case

    def _version_of(self, case_id: str) -> Optional[int]:
        raw = self._records.get(case_id)
        return Case.model_validate_json(raw).version if raw else None
