"""Redis-backed CaseStore.

Key layout (prefix from CASELINK_REDIS_KEY_PREFIX, default "caselink"):

    {prefix}:case:{id}          JSON document of the case
    {prefix}:token:{token}      case id for submitter lookups
    {prefix}:status:{STATUS}    set of case ids currently in that status
    {prefix}:owner:{owner_id}   set of case ids owned by that staff member
    {prefix}:cases              set of every case id

Writes are compare-and-swap: WATCH the case key, compare the stored version
with the expected one, then apply record and index updates in one MULTI/EXEC.
A concurrent write between WATCH and EXEC aborts the transaction (WatchError),
which is reported as CaseConflictError like any other version mismatch.
"""

import logging
from typing import AsyncIterator, Iterable, Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from caselink_core.config import get_redis_key_prefix
from caselink_core.errors import CaseConflictError, CaseNotFoundError
from caselink_core.infrastructure.store import CasePredicate, CaseStore
from caselink_core.models.case import Case, CaseStatus

logger = logging.getLogger(__name__)


class RedisCaseStore(CaseStore):
    """CaseStore over redis.asyncio (standalone or Sentinel master).

    Usage:
        redis_client = await get_redis_client()
        store = RedisCaseStore(redis_client)
    """

    def __init__(self, redis_client: Redis, key_prefix: Optional[str] = None):
        self.redis = redis_client
        self.prefix = (key_prefix or get_redis_key_prefix()).rstrip(":")

    # ============================================================
    # Keys
    # ============================================================

    def _case_key(self, case_id: str) -> str:
        return f"{self.prefix}:case:{case_id}"

    def _token_key(self, access_token: str) -> str:
        return f"{self.prefix}:token:{access_token}"

    def _status_key(self, status: CaseStatus) -> str:
        return f"{self.prefix}:status:{CaseStatus(status).value}"

    def _owner_key(self, owner_id: str) -> str:
        return f"{self.prefix}:owner:{owner_id}"

    @property
    def _all_key(self) -> str:
        return f"{self.prefix}:cases"

    # ============================================================
    # Reads
    # ============================================================

    async def get(self, case_id: str) -> Optional[Case]:
        raw = await self.redis.get(self._case_key(case_id))
        if raw is None:
            return None
        return Case.model_validate_json(raw)

    async def get_by_token(self, access_token: str) -> Optional[Case]:
        case_id = await self.redis.get(self._token_key(access_token))
        if case_id is None:
            return None
        return await self.get(_as_str(case_id))

    async def scan(
        self,
        statuses: Optional[Iterable[CaseStatus]] = None,
        predicate: Optional[CasePredicate] = None,
    ) -> AsyncIterator[Case]:
        wanted = list(statuses) if statuses is not None else None
        if wanted is None:
            ids = await self.redis.smembers(self._all_key)
        else:
            keys = [self._status_key(status) for status in wanted]
            ids = await self.redis.sunion(keys) if keys else set()

        for case_id in sorted(_as_str(member) for member in ids):
            try:
                raw = await self.redis.get(self._case_key(case_id))
            except RedisError as e:
                # The next scan picks the case up again
                logger.warning(f"Skipping case {case_id}, read failed: {type(e).__name__}: {e}")
                continue
            if raw is None:
                # Deleted since the index was read
                continue
            try:
                case = Case.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Skipping corrupt case record {case_id}: {e.error_count()} validation errors")
                continue
            if wanted is not None and case.status not in wanted:
                continue
            if predicate is not None and not predicate(case):
                continue
            yield case

    # ============================================================
    # Writes
    # ============================================================

    async def create(self, case: Case) -> Case:
        key = self._case_key(case.id)
        stored = case.model_copy(update={"version": 1})
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                if await pipe.exists(key):
                    await pipe.unwatch()
                    raise CaseConflictError(case.id, expected_version=0)
                pipe.multi()
                pipe.set(key, stored.model_dump_json())
                pipe.set(self._token_key(stored.access_token), stored.id)
                pipe.sadd(self._all_key, stored.id)
                pipe.sadd(self._status_key(stored.status), stored.id)
                pipe.sadd(self._owner_key(stored.owner_id), stored.id)
                await pipe.execute()
            except WatchError:
                raise CaseConflictError(case.id, expected_version=0) from None
        logger.debug(f"Created case {case.id} in Redis")
        return stored

    async def put(self, case_id: str, expected_version: int, case: Case) -> Case:
        key = self._case_key(case_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    await pipe.unwatch()
                    raise CaseNotFoundError(f"Case {case_id} not found", case_id=case_id)
                current = Case.model_validate_json(raw)
                if current.version != expected_version:
                    await pipe.unwatch()
                    raise CaseConflictError(
                        case_id, expected_version=expected_version, actual_version=current.version
                    )

                stored = case.model_copy(update={"version": expected_version + 1})
                pipe.multi()
                pipe.set(key, stored.model_dump_json())
                if current.status != stored.status:
                    pipe.srem(self._status_key(current.status), case_id)
                    pipe.sadd(self._status_key(stored.status), case_id)
                if current.owner_id != stored.owner_id:
                    pipe.srem(self._owner_key(current.owner_id), case_id)
                    pipe.sadd(self._owner_key(stored.owner_id), case_id)
                if current.access_token != stored.access_token:
                    pipe.delete(self._token_key(current.access_token))
                    pipe.set(self._token_key(stored.access_token), case_id)
                await pipe.execute()
            except WatchError:
                raise CaseConflictError(case_id, expected_version=expected_version) from None
        return stored

    async def delete(self, case_id: str) -> Optional[Case]:
        key = self._case_key(case_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    await pipe.unwatch()
                    return None
                current = Case.model_validate_json(raw)
                pipe.multi()
                pipe.delete(key)
                pipe.delete(self._token_key(current.access_token))
                pipe.srem(self._all_key, case_id)
                pipe.srem(self._status_key(current.status), case_id)
                pipe.srem(self._owner_key(current.owner_id), case_id)
                await pipe.execute()
            except WatchError:
                raise CaseConflictError(case_id) from None
        logger.debug(f"Deleted case {case_id} from Redis")
        return current


def _as_str(value) -> str:
    """Members come back as bytes unless the client decodes responses."""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
