"""
Tests for the Redis case store with a mocked redis.asyncio client.
"""
from unittest.mock import AsyncMock, MagicMock, call

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from caselink_core.core.audit import AuditEmitter, InMemoryAuditSink
from caselink_core.core.clock import FixedClock
from caselink_core.core.sweeper import EscalationSweeper
from caselink_core.errors import CaseConflictError, CaseNotFoundError
from caselink_core.infrastructure.redis_setup import parse_sentinel_hosts
from caselink_core.infrastructure.redis_store import RedisCaseStore
from caselink_core.models.case import CaseStatus

from conftest import START, make_case


def mock_redis(values=None):
    """Redis client mock: plain GETs answer from `values`, pipeline is a MagicMock."""
    values = values or {}
    redis = MagicMock()
    redis.get = AsyncMock(side_effect=lambda key: values.get(key))
    redis.smembers = AsyncMock(return_value=set())
    redis.sunion = AsyncMock(return_value=set())

    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.watch = AsyncMock()
    pipe.unwatch = AsyncMock()
    pipe.exists = AsyncMock(return_value=0)
    pipe.get = AsyncMock(side_effect=lambda key: values.get(key))
    pipe.execute = AsyncMock(return_value=[])
    redis.pipeline.return_value = pipe
    return redis, pipe


class TestKeys:

    def test_prefix_from_environment(self, monkeypatch):
        monkeypatch.setenv("CASELINK_REDIS_KEY_PREFIX", "tenant-a")
        store = RedisCaseStore(MagicMock())
        assert store._case_key("abc") == "tenant-a:case:abc"
        assert store._status_key(CaseStatus.OPEN) == "tenant-a:status:OPEN"

    def test_explicit_prefix_wins(self):
        store = RedisCaseStore(MagicMock(), key_prefix="test:")
        assert store._token_key("tok") == "test:token:tok"
        assert store._owner_key("agent-1") == "test:owner:agent-1"

    def test_parse_sentinel_hosts(self):
        assert parse_sentinel_hosts("s1:26380, s2 ,") == [("s1", 26380), ("s2", 26379)]


class TestRedisWrites:

    @pytest.mark.asyncio
    async def test_create_writes_record_and_indexes(self):
        redis, pipe = mock_redis()
        store = RedisCaseStore(redis, key_prefix="t")
        case = make_case()

        stored = await store.create(case)

        assert stored.version == 1
        pipe.watch.assert_awaited_once_with(f"t:case:{case.id}")
        pipe.multi.assert_called_once()
        key, payload = pipe.set.call_args_list[0].args
        assert key == f"t:case:{case.id}"
        assert '"version":1' in payload
        pipe.set.assert_any_call(f"t:token:{case.access_token}", case.id)
        pipe.sadd.assert_has_calls([
            call("t:cases", case.id),
            call("t:status:OPEN", case.id),
            call(f"t:owner:{case.owner_id}", case.id),
        ])
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_existing_conflicts(self):
        redis, pipe = mock_redis()
        pipe.exists.return_value = 1
        store = RedisCaseStore(redis, key_prefix="t")

        with pytest.raises(CaseConflictError):
            await store.create(make_case())

        pipe.unwatch.assert_awaited_once()
        pipe.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_put_moves_status_index(self):
        current = make_case().model_copy(update={"version": 3})
        redis, pipe = mock_redis({f"t:case:{current.id}": current.model_dump_json()})
        store = RedisCaseStore(redis, key_prefix="t")

        updated = await store.put(current.id, 3, current.model_copy(update={"status": CaseStatus.IN_PROGRESS}))

        assert updated.version == 4
        pipe.srem.assert_called_once_with("t:status:OPEN", current.id)
        pipe.sadd.assert_called_once_with("t:status:IN_PROGRESS", current.id)
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_put_version_mismatch_conflicts(self):
        current = make_case().model_copy(update={"version": 5})
        redis, pipe = mock_redis({f"t:case:{current.id}": current.model_dump_json()})
        store = RedisCaseStore(redis, key_prefix="t")

        with pytest.raises(CaseConflictError) as exc_info:
            await store.put(current.id, 4, current)

        assert exc_info.value.actual_version == 5
        pipe.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_watch_error_becomes_conflict(self):
        current = make_case().model_copy(update={"version": 1})
        redis, pipe = mock_redis({f"t:case:{current.id}": current.model_dump_json()})
        pipe.execute.side_effect = WatchError("key changed")
        store = RedisCaseStore(redis, key_prefix="t")

        with pytest.raises(CaseConflictError):
            await store.put(current.id, 1, current)

    @pytest.mark.asyncio
    async def test_put_missing_case(self):
        redis, _ = mock_redis()
        store = RedisCaseStore(redis, key_prefix="t")
        case = make_case()

        with pytest.raises(CaseNotFoundError):
            await store.put(case.id, 1, case)

    @pytest.mark.asyncio
    async def test_delete_clears_indexes(self):
        current = make_case().model_copy(update={"version": 2})
        redis, pipe = mock_redis({f"t:case:{current.id}": current.model_dump_json()})
        store = RedisCaseStore(redis, key_prefix="t")

        removed = await store.delete(current.id)

        assert removed.version == 2
        pipe.delete.assert_has_calls([call(f"t:case:{current.id}"), call(f"t:token:{current.access_token}")])
        pipe.srem.assert_any_call("t:status:OPEN", current.id)


class TestRedisReads:

    @pytest.mark.asyncio
    async def test_get_by_token(self):
        case = make_case().model_copy(update={"version": 1})
        redis, _ = mock_redis({
            f"t:token:{case.access_token}": case.id,
            f"t:case:{case.id}": case.model_dump_json(),
        })
        store = RedisCaseStore(redis, key_prefix="t")

        assert (await store.get_by_token(case.access_token)).id == case.id
        assert await store.get_by_token("unknown") is None

    @pytest.mark.asyncio
    async def test_scan_skips_corrupt_and_missing_records(self):
        good = make_case().model_copy(update={"version": 1})
        redis, _ = mock_redis({
            f"t:case:{good.id}": good.model_dump_json(),
            "t:case:broken": '{"owner_id": ""}',
        })
        redis.sunion.return_value = {good.id, "broken", "gone"}
        store = RedisCaseStore(redis, key_prefix="t")

        found = [case async for case in store.scan(statuses=[CaseStatus.OPEN, CaseStatus.IN_PROGRESS])]

        assert [case.id for case in found] == [good.id]
        redis.sunion.assert_awaited_once_with(["t:status:OPEN", "t:status:IN_PROGRESS"])

    @pytest.mark.asyncio
    async def test_scan_without_statuses_uses_all_index(self):
        case = make_case().model_copy(update={"version": 1})
        redis, _ = mock_redis({f"t:case:{case.id}": case.model_dump_json()})
        redis.smembers.return_value = {case.id.encode()}
        store = RedisCaseStore(redis, key_prefix="t")

        found = [c async for c in store.scan(predicate=lambda c: c.owner_id == case.owner_id)]

        assert [c.id for c in found] == [case.id]
        redis.smembers.assert_awaited_once_with("t:cases")

    @pytest.mark.asyncio
    async def test_scan_skips_case_whose_read_fails(self):
        cases = [make_case(id=f"case-{name}").model_copy(update={"version": 1}) for name in "abc"]
        values = {f"t:case:{case.id}": case.model_dump_json() for case in cases}

        async def get(key):
            if key == "t:case:case-b":
                raise RedisConnectionError("connection reset")
            return values.get(key)

        redis, _ = mock_redis(values)
        redis.get = AsyncMock(side_effect=get)
        redis.smembers.return_value = {case.id for case in cases}
        store = RedisCaseStore(redis, key_prefix="t")

        found = [case.id async for case in store.scan()]

        assert found == ["case-a", "case-c"]


class TestSweepOverRedis:

    @pytest.mark.asyncio
    async def test_failed_read_does_not_end_expiry_pass(self):
        cases = [make_case(id=f"case-{name}").model_copy(update={"version": 1}) for name in "abc"]
        values = {f"t:case:{case.id}": case.model_dump_json() for case in cases}

        async def get(key):
            if key == "t:case:case-b":
                raise RedisConnectionError("connection reset")
            return values.get(key)

        redis, pipe = mock_redis(values)
        redis.get = AsyncMock(side_effect=get)
        redis.sunion.return_value = {case.id for case in cases}
        sink = InMemoryAuditSink()
        clock = FixedClock(START)
        sweeper = EscalationSweeper(RedisCaseStore(redis, key_prefix="t"), AuditEmitter(sink), clock)
        clock.advance(hours=200)

        report = await sweeper.run_expiry_pass()

        assert report.scanned == 2
        assert report.changed == 2
        assert [event.case_id for event in sink.events] == ["case-a", "case-c"]
        assert pipe.execute.await_count == 2
