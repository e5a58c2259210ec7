"""
Tests for the tenacity retry policies and the Redis factory.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from caselink_core.errors import CaseConflictError, CaseNotFoundError
from caselink_core.infrastructure.redis_setup import create_case_store, get_redis_client
from caselink_core.infrastructure.redis_store import RedisCaseStore
from caselink_core.models.api_models import OperationResult
from caselink_core.utils import retry_on_conflict


class TestRetryOnConflict:

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        @retry_on_conflict(max_attempts=3, min_wait=0, max_wait=0)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise CaseConflictError("c1", expected_version=1, actual_version=2)
            return "done"

        assert await flaky() == "done"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_and_reraises(self):
        @retry_on_conflict(max_attempts=2, min_wait=0, max_wait=0)
        async def always_conflicts():
            raise CaseConflictError("c1")

        with pytest.raises(CaseConflictError):
            await always_conflicts()

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        calls = []

        @retry_on_conflict(max_attempts=5, min_wait=0, max_wait=0)
        async def missing():
            calls.append(1)
            raise CaseNotFoundError("gone")

        with pytest.raises(CaseNotFoundError):
            await missing()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_conflict_results_retried_and_last_returned(self):
        calls = []

        @retry_on_conflict(max_attempts=3, min_wait=0, max_wait=0)
        async def operation():
            calls.append(1)
            return OperationResult.failure(CaseConflictError("c1"))

        result = await operation()

        assert result.is_conflict
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_successful_result_returned_immediately(self):
        @retry_on_conflict(min_wait=0, max_wait=0)
        async def operation():
            return OperationResult.success("ok")

        result = await operation()
        assert result.ok
        assert result.value == "ok"


class TestRedisFactory:

    @pytest.mark.asyncio
    async def test_sentinel_mode_requires_hosts(self, monkeypatch):
        monkeypatch.delenv("REDIS_SENTINEL_HOSTS", raising=False)
        with pytest.raises(ValueError):
            await get_redis_client(mode="sentinel")

    @pytest.mark.asyncio
    async def test_standalone_from_environment(self, monkeypatch):
        monkeypatch.setenv("REDIS_HOST", "redis.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("CASELINK_REDIS_KEY_PREFIX", "cl")
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)

        with patch("caselink_core.infrastructure.redis_setup.Redis", return_value=client) as redis_cls:
            store = await create_case_store(mode="standalone")

        assert isinstance(store, RedisCaseStore)
        assert store.prefix == "cl"
        kwargs = redis_cls.call_args.kwargs
        assert kwargs["host"] == "redis.internal"
        assert kwargs["port"] == 6380
        assert kwargs["decode_responses"] is True
        client.ping.assert_awaited_once()
