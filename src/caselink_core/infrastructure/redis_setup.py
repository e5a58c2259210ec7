"""Redis connection and case store factory.

Supports both deployment shapes through environment variables:
- Standalone Redis (development/self-hosted)
- Redis Sentinel (HA/Kubernetes), with automatic master failover
"""

import logging
import os
from typing import List, Optional, Tuple

from redis.asyncio import Redis
from redis.asyncio.sentinel import Sentinel

from caselink_core.infrastructure.redis_store import RedisCaseStore
from caselink_core.utils import service_startup_retry

logger = logging.getLogger(__name__)

DEFAULT_SENTINEL_PORT = 26379


def parse_sentinel_hosts(hosts_str: str) -> List[Tuple[str, int]]:
    """Parse "host1:26379,host2" into [("host1", 26379), ("host2", 26379)]."""
    sentinels = []
    for host_port in hosts_str.split(","):
        host_port = host_port.strip()
        if not host_port:
            continue
        if ":" in host_port:
            host, port_str = host_port.rsplit(":", 1)
            sentinels.append((host, int(port_str)))
        else:
            sentinels.append((host_port, DEFAULT_SENTINEL_PORT))
    return sentinels


@service_startup_retry
async def _verify_redis_connection(client: Redis) -> None:
    await client.ping()
    logger.info("Redis connection verified")


async def get_redis_client(
    mode: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    db: Optional[int] = None,
    password: Optional[str] = None,
    sentinel_hosts: Optional[str] = None,
    master_set: Optional[str] = None,
    health_check_interval: int = 30,
) -> Redis:
    """Connect to Redis in standalone or Sentinel mode and verify the connection.

    Explicit arguments win over the environment.

    Environment Variables:
        REDIS_MODE: "standalone" (default) or "sentinel"
        REDIS_HOST / REDIS_PORT: standalone address (default localhost:6379)
        REDIS_SENTINEL_HOSTS: comma-separated "host:port" list (sentinel mode)
        REDIS_MASTER_SET: sentinel master name (default "mymaster")
        REDIS_DB: database index (default 0)
        REDIS_PASSWORD: optional password

    Raises:
        ValueError: Sentinel mode without sentinel hosts
        ConnectionError: Redis unreachable after the startup retries
    """
    mode = (mode or os.getenv("REDIS_MODE", "standalone")).lower()
    db_index = db if db is not None else int(os.getenv("REDIS_DB", "0"))
    password = password or os.getenv("REDIS_PASSWORD")

    logger.info(f"Initializing Redis client in {mode} mode")

    if mode == "sentinel":
        hosts_str = sentinel_hosts or os.getenv("REDIS_SENTINEL_HOSTS", "")
        master_name = master_set or os.getenv("REDIS_MASTER_SET", "mymaster")
        if not hosts_str:
            raise ValueError("REDIS_SENTINEL_HOSTS environment variable is required for Sentinel mode")

        sentinels = parse_sentinel_hosts(hosts_str)
        if not sentinels:
            raise ValueError(f"No valid sentinel hosts found in: {hosts_str}")

        logger.info(f"Connecting to Redis Sentinel: master={master_name}, sentinels={sentinels}")
        sentinel_client = Sentinel(
            sentinels,
            sentinel_kwargs={"password": password} if password else {},
            socket_keepalive=True,
            health_check_interval=health_check_interval,
        )
        redis_client = sentinel_client.master_for(
            master_name,
            db=db_index,
            password=password,
            decode_responses=True,
            socket_keepalive=True,
            health_check_interval=health_check_interval,
        )
    else:
        redis_host = host or os.getenv("REDIS_HOST", "localhost")
        redis_port = port if port is not None else int(os.getenv("REDIS_PORT", "6379"))

        logger.info(f"Connecting to standalone Redis: {redis_host}:{redis_port}/{db_index}")
        redis_client = Redis(
            host=redis_host,
            port=redis_port,
            db=db_index,
            password=password,
            decode_responses=True,
            socket_keepalive=True,
            health_check_interval=health_check_interval,
            socket_connect_timeout=5,
        )

    await _verify_redis_connection(redis_client)
    return redis_client


async def create_case_store(key_prefix: Optional[str] = None, **redis_kwargs) -> RedisCaseStore:
    """Connect to Redis and wrap the client in a RedisCaseStore.

    Args:
        key_prefix: Overrides CASELINK_REDIS_KEY_PREFIX
        **redis_kwargs: Passed to get_redis_client()
    """
    client = await get_redis_client(**redis_kwargs)
    store = RedisCaseStore(client, key_prefix=key_prefix)
    logger.info(f"Case store ready (prefix={store.prefix})")
    return store
