"""
Redis connections for the job queue.

One RedisConnections object is created at process start (API lifespan or
worker entry point) and handed to whatever needs Redis. Nothing in the
service keeps a module-level client.
"""

import os
from typing import Optional

import redis

# ─── Config ────────────────────────────────────────────────────────────────────

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_MAX_CONNECTIONS = int(os.getenv("REDIS_MAX_CONNECTIONS", "20"))


class RedisConnections:
    """Owns a connection pool; hands out clients that share it."""

    def __init__(self, url: str = REDIS_URL, max_connections: int = REDIS_MAX_CONNECTIONS):
        self.url = url
        # RQ stores pickled job payloads, so responses must stay as bytes
        self.pool = redis.ConnectionPool.from_url(url, max_connections=max_connections)
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis(connection_pool=self.pool)
        return self._client

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self) -> None:
        self.pool.disconnect()
