from opentelemetry import trace
from opentelemetry.trace import SpanKind
import asyncio
import os
from typing import Callable, Optional, TypeVar

import redis
from redis.exceptions import (
    AuthenticationError,
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError,
)
from utils.ml_logging import get_logger

T = TypeVar("T")


class RedisManager:
    """
    RedisManager wraps a redis-py client for signaling pub/sub: publishing
    events to per-user channels and handing out PubSub objects for listeners.
    """

    @property
    def is_connected(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            return self.ping()
        except Exception as e:
            self.logger.error("Redis connection check failed: %s", e)
            return False

    def __init__(
        self,
        host: Optional[str] = None,
        access_key: Optional[str] = None,
        port: Optional[int] = None,
        db: int = 0,
        ssl: Optional[bool] = None,
        client_name: str = "telecall-signaling",
    ):
        self.logger = get_logger(__name__)
        self.host = host or os.getenv("REDIS_HOST")
        self.access_key = access_key or os.getenv("REDIS_ACCESS_KEY")
        self.port = port if isinstance(port, int) else int(os.getenv("REDIS_PORT", 6379))
        self.db = db
        if ssl is None:
            ssl = os.getenv("REDIS_SSL", "false").lower() in {"1", "true", "yes", "on"}
        self.ssl = ssl
        self.client_name = client_name
        self.tracer = trace.get_tracer(__name__)
        if not self.host:
            raise ValueError(
                "Redis host must be provided either as argument or environment variable."
            )
        if ":" in self.host:
            host_parts = self.host.rsplit(":", 1)
            if host_parts[1].isdigit():
                self.host = host_parts[0]
                self.port = int(host_parts[1])

        self._create_client()

    async def initialize(self) -> None:
        """
        Validate connectivity from an async context (FastAPI lifespan).

        :raises ConnectionError: When Redis does not answer PING
        """
        self.logger.info(f"Validating Redis connection to {self.host}:{self.port}")
        loop = asyncio.get_running_loop()
        try:
            ok = await loop.run_in_executor(None, self.ping)
        except RedisError as e:
            self.logger.error(f"Redis initialization failed: {e}")
            raise ConnectionError(f"Failed to initialize Redis: {e}") from e
        if not ok:
            raise ConnectionError("Redis health check failed")
        self.logger.info("Redis connection validated successfully")

    def _redis_span(self, name: str, op: Optional[str] = None):
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.CLIENT,
            attributes={
                "peer.service": "redis",
                "server.address": self.host or "",
                "server.port": self.port,
                "db.system": "redis",
                **({"db.operation": op} if op else {}),
            },
        )

    def _execute_with_retry(
        self, command_name: str, operation: Callable[[], T], retries: int = 2
    ) -> T:
        """Execute a Redis operation, rebuilding the client between failed attempts."""
        last_exc: Optional[Exception] = None
        for attempt in range(retries + 1):
            try:
                return operation()
            except AuthenticationError as auth_err:
                last_exc = auth_err
                self.logger.error("Redis authentication failed on %s", command_name)
                break
            except (RedisConnectionError, TimeoutError, RedisError) as redis_err:
                last_exc = redis_err
                self.logger.warning(
                    "Redis error on %s (attempt %d/%d): %s",
                    command_name,
                    attempt + 1,
                    retries + 1,
                    redis_err,
                )
                if attempt >= retries:
                    break
                self._create_client()

        if last_exc:
            raise last_exc
        raise RedisError(f"Redis command {command_name} failed without exception")

    def _create_client(self):
        kwargs = {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "ssl": self.ssl,
            "decode_responses": True,
            "socket_keepalive": True,
            "health_check_interval": 30,
            "socket_connect_timeout": 2.0,
            "client_name": self.client_name,
        }
        if self.access_key:
            kwargs["password"] = self.access_key

        self.redis_client = redis.Redis(**kwargs)
        self.logger.info(
            "Redis connection initialized (%s:%s, ssl=%s).", self.host, self.port, self.ssl
        )

    def ping(self) -> bool:
        def _ping():
            with self._redis_span("Redis.PING", "PING"):
                return bool(self.redis_client.ping())

        return self._execute_with_retry("PING", _ping)

    def publish(self, channel: str, message: str) -> int:
        """Publish ``message`` on ``channel``; returns the number of receivers."""

        def _publish():
            with self._redis_span("Redis.PUBLISH", "PUBLISH"):
                return int(self.redis_client.publish(channel, message))

        return self._execute_with_retry("PUBLISH", _publish)

    def pubsub(self):
        """New PubSub object bound to the current client."""
        return self.redis_client.pubsub(ignore_subscribe_messages=True)

    def close(self) -> None:
        try:
            self.redis_client.close()
        except RedisError as e:
            self.logger.warning("Error closing Redis client: %s", e)
