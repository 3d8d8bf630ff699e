from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from uuid import uuid4

from opentelemetry.instrumentation.redis import RedisInstrumentor
from redis.asyncio import Connection, ConnectionPool, Redis, SSLConnection
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import (
    BusyLoadingError,
    ConnectionError as RedisConnectionError,
    RedisError,
)

from family_reminders.helpers.cache import lru_acache
from family_reminders.helpers.config_models.cache import RedisModel
from family_reminders.helpers.logging import logger
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum
from family_reminders.persistence.icache import ICache

# Instrument redis
RedisInstrumentor().instrument()


class RedisCache(ICache):
    """
    Entity cache kept in Redis.

    Keys are formatted as `{key_prefix}:{kind}:{id}` and expire with `ttl_sec`. Failures are logged and read as a miss. A failed delete leaves a stale entry until it expires.
    """

    _config: RedisModel

    def __init__(self, config: RedisModel):
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the Redis cache.

        Runs a create, read and delete cycle on a random key, under the key prefix.
        """
        test_key = f"{self._config.key_prefix}:readiness:{uuid4()}"
        test_value = "test"
        try:
            async with self._use_client() as client:
                assert await client.get(test_key) is None
                await client.set(test_key, test_value, ex=10)
                assert (await client.get(test_key)).decode() == test_value
                await client.delete(test_key)
                assert await client.get(test_key) is None
            return ReadinessEnum.OK
        except AssertionError:
            logger.exception("Readiness test failed")
        except RedisError:
            logger.exception("Error requesting Redis")
        return ReadinessEnum.FAIL

    async def entity_get(
        self,
        kind: IdKindEnum,
        entity_id: str,
    ) -> str | None:
        key = self._key(kind, entity_id)
        try:
            async with self._use_client() as client:
                res: bytes | None = await client.get(key)
        except RedisError:
            logger.exception("Error getting %s", key)
            return None
        return res.decode() if res else None

    async def entity_set(
        self,
        kind: IdKindEnum,
        entity_id: str,
        value: str,
    ) -> None:
        key = self._key(kind, entity_id)
        try:
            async with self._use_client() as client:
                await client.set(
                    ex=self._config.ttl_sec,
                    name=key,
                    value=value,
                )
        except RedisError:
            logger.exception("Error setting %s", key)

    async def entity_delete(
        self,
        kind: IdKindEnum,
        entity_id: str,
    ) -> None:
        key = self._key(kind, entity_id)
        try:
            async with self._use_client() as client:
                await client.delete(key)
        except RedisError:
            logger.exception("Error deleting %s", key)

    def _key(self, kind: IdKindEnum, entity_id: str) -> str:
        return f"{self._config.key_prefix}:{kind.value}:{entity_id}"

    @lru_acache()
    async def _use_connection_pool(self) -> ConnectionPool:
        """
        Generate the Redis connection pool.
        """
        logger.info("Using Redis cache %s:%s", self._config.host, self._config.port)

        return ConnectionPool(
            db=self._config.database,
            # Reliability
            health_check_interval=10,
            retry_on_error=[BusyLoadingError, RedisConnectionError],
            retry_on_timeout=True,
            retry=Retry(backoff=ExponentialBackoff(), retries=3),
            socket_connect_timeout=5,
            socket_timeout=1,  # Respond quickly or abort, this is a cache
            # Deployment
            connection_class=SSLConnection if self._config.ssl else Connection,
            host=self._config.host,
            port=self._config.port,
            # Authentication
            password=self._config.password.get_secret_value()
            if self._config.password
            else None,
        )

    @asynccontextmanager
    async def _use_client(self) -> AsyncGenerator[Redis]:
        async with Redis(
            auto_close_connection_pool=False,
            connection_pool=await self._use_connection_pool(),
        ) as client:
            yield client
