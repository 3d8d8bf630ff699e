from enum import Enum
from functools import cached_property

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator

from family_reminders.persistence.icache import ICache


class ModeEnum(str, Enum):
    MEMORY = "memory"
    """Use process memory, each worker has its own cache."""
    REDIS = "redis"
    """Use Redis, shared by all workers."""


class MemoryModel(BaseModel, frozen=True):
    max_size: int = Field(default=128, ge=10)
    ttl_sec: int = Field(default=60 * 60, ge=1)  # 1 hour

    @cached_property
    def instance(self) -> ICache:
        from family_reminders.persistence.memory import MemoryCache

        return MemoryCache(self)


class RedisModel(BaseModel, frozen=True):
    database: int = Field(default=0, ge=0)
    host: str
    key_prefix: str = "family-reminders"
    password: SecretStr | None = None
    port: int = 6379
    ssl: bool = True
    ttl_sec: int = Field(default=60 * 60, ge=1)  # 1 hour

    @cached_property
    def instance(self) -> ICache:
        from family_reminders.persistence.redis import RedisCache

        return RedisCache(self)


class CacheModel(BaseModel):
    """
    Cache of reminders in front of the store.
    """

    mode: ModeEnum = ModeEnum.MEMORY  # First, as validators below depend on it
    memory: MemoryModel | None = MemoryModel()  # Object is fully defined by default
    redis: RedisModel | None = None

    @field_validator("redis")
    @classmethod
    def _validate_redis(
        cls,
        redis: RedisModel | None,
        info: ValidationInfo,
    ) -> RedisModel | None:
        if not redis and info.data.get("mode", None) == ModeEnum.REDIS:
            raise ValueError("Redis config required")
        return redis

    @field_validator("memory")
    @classmethod
    def _validate_memory(
        cls,
        memory: MemoryModel | None,
        info: ValidationInfo,
    ) -> MemoryModel | None:
        if not memory and info.data.get("mode", None) == ModeEnum.MEMORY:
            raise ValueError("Memory config required")
        return memory

    @cached_property
    def instance(self) -> ICache:
        match self.mode:
            case ModeEnum.REDIS:
                assert self.redis
                return self.redis.instance
            case _:
                assert self.memory
                return self.memory.instance
