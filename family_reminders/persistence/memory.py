from collections import OrderedDict
from datetime import UTC, datetime, timedelta

from family_reminders.helpers.config_models.cache import MemoryModel
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum
from family_reminders.persistence.icache import ICache


class MemoryCache(ICache):
    """
    Entity cache kept in process memory.

    Entries expire after `ttl_sec`. Once `max_size` entries are held, the least recently used one is evicted.

    See: https://en.wikipedia.org/wiki/Cache_replacement_policies#Least_recently_used_(LRU)
    """

    _config: MemoryModel
    _entries: OrderedDict[tuple[IdKindEnum, str], tuple[str, datetime]]

    def __init__(self, config: MemoryModel):
        self._config = config
        self._entries = OrderedDict()

    async def readiness(self) -> ReadinessEnum:
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def entity_get(
        self,
        kind: IdKindEnum,
        entity_id: str,
    ) -> str | None:
        key = (kind, entity_id)
        entry = self._entries.get(key, None)
        if not entry:
            return None

        value, expires_at = entry
        if expires_at <= datetime.now(UTC):
            del self._entries[key]
            return None

        # Most recently used last
        self._entries.move_to_end(key)
        return value

    async def entity_set(
        self,
        kind: IdKindEnum,
        entity_id: str,
        value: str,
    ) -> None:
        key = (kind, entity_id)

        # Refreshing a held key never evicts
        if key not in self._entries and len(self._entries) >= self._config.max_size:
            self._entries.popitem(last=False)

        self._entries[key] = (
            value,
            datetime.now(UTC) + timedelta(seconds=self._config.ttl_sec),
        )
        self._entries.move_to_end(key)

    async def entity_delete(
        self,
        kind: IdKindEnum,
        entity_id: str,
    ) -> None:
        self._entries.pop((kind, entity_id), None)
