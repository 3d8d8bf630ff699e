from abc import ABC, abstractmethod

from family_reminders.helpers.monitoring import start_as_current_span
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum


class ICache(ABC):
    """
    Cache of serialized entities, keyed by entity kind and identifier.

    Values are the JSON form of the entity. A miss, an expired entry and a backend failure all read as `None`, the caller then reads the store.
    """

    @abstractmethod
    @start_as_current_span("cache_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("cache_entity_get")
    async def entity_get(
        self,
        kind: IdKindEnum,
        entity_id: str,
    ) -> str | None:
        pass

    @abstractmethod
    @start_as_current_span("cache_entity_set")
    async def entity_set(
        self,
        kind: IdKindEnum,
        entity_id: str,
        value: str,
    ) -> None:
        pass

    @abstractmethod
    @start_as_current_span("cache_entity_delete")
    async def entity_delete(
        self,
        kind: IdKindEnum,
        entity_id: str,
    ) -> None:
        pass
