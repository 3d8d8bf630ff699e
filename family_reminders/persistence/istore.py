import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from pydantic import ValidationError

from family_reminders.helpers.monitoring import start_as_current_span, suppress
from family_reminders.models.completion_event import CompletionEventModel
from family_reminders.models.error import NotFoundError
from family_reminders.models.family import FamilyModel
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum
from family_reminders.models.reminder import ReminderModel
from family_reminders.persistence.icache import ICache


class IStore(ABC):
    """
    Storage of families, reminders and completion events.

    Point reads return `None` when the entity does not exist. Deletes of missing entities are no-ops. Lists are returned in creation order.

    Reminder point reads go through the cache. Adapters implement the raw reminder access in `_reminder_read`, `_reminder_write` and `_reminder_remove`.
    """

    _cache: ICache
    _counter_lock: asyncio.Lock
    _reminder_locks: dict[str, tuple[asyncio.Lock, int]]

    def __init__(self, cache: ICache):
        self._cache = cache
        self._counter_lock = asyncio.Lock()
        self._reminder_locks = {}

    @abstractmethod
    @start_as_current_span("store_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("store_family_create")
    async def family_create(self, family: FamilyModel) -> None:
        pass

    @abstractmethod
    @start_as_current_span("store_family_get")
    async def family_get(self, family_id: str) -> FamilyModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_family_list")
    async def family_list(self) -> list[FamilyModel]:
        pass

    @abstractmethod
    @start_as_current_span("store_family_delete")
    async def family_delete(self, family_id: str) -> None:
        pass

    @start_as_current_span("store_reminder_create")
    async def reminder_create(self, reminder: ReminderModel) -> None:
        """
        Create or replace a reminder, by its identifier.

        The cached copy is dropped before the write and refreshed after it, a failed write leaves nothing cached.
        """
        await self._cache.entity_delete(IdKindEnum.REMINDER, reminder.id)
        await self._reminder_write(reminder)
        await self._cache.entity_set(
            entity_id=reminder.id,
            kind=IdKindEnum.REMINDER,
            value=reminder.model_dump_json(),
        )

    @start_as_current_span("store_reminder_get")
    async def reminder_get(self, reminder_id: str) -> ReminderModel | None:
        # Try cache
        cached = await self._cache.entity_get(IdKindEnum.REMINDER, reminder_id)
        if cached:
            with suppress(ValidationError):
                return ReminderModel.model_validate_json(cached)

        # Try live
        reminder = await self._reminder_read(reminder_id)
        if not reminder:
            return None

        # Update cache
        await self._cache.entity_set(
            entity_id=reminder_id,
            kind=IdKindEnum.REMINDER,
            value=reminder.model_dump_json(),
        )
        return reminder

    @abstractmethod
    @start_as_current_span("store_reminder_list")
    async def reminder_list(self) -> list[ReminderModel]:
        pass

    @start_as_current_span("store_reminder_delete")
    async def reminder_delete(self, reminder_id: str) -> None:
        await self._reminder_remove(reminder_id)
        # Invalidate cache
        await self._cache.entity_delete(IdKindEnum.REMINDER, reminder_id)

    @abstractmethod
    async def _reminder_read(self, reminder_id: str) -> ReminderModel | None:
        pass

    @abstractmethod
    async def _reminder_write(self, reminder: ReminderModel) -> None:
        pass

    @abstractmethod
    async def _reminder_remove(self, reminder_id: str) -> None:
        pass

    @abstractmethod
    @start_as_current_span("store_completion_event_create")
    async def completion_event_create(self, event: CompletionEventModel) -> None:
        """
        Create or replace a completion event, by its identifier.
        """

    @abstractmethod
    @start_as_current_span("store_completion_event_get")
    async def completion_event_get(
        self,
        event_id: str,
    ) -> CompletionEventModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_completion_event_list")
    async def completion_event_list(
        self,
        reminder_id: str,
    ) -> list[CompletionEventModel]:
        pass

    @abstractmethod
    @start_as_current_span("store_completion_event_delete")
    async def completion_event_delete(self, event_id: str) -> None:
        pass

    @abstractmethod
    @start_as_current_span("store_counter_get")
    async def counter_get(self, kind: IdKindEnum) -> int:
        """
        Get the last identifier number issued for the kind, `0` if none.
        """

    @abstractmethod
    @start_as_current_span("store_counter_set")
    async def counter_set(self, kind: IdKindEnum, value: int) -> None:
        pass

    @start_as_current_span("store_id_generate")
    async def id_generate(self, kind: IdKindEnum) -> str:
        """
        Issue the next identifier of the kind (e.g. `rem12`).

        The counter is incremented and persisted before the identifier is returned, so two concurrent calls never get the same value.
        """
        async with self._counter_lock:
            value = await self.counter_get(kind) + 1
            await self.counter_set(kind, value)
        return f"{kind.prefix}{value}"

    @asynccontextmanager
    async def reminder_transac(
        self,
        reminder_id: str,
    ) -> AsyncGenerator[ReminderModel]:
        """
        Read-modify-write a reminder, serialized with the other transactions on the same reminder.

        The reminder is persisted on exit only if it changed. If the block raises, nothing is persisted.

        Raises `NotFoundError` if the reminder does not exist.
        """
        # Unknown reminders never get a lock
        if not await self.reminder_get(reminder_id):
            raise NotFoundError("Reminder", reminder_id)

        async with self._reminder_lock(reminder_id):
            # Read again, it may have changed or been deleted while waiting
            reminder = await self.reminder_get(reminder_id)
            if not reminder:
                raise NotFoundError("Reminder", reminder_id)

            init_json = reminder.model_dump_json()
            yield reminder

            # Skip if no diff
            if reminder.model_dump_json() == init_json:
                return

            await self.reminder_create(reminder)

    @asynccontextmanager
    async def _reminder_lock(self, reminder_id: str) -> AsyncGenerator[None]:
        """
        Hold the lock of a reminder.

        Locks are counted by user and dropped when the last one leaves, so the map only holds reminders in a transaction.
        """
        lock, users = self._reminder_locks.get(reminder_id, (asyncio.Lock(), 0))
        self._reminder_locks[reminder_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._reminder_locks[reminder_id]
            if users > 1:
                self._reminder_locks[reminder_id] = (lock, users - 1)
            else:
                del self._reminder_locks[reminder_id]
