from family_reminders.models.completion_event import CompletionEventModel
from family_reminders.models.family import FamilyModel
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum
from family_reminders.models.reminder import ReminderModel
from family_reminders.persistence.icache import ICache
from family_reminders.persistence.istore import IStore


class MemoryStore(IStore):
    """
    Store kept in process memory.

    Entities are copied in and out, so callers never share an instance with the store. Data is lost on restart.
    """

    _counters: dict[IdKindEnum, int]
    _events: dict[str, CompletionEventModel]
    _families: dict[str, FamilyModel]
    _reminders: dict[str, ReminderModel]

    def __init__(self, cache: ICache):
        super().__init__(cache)
        self._counters = {}
        self._events = {}
        self._families = {}
        self._reminders = {}

    async def readiness(self) -> ReadinessEnum:
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def family_create(self, family: FamilyModel) -> None:
        self._families[family.id] = family.model_copy(deep=True)

    async def family_get(self, family_id: str) -> FamilyModel | None:
        family = self._families.get(family_id, None)
        return family.model_copy(deep=True) if family else None

    async def family_list(self) -> list[FamilyModel]:
        return [family.model_copy(deep=True) for family in self._families.values()]

    async def family_delete(self, family_id: str) -> None:
        self._families.pop(family_id, None)

    async def _reminder_write(self, reminder: ReminderModel) -> None:
        self._reminders[reminder.id] = reminder.model_copy(deep=True)

    async def _reminder_read(self, reminder_id: str) -> ReminderModel | None:
        reminder = self._reminders.get(reminder_id, None)
        return reminder.model_copy(deep=True) if reminder else None

    async def reminder_list(self) -> list[ReminderModel]:
        return [
            reminder.model_copy(deep=True) for reminder in self._reminders.values()
        ]

    async def _reminder_remove(self, reminder_id: str) -> None:
        self._reminders.pop(reminder_id, None)

    async def completion_event_create(self, event: CompletionEventModel) -> None:
        # Frozen model, no copy needed
        self._events[event.id] = event

    async def completion_event_get(
        self,
        event_id: str,
    ) -> CompletionEventModel | None:
        return self._events.get(event_id, None)

    async def completion_event_list(
        self,
        reminder_id: str,
    ) -> list[CompletionEventModel]:
        return [
            event for event in self._events.values() if event.reminder_id == reminder_id
        ]

    async def completion_event_delete(self, event_id: str) -> None:
        self._events.pop(event_id, None)

    async def counter_get(self, kind: IdKindEnum) -> int:
        return self._counters.get(kind, 0)

    async def counter_set(self, kind: IdKindEnum, value: int) -> None:
        self._counters[kind] = value
