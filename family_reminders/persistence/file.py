import asyncio
import json
import os
from tempfile import NamedTemporaryFile
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from family_reminders.helpers.config_models.database import FileModel
from family_reminders.helpers.logging import logger
from family_reminders.models.completion_event import CompletionEventModel
from family_reminders.models.error import PersistenceError
from family_reminders.models.family import FamilyModel
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum
from family_reminders.models.reminder import ReminderModel
from family_reminders.persistence.icache import ICache
from family_reminders.persistence.istore import IStore

_COUNTERS = "counters"
_EVENTS = "completion_events"
_FAMILIES = "families"
_REMINDERS = "reminders"

T = TypeVar("T", bound=BaseModel)


class FileStore(IStore):
    """
    Store kept in JSON files, one file per entity kind.

    Each document is an object keyed by entity identifier. Every call reads the file again, and writes replace it atomically. A missing or empty file is an empty collection.

    Disk access runs in a worker thread, the event loop is never blocked on it.
    """

    _config: FileModel
    _file_lock: asyncio.Lock

    def __init__(self, cache: ICache, config: FileModel):
        super().__init__(cache)
        logger.info("Using file store %s", config.path)
        self._config = config
        self._file_lock = asyncio.Lock()

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the file store.

        The data folder must exist, or be creatable, and be writable.
        """
        try:
            await asyncio.to_thread(os.makedirs, self._config.path, exist_ok=True)
            if not await asyncio.to_thread(os.access, self._config.path, os.W_OK):
                logger.error("Data folder %s is not writable", self._config.path)
                return ReadinessEnum.FAIL
            return ReadinessEnum.OK
        except OSError:
            logger.exception("Error checking data folder")
        return ReadinessEnum.FAIL

    async def family_create(self, family: FamilyModel) -> None:
        await self._upsert(_FAMILIES, family.id, family)

    async def family_get(self, family_id: str) -> FamilyModel | None:
        return await self._get(_FAMILIES, family_id, FamilyModel)

    async def family_list(self) -> list[FamilyModel]:
        return await self._list(_FAMILIES, FamilyModel)

    async def family_delete(self, family_id: str) -> None:
        await self._delete(_FAMILIES, family_id)

    async def _reminder_write(self, reminder: ReminderModel) -> None:
        await self._upsert(_REMINDERS, reminder.id, reminder)

    async def _reminder_read(self, reminder_id: str) -> ReminderModel | None:
        return await self._get(_REMINDERS, reminder_id, ReminderModel)

    async def reminder_list(self) -> list[ReminderModel]:
        return await self._list(_REMINDERS, ReminderModel)

    async def _reminder_remove(self, reminder_id: str) -> None:
        await self._delete(_REMINDERS, reminder_id)

    async def completion_event_create(self, event: CompletionEventModel) -> None:
        await self._upsert(_EVENTS, event.id, event)

    async def completion_event_get(
        self,
        event_id: str,
    ) -> CompletionEventModel | None:
        return await self._get(_EVENTS, event_id, CompletionEventModel)

    async def completion_event_list(
        self,
        reminder_id: str,
    ) -> list[CompletionEventModel]:
        return [
            event
            for event in await self._list(_EVENTS, CompletionEventModel)
            if event.reminder_id == reminder_id
        ]

    async def completion_event_delete(self, event_id: str) -> None:
        await self._delete(_EVENTS, event_id)

    async def counter_get(self, kind: IdKindEnum) -> int:
        async with self._file_lock:
            data = await asyncio.to_thread(self._read, _COUNTERS)
        return int(data.get(kind.value, 0))

    async def counter_set(self, kind: IdKindEnum, value: int) -> None:
        async with self._file_lock:
            data = await asyncio.to_thread(self._read, _COUNTERS)
            data[kind.value] = value
            await asyncio.to_thread(self._write, _COUNTERS, data)

    async def _get(
        self,
        name: str,
        entity_id: str,
        model: type[T],
    ) -> T | None:
        async with self._file_lock:
            data = await asyncio.to_thread(self._read, name)
        raw = data.get(entity_id, None)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            logger.exception("Corrupted %s entry %s", name, entity_id)
            raise PersistenceError(f"Corrupted {name} entry {entity_id}") from e

    async def _list(
        self,
        name: str,
        model: type[T],
    ) -> list[T]:
        async with self._file_lock:
            data = await asyncio.to_thread(self._read, name)
        try:
            return [model.model_validate(raw) for raw in data.values()]
        except ValidationError as e:
            logger.exception("Corrupted %s document", name)
            raise PersistenceError(f"Corrupted {name} document") from e

    async def _upsert(
        self,
        name: str,
        entity_id: str,
        entity: BaseModel,
    ) -> None:
        async with self._file_lock:
            data = await asyncio.to_thread(self._read, name)
            data[entity_id] = entity.model_dump(mode="json")
            await asyncio.to_thread(self._write, name, data)

    async def _delete(self, name: str, entity_id: str) -> None:
        async with self._file_lock:
            data = await asyncio.to_thread(self._read, name)
            if data.pop(entity_id, None) is None:
                return
            await asyncio.to_thread(self._write, name, data)

    def _read(self, name: str) -> dict[str, Any]:
        path = self._config.full_path(name)
        try:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.exception("Error reading %s", path)
            raise PersistenceError(f"Cannot read {path}") from e

        if not content.strip():
            return {}
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.exception("Error decoding %s", path)
            raise PersistenceError(f"Cannot decode {path}") from e

    def _write(self, name: str, data: dict[str, Any]) -> None:
        path = self._config.full_path(name)
        try:
            os.makedirs(self._config.path, exist_ok=True)
            # Write aside then swap, readers never see a partial document
            with NamedTemporaryFile(
                "w",
                delete=False,
                dir=self._config.path,
                encoding="utf-8",
                suffix=".tmp",
            ) as f:
                json.dump(data, f, indent=2)
            os.replace(f.name, path)
        except OSError as e:
            logger.exception("Error writing %s", path)
            raise PersistenceError(f"Cannot write {path}") from e
