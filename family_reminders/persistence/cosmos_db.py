import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, TypeVar
from uuid import uuid4

from azure.cosmos import ConsistencyLevel
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from pydantic import BaseModel, ValidationError

from family_reminders.helpers.cache import lru_acache
from family_reminders.helpers.config_models.database import CosmosDbModel
from family_reminders.helpers.identity import credential
from family_reminders.helpers.logging import logger
from family_reminders.helpers.monitoring import suppress
from family_reminders.models.completion_event import CompletionEventModel
from family_reminders.models.error import PersistenceError
from family_reminders.models.family import FamilyModel
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum
from family_reminders.models.reminder import ReminderModel
from family_reminders.persistence.icache import ICache
from family_reminders.persistence.istore import IStore

T = TypeVar("T", bound=BaseModel)

_ID_NUMBER_R = re.compile(r"^[a-z]+(\d+)$")


def _id_sort_key(entity: Any) -> tuple[int, str]:
    # Issued identifiers sort by their counter, free-form ones last
    match = _ID_NUMBER_R.match(entity.id)
    return (int(match.group(1)) if match else 2**63, entity.id)


class CosmosDbStore(IStore):
    """
    Store kept in Cosmos DB, one container per entity kind.

    Containers are partitioned by `/id`.
    """

    _config: CosmosDbModel

    def __init__(self, cache: ICache, config: CosmosDbModel):
        super().__init__(cache)
        logger.info("Using Cosmos DB %s", config.database)
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the Cosmos DB service.

        Runs a create, read and delete cycle on a random item of the counters container.
        """
        test_id = str(uuid4())
        test_dict = {
            "id": test_id,
            "value": 0,
        }
        try:
            async with self._use_client(self._config.counters_container) as db:
                await db.upsert_item(body=test_dict)
                read_item = await db.read_item(item=test_id, partition_key=test_id)
                # Check only the relevant fields, Cosmos DB adds metadata
                assert {k: v for k, v in read_item.items() if k in test_dict} == test_dict
                await db.delete_item(item=test_id, partition_key=test_id)
            return ReadinessEnum.OK
        except AssertionError:
            logger.exception("Readiness test failed")
        except CosmosHttpResponseError:
            logger.exception("Error requesting CosmosDB")
        return ReadinessEnum.FAIL

    async def family_create(self, family: FamilyModel) -> None:
        await self._upsert(self._config.families_container, family)

    async def family_get(self, family_id: str) -> FamilyModel | None:
        return await self._get(self._config.families_container, family_id, FamilyModel)

    async def family_list(self) -> list[FamilyModel]:
        return await self._query(self._config.families_container, FamilyModel)

    async def family_delete(self, family_id: str) -> None:
        await self._delete(self._config.families_container, family_id)

    async def _reminder_write(self, reminder: ReminderModel) -> None:
        await self._upsert(self._config.reminders_container, reminder)

    async def _reminder_read(self, reminder_id: str) -> ReminderModel | None:
        return await self._get(
            self._config.reminders_container, reminder_id, ReminderModel
        )

    async def reminder_list(self) -> list[ReminderModel]:
        return await self._query(self._config.reminders_container, ReminderModel)

    async def _reminder_remove(self, reminder_id: str) -> None:
        await self._delete(self._config.reminders_container, reminder_id)

    async def completion_event_create(self, event: CompletionEventModel) -> None:
        await self._upsert(self._config.completion_events_container, event)

    async def completion_event_get(
        self,
        event_id: str,
    ) -> CompletionEventModel | None:
        return await self._get(
            self._config.completion_events_container, event_id, CompletionEventModel
        )

    async def completion_event_list(
        self,
        reminder_id: str,
    ) -> list[CompletionEventModel]:
        return await self._query(
            self._config.completion_events_container,
            CompletionEventModel,
            query="SELECT * FROM c WHERE STRINGEQUALS(c.reminder_id, @reminder_id)",
            parameters=[{"name": "@reminder_id", "value": reminder_id}],
        )

    async def completion_event_delete(self, event_id: str) -> None:
        await self._delete(self._config.completion_events_container, event_id)

    async def counter_get(self, kind: IdKindEnum) -> int:
        counter_id = f"{kind.value}_id"
        try:
            async with self._use_client(self._config.counters_container) as db:
                raw = await db.read_item(item=counter_id, partition_key=counter_id)
        except CosmosResourceNotFoundError:
            return 0
        except CosmosHttpResponseError as e:
            logger.exception("Error reading counter %s", counter_id)
            raise PersistenceError(f"Cannot read counter {counter_id}") from e
        return int(raw["value"])

    async def counter_set(self, kind: IdKindEnum, value: int) -> None:
        counter_id = f"{kind.value}_id"
        try:
            async with self._use_client(self._config.counters_container) as db:
                await db.upsert_item(body={"id": counter_id, "value": value})
        except CosmosHttpResponseError as e:
            logger.exception("Error writing counter %s", counter_id)
            raise PersistenceError(f"Cannot write counter {counter_id}") from e

    async def _get(
        self,
        container: str,
        entity_id: str,
        model: type[T],
    ) -> T | None:
        logger.debug("Loading %s %s", container, entity_id)

        try:
            async with self._use_client(container) as db:
                raw = await db.read_item(item=entity_id, partition_key=entity_id)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            logger.exception("Error accessing CosmosDB")
            raise PersistenceError(f"Cannot read {container} {entity_id}") from e

        try:
            return model.model_validate(raw)
        except ValidationError as e:
            logger.exception("Corrupted %s item %s", container, entity_id)
            raise PersistenceError(f"Corrupted {container} item {entity_id}") from e

    async def _query(
        self,
        container: str,
        model: type[T],
        query: str = "SELECT * FROM c",
        parameters: list[dict[str, Any]] | None = None,
    ) -> list[T]:
        entities: list[T] = []
        try:
            async with self._use_client(container) as db:
                async for raw in db.query_items(
                    parameters=parameters,
                    query=query,
                ):
                    try:
                        entities.append(model.model_validate(raw))
                    except ValidationError as e:
                        logger.exception("Corrupted %s item %s", container, raw.get("id"))
                        raise PersistenceError(f"Corrupted {container} item") from e
        except CosmosHttpResponseError as e:
            logger.exception("Error accessing CosmosDB")
            raise PersistenceError(f"Cannot query {container}") from e
        return sorted(entities, key=_id_sort_key)

    async def _upsert(self, container: str, entity: BaseModel) -> None:
        entity_id: str = entity.id  # pyright: ignore
        data = entity.model_dump(mode="json")
        try:
            async with self._use_client(container) as db:
                await db.upsert_item(body=data)
        except CosmosHttpResponseError as e:
            logger.exception("Error accessing CosmosDB")
            raise PersistenceError(f"Cannot write {container} {entity_id}") from e

    async def _delete(self, container: str, entity_id: str) -> None:
        try:
            async with self._use_client(container) as db:
                with suppress(CosmosResourceNotFoundError):
                    await db.delete_item(item=entity_id, partition_key=entity_id)
        except CosmosHttpResponseError as e:
            logger.exception("Error accessing CosmosDB")
            raise PersistenceError(f"Cannot delete {container} {entity_id}") from e

    @lru_acache()
    async def _use_service_client(self) -> CosmosClient:
        """
        Generate the Cosmos DB client.
        """
        logger.debug("Using Cosmos DB service client for %s", self._config.endpoint)

        return CosmosClient(
            # Usage
            consistency_level=ConsistencyLevel.Strong,
            # Reliability
            connection_timeout=10,  # 10 secs
            retry_backoff_factor=0.8,
            retry_backoff_max=8,
            retry_total=3,
            # Deployment
            url=self._config.endpoint,
            # Authentication
            credential=await credential(),
        )

    @asynccontextmanager
    async def _use_client(self, container: str) -> AsyncGenerator[ContainerProxy]:
        """
        Generate the container client.

        The service client is shared and stays open.
        """
        client = await self._use_service_client()
        database = client.get_database_client(self._config.database)
        yield database.get_container_client(container)
