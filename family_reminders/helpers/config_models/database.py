from enum import Enum
from functools import cached_property
from os.path import join

from pydantic import BaseModel, ValidationInfo, field_validator

from family_reminders.persistence.istore import IStore


class ModeEnum(str, Enum):
    COSMOS_DB = "cosmos_db"
    """Use Cosmos DB, one container per entity kind."""
    FILE = "file"
    """Use JSON files, one file per entity kind."""
    MEMORY = "memory"
    """Use process memory, data is lost on restart."""
    SQLITE = "sqlite"
    """Use a local SQLite database."""


class MemoryModel(BaseModel, frozen=True):
    @cached_property
    def instance(self) -> IStore:
        from family_reminders.helpers.config import CONFIG
        from family_reminders.persistence.memory_store import MemoryStore

        return MemoryStore(CONFIG.cache.instance)


class FileModel(BaseModel, frozen=True):
    path: str = ".local/data"

    def full_path(self, name: str) -> str:
        """
        Returns the full path to a JSON document.

        Formatted as: `{path}/{name}.json`.
        """
        return join(self.path, f"{name}.json")

    @cached_property
    def instance(self) -> IStore:
        from family_reminders.helpers.config import CONFIG
        from family_reminders.persistence.file import FileStore

        return FileStore(
            cache=CONFIG.cache.instance,
            config=self,
        )


class SqliteModel(BaseModel, frozen=True):
    path: str = ".local"
    schema_version: int = 1

    def full_path(self) -> str:
        """
        Returns the full path to the sqlite database file.

        Formatted as: `{path}-v{schema_version}.sqlite`.
        """
        return f"{self.path}-v{self.schema_version}.sqlite"

    @cached_property
    def instance(self) -> IStore:
        from family_reminders.helpers.config import CONFIG
        from family_reminders.persistence.sqlite import SqliteStore

        return SqliteStore(
            cache=CONFIG.cache.instance,
            config=self,
        )


class CosmosDbModel(BaseModel, frozen=True):
    completion_events_container: str = "completion_events"
    counters_container: str = "counters"
    database: str
    endpoint: str
    families_container: str = "families"
    reminders_container: str = "reminders"

    @cached_property
    def instance(self) -> IStore:
        from family_reminders.helpers.config import CONFIG
        from family_reminders.persistence.cosmos_db import (
            CosmosDbStore,
        )

        return CosmosDbStore(
            cache=CONFIG.cache.instance,
            config=self,
        )


class DatabaseModel(BaseModel):
    mode: ModeEnum = ModeEnum.MEMORY  # First, as validators below depend on it
    cosmos_db: CosmosDbModel | None = None
    file: FileModel | None = FileModel()  # Object is fully defined by default
    memory: MemoryModel | None = MemoryModel()  # Object is fully defined by default
    sqlite: SqliteModel | None = SqliteModel()  # Object is fully defined by default

    @field_validator("cosmos_db")
    @classmethod
    def _validate_cosmos_db(
        cls,
        cosmos_db: CosmosDbModel | None,
        info: ValidationInfo,
    ) -> CosmosDbModel | None:
        if not cosmos_db and info.data.get("mode", None) == ModeEnum.COSMOS_DB:
            raise ValueError("Cosmos DB config required")
        return cosmos_db

    @field_validator("file")
    @classmethod
    def _validate_file(
        cls,
        file: FileModel | None,
        info: ValidationInfo,
    ) -> FileModel | None:
        if not file and info.data.get("mode", None) == ModeEnum.FILE:
            raise ValueError("File config required")
        return file

    @field_validator("sqlite")
    @classmethod
    def _validate_sqlite(
        cls,
        sqlite: SqliteModel | None,
        info: ValidationInfo,
    ) -> SqliteModel | None:
        if not sqlite and info.data.get("mode", None) == ModeEnum.SQLITE:
            raise ValueError("SQLite config required")
        return sqlite

    @cached_property
    def instance(self) -> IStore:
        match self.mode:
            case ModeEnum.COSMOS_DB:
                assert self.cosmos_db
                return self.cosmos_db.instance
            case ModeEnum.FILE:
                assert self.file
                return self.file.instance
            case ModeEnum.SQLITE:
                assert self.sqlite
                return self.sqlite.instance
            case _:
                assert self.memory
                return self.memory.instance
