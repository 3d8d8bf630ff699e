import json
import os
from collections.abc import AsyncGenerator, Generator
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime

from aiosqlite import Connection, Error as SqliteError, Row, connect as sqlite_connect
from opentelemetry.instrumentation.sqlite3 import SQLite3Instrumentor

from family_reminders.helpers.config_models.database import SqliteModel
from family_reminders.helpers.logging import logger
from family_reminders.models.completion_event import CompletionEventModel
from family_reminders.models.error import PersistenceError
from family_reminders.models.family import FamilyModel
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.readiness import ReadinessEnum
from family_reminders.models.reminder import RecurrenceModel, ReminderModel
from family_reminders.persistence.icache import ICache
from family_reminders.persistence.istore import IStore

# Instrument sqlite
SQLite3Instrumentor().instrument()

# Stored in place of a missing recurrence end date, as the column is not nullable
END_DATE_SENTINEL = "2099-12-31T23:59:59Z"

_REMINDER_COLUMNS = "id, title, description, due_date, recurrence_type, recurrence_days, recurrence_date, recurrence_end_date, completed, completed_at, family_id, family_member"


def _timestamp_dump(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _timestamp_load(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@contextmanager
def _decoding(table: str, row: Row) -> Generator[None]:
    """
    Raise row decoding errors as `PersistenceError`.

    JSON, timestamp and model validation errors are all `ValueError`.
    """
    try:
        yield
    except ValueError as e:
        logger.exception("Corrupted %s row %s", table, row["id"])
        raise PersistenceError(f"Corrupted {table} row {row['id']}") from e


class SqliteStore(IStore):
    """
    Store kept in a local SQLite database, one table per entity kind.
    """

    _config: SqliteModel
    _db_path: str
    _init_done: bool

    def __init__(self, cache: ICache, config: SqliteModel):
        super().__init__(cache)
        self._config = config
        self._db_path = config.full_path()
        self._init_done = False
        logger.info("Using SQLite database at %s", self._db_path)

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SQLite database.

        This checks if the database is reachable and can be queried.
        """
        try:
            async with self._use_db() as db:
                await db.execute("SELECT 1")
            return ReadinessEnum.OK
        except PersistenceError:
            logger.exception("Error requesting SQLite")
        return ReadinessEnum.FAIL

    async def family_create(self, family: FamilyModel) -> None:
        async with self._use_db() as db:
            await db.execute(
                "INSERT INTO families (id, name, members) VALUES (?, ?, ?) ON CONFLICT(id) DO UPDATE SET name = excluded.name, members = excluded.members",
                (
                    family.id,  # id
                    family.name,  # name
                    json.dumps(family.members),  # members
                ),
            )
            await db.commit()

    async def family_get(self, family_id: str) -> FamilyModel | None:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT id, name, members FROM families WHERE id = ?",
                (family_id,),
            )
            row = await cursor.fetchone()
        return self._family_load(row) if row else None

    async def family_list(self) -> list[FamilyModel]:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT id, name, members FROM families ORDER BY rowid"
            )
            rows = await cursor.fetchall()
        return [self._family_load(row) for row in rows]

    async def family_delete(self, family_id: str) -> None:
        async with self._use_db() as db:
            await db.execute("DELETE FROM families WHERE id = ?", (family_id,))
            await db.commit()

    async def _reminder_write(self, reminder: ReminderModel) -> None:
        recurrence = reminder.recurrence
        async with self._use_db() as db:
            await db.execute(
                f"INSERT INTO reminders ({_REMINDER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) ON CONFLICT(id) DO UPDATE SET title = excluded.title, description = excluded.description, due_date = excluded.due_date, recurrence_type = excluded.recurrence_type, recurrence_days = excluded.recurrence_days, recurrence_date = excluded.recurrence_date, recurrence_end_date = excluded.recurrence_end_date, completed = excluded.completed, completed_at = excluded.completed_at, family_id = excluded.family_id, family_member = excluded.family_member",
                (
                    reminder.id,  # id
                    reminder.title,  # title
                    reminder.description,  # description
                    _timestamp_dump(reminder.due_date),  # due_date
                    recurrence.type.value,  # recurrence_type
                    json.dumps(recurrence.days),  # recurrence_days
                    recurrence.date,  # recurrence_date
                    _timestamp_dump(recurrence.end_date)
                    or END_DATE_SENTINEL,  # recurrence_end_date
                    reminder.completed,  # completed
                    _timestamp_dump(reminder.completed_at),  # completed_at
                    reminder.family_id,  # family_id
                    reminder.family_member,  # family_member
                ),
            )
            await db.commit()

    async def _reminder_read(self, reminder_id: str) -> ReminderModel | None:
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT {_REMINDER_COLUMNS} FROM reminders WHERE id = ?",
                (reminder_id,),
            )
            row = await cursor.fetchone()
        return self._reminder_load(row) if row else None

    async def reminder_list(self) -> list[ReminderModel]:
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT {_REMINDER_COLUMNS} FROM reminders ORDER BY rowid"
            )
            rows = await cursor.fetchall()
        return [self._reminder_load(row) for row in rows]

    async def _reminder_remove(self, reminder_id: str) -> None:
        async with self._use_db() as db:
            await db.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            await db.commit()

    async def completion_event_create(self, event: CompletionEventModel) -> None:
        async with self._use_db() as db:
            await db.execute(
                "INSERT INTO completion_events (id, reminder_id, completed_at, completed_by) VALUES (?, ?, ?, ?) ON CONFLICT(id) DO UPDATE SET reminder_id = excluded.reminder_id, completed_at = excluded.completed_at, completed_by = excluded.completed_by",
                (
                    event.id,  # id
                    event.reminder_id,  # reminder_id
                    event.completed_at.isoformat(),  # completed_at
                    event.completed_by,  # completed_by
                ),
            )
            await db.commit()

    async def completion_event_get(
        self,
        event_id: str,
    ) -> CompletionEventModel | None:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT id, reminder_id, completed_at, completed_by FROM completion_events WHERE id = ?",
                (event_id,),
            )
            row = await cursor.fetchone()
        return self._event_load(row) if row else None

    async def completion_event_list(
        self,
        reminder_id: str,
    ) -> list[CompletionEventModel]:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT id, reminder_id, completed_at, completed_by FROM completion_events WHERE reminder_id = ? ORDER BY rowid",
                (reminder_id,),
            )
            rows = await cursor.fetchall()
        return [self._event_load(row) for row in rows]

    async def completion_event_delete(self, event_id: str) -> None:
        async with self._use_db() as db:
            await db.execute("DELETE FROM completion_events WHERE id = ?", (event_id,))
            await db.commit()

    async def counter_get(self, kind: IdKindEnum) -> int:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT value FROM counters WHERE name = ?",
                (self._counter_name(kind),),
            )
            row = await cursor.fetchone()
        return int(row["value"]) if row else 0

    async def counter_set(self, kind: IdKindEnum, value: int) -> None:
        async with self._use_db() as db:
            await db.execute(
                "INSERT INTO counters (name, value) VALUES (?, ?) ON CONFLICT(name) DO UPDATE SET value = excluded.value",
                (
                    self._counter_name(kind),  # name
                    value,  # value
                ),
            )
            await db.commit()

    @staticmethod
    def _counter_name(kind: IdKindEnum) -> str:
        return f"{kind.value}_id"

    @staticmethod
    def _family_load(row: Row) -> FamilyModel:
        with _decoding("families", row):
            return FamilyModel(
                id=row["id"],
                members=json.loads(row["members"]),
                name=row["name"],
            )

    @staticmethod
    def _reminder_load(row: Row) -> ReminderModel:
        end_date = row["recurrence_end_date"]
        with _decoding("reminders", row):
            return ReminderModel(
                completed=bool(row["completed"]),
                completed_at=_timestamp_load(row["completed_at"]),
                description=row["description"] or "",
                due_date=_timestamp_load(row["due_date"]),
                family_id=row["family_id"],
                family_member=row["family_member"],
                id=row["id"],
                recurrence=RecurrenceModel(
                    date=row["recurrence_date"] or 0,
                    days=json.loads(row["recurrence_days"] or "[]"),
                    end_date=None
                    if end_date == END_DATE_SENTINEL
                    else _timestamp_load(end_date),
                    type=row["recurrence_type"],
                ),
                title=row["title"],
            )

    @staticmethod
    def _event_load(row: Row) -> CompletionEventModel:
        with _decoding("completion_events", row):
            return CompletionEventModel(
                completed_at=datetime.fromisoformat(row["completed_at"]),
                completed_by=row["completed_by"],
                id=row["id"],
                reminder_id=row["reminder_id"],
            )

    async def _init_db(self, db: Connection) -> None:
        """
        Initialize the database.

        Tables are created if they do not exist yet.

        See: https://sqlite.org/wal.html
        """
        logger.info("Initializing database %s", self._db_path)
        # Optimize performance for concurrent writes
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute(
            "CREATE TABLE IF NOT EXISTS families (id TEXT PRIMARY KEY, name TEXT NOT NULL, members TEXT NOT NULL)"
        )
        await db.execute(
            "CREATE TABLE IF NOT EXISTS reminders (id TEXT PRIMARY KEY, title TEXT NOT NULL, description TEXT, due_date TEXT, recurrence_type TEXT NOT NULL, recurrence_days TEXT, recurrence_date INTEGER, recurrence_end_date TEXT NOT NULL, completed BOOLEAN NOT NULL DEFAULT 0, completed_at TEXT, family_id TEXT NOT NULL, family_member TEXT NOT NULL)"
        )
        await db.execute(
            "CREATE TABLE IF NOT EXISTS completion_events (id TEXT PRIMARY KEY, reminder_id TEXT NOT NULL, completed_at TEXT NOT NULL, completed_by TEXT NOT NULL)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS completion_events_reminder_id ON completion_events (reminder_id)"
        )
        await db.execute(
            "CREATE TABLE IF NOT EXISTS counters (name TEXT PRIMARY KEY, value INTEGER NOT NULL DEFAULT 0)"
        )
        # Write changes to disk
        await db.commit()

    @asynccontextmanager
    async def _use_db(self) -> AsyncGenerator[Connection]:
        """
        Generate the SQLite client and close it after use.

        SQLite errors are raised as `PersistenceError`.
        """
        try:
            db_folder = os.path.dirname(self._db_path)
            if db_folder:
                os.makedirs(db_folder, exist_ok=True)
            async with sqlite_connect(database=self._db_path) as db:
                db.row_factory = Row
                if not self._init_done:
                    await self._init_db(db)
                    self._init_done = True
                yield db
        except (OSError, SqliteError) as e:
            logger.exception("Error requesting SQLite")
            raise PersistenceError("SQLite request failed") from e
