import json
import os
import random
import string
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

# Tests run offline, against in-process backends, config must be set before the package is imported
os.environ.setdefault(
    "CONFIG_JSON",
    json.dumps(
        {
            "cache": {"mode": "memory"},
            "database": {"mode": "memory"},
        }
    ),
)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from family_reminders.helpers.config_models.cache import (  # noqa: E402
    MemoryModel as MemoryCacheModel,
)
from family_reminders.helpers.config_models.database import (  # noqa: E402
    FileModel,
    SqliteModel,
)
from family_reminders.helpers.reminder_events import (  # noqa: E402
    on_family_create,
    on_reminder_create,
)
from family_reminders.models.family import FamilyCreateModel, FamilyModel  # noqa: E402
from family_reminders.models.reminder import (  # noqa: E402
    ReminderCreateModel,
    ReminderModel,
)
from family_reminders.persistence.file import FileStore  # noqa: E402
from family_reminders.persistence.istore import IStore  # noqa: E402
from family_reminders.persistence.memory_store import MemoryStore  # noqa: E402
from family_reminders.persistence.sqlite import SqliteStore  # noqa: E402


@pytest.fixture
def random_text() -> str:
    text = "".join(random.choice(string.printable) for _ in range(100))
    return text


@pytest.fixture(
    params=[
        pytest.param("memory", id="memory"),
        pytest.param("file", id="file"),
        pytest.param("sqlite", id="sqlite"),
    ],
)
def store(request: pytest.FixtureRequest, tmp_path: Path) -> IStore:
    """
    Fresh store for each test, one per local backend, each with its own cache.
    """
    cache = MemoryCacheModel().instance
    match request.param:
        case "file":
            return FileStore(
                cache=cache,
                config=FileModel(path=str(tmp_path / "data")),
            )
        case "sqlite":
            return SqliteStore(
                cache=cache,
                config=SqliteModel(path=str(tmp_path / "reminders")),
            )
        case _:
            return MemoryStore(cache)


@pytest_asyncio.fixture(loop_scope="session")
async def family(store: IStore) -> FamilyModel:
    return await on_family_create(
        payload=FamilyCreateModel(
            members=["Alice", "Bob"],
            name="Smith",
        ),
        store=store,
    )


@pytest_asyncio.fixture(loop_scope="session")
async def reminder_factory(
    family: FamilyModel,
    store: IStore,
) -> Callable[..., Awaitable[ReminderModel]]:
    """
    Create reminders for Alice, in the Smith family.

    Keyword arguments override the creation payload.
    """

    async def _create(**kwargs: Any) -> ReminderModel:
        payload: dict[str, Any] = {
            "family_id": family.id,
            "family_member": "Alice",
            "title": "Trash",
        }
        payload.update(kwargs)
        return await on_reminder_create(
            payload=ReminderCreateModel.model_validate(payload),
            store=store,
        )

    return _create
