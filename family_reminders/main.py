import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from family_reminders.helpers.completion import patch_from_payload
from family_reminders.helpers.config import CONFIG
from family_reminders.helpers.logging import logger
from family_reminders.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from family_reminders.helpers.recurrence import is_due_on, next_occurrence
from family_reminders.helpers.reminder_events import (
    events_in_range,
    member_agenda,
    on_completion_event_create,
    on_family_create,
    on_reminder_create,
    on_reminder_patch,
)
from family_reminders.models.agenda import AgendaViewEnum, DueModel, EventRangeEnum
from family_reminders.models.completion_event import (
    CompletionEventCreateModel,
    CompletionEventModel,
)
from family_reminders.models.error import (
    ErrorInnerModel,
    ErrorModel,
    NotFoundError,
    PersistenceError,
    ReminderValidationError,
)
from family_reminders.models.family import FamilyCreateModel, FamilyModel
from family_reminders.models.readiness import (
    ReadinessCheckModel,
    ReadinessEnum,
    ReadinessModel,
)
from family_reminders.models.reminder import (
    ReminderCreateModel,
    ReminderModel,
)

# First log
logger.info(
    "family-reminders v%s",
    CONFIG.version,
)

# Persistences
_cache = CONFIG.cache.instance
_db = CONFIG.database.instance


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    # Fail loud early, but still start, readiness check will report it
    if await _db.readiness() != ReadinessEnum.OK:
        logger.warning("Store is not ready at startup")
    yield


api = FastAPI(
    description="Track household reminders, their recurrence and who completed them.",
    lifespan=lifespan,
    root_path=CONFIG.api.root_path,
    title="family-reminders",
    version=CONFIG.version,
)


def _now() -> datetime:
    return datetime.now().astimezone()


@api.get("/health/liveness")
@start_as_current_span("health_liveness_get")
async def health_liveness_get() -> None:
    """
    Check if the service is running.

    Returns a 200 OK if the service is technically running.
    """
    return


@api.get(
    "/health/readiness",
    status_code=HTTPStatus.OK,
)
@start_as_current_span("health_readiness_get")
async def health_readiness_get() -> JSONResponse:
    """
    Check if the service is ready to serve requests.

    Services tested are: cache, store.

    Returns a 200 OK if the service is ready to serve requests. If the service is not ready, it returns a 503 Service Unavailable.
    """
    # Check all components in parallel
    (
        cache_check,
        store_check,
    ) = await asyncio.gather(
        _cache.readiness(),
        _db.readiness(),
    )
    readiness = ReadinessModel(
        status=ReadinessEnum.OK,
        checks=[
            ReadinessCheckModel(id="cache", status=cache_check),
            ReadinessCheckModel(id="store", status=store_check),
        ],
    )
    # If one of the checks fails, the whole readiness fails
    status_code = HTTPStatus.OK
    for check in readiness.checks:
        if check.status != ReadinessEnum.OK:
            readiness.status = ReadinessEnum.FAIL
            status_code = HTTPStatus.SERVICE_UNAVAILABLE
            break
    return JSONResponse(
        content=readiness.model_dump(mode="json"),
        status_code=status_code,
    )


@api.post(
    "/families",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("family_post")
async def family_post(payload: FamilyCreateModel) -> FamilyModel:
    """
    REST API to create a family.

    Members may be empty.
    """
    return await on_family_create(
        payload=payload,
        store=_db,
    )


@api.get("/families")
@start_as_current_span("family_list_get")
async def family_list_get() -> list[FamilyModel]:
    return await _db.family_list()


@api.get("/families/{family_id}")
@start_as_current_span("family_get")
async def family_get(family_id: str) -> FamilyModel:
    SpanAttributeEnum.FAMILY_ID.attribute(family_id)
    family = await _db.family_get(family_id)
    if not family:
        raise NotFoundError("Family", family_id)
    return family


@api.delete(
    "/families/{family_id}",
    status_code=HTTPStatus.NO_CONTENT,
)
@start_as_current_span("family_delete")
async def family_delete(family_id: str) -> None:
    """
    REST API to delete a family.

    Reminders of the family are kept.
    """
    SpanAttributeEnum.FAMILY_ID.attribute(family_id)
    await _db.family_delete(family_id)


@api.get("/families/{family_id}/members/{member}/reminders")
@start_as_current_span("member_reminders_get")
async def member_reminders_get(
    family_id: str,
    member: str,
    view: AgendaViewEnum = AgendaViewEnum.INCOMPLETE,
) -> list[ReminderModel]:
    """
    REST API to list the reminders of a family member.

    Parameters:
    - view: `incomplete` (default), `today`, `completed` or `all`
    """
    SpanAttributeEnum.FAMILY_ID.attribute(family_id)
    family = await _db.family_get(family_id)
    if not family:
        raise NotFoundError("Family", family_id)
    return member_agenda(
        family_id=family_id,
        member=member,
        now=_now(),
        reminders=await _db.reminder_list(),
        view=view,
    )


@api.post(
    "/reminders",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("reminder_post")
async def reminder_post(payload: ReminderCreateModel) -> ReminderModel:
    """
    REST API to create a reminder.

    The family must exist and the assignee be one of its members. Recurrence defaults to `once`.
    """
    return await on_reminder_create(
        payload=payload,
        store=_db,
    )


@api.get("/reminders")
@start_as_current_span("reminder_list_get")
async def reminder_list_get() -> list[ReminderModel]:
    return await _db.reminder_list()


@api.get("/reminders/{reminder_id}")
@start_as_current_span("reminder_get")
async def reminder_get(reminder_id: str) -> ReminderModel:
    SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
    reminder = await _db.reminder_get(reminder_id)
    if not reminder:
        raise NotFoundError("Reminder", reminder_id)
    return reminder


@api.patch("/reminders/{reminder_id}")
@start_as_current_span("reminder_patch")
async def reminder_patch(
    reminder_id: str,
    payload: Annotated[dict[str, Any], Body()],
) -> ReminderModel:
    """
    REST API to partially update a reminder.

    Accepted keys are `title`, `description`, `due_date`, `recurrence`, `family_member` and `completed`. Unknown keys and values of the wrong type are ignored.

    Each `completed` toggle logs a completion event.
    """
    return await on_reminder_patch(
        now=_now(),
        patch=patch_from_payload(payload),
        reminder_id=reminder_id,
        store=_db,
    )


@api.delete(
    "/reminders/{reminder_id}",
    status_code=HTTPStatus.NO_CONTENT,
)
@start_as_current_span("reminder_delete")
async def reminder_delete(reminder_id: str) -> None:
    """
    REST API to delete a reminder.

    Completion events of the reminder are kept.
    """
    SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
    await _db.reminder_delete(reminder_id)


@api.get("/reminders/{reminder_id}/due")
@start_as_current_span("reminder_due_get")
async def reminder_due_get(
    reminder_id: str,
    day: Annotated[date | None, Query(alias="date")] = None,
) -> DueModel:
    """
    REST API to tell if a reminder is due on a day.

    Parameters:
    - date: Day to check, as `YYYY-MM-DD`, defaults to now

    The next occurrence is searched after the start of the given day, or after now if no day is given.
    """
    SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
    reminder = await _db.reminder_get(reminder_id)
    if not reminder:
        raise NotFoundError("Reminder", reminder_id)

    reference = datetime.combine(day, time()) if day else _now()
    return DueModel(
        date=reference.date(),
        due=is_due_on(reminder, reference),
        next_occurrence=next_occurrence(reminder, reference),
        reminder_id=reminder.id,
    )


@api.get("/reminders/{reminder_id}/completion-events")
@start_as_current_span("reminder_completion_events_get")
async def reminder_completion_events_get(
    reminder_id: str,
    period: Annotated[EventRangeEnum, Query(alias="range")] = EventRangeEnum.ALL,
) -> list[CompletionEventModel]:
    """
    REST API to list the completion events of a reminder, newest first.

    Parameters:
    - range: `all` (default), `today`, `week` (Sunday to Saturday) or `month`
    """
    SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
    return events_in_range(
        events=await _db.completion_event_list(reminder_id),
        now=_now(),
        range=period,
    )


@api.post(
    "/completion-events",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("completion_event_post")
async def completion_event_post(
    payload: CompletionEventCreateModel,
) -> CompletionEventModel:
    return await on_completion_event_create(
        now=_now(),
        payload=payload,
        store=_db,
    )


@api.get("/completion-events/{event_id}")
@start_as_current_span("completion_event_get")
async def completion_event_get(event_id: str) -> CompletionEventModel:
    event = await _db.completion_event_get(event_id)
    if not event:
        raise NotFoundError("Completion event", event_id)
    return event


@api.delete(
    "/completion-events/{event_id}",
    status_code=HTTPStatus.NO_CONTENT,
)
@start_as_current_span("completion_event_delete")
async def completion_event_delete(event_id: str) -> None:
    await _db.completion_event_delete(event_id)


@api.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request,  # noqa: ARG001
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handle HTTP exceptions and return the error in a standard format.
    """
    return _standard_error(
        message=exc.detail,
        status_code=HTTPStatus(exc.status_code),
    )


@api.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,  # noqa: ARG001
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle request parsing errors and return the error in a standard format.
    """
    return _standard_error(
        details=[str(x) for x in exc.errors()],
        message="Validation error",
        status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
    )


@api.exception_handler(ReminderValidationError)
async def reminder_validation_exception_handler(
    request: Request,  # noqa: ARG001
    exc: ReminderValidationError,
) -> JSONResponse:
    """
    Handle business validation errors, they are client errors.
    """
    logger.info("Rejected request: %s", exc)
    return _standard_error(
        details=exc.details,
        message=str(exc),
        status_code=HTTPStatus.BAD_REQUEST,
    )


@api.exception_handler(NotFoundError)
async def not_found_exception_handler(
    request: Request,  # noqa: ARG001
    exc: NotFoundError,
) -> JSONResponse:
    return _standard_error(
        message=str(exc),
        status_code=HTTPStatus.NOT_FOUND,
    )


@api.exception_handler(PersistenceError)
async def persistence_exception_handler(
    request: Request,  # noqa: ARG001
    exc: PersistenceError,
) -> JSONResponse:
    """
    Handle storage failures, details stay in the logs.
    """
    return _standard_error(
        message="Storage error",
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
    )


def _standard_error(
    message: str,
    status_code: HTTPStatus,
    details: list[str] | None = None,
) -> JSONResponse:
    """
    Generate a standard error response.
    """
    model = ErrorModel(
        error=ErrorInnerModel(
            details=details or [],
            message=message,
        )
    )
    return JSONResponse(
        content=model.model_dump(mode="json"),
        status_code=status_code,
    )
