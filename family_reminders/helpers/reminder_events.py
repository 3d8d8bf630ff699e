from datetime import datetime, timedelta

from family_reminders.helpers.completion import apply_patch, is_done
from family_reminders.helpers.logging import logger
from family_reminders.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from family_reminders.helpers.recurrence import (
    is_due_on,
    parse_recurrence,
    parse_timestamp,
    same_day,
    to_local,
)
from family_reminders.models.agenda import AgendaViewEnum, EventRangeEnum
from family_reminders.models.completion_event import (
    CompletionEventCreateModel,
    CompletionEventModel,
)
from family_reminders.models.error import ReminderValidationError
from family_reminders.models.family import FamilyCreateModel, FamilyModel
from family_reminders.models.identifier import IdKindEnum
from family_reminders.models.reminder import (
    ReminderCreateModel,
    ReminderModel,
    ReminderPatchModel,
)
from family_reminders.persistence.istore import IStore


@start_as_current_span("on_family_create")
async def on_family_create(
    payload: FamilyCreateModel,
    store: IStore,
) -> FamilyModel:
    family = FamilyModel(
        id=await store.id_generate(IdKindEnum.FAMILY),
        members=payload.members,
        name=payload.name,
    )
    SpanAttributeEnum.FAMILY_ID.attribute(family.id)
    await store.family_create(family)
    logger.info("Family created with %s members", len(family.members))
    return family


@start_as_current_span("on_reminder_create")
async def on_reminder_create(
    payload: ReminderCreateModel,
    store: IStore,
) -> ReminderModel:
    """
    Validate a creation request and store the new reminder.

    The family must exist and count the member among its own. Nothing is written if any check fails.

    Raises `ReminderValidationError` on invalid input.
    """
    due_date = parse_timestamp(payload.due_date) if payload.due_date else None

    if not payload.family_id or not payload.family_member:
        raise ReminderValidationError("family_id and family_member are required")
    SpanAttributeEnum.FAMILY_ID.attribute(payload.family_id)

    family = await store.family_get(payload.family_id)
    if not family:
        raise ReminderValidationError(f"Family {payload.family_id} not found")
    if not family.has_member(payload.family_member):
        raise ReminderValidationError(
            f"Family member {payload.family_member} not found"
        )

    recurrence = parse_recurrence(payload.recurrence)

    reminder = ReminderModel(
        description=payload.description,
        due_date=due_date,
        family_id=payload.family_id,
        family_member=payload.family_member,
        id=await store.id_generate(IdKindEnum.REMINDER),
        recurrence=recurrence,
        title=payload.title,
    )
    SpanAttributeEnum.REMINDER_ID.attribute(reminder.id)
    SpanAttributeEnum.REMINDER_RECURRENCE.attribute(recurrence.type.value)
    await store.reminder_create(reminder)
    logger.info("Reminder created")
    return reminder


@start_as_current_span("on_reminder_patch")
async def on_reminder_patch(
    now: datetime,
    patch: ReminderPatchModel,
    reminder_id: str,
    store: IStore,
) -> ReminderModel:
    """
    Apply a partial update to a stored reminder.

    A completion toggle always appends a completion event, credited to the assignee, even if the reminder state did not change. The event is written before the reminder: if it fails, the reminder is left untouched.

    Raises `NotFoundError` if the reminder does not exist.
    """
    SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
    if patch.completed is not None:
        SpanAttributeEnum.COMPLETION_REQUESTED.attribute(patch.completed)

    async with store.reminder_transac(reminder_id) as reminder:
        updated = apply_patch(
            now=now,
            patch=patch,
            reminder=reminder,
        )

        if patch.completed is not None:
            event = CompletionEventModel(
                completed_at=now,
                completed_by=reminder.family_member,
                id=await store.id_generate(IdKindEnum.COMPLETION_EVENT),
                reminder_id=reminder.id,
            )
            await store.completion_event_create(event)
            logger.info("Completion event %s logged", event.id)

        if not updated:
            logger.info("Nothing to update")

    return reminder


@start_as_current_span("on_completion_event_create")
async def on_completion_event_create(
    now: datetime,
    payload: CompletionEventCreateModel,
    store: IStore,
) -> CompletionEventModel:
    """
    Log a completion event sent by a client.

    The reminder is not required to exist. The identifier is issued if not given, the completion time defaults to `now`.

    Raises `ReminderValidationError` if `reminder_id` or `completed_by` is missing.
    """
    if not payload.reminder_id or not payload.completed_by:
        raise ReminderValidationError("reminder_id and completed_by are required")
    SpanAttributeEnum.REMINDER_ID.attribute(payload.reminder_id)

    event = CompletionEventModel(
        completed_at=payload.completed_at or now,
        completed_by=payload.completed_by,
        id=payload.id or await store.id_generate(IdKindEnum.COMPLETION_EVENT),
        reminder_id=payload.reminder_id,
    )
    await store.completion_event_create(event)
    logger.info("Completion event %s logged", event.id)
    return event


def member_agenda(
    family_id: str,
    member: str,
    now: datetime,
    reminders: list[ReminderModel],
    view: AgendaViewEnum,
) -> list[ReminderModel]:
    """
    Select the reminders of a family member for one view of their page.

    A recurring reminder counts as done when it was completed on the same day as `now`.
    """
    owned = [
        reminder
        for reminder in reminders
        if reminder.family_id == family_id and reminder.family_member == member
    ]
    incomplete = [reminder for reminder in owned if not is_done(reminder, now)]

    match view:
        case AgendaViewEnum.TODAY:
            return [reminder for reminder in incomplete if is_due_on(reminder, now)]
        case AgendaViewEnum.COMPLETED:
            return [
                reminder
                for reminder in owned
                if is_due_on(reminder, now) and is_done(reminder, now)
            ]
        case AgendaViewEnum.ALL:
            incomplete_ids = {reminder.id for reminder in incomplete}
            return [
                reminder
                for reminder in owned
                if reminder.id in incomplete_ids or reminder.is_recurring
            ]
        case _:
            return incomplete


def events_in_range(
    events: list[CompletionEventModel],
    now: datetime,
    range: EventRangeEnum,  # noqa: A002
) -> list[CompletionEventModel]:
    """
    Filter completion events to a period around `now`, newest first.

    Weeks start on Sunday.
    """
    local_now = to_local(now)
    match range:
        case EventRangeEnum.TODAY:
            selected = [
                event for event in events if same_day(event.completed_at, local_now)
            ]
        case EventRangeEnum.WEEK:
            # weekday() is 0 on Monday, step back to the previous Sunday
            start = local_now.date() - timedelta(days=(local_now.weekday() + 1) % 7)
            end = start + timedelta(days=7)
            selected = [
                event
                for event in events
                if start <= to_local(event.completed_at).date() < end
            ]
        case EventRangeEnum.MONTH:
            selected = [
                event
                for event in events
                if (
                    to_local(event.completed_at).year,
                    to_local(event.completed_at).month,
                )
                == (local_now.year, local_now.month)
            ]
        case _:
            selected = list(events)

    return sorted(
        selected,
        key=lambda event: to_local(event.completed_at),
        reverse=True,
    )
