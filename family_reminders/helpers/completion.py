"""
Completion state reconciliation.

A one-time reminder moves between pending (`completed` false, no `completed_at`) and done (`completed` true, `completed_at` set). A recurring reminder never gets `completed` true: only `completed_at` tracks if the current occurrence was done, and it is the recency of that timestamp that callers must read.
"""

from datetime import datetime
from typing import Any

from family_reminders.helpers.logging import logger
from family_reminders.helpers.monitoring import suppress
from family_reminders.helpers.recurrence import (
    parse_recurrence,
    parse_timestamp,
    same_day,
)
from family_reminders.models.error import ReminderValidationError
from family_reminders.models.reminder import (
    ReminderModel,
    ReminderPatchFieldEnum,
    ReminderPatchModel,
)


def patch_from_payload(payload: dict[str, Any]) -> ReminderPatchModel:
    """
    Build a partial update from a free-form JSON object.

    Unknown keys are ignored, as are values of the wrong type or that do not parse.
    """
    fields: dict[str, Any] = {}
    for field in ReminderPatchFieldEnum:
        if field.value not in payload:
            continue
        value = payload[field.value]
        match field:
            case ReminderPatchFieldEnum.COMPLETED:
                if isinstance(value, bool):
                    fields[field.value] = value
            case ReminderPatchFieldEnum.DUE_DATE:
                if isinstance(value, str):
                    with suppress(ReminderValidationError):
                        fields[field.value] = parse_timestamp(value)
            case ReminderPatchFieldEnum.RECURRENCE:
                if isinstance(value, dict):
                    with suppress(ReminderValidationError):
                        fields[field.value] = parse_recurrence(value)
            case _:
                if isinstance(value, str):
                    fields[field.value] = value
    return ReminderPatchModel.model_validate(fields)


def apply_completion(
    reminder: ReminderModel,
    completed: bool,
    now: datetime,
) -> bool:
    """
    Apply a completion toggle to the reminder, in place.

    Returns `True` if the toggle was applied. Recurring reminders always apply it, one-time reminders only when the requested value differs from the current one. A one-time reminder already done keeps its original `completed_at`.
    """
    if reminder.is_recurring:
        reminder.completed = False
        reminder.completed_at = now if completed else None
        return True

    if completed and not reminder.completed:
        reminder.completed = True
        reminder.completed_at = now
        return True

    if not completed and reminder.completed:
        reminder.completed = False
        reminder.completed_at = None
        return True

    return False


def _pin_completion(
    reminder: ReminderModel,
    now: datetime,
) -> None:
    """
    Bring the completion fields back to a valid state after the recurrence changed.

    A recurring reminder keeps `completed_at` and loses `completed`. A reminder turned one-time is done if it was completed the same day as `now`, pending otherwise.
    """
    if reminder.is_recurring:
        reminder.completed = False
        return

    if reminder.completed or not reminder.completed_at:
        return

    if same_day(reminder.completed_at, now):
        reminder.completed = True
    else:
        reminder.completed_at = None


def apply_patch(
    reminder: ReminderModel,
    patch: ReminderPatchModel,
    now: datetime,
) -> bool:
    """
    Apply a partial update to the reminder, in place.

    Fields are applied in the order of `ReminderPatchFieldEnum`, so the completion toggle sees the recurrence and assignee of the same update.

    Returns `True` if at least one field was applied.
    """
    updated = False
    for field in patch.present():
        match field:
            case ReminderPatchFieldEnum.TITLE:
                reminder.title = patch.title  # pyright: ignore
                updated = True
            case ReminderPatchFieldEnum.DESCRIPTION:
                reminder.description = patch.description  # pyright: ignore
                updated = True
            case ReminderPatchFieldEnum.DUE_DATE:
                reminder.due_date = patch.due_date
                updated = True
            case ReminderPatchFieldEnum.RECURRENCE:
                reminder.recurrence = patch.recurrence  # pyright: ignore
                _pin_completion(reminder, now)
                updated = True
            case ReminderPatchFieldEnum.FAMILY_MEMBER:
                reminder.family_member = patch.family_member  # pyright: ignore
                updated = True
            case ReminderPatchFieldEnum.COMPLETED:
                if apply_completion(
                    completed=patch.completed,  # pyright: ignore
                    now=now,
                    reminder=reminder,
                ):
                    updated = True
                else:
                    logger.debug(
                        "Completion of %s already %s, kept as is",
                        reminder.id,
                        patch.completed,
                    )
    return updated


def is_done(
    reminder: ReminderModel,
    now: datetime,
) -> bool:
    """
    Tell if the reminder counts as done at `now`.

    A recurring reminder is done if it was completed on the same calendar day.
    """
    if reminder.is_recurring:
        return bool(reminder.completed_at) and same_day(reminder.completed_at, now)  # pyright: ignore
    return reminder.completed
