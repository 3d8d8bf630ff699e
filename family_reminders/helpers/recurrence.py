"""
Recurrence evaluation.

Pure functions answering "is this reminder due on that day" and "when is its next occurrence". Calendar comparisons happen on naive local time: aware timestamps are converted to the process timezone first.
"""

from datetime import date, datetime, time, timedelta
from typing import Any

from pydantic import ValidationError

from family_reminders.models.error import ReminderValidationError
from family_reminders.models.reminder import (
    RecurrenceModel,
    RecurrenceTypeEnum,
    ReminderModel,
)

# Index matches `date.weekday()`
WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

# Worst case is a day 31 requested after January 31st, next one is March 31st
_MONTHLY_MAX_MONTHS = 12


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp.

    Raises `ReminderValidationError` if the value is not a timestamp.
    """
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ReminderValidationError(f"Invalid timestamp: {value!r}") from e


def parse_recurrence(payload: dict[str, Any] | None) -> RecurrenceModel:
    """
    Build a recurrence pattern from a client payload, checking its structure.

    An absent pattern, or an empty type, means a one-time reminder. Weekly patterns need at least one known weekday, monthly patterns a day between 1 and 31. The end date, if any, must be a timestamp.

    Raises `ReminderValidationError` on the first broken rule.
    """
    payload = dict(payload or {})
    if not payload.get("type"):
        payload["type"] = RecurrenceTypeEnum.ONCE.value
    end_date = payload.pop("end_date", None)

    try:
        recurrence = RecurrenceModel.model_validate(payload)
    except ValidationError as e:
        raise ReminderValidationError(
            "Invalid recurrence pattern",
            [f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()],
        ) from e

    match recurrence.type:
        case RecurrenceTypeEnum.WEEKLY:
            if not recurrence.days:
                raise ReminderValidationError(
                    "Weekly recurrence requires at least one day"
                )
            for day in recurrence.days:
                if day.lower() not in WEEKDAYS:
                    raise ReminderValidationError(
                        f"Invalid weekday in recurrence pattern: {day!r}"
                    )
        case RecurrenceTypeEnum.MONTHLY:
            if not 1 <= recurrence.date <= 31:
                raise ReminderValidationError(
                    "Monthly recurrence requires a date between 1 and 31"
                )

    if end_date not in (None, ""):
        if not isinstance(end_date, str):
            raise ReminderValidationError("Invalid end_date format")
        recurrence.end_date = parse_timestamp(end_date)

    return recurrence


def to_local(value: datetime) -> datetime:
    """
    Convert a timestamp to naive local time.

    Naive timestamps are considered local already.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def same_day(left: datetime, right: datetime) -> bool:
    return to_local(left).date() == to_local(right).date()


def _time_of_day(reminder: ReminderModel) -> time:
    # Recurring reminders without due date occur at midnight
    if not reminder.due_date:
        return time()
    return to_local(reminder.due_date).time()


def _is_past_end(recurrence: RecurrenceModel, reference: datetime) -> bool:
    if not recurrence.end_date:
        return False
    return to_local(reference) > to_local(recurrence.end_date)


def _weekdays(recurrence: RecurrenceModel) -> set[str]:
    # Unknown names never match
    return {day.lower() for day in recurrence.days}


def _month_day(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:  # Day does not exist in this month
        return None


def is_due_on(
    reminder: ReminderModel,
    reference: datetime,
) -> bool:
    """
    Tell if the reminder has an occurrence on the calendar day of `reference`.
    """
    recurrence = reminder.recurrence
    if _is_past_end(recurrence, reference):
        return False

    local = to_local(reference)
    match recurrence.type:
        case RecurrenceTypeEnum.ONCE:
            if not reminder.due_date:
                return False
            return same_day(reminder.due_date, local)
        case RecurrenceTypeEnum.DAILY:
            return True
        case RecurrenceTypeEnum.WEEKLY:
            return WEEKDAYS[local.weekday()] in _weekdays(recurrence)
        case RecurrenceTypeEnum.MONTHLY:
            return local.day == recurrence.date


def next_occurrence(
    reminder: ReminderModel,
    after: datetime,
) -> datetime | None:
    """
    Get the first occurrence strictly after `after`.

    Occurrences of recurring reminders are returned as naive local time, at the time of day of the reminder due date. Returns `None` when the pattern has no further occurrence, either because it is a past one-time reminder or because its end date is reached.

    Monthly patterns skip months that do not have the requested day (e.g. day 31 in April).
    """
    recurrence = reminder.recurrence
    if _is_past_end(recurrence, after):
        return None

    local = to_local(after)
    at = _time_of_day(reminder)
    candidate: datetime | None = None

    match recurrence.type:
        case RecurrenceTypeEnum.ONCE:
            if reminder.due_date and to_local(reminder.due_date) > local:
                return reminder.due_date
            return None

        case RecurrenceTypeEnum.DAILY:
            candidate = datetime.combine(local.date() + timedelta(days=1), at)

        case RecurrenceTypeEnum.WEEKLY:
            days = _weekdays(recurrence)
            for offset in range(1, 8):
                day = local.date() + timedelta(days=offset)
                if WEEKDAYS[day.weekday()] in days:
                    candidate = datetime.combine(day, at)
                    break

        case RecurrenceTypeEnum.MONTHLY:
            year, month = local.year, local.month
            for _ in range(_MONTHLY_MAX_MONTHS + 1):
                day = _month_day(year, month, recurrence.date)
                if day and datetime.combine(day, at) > local:
                    candidate = datetime.combine(day, at)
                    break
                year, month = (year + 1, 1) if month == 12 else (year, month + 1)

    if not candidate:
        return None
    if recurrence.end_date and candidate > to_local(recurrence.end_date):
        return None
    return candidate
