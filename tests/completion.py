from datetime import datetime, timedelta

import pytest

from family_reminders.helpers.completion import (
    apply_completion,
    apply_patch,
    is_done,
    patch_from_payload,
)
from family_reminders.models.reminder import (
    RecurrenceModel,
    RecurrenceTypeEnum,
    ReminderModel,
    ReminderPatchFieldEnum,
    ReminderPatchModel,
)

NOW = datetime(2026, 10, 19, 10, 0).astimezone()


def _reminder(recurrence_type: RecurrenceTypeEnum) -> ReminderModel:
    return ReminderModel(
        family_id="fam1",
        family_member="Alice",
        id="rem1",
        recurrence=RecurrenceModel(
            days=["monday"],
            type=recurrence_type,
        ),
        title="Trash",
    )


@pytest.mark.parametrize(
    "recurrence_type",
    [
        RecurrenceTypeEnum.DAILY,
        RecurrenceTypeEnum.MONTHLY,
        RecurrenceTypeEnum.WEEKLY,
    ],
)
def test_recurring_never_completed(recurrence_type: RecurrenceTypeEnum) -> None:
    reminder = _reminder(recurrence_type)

    for i, completed in enumerate([True, True, False, True, False, False, True]):
        now = NOW + timedelta(minutes=i)
        assert apply_completion(reminder, completed, now)
        assert reminder.completed is False
        assert reminder.completed_at == (now if completed else None)


def test_recurring_overwrites_completed_at() -> None:
    reminder = _reminder(RecurrenceTypeEnum.WEEKLY)

    apply_completion(reminder, True, NOW)
    later = NOW + timedelta(days=7)
    apply_completion(reminder, True, later)
    assert reminder.completed_at == later


def test_once_transitions() -> None:
    reminder = _reminder(RecurrenceTypeEnum.ONCE)

    # Pending, asked pending
    assert not apply_completion(reminder, False, NOW)
    assert reminder.completed is False
    assert reminder.completed_at is None

    # Pending to done
    assert apply_completion(reminder, True, NOW)
    assert reminder.completed is True
    assert reminder.completed_at == NOW

    # Done, asked done, first completion time is held
    assert not apply_completion(reminder, True, NOW + timedelta(hours=1))
    assert reminder.completed is True
    assert reminder.completed_at == NOW

    # Done to pending
    assert apply_completion(reminder, False, NOW)
    assert reminder.completed is False
    assert reminder.completed_at is None


def test_patch_from_payload() -> None:
    patch = patch_from_payload(
        {
            "color": "blue",  # Unknown
            "completed": "yes",  # Wrong type
            "description": 42,  # Wrong type
            "due_date": "not a date",
            "family_member": "Bob",
            "recurrence": {"type": "weekly"},  # No days
            "title": "Recycling",
        }
    )

    assert patch.present() == [
        ReminderPatchFieldEnum.TITLE,
        ReminderPatchFieldEnum.FAMILY_MEMBER,
    ]
    assert patch.title == "Recycling"
    assert patch.family_member == "Bob"


def test_patch_from_payload_typed() -> None:
    patch = patch_from_payload(
        {
            "completed": False,
            "due_date": "2026-10-20T08:00:00+02:00",
            "recurrence": {"date": 3, "type": "monthly"},
        }
    )

    assert patch.completed is False
    assert patch.due_date and patch.due_date.hour == 8
    assert patch.recurrence and patch.recurrence.date == 3


def test_patch_empty() -> None:
    reminder = _reminder(RecurrenceTypeEnum.ONCE)
    before = reminder.model_copy(deep=True)

    assert not apply_patch(reminder, patch_from_payload({}), NOW)
    assert reminder == before


def test_patch_completion_sees_new_recurrence() -> None:
    reminder = _reminder(RecurrenceTypeEnum.ONCE)
    patch = patch_from_payload(
        {
            # Completion is listed first, but applied last
            "completed": True,
            "recurrence": {"type": "daily"},
        }
    )

    assert apply_patch(reminder, patch, NOW)
    assert reminder.recurrence.type == RecurrenceTypeEnum.DAILY
    assert reminder.completed is False
    assert reminder.completed_at == NOW


def test_patch_completion_noop() -> None:
    reminder = _reminder(RecurrenceTypeEnum.ONCE)

    assert not apply_patch(
        reminder, patch_from_payload({"completed": False}), NOW
    )


def test_is_done() -> None:
    recurring = _reminder(RecurrenceTypeEnum.DAILY)
    assert not is_done(recurring, NOW)
    apply_completion(recurring, True, NOW - timedelta(days=1))
    assert not is_done(recurring, NOW)
    apply_completion(recurring, True, NOW)
    assert is_done(recurring, NOW)

    once = _reminder(RecurrenceTypeEnum.ONCE)
    assert not is_done(once, NOW)
    apply_completion(once, True, NOW - timedelta(days=3))
    assert is_done(once, NOW)


def test_patch_once_to_recurring_drops_completed() -> None:
    reminder = _reminder(RecurrenceTypeEnum.ONCE)
    apply_completion(reminder, True, NOW - timedelta(hours=2))

    assert apply_patch(
        reminder,
        ReminderPatchModel(
            recurrence=RecurrenceModel(days=["monday"], type=RecurrenceTypeEnum.WEEKLY)
        ),
        NOW,
    )
    assert reminder.is_recurring
    assert reminder.completed is False
    # Completion time is kept, it still counts for the current day
    assert reminder.completed_at == NOW - timedelta(hours=2)
    assert is_done(reminder, NOW)


@pytest.mark.parametrize(
    "completed_ago, completed, completed_at",
    [
        pytest.param(timedelta(hours=2), True, True, id="same_day"),
        pytest.param(timedelta(days=2), False, False, id="earlier_day"),
    ],
)
def test_patch_recurring_to_once(
    completed: bool,
    completed_ago: timedelta,
    completed_at: bool,
) -> None:
    """
    A reminder turned one-time is done only if it was completed the same day.
    """
    reminder = _reminder(RecurrenceTypeEnum.DAILY)
    apply_completion(reminder, True, NOW - completed_ago)

    assert apply_patch(
        reminder,
        ReminderPatchModel(recurrence=RecurrenceModel()),
        NOW,
    )
    assert not reminder.is_recurring
    assert reminder.completed is completed
    assert (reminder.completed_at is not None) is completed_at
    assert is_done(reminder, NOW) is completed


def test_patch_recurring_to_once_pending() -> None:
    reminder = _reminder(RecurrenceTypeEnum.WEEKLY)

    apply_patch(reminder, ReminderPatchModel(recurrence=RecurrenceModel()), NOW)
    assert reminder.completed is False
    assert reminder.completed_at is None


def test_patch_recurrence_then_completion() -> None:
    """
    A completion in the same update applies to the reminder turned one-time.
    """
    reminder = _reminder(RecurrenceTypeEnum.DAILY)
    apply_completion(reminder, True, NOW - timedelta(days=2))

    apply_patch(
        reminder,
        patch_from_payload({"completed": True, "recurrence": {"type": "once"}}),
        NOW,
    )
    assert reminder.completed is True
    assert reminder.completed_at == NOW
