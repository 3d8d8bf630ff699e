from datetime import UTC, datetime, timedelta

import pytest

from family_reminders.helpers.recurrence import (
    WEEKDAYS,
    is_due_on,
    next_occurrence,
    parse_recurrence,
    to_local,
)
from family_reminders.models.error import ReminderValidationError
from family_reminders.models.reminder import (
    RecurrenceModel,
    RecurrenceTypeEnum,
    ReminderModel,
)

MONDAY = datetime(2026, 10, 19, 10, 0)


def _reminder(
    due_date: datetime | None = None,
    **recurrence,
) -> ReminderModel:
    return ReminderModel(
        due_date=due_date,
        family_id="fam1",
        family_member="Alice",
        id="rem1",
        recurrence=RecurrenceModel(**recurrence),
        title="Trash",
    )


def test_once_due_on_its_day() -> None:
    reminder = _reminder(due_date=datetime(2026, 10, 19, 18, 30))

    assert is_due_on(reminder, datetime(2026, 10, 19, 0, 0))
    assert is_due_on(reminder, datetime(2026, 10, 19, 23, 59))
    for offset in (-30, -1, 1, 7, 365):
        assert not is_due_on(reminder, MONDAY + timedelta(days=offset))


def test_once_without_due_date() -> None:
    reminder = _reminder()

    assert not is_due_on(reminder, MONDAY)
    assert next_occurrence(reminder, MONDAY) is None


def test_once_aware_due_date() -> None:
    due_date = datetime(2026, 10, 19, 23, 30, tzinfo=UTC)
    reminder = _reminder(due_date=due_date)

    # Compared on the local calendar day
    local_day = due_date.astimezone().replace(tzinfo=None)
    assert to_local(due_date) == local_day
    assert is_due_on(reminder, local_day)
    assert not is_due_on(reminder, local_day + timedelta(days=1))


def test_daily() -> None:
    reminder = _reminder(type=RecurrenceTypeEnum.DAILY)

    for offset in range(30):
        assert is_due_on(reminder, MONDAY + timedelta(days=offset))


def test_weekly_monday() -> None:
    reminder = _reminder(
        days=["monday"],
        end_date=datetime(2026, 11, 29, 23, 0),
        type=RecurrenceTypeEnum.WEEKLY,
    )

    for offset in range(6 * 7):
        day = MONDAY + timedelta(days=offset)
        assert is_due_on(reminder, day) == (day.weekday() == 0), day

    # Past the end date, never due
    for offset in range(6 * 7, 10 * 7):
        assert not is_due_on(reminder, MONDAY + timedelta(days=offset))


def test_weekly_case_insensitive() -> None:
    reminder = _reminder(
        days=["Monday", "FRIDAY"],
        type=RecurrenceTypeEnum.WEEKLY,
    )

    assert is_due_on(reminder, MONDAY)
    assert is_due_on(reminder, MONDAY + timedelta(days=4))
    assert not is_due_on(reminder, MONDAY + timedelta(days=1))


def test_weekly_unknown_day_never_matches() -> None:
    reminder = _reminder(
        days=["funday"],
        type=RecurrenceTypeEnum.WEEKLY,
    )

    for offset in range(7):
        assert not is_due_on(reminder, MONDAY + timedelta(days=offset))
    assert next_occurrence(reminder, MONDAY) is None


def test_end_date_is_inclusive() -> None:
    end_date = datetime(2026, 10, 25, 12, 0)
    reminder = _reminder(
        end_date=end_date,
        type=RecurrenceTypeEnum.DAILY,
    )

    assert is_due_on(reminder, end_date)
    assert not is_due_on(reminder, end_date + timedelta(seconds=1))


def test_monthly() -> None:
    reminder = _reminder(
        date=15,
        type=RecurrenceTypeEnum.MONTHLY,
    )

    assert is_due_on(reminder, datetime(2026, 10, 15))
    assert is_due_on(reminder, datetime(2027, 2, 15, 22, 0))
    assert not is_due_on(reminder, datetime(2026, 10, 14))
    assert not is_due_on(reminder, datetime(2026, 10, 16))


def test_next_once() -> None:
    due_date = datetime(2026, 10, 20, 9, 0)
    reminder = _reminder(due_date=due_date)

    assert next_occurrence(reminder, MONDAY) == due_date
    assert next_occurrence(reminder, due_date) is None
    assert next_occurrence(reminder, due_date + timedelta(days=1)) is None


def test_next_daily() -> None:
    reminder = _reminder(
        due_date=datetime(2026, 1, 1, 8, 0),
        type=RecurrenceTypeEnum.DAILY,
    )

    assert next_occurrence(reminder, datetime(2026, 10, 19, 22, 0)) == datetime(
        2026, 10, 20, 8, 0
    )


def test_next_daily_bounded() -> None:
    reminder = _reminder(
        due_date=datetime(2026, 1, 1, 8, 0),
        end_date=datetime(2026, 10, 20, 0, 0),
        type=RecurrenceTypeEnum.DAILY,
    )

    assert next_occurrence(reminder, MONDAY) is None


def test_next_weekly() -> None:
    reminder = _reminder(
        days=["monday", "wednesday"],
        due_date=datetime(2026, 1, 1, 8, 30),
        type=RecurrenceTypeEnum.WEEKLY,
    )
    assert next_occurrence(reminder, MONDAY) == datetime(2026, 10, 21, 8, 30)

    reminder = _reminder(
        days=["monday"],
        due_date=datetime(2026, 1, 1, 8, 30),
        type=RecurrenceTypeEnum.WEEKLY,
    )
    assert next_occurrence(reminder, MONDAY) == datetime(2026, 10, 26, 8, 30)


def test_next_weekly_without_due_date() -> None:
    reminder = _reminder(
        days=["tuesday"],
        type=RecurrenceTypeEnum.WEEKLY,
    )

    # Midnight is used as time of day
    assert next_occurrence(reminder, MONDAY) == datetime(2026, 10, 20, 0, 0)


def test_next_monthly_following_month() -> None:
    reminder = _reminder(
        date=15,
        due_date=datetime(2026, 1, 1, 7, 0),
        type=RecurrenceTypeEnum.MONTHLY,
    )

    after = datetime(2026, 10, 15, 12, 0)
    occurrence = next_occurrence(reminder, after)
    assert occurrence == datetime(2026, 11, 15, 7, 0)

    # Same month when the day is still ahead
    assert next_occurrence(reminder, datetime(2026, 10, 1)) == datetime(
        2026, 10, 15, 7, 0
    )

    # Year rollover
    assert next_occurrence(reminder, datetime(2026, 12, 20)) == datetime(
        2027, 1, 15, 7, 0
    )


@pytest.mark.parametrize(
    "after, expected",
    [
        pytest.param(
            datetime(2026, 3, 31, 12, 0),
            datetime(2026, 5, 31, 0, 0),
            id="april-skipped",
        ),
        pytest.param(
            datetime(2026, 1, 31, 12, 0),
            datetime(2026, 3, 31, 0, 0),
            id="february-skipped",
        ),
    ],
)
def test_next_monthly_skips_short_months(
    after: datetime,
    expected: datetime,
) -> None:
    reminder = _reminder(
        date=31,
        type=RecurrenceTypeEnum.MONTHLY,
    )

    assert next_occurrence(reminder, after) == expected
    # Both operations agree the skipped month has no occurrence
    assert not any(
        is_due_on(reminder, after + timedelta(days=offset))
        for offset in range(1, (expected - after).days)
    )


def test_next_after_end_date() -> None:
    reminder = _reminder(
        end_date=datetime(2026, 10, 1),
        type=RecurrenceTypeEnum.DAILY,
    )

    assert next_occurrence(reminder, MONDAY) is None


def test_weekdays_index() -> None:
    assert WEEKDAYS[MONDAY.weekday()] == "monday"
    assert WEEKDAYS[(MONDAY + timedelta(days=6)).weekday()] == "sunday"


def test_parse_recurrence_defaults() -> None:
    for payload in (None, {}, {"type": ""}):
        recurrence = parse_recurrence(payload)
        assert recurrence.type == RecurrenceTypeEnum.ONCE
        assert recurrence.end_date is None


def test_parse_recurrence_end_date() -> None:
    recurrence = parse_recurrence(
        {
            "days": ["monday"],
            "end_date": "2026-12-31T23:00:00Z",
            "type": "weekly",
        }
    )
    assert recurrence.end_date == datetime(2026, 12, 31, 23, 0, tzinfo=UTC)

    recurrence = parse_recurrence({"end_date": "", "type": "daily"})
    assert recurrence.end_date is None
    assert recurrence.model_dump(mode="json")["end_date"] == ""


@pytest.mark.parametrize(
    "payload",
    [
        pytest.param({"type": "weekly"}, id="weekly-no-days"),
        pytest.param({"days": ["someday"], "type": "weekly"}, id="weekly-bad-day"),
        pytest.param({"type": "monthly"}, id="monthly-no-date"),
        pytest.param({"date": 32, "type": "monthly"}, id="monthly-too-late"),
        pytest.param({"date": "first", "type": "monthly"}, id="monthly-not-int"),
        pytest.param({"type": "yearly"}, id="unknown-type"),
        pytest.param({"end_date": "tomorrow", "type": "daily"}, id="bad-end-date"),
    ],
)
def test_parse_recurrence_invalid(payload: dict) -> None:
    with pytest.raises(ReminderValidationError):
        parse_recurrence(payload)
