from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel


class AgendaViewEnum(str, Enum):
    ALL = "all"
    """Incomplete reminders plus every recurring reminder."""
    COMPLETED = "completed"
    """Reminders due today and already done."""
    INCOMPLETE = "incomplete"
    """Reminders not done yet, the default page."""
    TODAY = "today"
    """Reminders not done yet and due today."""


class EventRangeEnum(str, Enum):
    ALL = "all"
    MONTH = "month"
    """Calendar month containing the reference instant."""
    TODAY = "today"
    WEEK = "week"
    """Sunday to Saturday week containing the reference instant."""


class DueModel(BaseModel):
    date: date
    due: bool
    next_occurrence: datetime | None
    reminder_id: str
