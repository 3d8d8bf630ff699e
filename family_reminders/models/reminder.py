from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator


class RecurrenceTypeEnum(str, Enum):
    DAILY = "daily"
    """Due every day."""
    MONTHLY = "monthly"
    """Due on one day of the month."""
    ONCE = "once"
    """Not recurring, due on the due date only."""
    WEEKLY = "weekly"
    """Due on a set of weekdays."""


class RecurrenceModel(BaseModel):
    date: int = 0
    days: list[str] = []
    end_date: datetime | None = None
    type: RecurrenceTypeEnum = RecurrenceTypeEnum.ONCE

    @field_validator("end_date", mode="before")
    @classmethod
    def _validate_end_date(cls, end_date: Any) -> Any:
        # Empty string is the wire form of "no end date"
        if end_date == "":
            return None
        return end_date

    @field_serializer("end_date")
    def _serialize_end_date(self, end_date: datetime | None) -> str:
        return end_date.isoformat() if end_date else ""

    @property
    def is_recurring(self) -> bool:
        return self.type != RecurrenceTypeEnum.ONCE


class ReminderCreateModel(BaseModel):
    """
    Reminder creation request, as sent by the client.

    Values are kept raw, they are checked and parsed when the reminder is built.
    """

    description: str = ""
    due_date: str | None = None
    family_id: str = ""
    family_member: str = ""
    recurrence: dict[str, Any] | None = None
    title: str = ""


class ReminderModel(BaseModel):
    completed: bool = False
    completed_at: datetime | None = None
    description: str = ""
    due_date: datetime | None = None
    family_id: str
    family_member: str
    id: str
    recurrence: RecurrenceModel = Field(default_factory=RecurrenceModel)
    title: str = ""

    @property
    def is_recurring(self) -> bool:
        return self.recurrence.is_recurring


class ReminderPatchFieldEnum(str, Enum):
    """
    Mutable reminder fields, in the order a patch applies them.
    """

    TITLE = "title"
    DESCRIPTION = "description"
    DUE_DATE = "due_date"
    RECURRENCE = "recurrence"
    FAMILY_MEMBER = "family_member"
    COMPLETED = "completed"


class ReminderPatchModel(BaseModel):
    """
    Partial update of a reminder.

    A field left to `None` is absent from the update.
    """

    completed: bool | None = None
    description: str | None = None
    due_date: datetime | None = None
    family_member: str | None = None
    recurrence: RecurrenceModel | None = None
    title: str | None = None

    def present(self) -> list[ReminderPatchFieldEnum]:
        """
        Fields carried by the update, in application order.
        """
        return [
            field for field in ReminderPatchFieldEnum if getattr(self, field.value) is not None
        ]
