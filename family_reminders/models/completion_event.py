from datetime import datetime

from pydantic import BaseModel


class CompletionEventCreateModel(BaseModel):
    completed_at: datetime | None = None
    completed_by: str = ""
    id: str | None = None
    reminder_id: str = ""


class CompletionEventModel(BaseModel, frozen=True):
    """
    Audit record of one completion action.

    Records are append-only and never updated after creation.
    """

    completed_at: datetime
    completed_by: str
    id: str
    reminder_id: str
