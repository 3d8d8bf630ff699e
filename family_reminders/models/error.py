from pydantic import BaseModel


class ErrorInnerModel(BaseModel):
    message: str
    details: list[str]


class ErrorModel(BaseModel):
    error: ErrorInnerModel


class ReminderValidationError(ValueError):
    """
    Client input cannot be turned into an entity.

    Raised before anything is constructed or written.
    """

    details: list[str]

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = details or []


class NotFoundError(Exception):
    """
    A referenced entity does not exist in the store.
    """

    kind: str
    entity_id: str

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class PersistenceError(Exception):
    """
    The storage backend failed, the original exception is chained.
    """
