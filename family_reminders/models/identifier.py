from enum import Enum


class IdKindEnum(str, Enum):
    """
    Entity kinds with their own sequential identifier counter.
    """

    COMPLETION_EVENT = "completion_event"
    FAMILY = "family"
    REMINDER = "reminder"

    @property
    def prefix(self) -> str:
        match self:
            case IdKindEnum.COMPLETION_EVENT:
                return "cev"
            case IdKindEnum.FAMILY:
                return "fam"
            case IdKindEnum.REMINDER:
                return "rem"
