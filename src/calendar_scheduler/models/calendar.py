"""Calendar metadata model."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ContextType(str, Enum):
    """Owning context of a calendar."""

    PERSONAL = "PERSONAL"
    BUSINESS = "BUSINESS"
    HOUSEHOLD = "HOUSEHOLD"


class Calendar(BaseModel):
    """Calendar metadata. Primary uniqueness per context is enforced server-side."""

    id: str
    name: str
    color: Optional[str] = None
    is_primary: bool = False
    is_system: bool = False
    is_deletable: bool = True
    context_type: ContextType = ContextType.PERSONAL
    context_id: Optional[str] = None
    default_reminder_minutes: int = 10

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )
