"""Calendar event data model."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..utils.date_utils import ensure_utc, isoformat_utc


class AttendeeResponse(str, Enum):
    """Attendee response state."""

    NEEDS_ACTION = "NEEDS_ACTION"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    TENTATIVE = "TENTATIVE"


class EventStatus(str, Enum):
    """Event status enumeration."""

    CONFIRMED = "CONFIRMED"
    TENTATIVE = "TENTATIVE"
    CANCELED = "CANCELED"


class WireModel(BaseModel):
    """Base for models exchanged with the calendar service (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialize for a request body, omitting unset optional fields."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class Attendee(WireModel):
    """Event attendee, identified by user id or email."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    response: AttendeeResponse = AttendeeResponse.NEEDS_ACTION

    @model_validator(mode="after")
    def _require_identity(self) -> "Attendee":
        if not self.user_id and not self.email:
            raise ValueError("attendee needs a user_id or an email")
        return self


class _TimedModel(WireModel):
    """Shared instant handling for models with a start/end pair."""

    @field_validator(
        "start_at",
        "end_at",
        "recurrence_end_at",
        "occurrence_start_at",
        "updated_at",
        check_fields=False,
    )
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_interval(self):
        start = getattr(self, "start_at", None)
        end = getattr(self, "end_at", None)
        if start is not None and end is not None and end <= start:
            raise ValueError(
                f"end_at ({isoformat_utc(end)}) must be after start_at ({isoformat_utc(start)})"
            )
        return self


class EventDraft(_TimedModel):
    """Payload for creating a new event."""

    calendar_id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    online_meeting_link: Optional[str] = None
    start_at: datetime
    end_at: datetime
    all_day: bool = False
    timezone: str = "UTC"
    recurrence_rule: Optional[str] = None
    recurrence_end_at: Optional[datetime] = None
    attendees: list[Attendee] = Field(default_factory=list)


class Event(_TimedModel):
    """A calendar event as held by the client.

    ``start_at``/``end_at`` are always the interval of this instance. For a
    materialized occurrence of a series, ``occurrence_start_at`` records the
    original start of that occurrence within the series.
    """

    # Identity
    id: str
    calendar_id: str

    # Content
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    online_meeting_link: Optional[str] = None

    # Time
    start_at: datetime
    end_at: datetime
    all_day: bool = False
    timezone: str = "UTC"

    # Recurrence
    recurrence_rule: Optional[str] = None
    recurrence_end_at: Optional[datetime] = None
    occurrence_start_at: Optional[datetime] = None
    parent_event_id: Optional[str] = None

    status: EventStatus = EventStatus.CONFIRMED
    attendees: list[Attendee] = Field(default_factory=list)
    created_by_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _occurrence_window(cls, data: Any) -> Any:
        # Range listings report every item with occurrenceStartAt/occurrenceEndAt;
        # those are the instance interval. One-off events are not occurrences.
        if not isinstance(data, dict) or data.get("occurrenceEndAt") is None:
            return data
        data = dict(data)
        occurrence_end = data.pop("occurrenceEndAt")
        occurrence_start = data.get("occurrenceStartAt")
        if occurrence_start is not None:
            data["startAt"] = occurrence_start
            data["endAt"] = occurrence_end
        if not (data.get("recurrenceRule") or data.get("recurrence_rule")):
            data.pop("occurrenceStartAt", None)
        return data

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    @property
    def is_occurrence(self) -> bool:
        return self.occurrence_start_at is not None

    @property
    def duration(self) -> timedelta:
        return self.end_at - self.start_at

    @property
    def key(self) -> str:
        """Store identity; occurrences of one series get distinct keys."""
        return event_key(self.id, self.occurrence_start_at)


def event_key(event_id: str, occurrence_start_at: Optional[datetime] = None) -> str:
    """Build the store identity for an event or one of its occurrences."""
    if occurrence_start_at is None:
        return event_id
    return f"{event_id}|{isoformat_utc(occurrence_start_at)}"


class EventPatch(_TimedModel):
    """Partial event fields, as carried by partial pushes and updates."""

    id: Optional[str] = None
    calendar_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    online_meeting_link: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    all_day: Optional[bool] = None
    timezone: Optional[str] = None
    recurrence_rule: Optional[str] = None
    recurrence_end_at: Optional[datetime] = None
    occurrence_start_at: Optional[datetime] = None
    parent_event_id: Optional[str] = None
    status: Optional[EventStatus] = None
    attendees: Optional[list[Attendee]] = None
    created_by_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    def changes(self) -> dict[str, Any]:
        """Fields actually present in the source payload, snake_case keyed."""
        return {
            name: getattr(self, name) for name in self.model_fields_set
        }


class BusyInterval(BaseModel):
    """Read-only occupied interval, used for conflict and availability checks."""

    start: datetime
    end: datetime
    event_id: Optional[str] = None
    calendar_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "BusyInterval":
        if self.end < self.start:
            raise ValueError("busy interval ends before it starts")
        return self

    @classmethod
    def from_event(cls, event: Event) -> "BusyInterval":
        return cls(
            start=event.start_at,
            end=event.end_at,
            event_id=event.id,
            calendar_id=event.calendar_id,
        )


class ConflictingEvent(WireModel):
    """Conflict row returned by the server-side pre-check."""

    id: str
    calendar_id: str
    title: str
    start_at: datetime
    end_at: datetime
    all_day: bool = False

    @field_validator("start_at", "end_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class PushAction(str, Enum):
    """Change kind carried by a push notification."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class PushNotification(BaseModel):
    """Change notification delivered by the push channel."""

    entity_kind: str = Field(
        validation_alias=AliasChoices("entityKind", "entity_kind", "type")
    )
    action: PushAction
    event: dict[str, Any]

    @field_validator("event")
    @classmethod
    def _require_id(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not value.get("id"):
            raise ValueError("push payload carries no event id")
        return value
