"""Decide how an edit or delete on a recurring event is written.

Whether the user meant one occurrence or the whole series is decided
elsewhere and arrives here as an ``EditScope``.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..models.event import Event, EventPatch
from ..utils.date_utils import isoformat_utc
from ..utils.exceptions import EditScopeRequiredError
from .rules import validate_recurrence_rule

logger = logging.getLogger(__name__)

# Fields that define the series itself; an occurrence edit never carries them.
SERIES_FIELDS = frozenset({"recurrence_rule", "recurrence_end_at"})


class EditScope(str, Enum):
    """Which part of a series an edit applies to."""

    THIS_OCCURRENCE = "THIS_OCCURRENCE"
    ENTIRE_SERIES = "ENTIRE_SERIES"


class EditMode(str, Enum):
    """Wire value for the ``editMode`` request field."""

    THIS = "THIS"
    SERIES = "SERIES"


class WriteAction(str, Enum):
    """Kind of write."""

    UPDATE = "update"
    DELETE = "delete"


class WriteDirective(BaseModel):
    """Resolved instruction for one update or delete request."""

    event_id: str
    action: WriteAction
    scope: EditScope = EditScope.ENTIRE_SERIES
    edit_mode: Optional[EditMode] = None
    occurrence_start_at: Optional[datetime] = None
    changes: dict[str, Any] = Field(default_factory=dict)
    target_key: Optional[str] = None

    @property
    def is_occurrence_scoped(self) -> bool:
        return self.edit_mode == EditMode.THIS

    def to_update_payload(self) -> dict[str, Any]:
        """Request body for an update, camelCase keyed."""
        payload = EventPatch.model_validate(self.changes).model_dump(
            by_alias=True, mode="json", exclude_unset=True
        )
        if self.is_occurrence_scoped:
            payload["editMode"] = self.edit_mode.value
            payload["occurrenceStartAt"] = isoformat_utc(self.occurrence_start_at)
        return payload

    def to_delete_params(self) -> dict[str, str]:
        """Query parameters for a delete; empty for a whole-series delete."""
        if not self.is_occurrence_scoped:
            return {}
        return {
            "editMode": self.edit_mode.value,
            "occurrenceStartAt": isoformat_utc(self.occurrence_start_at),
        }


class RecurrenceEditResolver:
    """Turns (event, scope) into a ``WriteDirective``."""

    def resolve(
        self,
        event: Event,
        requested_scope: Optional[EditScope] = None,
        action: WriteAction = WriteAction.UPDATE,
        changes: Optional[dict[str, Any]] = None,
    ) -> WriteDirective:
        """
        Resolve the write for an edit or delete.

        Args:
            event: Target event (a series root, an occurrence, or a one-off)
            requested_scope: Scope chosen for a recurring event; ignored otherwise
            action: Update or delete
            changes: Field changes for an update, snake_case keyed

        Returns:
            WriteDirective describing the request to send

        Raises:
            EditScopeRequiredError: If the event recurs and no scope was given
            RecurrenceRuleError: If the changes carry a malformed rule
        """
        changes = dict(changes or {}) if action == WriteAction.UPDATE else {}

        if not event.is_recurring:
            self._validate_rule_change(event, changes)
            return WriteDirective(
                event_id=event.id,
                action=action,
                changes=changes,
                target_key=event.key,
            )

        if requested_scope is None:
            raise EditScopeRequiredError(
                f"Event {event.id} recurs; choose this occurrence or the entire series"
            )

        if requested_scope == EditScope.ENTIRE_SERIES:
            self._validate_rule_change(event, changes)
            return WriteDirective(
                event_id=event.id,
                action=action,
                scope=EditScope.ENTIRE_SERIES,
                changes=changes,
                target_key=event.key,
            )

        dropped = SERIES_FIELDS & changes.keys()
        if dropped:
            logger.info(
                f"Ignoring series fields {sorted(dropped)} on occurrence edit of {event.id}"
            )
        occurrence_changes = {k: v for k, v in changes.items() if k not in SERIES_FIELDS}
        return WriteDirective(
            event_id=event.id,
            action=action,
            scope=EditScope.THIS_OCCURRENCE,
            edit_mode=EditMode.THIS,
            occurrence_start_at=event.occurrence_start_at or event.start_at,
            changes=occurrence_changes,
            target_key=event.key,
        )

    def _validate_rule_change(self, event: Event, changes: dict[str, Any]) -> None:
        if changes.get("recurrence_rule"):
            validate_recurrence_rule(
                changes["recurrence_rule"],
                changes.get("start_at", event.start_at),
                changes.get("timezone", event.timezone),
            )
