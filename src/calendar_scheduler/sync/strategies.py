"""Merge strategies for reconciling pushed changes with the local cache."""

from typing import Any, Optional, Protocol

from ..models.event import Event


class MergeStrategy(Protocol):
    """Protocol for merge strategies."""

    def resolve(self, current: Optional[Event], incoming: dict[str, Any]) -> Event:
        """
        Produce the event to keep for one identity.

        Args:
            current: Event currently held, or None
            incoming: Fields carried by the change, snake_case keyed

        Returns:
            Resolved Event

        Raises:
            pydantic.ValidationError: If the result is not a valid Event
        """
        ...


class LastWriteWinsStrategy:
    """The most recently applied change wins, field by field.

    Fields absent from a partial change keep their current value. No version
    or timestamp is consulted, so a stale push arriving after a newer local
    write overwrites it.
    """

    def resolve(self, current: Optional[Event], incoming: dict[str, Any]) -> Event:
        if current is None:
            return Event.model_validate(incoming)
        merged = current.model_dump()
        merged.update(incoming)
        return Event.model_validate(merged)
