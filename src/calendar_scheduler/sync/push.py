"""Consumer for the push channel that feeds change notifications to the store.

The transport is external: anything that yields raw message dicts
asynchronously can be consumed. Delivery is at-least-once and unordered, so
every message goes through the store's idempotent apply.
"""

import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..models.event import PushNotification
from .store import LiveEventStore

logger = logging.getLogger(__name__)


@dataclass
class PushStats:
    """Counters for one listening session."""

    received: int = 0
    applied: int = 0
    unchanged: int = 0
    rejected: int = 0


class PushListener:
    """Applies pushed change notifications to a ``LiveEventStore``."""

    def __init__(self, store: LiveEventStore):
        self.store = store
        self.stats = PushStats()

    def handle(self, message: Any) -> bool:
        """
        Validate and apply one raw message.

        Returns:
            True if the store changed
        """
        self.stats.received += 1
        try:
            notification = PushNotification.model_validate(message)
        except ValidationError as e:
            self.stats.rejected += 1
            logger.warning(f"Rejected push message: {e}")
            return False

        if self.store.apply_push(notification):
            self.stats.applied += 1
            return True
        self.stats.unchanged += 1
        return False

    async def listen(self, channel: AsyncIterable[Any]) -> PushStats:
        """Consume ``channel`` until it closes."""
        async for message in channel:
            self.handle(message)
        logger.info(
            f"Push channel closed: {self.stats.received} received, "
            f"{self.stats.applied} applied, {self.stats.unchanged} unchanged, "
            f"{self.stats.rejected} rejected"
        )
        return self.stats
