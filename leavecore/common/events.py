"""Domain events emitted by workflow transitions.

The core never delivers notifications itself; it publishes events and
external collaborators such as notification delivery subscribe.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from pydantic import BaseModel, Field

from leavecore.common.constants import DomainEventType

logger = logging.getLogger(__name__)


class DomainEvent(BaseModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    type: DomainEventType
    request_id: uuid.UUID
    actor_id: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # Snapshot of the request after the transition
    request: dict[str, Any] = Field(default_factory=dict)
    detail: Optional[str] = None


Subscriber = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class EventPublisher(Protocol):
    async def publish(self, event: DomainEvent) -> None:
        ...


class EventBus:
    """In-process publisher fanning events out to subscribers in order."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self.published: list[DomainEvent] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    async def publish(self, event: DomainEvent) -> None:
        self.published.append(event)
        logger.info(
            "Leave request %s %s by %s", event.request_id, event.type.value, event.actor_id,
        )
        for subscriber in self._subscribers:
            result = subscriber(event)
            if inspect.isawaitable(result):
                await result
