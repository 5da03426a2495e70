"""
Per-campaign progress broadcasting.

Fire-and-forget publish/subscribe: each campaign has one topic, every
subscriber gets its own queue, and events go only to subscribers connected at
publish time. Late subscribers do not see earlier events and nothing is
acknowledged or persisted. Within one topic, subscribers receive events in
publish order.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field

from adgen.models.campaigns import utcnow


logger = logging.getLogger(__name__)

TOPIC_PREFIX = "ad_generation_"


def topic_for(campaign_id: str) -> str:
    """Channel name shared by the publisher and every subscriber."""
    return f"{TOPIC_PREFIX}{campaign_id}"


class _Event(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ProgressEvent(_Event):
    type: Literal["progress"] = "progress"
    message: str
    percentage: int = Field(ge=0, le=100)


class BackgroundVariantSummary(BaseModel):
    aspect: str
    size: str
    image_url: str | None = None


class BackgroundCompleteEvent(_Event):
    type: Literal["background_complete"] = "background_complete"
    background_variants: List[BackgroundVariantSummary]


class AdSummary(BaseModel):
    id: str
    variant_id: str
    headline: str
    subheadline: str
    call_to_action: str
    ad_size: str
    background_image_url: str | None = None
    image_url: str | None = None
    status: str
    is_locked: bool


class VariantUpdateEvent(_Event):
    type: Literal["variant_update"] = "variant_update"
    variant: AdSummary


class CompletionEvent(_Event):
    type: Literal["completion"] = "completion"
    variants: List[AdSummary] | None = None
    message: str | None = None


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    error: str


BroadcastEvent = Union[
    ProgressEvent, BackgroundCompleteEvent, VariantUpdateEvent, CompletionEvent, ErrorEvent
]


class Subscription:
    """A subscriber's private, thread-safe event queue."""

    def __init__(self, broadcaster: "ProgressBroadcaster", topic: str) -> None:
        self.topic = topic
        self._broadcaster = broadcaster
        self._queue: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self.closed = False

    def deliver(self, payload: Dict[str, Any]) -> None:
        self._queue.put_nowait(payload)

    def get(self, timeout: float | None = None) -> Dict[str, Any] | None:
        """Next payload, or None if none arrived within `timeout` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Dict[str, Any]]:
        """Everything queued so far, without waiting."""
        payloads: List[Dict[str, Any]] = []
        while True:
            try:
                payloads.append(self._queue.get_nowait())
            except queue.Empty:
                return payloads

    def close(self) -> None:
        if not self.closed:
            self._broadcaster.unsubscribe(self)
            self.closed = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressBroadcaster:
    """In-process topic fan-out used by the orchestrator and the WebSocket route."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Subscription]] = {}

    def subscribe(self, campaign_id: str) -> Subscription:
        topic = topic_for(campaign_id)
        subscription = Subscription(self, topic)
        with self._lock:
            self._subscribers.setdefault(topic, []).append(subscription)
        logger.info("Subscribed to %s", topic)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.topic, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.topic, None)
        logger.info("Unsubscribed from %s", subscription.topic)

    def subscriber_count(self, campaign_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic_for(campaign_id), []))

    def publish(self, campaign_id: str, event: BroadcastEvent) -> int:
        """Deliver `event` to current subscribers. Returns how many received it."""
        topic = topic_for(campaign_id)
        payload = event.to_payload()
        # Delivery happens under the lock so concurrent publishers on one
        # topic cannot interleave a single event across subscribers.
        with self._lock:
            subscribers = list(self._subscribers.get(topic, []))
            for subscription in subscribers:
                subscription.deliver(payload)
        logger.debug("Broadcast %s on %s to %d subscribers", payload["type"], topic, len(subscribers))
        return len(subscribers)

    def progress(self, campaign_id: str, message: str, percentage: int) -> int:
        return self.publish(campaign_id, ProgressEvent(message=message, percentage=percentage))

    def error(self, campaign_id: str, message: str) -> int:
        return self.publish(campaign_id, ErrorEvent(error=message))
