"""Notification emitter for workflow events.

The approval engine fires an event after each committed decision:
- approved: a stage approved and the request moved to the next stage
- rejected: the request was rejected
- disbursed: the final stage approved and funds were released

Delivery is best-effort. A failed delivery is logged and never affects
the decision that produced the event.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

import httpx

from coopflow.core.config import Settings

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"


@dataclass(frozen=True)
class WorkflowEvent:
    kind: EventKind
    request_id: UUID
    request_kind: str
    stage_role: str
    stage_ordinal: int
    status: str
    actor_id: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "event": self.kind.value,
            "timestamp": self.occurred_at.isoformat(),
            "data": {
                "request_id": str(self.request_id),
                "request_kind": self.request_kind,
                "stage": {"role": self.stage_role, "ordinal": self.stage_ordinal},
                "status": self.status,
                "actor_id": self.actor_id,
            },
        }


class NotificationEmitter:
    """Base emitter. Subclasses deliver events somewhere."""

    def emit(self, event: WorkflowEvent) -> None:
        raise NotImplementedError


class RecordingNotifier(NotificationEmitter):
    """Keeps events in memory, newest last.

    Used when no webhook is configured so pending notifications can still be
    polled by an in-process consumer.
    """

    def __init__(self, max_events: int = 1000):
        self.max_events = max_events
        self.events: List[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        self.events.append(event)
        if len(self.events) > self.max_events:
            del self.events[: len(self.events) - self.max_events]


class WebhookNotifier(NotificationEmitter):
    """POSTs each event as JSON to every configured URL."""

    def __init__(
        self,
        urls: Sequence[str],
        *,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.urls = list(urls)
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._client = client

    def emit(self, event: WorkflowEvent) -> None:
        payload = event.to_payload()
        headers = {**self.headers, "Content-Type": "application/json"}

        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            for url in self.urls:
                try:
                    response = client.post(url, json=payload, headers=headers)
                    response.raise_for_status()
                except httpx.HTTPError:
                    logger.exception(f"Failed to deliver {event.kind.value} event to {url}")
        finally:
            if self._client is None:
                client.close()


def build_notifier(settings: Settings) -> NotificationEmitter:
    """Emitter configured from settings."""
    urls = settings.webhook_urls_list
    if urls:
        return WebhookNotifier(urls, timeout=settings.webhook_timeout)
    return RecordingNotifier()
