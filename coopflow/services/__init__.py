"""Services around the workflow engine: member figures and event delivery."""

from coopflow.services.members import MemberDirectory
from coopflow.services.notifications import (
    NotificationEmitter,
    RecordingNotifier,
    WebhookNotifier,
    WorkflowEvent,
    build_notifier,
)

__all__ = [
    "MemberDirectory",
    "NotificationEmitter",
    "RecordingNotifier",
    "WebhookNotifier",
    "WorkflowEvent",
    "build_notifier",
]
