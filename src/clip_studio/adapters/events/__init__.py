"""Push channel adapters."""

from clip_studio.adapters.events.base import (
    ClipUpdatedEvent,
    EventChannel,
    EventName,
    JobDoneEvent,
    PublishStateEvent,
    SafetyResultEvent,
)
from clip_studio.adapters.events.memory import InMemoryEventChannel

__all__ = [
    "ClipUpdatedEvent",
    "EventChannel",
    "EventName",
    "InMemoryEventChannel",
    "JobDoneEvent",
    "PublishStateEvent",
    "SafetyResultEvent",
]
