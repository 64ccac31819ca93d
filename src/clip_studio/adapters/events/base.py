"""Push channel interface and event payloads."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clip_studio.domain.enums import JobKind, JobState, SafetyVerdict


class EventName(StrEnum):
    """Events published on the push channel."""

    JOB_DONE = "job.done"
    CLIP_UPDATED = "clip.updated"
    SAFETY_RESULT = "safety.result"
    PUBLISH_STATE = "publish.state"


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JobDoneEvent(_Event):
    """A backend job reached a terminal state."""

    job_id: str = Field(alias="jobId")
    type: JobKind
    state: JobState
    error: str | None = None
    video_id: str | None = Field(default=None, alias="videoId")
    clip_id: str | None = Field(default=None, alias="clipId")
    result: dict[str, Any] | None = None


class SafetyResultEvent(_Event):
    """A safety verdict was produced for a clip."""

    clip_id: str = Field(alias="clipId")
    verdict: SafetyVerdict
    confidence: float
    timestamp: datetime


class ClipUpdatedEvent(_Event):
    """Fields of a clip changed on the backend."""

    clip_id: str = Field(alias="clipId")
    fields_changed: list[str] = Field(default_factory=list, alias="fieldsChanged")
    timestamp: datetime


class PublishStateEvent(_Event):
    """A clip moved through publishing on a platform."""

    clip_id: str = Field(alias="clipId")
    platform: str
    state: str
    timestamp: datetime


EVENT_MODELS: dict[EventName, type[_Event]] = {
    EventName.JOB_DONE: JobDoneEvent,
    EventName.CLIP_UPDATED: ClipUpdatedEvent,
    EventName.SAFETY_RESULT: SafetyResultEvent,
    EventName.PUBLISH_STATE: PublishStateEvent,
}

EventHandler = Callable[[Any], Awaitable[None]]


class EventChannel(ABC):
    """Push channel delivering backend events at least once.

    Reconnection is the transport's concern. Handlers receive parsed event
    models and are awaited in arrival order.
    """

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @property
    @abstractmethod
    def connected(self) -> bool: ...

    @abstractmethod
    def on(self, event: EventName, handler: EventHandler) -> Callable[[], None]:
        """Register a handler. Returns a function that unregisters it."""
        ...
