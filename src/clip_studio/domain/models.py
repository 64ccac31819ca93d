"""Domain models - plain dataclasses independent of any transport."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from clip_studio.domain.enums import (
    ClipStatus,
    JobKind,
    JobState,
    Quality,
    SafetyVerdict,
    VideoStatus,
)


@dataclass
class Video:
    """An uploaded source video."""

    id: str
    status: VideoStatus = VideoStatus.UPLOADING
    duration_ms: int | None = None
    resolution: str | None = None
    has_audio: bool | None = None
    error_msg: str | None = None
    created_at: datetime | None = None

    @property
    def is_ready(self) -> bool:
        return self.status == VideoStatus.READY


@dataclass
class Job:
    """A backend job tracked by the client."""

    id: str
    kind: JobKind
    target_id: str
    state: JobState = JobState.WAITING
    attempts: int = 0
    max_attempts: int = 1
    error_msg: str | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass
class Clip:
    """A clip cut from a source video.

    The trim window is half-open: ``[start_ms, end_ms)``.
    """

    id: str
    video_id: str
    start_ms: int
    end_ms: int
    score: float = 0.0
    status: ClipStatus = ClipStatus.DRAFT
    safety_status: SafetyVerdict | None = None
    quality: Quality = Quality.ORIGINAL
    schedule_at: datetime | None = None
    file_url: str | None = None
    thumb_url: str | None = None
    created_at: datetime | None = None

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


@dataclass
class SafetyReport:
    """Latest safety classification for a clip."""

    clip_id: str
    verdict: SafetyVerdict
    confidence: float
    created_at: datetime
    id: str | None = None
    policy_category: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TrimState:
    """Editable fields of a clip in the fine-tune stage."""

    start_ms: int
    end_ms: int
    quality: Quality = Quality.ORIGINAL

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


@dataclass(frozen=True)
class TrimEdit:
    """A requested change to the trim state. ``None`` fields are left as-is."""

    start_ms: int | None = None
    end_ms: int | None = None
    quality: Quality | None = None
    description: str | None = None

    def apply_to(self, state: TrimState) -> TrimState:
        return TrimState(
            start_ms=state.start_ms if self.start_ms is None else self.start_ms,
            end_ms=state.end_ms if self.end_ms is None else self.end_ms,
            quality=state.quality if self.quality is None else self.quality,
        )


@dataclass(frozen=True)
class HistoryAction:
    """One applied trim edit, recorded with the full resulting state."""

    start_ms: int
    end_ms: int
    quality: Quality
    description: str
    timestamp: datetime

    @property
    def state(self) -> TrimState:
        return TrimState(start_ms=self.start_ms, end_ms=self.end_ms, quality=self.quality)


@dataclass(frozen=True)
class ReadinessChecklist:
    """The three gates required before publishing."""

    video: bool = False
    caption: bool = False
    schedule: bool = False

    @property
    def complete(self) -> bool:
        return self.video and self.caption and self.schedule


@dataclass
class PublishSettings:
    """Caption, schedule and target platforms for a publish."""

    caption: str = ""
    schedule_at: datetime | None = None
    platforms: dict[str, bool] = field(
        default_factory=lambda: {"youtube": True, "tiktok": True, "instagram": True}
    )

    @property
    def enabled_platforms(self) -> list[str]:
        return [name for name, enabled in self.platforms.items() if enabled]
