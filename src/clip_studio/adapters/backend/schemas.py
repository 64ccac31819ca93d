"""Wire schemas for backend responses.

Payloads are validated here and converted to domain dataclasses so nothing
outside the adapter sees the backend's field names.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clip_studio.domain.enums import (
    ClipStatus,
    JobKind,
    JobState,
    Quality,
    SafetyVerdict,
    VideoStatus,
)
from clip_studio.domain.models import Clip, Job, SafetyReport, Video


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JobCreatedPayload(_Payload):
    job_id: str = Field(alias="jobId")


class JobPayload(_Payload):
    id: str
    job_type: JobKind
    video_id: str | None = None
    clip_id: str | None = None
    state: JobState
    attempts: int = 0
    max_attempts: int = 1
    error_msg: str | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None

    def to_domain(self) -> Job:
        target = self.clip_id if self.job_type == JobKind.SAFETY else self.video_id
        return Job(
            id=self.id,
            kind=self.job_type,
            target_id=target or "",
            state=self.state,
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            error_msg=self.error_msg,
            created_at=self.created_at,
            finished_at=self.finished_at,
        )


class VideoPayload(_Payload):
    id: str
    status: VideoStatus
    duration_ms: int | None = None
    resolution: str | None = None
    has_audio: bool | None = None
    error_msg: str | None = None
    created_at: datetime | None = None

    def to_domain(self) -> Video:
        return Video(
            id=self.id,
            status=self.status,
            duration_ms=self.duration_ms,
            resolution=self.resolution,
            has_audio=self.has_audio,
            error_msg=self.error_msg,
            created_at=self.created_at,
        )


class ClipPayload(_Payload):
    id: str
    video_id: str
    start_ms: int = Field(ge=0)
    end_ms: int
    score: float = 0.0
    status: ClipStatus = ClipStatus.DRAFT
    safety_status: SafetyVerdict | None = None
    quality_original: bool = True
    schedule_at: datetime | None = None
    created_at: datetime | None = None
    file_url: str | None = None
    thumb_url: str | None = None

    def to_domain(self) -> Clip:
        return Clip(
            id=self.id,
            video_id=self.video_id,
            start_ms=self.start_ms,
            end_ms=self.end_ms,
            score=self.score,
            status=self.status,
            safety_status=self.safety_status,
            quality=Quality.ORIGINAL if self.quality_original else Quality.COMPRESSED,
            schedule_at=self.schedule_at,
            file_url=self.file_url,
            thumb_url=self.thumb_url,
            created_at=self.created_at,
        )


class SafetyReportPayload(_Payload):
    id: str | None = None
    clip_id: str
    verdict: SafetyVerdict
    confidence: float = Field(ge=0.0, le=1.0)
    policy_category: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime | None = None

    def to_domain(self) -> SafetyReport:
        return SafetyReport(
            id=self.id,
            clip_id=self.clip_id,
            verdict=self.verdict,
            confidence=self.confidence,
            policy_category=self.policy_category,
            details=self.details or {},
            created_at=self.created_at or datetime.now(UTC),
        )
