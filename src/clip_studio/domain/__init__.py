"""Domain models and enumerations."""

from clip_studio.domain.enums import (
    ClipStatus,
    JobKind,
    JobState,
    NotificationLevel,
    Quality,
    ReviewState,
    SafetyVerdict,
    StageState,
    VideoStatus,
    WorkflowStage,
)
from clip_studio.domain.models import (
    Clip,
    HistoryAction,
    Job,
    PublishSettings,
    ReadinessChecklist,
    SafetyReport,
    TrimEdit,
    TrimState,
    Video,
)
from clip_studio.domain.session import StageFailure, WorkflowSession

__all__ = [
    "Clip",
    "ClipStatus",
    "HistoryAction",
    "Job",
    "JobKind",
    "JobState",
    "NotificationLevel",
    "PublishSettings",
    "Quality",
    "ReadinessChecklist",
    "ReviewState",
    "SafetyReport",
    "SafetyVerdict",
    "StageFailure",
    "StageState",
    "TrimEdit",
    "TrimState",
    "Video",
    "VideoStatus",
    "WorkflowSession",
    "WorkflowStage",
]
