"""Domain enumerations."""

from enum import StrEnum


class VideoStatus(StrEnum):
    """Upload status of a source video."""

    UPLOADING = "UPLOADING"
    READY = "READY"
    FAILED = "FAILED"


class JobKind(StrEnum):
    """Kinds of backend jobs the workflow tracks."""

    CUT = "CUT"
    SAFETY = "SAFETY"


class JobState(StrEnum):
    """Backend job state."""

    WAITING = "WAITING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


class ClipStatus(StrEnum):
    """Lifecycle status of a clip."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    BLOCKED = "BLOCKED"


class SafetyVerdict(StrEnum):
    """Safety classification outcome."""

    SAFE = "SAFE"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    BLOCKED = "BLOCKED"


class Quality(StrEnum):
    """Export quality of a clip."""

    ORIGINAL = "original"
    COMPRESSED = "compressed"


class StageState(StrEnum):
    """Render state of a job-backed stage."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowStage(StrEnum):
    """Steps of the clip cutter wizard."""

    UPLOAD = "upload"
    SUGGESTIONS = "suggestions"
    FINE_TUNE = "fine_tune"
    SAFETY_CHECK = "safety_check"
    DONE = "done"


class ReviewState(StrEnum):
    """Manual review sub-flow state."""

    NOT_REQUESTED = "not_requested"
    PENDING = "pending"


class NotificationLevel(StrEnum):
    """Severity of a transient notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
