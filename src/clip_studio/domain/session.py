"""Per-pass workflow session state."""

from dataclasses import dataclass, field

from clip_studio.domain.enums import (
    JobKind,
    ReviewState,
    StageState,
    WorkflowStage,
)
from clip_studio.domain.models import Clip, Job, PublishSettings, SafetyReport
from clip_studio.errors import ClipStudioError


@dataclass
class StageFailure:
    """A failure recorded at a stage boundary."""

    stage: WorkflowStage
    message: str
    error: ClipStudioError | None = None


@dataclass
class WorkflowSession:
    """Everything scoped to one editing pass over a single video.

    A new session replaces the old one whenever a different video is chosen;
    it is never patched across videos.
    """

    video_id: str | None = None
    jobs: dict[JobKind, Job] = field(default_factory=dict)
    processing_state: StageState = StageState.IDLE
    progress: int = 0
    error: str | None = None
    clips: list[Clip] = field(default_factory=list)
    selected_clip: Clip | None = None
    regenerates_left: int = 0
    safety_state: StageState = StageState.IDLE
    safety_report: SafetyReport | None = None
    publish: PublishSettings = field(default_factory=PublishSettings)
    review_state: ReviewState = ReviewState.NOT_REQUESTED
    failures: dict[WorkflowStage, StageFailure] = field(default_factory=dict)

    @property
    def current_job(self) -> Job | None:
        """The cut job driving the suggestions stage."""
        return self.jobs.get(JobKind.CUT)

    def clip_by_id(self, clip_id: str) -> Clip | None:
        for clip in self.clips:
            if clip.id == clip_id:
                return clip
        return None
