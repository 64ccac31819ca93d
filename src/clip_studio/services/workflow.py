"""Four-stage clip cutter workflow: upload, suggestions, fine-tune, safety check.

The workflow owns one ``WorkflowSession`` at a time and mutates it only from
its own commands and from job state changes delivered by the ``JobBridge``.
Stage failures are recorded on the session and announced through the
``Notifier``; only ``AuthError`` propagates to the caller.
"""

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any, NoReturn

from clip_studio.adapters.backend.base import BackendClient
from clip_studio.adapters.events.base import ClipUpdatedEvent, EventName, PublishStateEvent
from clip_studio.config import settings
from clip_studio.domain.enums import (
    ClipStatus,
    JobKind,
    ReviewState,
    SafetyVerdict,
    StageState,
    WorkflowStage,
)
from clip_studio.domain.models import Clip, ReadinessChecklist, SafetyReport, Video
from clip_studio.domain.session import StageFailure, WorkflowSession
from clip_studio.errors import (
    BackendError,
    ClipStudioError,
    JobCreationError,
    JobFailedError,
    TransitionBlockedError,
    ValidationError,
)
from clip_studio.logging import bind_workflow_context, get_logger
from clip_studio.services.autosave import DebouncedWriter
from clip_studio.services.edit_history import ClipEditHistory
from clip_studio.services.job_bridge import JobBridge, JobStateChange
from clip_studio.services.notifications import Notifier
from clip_studio.utils.timers import AsyncioScheduler, Scheduler

logger = get_logger(__name__)

PREVIOUS_STAGE = {
    WorkflowStage.SUGGESTIONS: WorkflowStage.UPLOAD,
    WorkflowStage.FINE_TUNE: WorkflowStage.SUGGESTIONS,
    WorkflowStage.SAFETY_CHECK: WorkflowStage.FINE_TUNE,
}

ALLOWED_CONTENT_TYPES = frozenset({"video/mp4", "video/quicktime", "video/webm"})
MAX_UPLOAD_BYTES = 2 * 1024 * 1024 * 1024

REVIEW_NOTICE_TTL = 5.0


def validate_upload(filename: str, content_type: str, size_bytes: int) -> None:
    """Reject files the backend would not accept, before any upload starts."""
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(f"{filename} is not a supported format. Use MP4, MOV, or WEBM.")
    if size_bytes > MAX_UPLOAD_BYTES:
        raise ValidationError(f"{filename} is too large. Maximum file size is 2GB.")
    if size_bytes <= 0:
        raise ValidationError(f"{filename} is empty.")


class Workflow:
    """Sequences the clip cutter stages and enforces their guards.

    Stages: ``upload -> suggestions -> fine_tune -> safety_check -> done``.
    ``back`` returns to the previous stage without discarding fetched data;
    advancing again re-runs the entry action only when nothing usable is
    tracked (suggestions) or always (safety check, since the trim may have
    changed).
    """

    def __init__(
        self,
        backend: BackendClient,
        bridge: JobBridge,
        *,
        scheduler: Scheduler | None = None,
        notifier: Notifier | None = None,
        regenerate_quota: int | None = None,
        max_duration_ms: int | None = None,
    ) -> None:
        self.backend = backend
        self.bridge = bridge
        self.scheduler = scheduler or AsyncioScheduler()
        self.notifier = notifier or Notifier(self.scheduler)
        self.regenerate_quota = (
            regenerate_quota if regenerate_quota is not None else settings.regenerate_quota
        )
        self.max_duration_ms = (
            max_duration_ms if max_duration_ms is not None else settings.manual_trim_max_ms
        )

        self.stage = WorkflowStage.UPLOAD
        self.videos: dict[str, Video] = {}
        self.session = WorkflowSession()
        self._histories: dict[str, ClipEditHistory] = {}
        self._unsubscribers: list[Callable[[], None]] = []
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Subscribe to job state changes. Safe to call more than once."""
        if self._unsubscribers:
            return
        self._unsubscribers = [
            await self.bridge.subscribe(JobKind.CUT, self._on_cut_change),
            await self.bridge.subscribe(JobKind.SAFETY, self._on_safety_change),
            self.bridge.channel.on(EventName.PUBLISH_STATE, self._on_publish_state),
            self.bridge.channel.on(EventName.CLIP_UPDATED, self._on_clip_updated),
        ]

    async def close(self) -> None:
        """Persist outstanding edits and stop observing the backend."""
        for history in self._histories.values():
            if history.writer is not None:
                await history.writer.drain()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self.bridge.close()

    # Derived state

    @property
    def edit_history(self) -> ClipEditHistory | None:
        """Edit history of the selected clip, once fine-tune has been entered."""
        clip = self.session.selected_clip
        return self._histories.get(clip.id) if clip else None

    @property
    def readiness(self) -> ReadinessChecklist:
        report = self.session.safety_report
        return ReadinessChecklist(
            video=report is not None and report.verdict != SafetyVerdict.BLOCKED,
            caption=bool(self.session.publish.caption.strip()),
            schedule=self.session.publish.schedule_at is not None,
        )

    @property
    def can_publish(self) -> bool:
        report = self.session.safety_report
        return (
            report is not None
            and report.verdict == SafetyVerdict.SAFE
            and self.readiness.complete
        )

    @property
    def can_request_review(self) -> bool:
        report = self.session.safety_report
        return (
            report is not None
            and report.verdict == SafetyVerdict.NEEDS_REVIEW
            and self.session.review_state == ReviewState.NOT_REQUESTED
        )

    @property
    def offers_manual_trim(self) -> bool:
        """True once suggestions can no longer be regenerated."""
        return self.session.regenerates_left <= 0

    def failure(self, stage: WorkflowStage | None = None) -> StageFailure | None:
        return self.session.failures.get(stage or self.stage)

    # Upload stage

    def add_video(self, video: Video) -> None:
        """Register or update a video produced by the upload transport."""
        self.videos[video.id] = video
        logger.info("video_registered", video_id=video.id, status=str(video.status))

    async def refresh_video(self, video_id: str) -> Video | None:
        """Re-read a video's upload status from the backend."""
        try:
            video = await self.backend.get_video(video_id)
        except BackendError as e:
            self._record_failure(WorkflowStage.UPLOAD, e)
            return None
        self.add_video(video)
        return video

    async def choose_video(self, video_id: str) -> None:
        """Start a fresh editing pass on ``video_id``, back at the upload stage."""
        async with self._lock:
            await self._choose_video(video_id)

    async def _choose_video(self, video_id: str) -> None:
        video = self.videos.get(video_id)
        if video is None or not video.is_ready:
            self._block(f"Video {video_id} has not finished processing")

        for history in self._histories.values():
            if history.writer is not None:
                await history.writer.drain()
        self._histories = {}
        self.session = WorkflowSession(video_id=video_id, regenerates_left=self.regenerate_quota)
        if self.stage != WorkflowStage.UPLOAD:
            self._move_to(WorkflowStage.UPLOAD)
        bind_workflow_context(video_id=video_id)
        logger.info("video_chosen")

    # Navigation

    async def advance(self) -> WorkflowStage:
        """Move to the next stage if its guard allows it."""
        async with self._lock:
            if self.stage == WorkflowStage.UPLOAD:
                await self._leave_upload()
            elif self.stage == WorkflowStage.SUGGESTIONS:
                await self._leave_suggestions()
            elif self.stage == WorkflowStage.FINE_TUNE:
                await self._leave_fine_tune()
            elif self.stage == WorkflowStage.SAFETY_CHECK:
                await self._publish()
            else:
                self._block("This clip has already been published")
            return self.stage

    async def back(self) -> WorkflowStage:
        """Return to the previous stage, keeping everything already fetched."""
        async with self._lock:
            previous = PREVIOUS_STAGE.get(self.stage)
            if previous is None:
                self._block(f"Cannot go back from {self.stage}")
            if self.stage == WorkflowStage.FINE_TUNE:
                await self._drain_selected()
            self._move_to(previous)
            return self.stage

    async def retry(self) -> bool:
        """Re-run the current stage's entry action after a failure."""
        async with self._lock:
            self.session.failures.pop(self.stage, None)
            if self.stage == WorkflowStage.SUGGESTIONS:
                return await self._start_cut_job()
            if self.stage == WorkflowStage.SAFETY_CHECK:
                return await self._start_safety_job()
            if self.stage == WorkflowStage.UPLOAD and self.session.video_id:
                return await self.refresh_video(self.session.video_id) is not None
            if self.stage == WorkflowStage.FINE_TUNE:
                return await self._drain_selected()
            return True

    def _move_to(self, stage: WorkflowStage) -> None:
        logger.info("workflow_stage_changed", from_stage=str(self.stage), to_stage=str(stage))
        self.stage = stage

    # Upload -> Suggestions

    async def _leave_upload(self) -> None:
        ready = [v for v in self.videos.values() if v.is_ready]
        if not ready:
            self._block("Upload a video and wait for processing to finish")

        current = self.videos.get(self.session.video_id or "")
        if current is None or not current.is_ready:
            await self._choose_video(ready[0].id)

        self._move_to(WorkflowStage.SUGGESTIONS)
        job = self.session.current_job
        if job is None or self.session.processing_state == StageState.FAILED:
            await self._start_cut_job()

    async def _start_cut_job(self) -> bool:
        video_id = self.session.video_id
        if video_id is None:
            self._block("Choose a video first")
        try:
            await self.bridge.start_job(JobKind.CUT, video_id)
        except JobCreationError as e:
            self.session.processing_state = StageState.FAILED
            self.session.error = str(e)
            self._record_failure(WorkflowStage.SUGGESTIONS, e)
            return False

        tracked = self.bridge.tracked(JobKind.CUT)
        if tracked is not None:
            self.session.jobs[JobKind.CUT] = tracked.job
        self.session.failures.pop(WorkflowStage.SUGGESTIONS, None)
        return True

    def _on_cut_change(self, change: JobStateChange) -> None:
        session = self.session
        if change.target_id != session.video_id:
            return
        session.processing_state = change.state
        session.progress = change.progress
        session.error = change.error

        if change.state == StageState.FAILED:
            self._record_failure(
                WorkflowStage.SUGGESTIONS,
                change.failure or JobFailedError(change.error or "Job failed"),
            )
        elif change.state == StageState.COMPLETED and isinstance(change.result, list):
            self._set_clips([self._clamp_suggestion(c) for c in change.result])
            session.failures.pop(WorkflowStage.SUGGESTIONS, None)
            if not session.clips:
                self.notifier.warning("No clip suggestions were found for this video")

    def _set_clips(self, clips: list[Clip]) -> None:
        session = self.session
        selected = session.selected_clip
        if selected is not None and any(c.id == selected.id for c in clips):
            session.clips = [selected if c.id == selected.id else c for c in clips]
            return
        session.clips = clips
        session.selected_clip = clips[0] if clips else None

    @staticmethod
    def _clamp_suggestion(clip: Clip) -> Clip:
        if clip.duration_ms <= settings.precut_max_ms:
            return clip
        logger.info("suggestion_clamped", clip_id=clip.id, duration_ms=clip.duration_ms)
        return replace(clip, end_ms=clip.start_ms + settings.precut_max_ms)

    async def regenerate(self) -> bool:
        """Spend one regeneration and start a fresh cut job.

        Returns False without doing anything once the quota is exhausted.
        """
        async with self._lock:
            if self.stage != WorkflowStage.SUGGESTIONS:
                self._block("Suggestions can only be regenerated from the suggestions step")
            if self.session.regenerates_left <= 0:
                self.notifier.info("No regenerations left. Trim a clip manually instead.")
                return False
            self.session.regenerates_left -= 1
            logger.info("suggestions_regenerating", remaining=self.session.regenerates_left)
            return await self._start_cut_job()

    def select_clip(self, clip_id: str) -> Clip:
        clip = self.session.clip_by_id(clip_id)
        if clip is None:
            raise ValidationError(f"Unknown clip {clip_id}")
        self.session.selected_clip = clip
        return clip

    # Suggestions -> Fine-tune

    async def _leave_suggestions(self) -> None:
        clip = self.session.selected_clip
        if clip is None:
            self._block("Select a clip to continue")
        if clip.id not in self._histories:
            self._histories[clip.id] = self._new_history(clip)
        bind_workflow_context(video_id=clip.video_id, clip_id=clip.id)
        self._move_to(WorkflowStage.FINE_TUNE)

    def _new_history(self, clip: Clip) -> ClipEditHistory:
        clip_id = clip.id

        async def write(values: dict[str, Any]) -> Clip:
            return await self.backend.update_clip(clip_id, **values)

        writer = DebouncedWriter(
            write,
            self.scheduler,
            on_saved=lambda _: self.notifier.success(f"Saved · {datetime.now():%H:%M:%S}"),
            on_error=lambda e: self._record_failure(WorkflowStage.FINE_TUNE, e),
        )
        return ClipEditHistory(clip, max_duration_ms=self.max_duration_ms, writer=writer)

    async def _drain_selected(self) -> bool:
        """Write the selected clip's pending edits. False if they could not be saved."""
        history = self.edit_history
        if history is None or history.writer is None:
            return True
        return await history.writer.drain()

    # Fine-tune -> Safety check

    async def _leave_fine_tune(self) -> None:
        clip = self.session.selected_clip
        if clip is None:
            self._block("Select a clip to continue")
        duration = clip.duration_ms
        if duration <= 0:
            self._block("Clip duration must be greater than 0")
        if duration > self.max_duration_ms:
            self._block(f"Clip duration cannot exceed {self.max_duration_ms // 1000} seconds")

        if not await self._drain_selected():
            # The save failure is already recorded on the fine-tune stage
            raise TransitionBlockedError(
                "Your latest trim could not be saved. Retry before continuing."
            )
        self._move_to(WorkflowStage.SAFETY_CHECK)
        await self._start_safety_job()

    async def _start_safety_job(self) -> bool:
        clip = self.session.selected_clip
        if clip is None:
            self._block("Select a clip to continue")
        session = self.session
        session.safety_report = None
        session.review_state = ReviewState.NOT_REQUESTED
        try:
            await self.bridge.start_job(JobKind.SAFETY, clip.id)
        except JobCreationError as e:
            session.safety_state = StageState.FAILED
            self._record_failure(WorkflowStage.SAFETY_CHECK, e)
            return False

        tracked = self.bridge.tracked(JobKind.SAFETY)
        if tracked is not None:
            session.jobs[JobKind.SAFETY] = tracked.job
        session.failures.pop(WorkflowStage.SAFETY_CHECK, None)
        return True

    def _on_safety_change(self, change: JobStateChange) -> None:
        session = self.session
        clip = session.selected_clip
        if clip is None or change.target_id != clip.id:
            return
        session.safety_state = change.state

        if change.state == StageState.FAILED:
            self._record_failure(
                WorkflowStage.SAFETY_CHECK,
                change.failure or JobFailedError(change.error or "Job failed"),
            )
        elif change.state == StageState.COMPLETED and isinstance(change.result, SafetyReport):
            report = change.result
            session.safety_report = report
            clip.safety_status = report.verdict
            session.failures.pop(WorkflowStage.SAFETY_CHECK, None)
            self._announce_verdict(report)

    def _announce_verdict(self, report: SafetyReport) -> None:
        if report.verdict == SafetyVerdict.SAFE:
            self.notifier.success(f"Safety check passed ({report.confidence:.0%} confidence)")
        elif report.verdict == SafetyVerdict.NEEDS_REVIEW:
            self.notifier.warning(
                f"Low confidence ({report.confidence:.2f}), manual review recommended"
            )
        else:
            category = report.policy_category or "policy violation"
            self.notifier.error(f"Policy violation: {category}. This clip cannot be published.")

    # Safety check -> Done

    def set_caption(self, caption: str) -> None:
        self.session.publish.caption = caption

    def set_schedule(self, schedule_at: datetime | None) -> None:
        self.session.publish.schedule_at = schedule_at

    def set_platform(self, platform: str, enabled: bool) -> None:
        self.session.publish.platforms[platform] = enabled

    async def publish(self) -> bool:
        async with self._lock:
            return await self._publish()

    async def _publish(self) -> bool:
        session = self.session
        clip = session.selected_clip
        report = session.safety_report
        if self.stage != WorkflowStage.SAFETY_CHECK or clip is None:
            self._block("Publishing is only available from the safety check step")
        if report is None:
            self._block("The safety check has not finished yet")
        if report.verdict == SafetyVerdict.BLOCKED:
            self._block("This content cannot be published in its current form")
        if report.verdict == SafetyVerdict.NEEDS_REVIEW:
            self._block("This clip needs a manual review before it can be published")

        readiness = self.readiness
        if not readiness.complete:
            missing = [
                label
                for label, ok in (
                    ("video scan", readiness.video),
                    ("caption", readiness.caption),
                    ("schedule", readiness.schedule),
                )
                if not ok
            ]
            self._block(f"Not ready to publish: {', '.join(missing)} required")

        platforms = session.publish.enabled_platforms
        if not platforms:
            self._block("Select at least one platform")

        try:
            scheduled = await self.backend.schedule_clip(
                clip.id,
                caption=session.publish.caption.strip(),
                schedule_at=session.publish.schedule_at,
                platforms=platforms,
            )
        except BackendError as e:
            self._record_failure(WorkflowStage.SAFETY_CHECK, e)
            return False

        clip.status = scheduled.status
        clip.schedule_at = scheduled.schedule_at
        session.failures.pop(WorkflowStage.SAFETY_CHECK, None)
        self._move_to(WorkflowStage.DONE)
        self.notifier.success("Queued! We'll notify when live.")
        return True

    async def request_review(
        self, evidence_url: str | None = None, note: str | None = None
    ) -> bool:
        """Ask for a human review of a low-confidence verdict.

        The verdict itself is left untouched; the session only records that a
        review is pending.
        """
        async with self._lock:
            clip = self.session.selected_clip
            if (
                self.stage != WorkflowStage.SAFETY_CHECK
                or clip is None
                or not self.can_request_review
            ):
                self._block("A review can only be requested for clips that need review")
            try:
                await self.backend.request_review(clip.id, evidence_url=evidence_url, note=note)
            except BackendError as e:
                self._record_failure(WorkflowStage.SAFETY_CHECK, e)
                return False
            self.session.review_state = ReviewState.PENDING
            self.notifier.success(
                "Review request submitted. Expected response within 12 hours.",
                ttl=REVIEW_NOTICE_TTL,
            )
            return True

    async def _on_publish_state(self, event: PublishStateEvent) -> None:
        clip = self.session.clip_by_id(event.clip_id)
        if clip is None:
            return
        try:
            clip.status = ClipStatus(event.state.upper())
        except ValueError:
            logger.debug("publish_state_unmapped", clip_id=event.clip_id, state=event.state)
            return
        logger.info(
            "clip_publish_state", clip_id=clip.id, platform=event.platform, state=event.state
        )

    async def _on_clip_updated(self, event: ClipUpdatedEvent) -> None:
        """Refresh a session clip the backend reports as changed.

        A clip with a local edit history keeps its trim window and quality,
        since those are owned by the history and its autosave.
        """
        session = self.session
        clip = session.clip_by_id(event.clip_id)
        if clip is None or session.video_id is None:
            return
        try:
            clips = await self.backend.get_clips(session.video_id, status=None)
        except BackendError as e:
            logger.warning("clip_refresh_failed", clip_id=clip.id, error=str(e))
            return
        fresh = next((c for c in clips if c.id == clip.id), None)
        if fresh is None:
            return

        clip.status = fresh.status
        clip.safety_status = fresh.safety_status
        clip.schedule_at = fresh.schedule_at
        clip.score = fresh.score
        clip.file_url = fresh.file_url
        clip.thumb_url = fresh.thumb_url
        if clip.id not in self._histories:
            clip.start_ms = fresh.start_ms
            clip.end_ms = fresh.end_ms
            clip.quality = fresh.quality
        logger.info("clip_refreshed", clip_id=clip.id, fields_changed=event.fields_changed)

    # Errors

    def _record_failure(self, stage: WorkflowStage, error: ClipStudioError) -> None:
        message = str(error)
        self.session.failures[stage] = StageFailure(stage=stage, message=message, error=error)
        logger.warning(
            "workflow_stage_failed",
            stage=str(stage),
            error=message,
            failure=type(error).__name__,
        )
        self.notifier.error(message)

    def _block(self, message: str) -> NoReturn:
        self.notifier.error(message)
        raise TransitionBlockedError(message)
