"""Stub backend for testing and demos."""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from uuid import uuid4

from clip_studio.adapters.backend.base import BackendClient
from clip_studio.adapters.events.base import EventName
from clip_studio.adapters.events.memory import InMemoryEventChannel
from clip_studio.domain.enums import (
    ClipStatus,
    JobKind,
    JobState,
    Quality,
    SafetyVerdict,
    VideoStatus,
)
from clip_studio.domain.models import Clip, Job, SafetyReport, Video
from clip_studio.errors import BackendError
from clip_studio.logging import get_logger

logger = get_logger(__name__)

# (offset, length) of each suggested window, in ms
_SUGGESTION_WINDOWS = [(5_000, 40_000), (62_000, 30_000), (2_000, 45_000), (95_000, 25_000)]
_SUGGESTION_SCORES = [0.92, 0.87, 0.78, 0.72]


class StubBackendClient(BackendClient):
    """In-memory backend that simulates job progression without external calls.

    With ``auto_complete`` on, each job moves WAITING -> RUNNING -> terminal
    after ``latency`` seconds per step and announces itself on ``channel``.
    With it off, tests drive jobs explicitly through ``complete_job``.
    """

    def __init__(
        self,
        channel: InMemoryEventChannel | None = None,
        *,
        latency: float = 0.05,
        auto_complete: bool = True,
        safety_verdict: SafetyVerdict = SafetyVerdict.SAFE,
        clips_per_job: int = 3,
    ) -> None:
        self.channel = channel
        self.latency = latency
        self.auto_complete = auto_complete
        self.safety_verdict = safety_verdict
        self.clips_per_job = clips_per_job
        self.job_failures: dict[JobKind, str] = {}

        self.videos: dict[str, Video] = {}
        self.clips: dict[str, Clip] = {}
        self.jobs: dict[str, Job] = {}
        self.reports: dict[str, SafetyReport] = {}
        self.review_requests: list[dict[str, str | None]] = []
        self.clip_updates: list[dict[str, int | bool | str]] = []
        self._tasks: set[asyncio.Task[None]] = set()

    def add_video(
        self,
        duration_ms: int = 180_000,
        status: VideoStatus = VideoStatus.READY,
        video_id: str | None = None,
    ) -> Video:
        """Register an uploaded video."""
        video = Video(
            id=video_id or f"vid_{uuid4().hex[:12]}",
            status=status,
            duration_ms=duration_ms,
            resolution="1080x1920",
            has_audio=True,
            created_at=datetime.now(UTC),
        )
        self.videos[video.id] = video
        return video

    async def create_cut_job(self, video_id: str, max_clips: int | None = None) -> str:
        if video_id not in self.videos:
            raise BackendError("Video not found", status_code=404)
        return self._create_job(JobKind.CUT, video_id)

    async def create_safety_job(self, clip_id: str) -> str:
        if clip_id not in self.clips:
            raise BackendError("Clip not found", status_code=404)
        return self._create_job(JobKind.SAFETY, clip_id)

    def _create_job(self, kind: JobKind, target_id: str) -> str:
        job = Job(
            id=f"job_{uuid4().hex[:12]}",
            kind=kind,
            target_id=target_id,
            created_at=datetime.now(UTC),
        )
        self.jobs[job.id] = job
        logger.info("stub_job_created", kind=str(kind), job_id=job.id, target_id=target_id)

        if self.auto_complete:
            task = asyncio.create_task(self._run_job(job.id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return job.id

    async def _run_job(self, job_id: str) -> None:
        await asyncio.sleep(self.latency)
        self.jobs[job_id].state = JobState.RUNNING
        self.jobs[job_id].attempts += 1
        await asyncio.sleep(self.latency)

        failure = self.job_failures.get(self.jobs[job_id].kind)
        if failure:
            await self.complete_job(job_id, JobState.FAILED, error=failure)
        else:
            await self.complete_job(job_id)

    async def complete_job(
        self,
        job_id: str,
        state: JobState = JobState.SUCCEEDED,
        error: str | None = None,
        announce: bool = True,
    ) -> Job:
        """Finish a job, produce its artifacts and announce it on the channel."""
        job = self.jobs[job_id]
        job.state = state
        job.error_msg = error
        job.finished_at = datetime.now(UTC)

        if state == JobState.SUCCEEDED:
            if job.kind == JobKind.CUT:
                self._produce_clips(job.target_id)
            else:
                self._produce_report(job.target_id)

        logger.info("stub_job_finished", job_id=job_id, state=str(state))

        if announce and self.channel is not None:
            await self.channel.publish(EventName.JOB_DONE, self.job_done_payload(job))
            report = self.reports.get(job.target_id)
            if job.kind == JobKind.SAFETY and report is not None and state == JobState.SUCCEEDED:
                await self.channel.publish(
                    EventName.SAFETY_RESULT,
                    {
                        "clipId": report.clip_id,
                        "verdict": str(report.verdict),
                        "confidence": report.confidence,
                        "timestamp": report.created_at.isoformat(),
                    },
                )
        return job

    @staticmethod
    def job_done_payload(job: Job) -> dict[str, str | None]:
        """Wire shape of a ``job.done`` event for the given job."""
        return {
            "jobId": job.id,
            "type": str(job.kind),
            "state": str(job.state),
            "error": job.error_msg,
            "videoId": job.target_id if job.kind == JobKind.CUT else None,
            "clipId": job.target_id if job.kind == JobKind.SAFETY else None,
        }

    def _produce_clips(self, video_id: str) -> None:
        # New suggestions replace the previous drafts for the video
        for clip_id in [c.id for c in self.clips.values() if c.video_id == video_id]:
            if self.clips[clip_id].status == ClipStatus.DRAFT:
                del self.clips[clip_id]

        video_ms = self.videos[video_id].duration_ms or 180_000
        for (offset, length), score in list(zip(_SUGGESTION_WINDOWS, _SUGGESTION_SCORES))[
            : self.clips_per_job
        ]:
            start = min(offset, max(video_ms - 1_000, 0))
            clip = Clip(
                id=f"clip_{uuid4().hex[:12]}",
                video_id=video_id,
                start_ms=start,
                end_ms=min(start + length, video_ms),
                score=score,
                file_url=f"https://cdn.example.com/clips/{video_id}/{start}.mp4",
                thumb_url=f"https://cdn.example.com/thumbs/{video_id}/{start}.jpg",
                created_at=datetime.now(UTC),
            )
            self.clips[clip.id] = clip

    def _produce_report(self, clip_id: str) -> None:
        confidence = {
            SafetyVerdict.SAFE: 0.93,
            SafetyVerdict.NEEDS_REVIEW: 0.55,
            SafetyVerdict.BLOCKED: 0.85,
        }[self.safety_verdict]
        self.reports[clip_id] = SafetyReport(
            id=f"rep_{uuid4().hex[:12]}",
            clip_id=clip_id,
            verdict=self.safety_verdict,
            confidence=confidence,
            policy_category=(
                "adult_content" if self.safety_verdict == SafetyVerdict.BLOCKED else None
            ),
            created_at=datetime.now(UTC),
        )
        self.clips[clip_id].safety_status = self.safety_verdict

    async def get_job(self, job_id: str) -> Job:
        if job_id not in self.jobs:
            raise BackendError("Job not found", status_code=404)
        return replace(self.jobs[job_id])

    async def get_video(self, video_id: str) -> Video:
        if video_id not in self.videos:
            raise BackendError("Video not found", status_code=404)
        return self.videos[video_id]

    async def get_clips(
        self, video_id: str, status: ClipStatus | None = ClipStatus.DRAFT
    ) -> list[Clip]:
        clips = [
            c
            for c in self.clips.values()
            if c.video_id == video_id and (status is None or c.status == status)
        ]
        # Copies, so local trim edits never alias backend state
        return [
            replace(c) for c in sorted(clips, key=lambda c: c.score, reverse=True)
        ]

    async def update_clip(
        self,
        clip_id: str,
        *,
        start_ms: int | None = None,
        end_ms: int | None = None,
        quality_original: bool | None = None,
    ) -> Clip:
        if clip_id not in self.clips:
            raise BackendError("Clip not found", status_code=404)
        clip = self.clips[clip_id]
        update: dict[str, int | bool | str] = {"clip_id": clip_id}
        if start_ms is not None:
            clip.start_ms = update["start_ms"] = start_ms
        if end_ms is not None:
            clip.end_ms = update["end_ms"] = end_ms
        if quality_original is not None:
            update["quality_original"] = quality_original
            clip.quality = Quality.ORIGINAL if quality_original else Quality.COMPRESSED
        self.clip_updates.append(update)
        return replace(clip)

    async def get_safety_report(self, clip_id: str) -> SafetyReport | None:
        return self.reports.get(clip_id)

    async def request_review(
        self,
        clip_id: str,
        evidence_url: str | None = None,
        note: str | None = None,
    ) -> None:
        if clip_id not in self.clips:
            raise BackendError("Clip not found", status_code=404)
        self.review_requests.append(
            {"clip_id": clip_id, "evidence_url": evidence_url, "note": note}
        )

    async def schedule_clip(
        self,
        clip_id: str,
        caption: str,
        schedule_at: datetime,
        platforms: list[str],
    ) -> Clip:
        if clip_id not in self.clips:
            raise BackendError("Clip not found", status_code=404)
        clip = self.clips[clip_id]
        clip.status = ClipStatus.SCHEDULED
        clip.schedule_at = schedule_at
        logger.info("stub_clip_scheduled", clip_id=clip_id, platforms=platforms)
        return replace(clip)

    async def wait_idle(self) -> None:
        """Wait for all simulated jobs to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
