"""Tracks long-running backend jobs through push events with a pull fallback.

One job per kind is tracked at a time. Starting a new job of the same kind
supersedes the old one: its late events are ignored and its results are
discarded, but nothing is cancelled on the backend.
"""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from clip_studio.adapters.backend.base import BackendClient
from clip_studio.adapters.events.base import (
    EventChannel,
    EventName,
    JobDoneEvent,
    SafetyResultEvent,
)
from clip_studio.config import settings
from clip_studio.domain.enums import ClipStatus, JobKind, JobState, StageState
from clip_studio.domain.models import Clip, Job, SafetyReport
from clip_studio.errors import (
    BackendError,
    ClipStudioError,
    FetchError,
    JobCreationError,
    JobFailedError,
)
from clip_studio.logging import get_logger

logger = get_logger(__name__)

JOB_PROGRESS = {
    JobState.WAITING: 10,
    JobState.RUNNING: 50,
    JobState.SUCCEEDED: 100,
}

JobResult = list[Clip] | SafetyReport


@dataclass(frozen=True)
class JobStateChange:
    """Snapshot of a tracked job's stage, delivered to subscribers."""

    kind: JobKind
    state: StageState
    job_id: str | None = None
    target_id: str | None = None
    progress: int = 0
    error: str | None = None
    failure: ClipStudioError | None = None
    result: JobResult | None = None


@dataclass
class TrackedJob:
    """The job currently authoritative for its kind."""

    job: Job
    stage: StageState = StageState.ANALYZING
    progress: int = JOB_PROGRESS[JobState.WAITING]
    error: str | None = None
    failure: ClipStudioError | None = None
    result: JobResult | None = None
    settled: asyncio.Event = field(default_factory=asyncio.Event)

    def snapshot(self) -> JobStateChange:
        return JobStateChange(
            kind=self.job.kind,
            state=self.stage,
            job_id=self.job.id,
            target_id=self.job.target_id,
            progress=self.progress,
            error=self.error,
            failure=self.failure,
            result=self.result,
        )


class JobBridge:
    """Turns backend job lifecycles into ``idle -> analyzing -> completed|failed``.

    Push (``handle_job_done``) and pull (``refetch_status``) feed the same
    transition logic, so either path yields the same outcome for the same
    terminal state. A succeeded job is only ``completed`` once its artifact
    (clip list or safety report) has been fetched; a failed fetch marks the
    stage failed with a ``FetchError`` while the job itself stays succeeded.
    """

    def __init__(
        self,
        backend: BackendClient,
        channel: EventChannel,
        *,
        max_clips: int | None = None,
        event_timeout: float | None = None,
        max_refetches: int | None = None,
    ) -> None:
        self.backend = backend
        self.channel = channel
        self.max_clips = max_clips if max_clips is not None else settings.cut_job_max_clips
        self.event_timeout = (
            event_timeout if event_timeout is not None else settings.job_event_timeout_seconds
        )
        self.max_refetches = (
            max_refetches if max_refetches is not None else settings.job_max_refetches
        )
        self._tracked: dict[JobKind, TrackedJob] = {}
        self._listeners: dict[JobKind, list[Callable[[JobStateChange], None]]] = defaultdict(list)
        self._channel_unsubscribers: list[Callable[[], None]] = []
        self._lock = asyncio.Lock()

    # Subscriptions

    async def subscribe(
        self, kind: JobKind, listener: Callable[[JobStateChange], None]
    ) -> Callable[[], None]:
        """Register for state changes of ``kind``. Returns an unsubscribe handle."""
        await self._ensure_connected()
        self._listeners[kind].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[kind]:
                self._listeners[kind].remove(listener)

        return unsubscribe

    async def stream(self, kind: JobKind) -> AsyncIterator[JobStateChange]:
        """Iterate over state changes of ``kind`` as they happen."""
        queue: asyncio.Queue[JobStateChange] = asyncio.Queue()
        unsubscribe = await self.subscribe(kind, queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    async def _ensure_connected(self) -> None:
        if self._channel_unsubscribers:
            return
        await self.channel.connect()
        self._channel_unsubscribers = [
            self.channel.on(EventName.JOB_DONE, self.handle_job_done),
            self.channel.on(EventName.SAFETY_RESULT, self.handle_safety_result),
        ]
        logger.debug("job_bridge_connected")

    async def close(self) -> None:
        """Stop observing jobs and tear the push channel down."""
        for unsubscribe in self._channel_unsubscribers:
            unsubscribe()
        self._channel_unsubscribers = []
        self._listeners.clear()
        self._tracked.clear()
        await self.channel.close()

    # Queries

    def tracked(self, kind: JobKind) -> TrackedJob | None:
        return self._tracked.get(kind)

    def state(self, kind: JobKind) -> JobStateChange:
        tracked = self._tracked.get(kind)
        if tracked is None:
            return JobStateChange(kind=kind, state=StageState.IDLE)
        return tracked.snapshot()

    # Commands

    async def start_job(
        self, kind: JobKind, target_id: str, params: dict[str, Any] | None = None
    ) -> str:
        """Create a backend job and make it the tracked job for ``kind``."""
        await self._ensure_connected()
        params = params or {}
        try:
            if kind == JobKind.CUT:
                job_id = await self.backend.create_cut_job(
                    target_id, max_clips=params.get("max_clips", self.max_clips)
                )
            else:
                job_id = await self.backend.create_safety_job(target_id)
        except BackendError as e:
            logger.warning("job_creation_failed", kind=str(kind), target_id=target_id, error=str(e))
            raise JobCreationError(e.message) from e

        previous = self._tracked.get(kind)
        if previous is not None and not previous.job.state.is_terminal:
            logger.info(
                "job_superseded",
                kind=str(kind),
                previous_job_id=previous.job.id,
                job_id=job_id,
            )

        tracked = TrackedJob(job=Job(id=job_id, kind=kind, target_id=target_id))
        self._tracked[kind] = tracked
        logger.info("job_started", kind=str(kind), job_id=job_id, target_id=target_id)
        self._emit(tracked)
        return job_id

    async def handle_job_done(self, event: JobDoneEvent) -> bool:
        """Apply a pushed job event. Returns False for stale or duplicate events."""
        async with self._lock:
            tracked = self._tracked.get(event.type)
            if tracked is None or tracked.job.id != event.job_id:
                logger.info(
                    "stale_job_event_ignored",
                    kind=str(event.type),
                    job_id=event.job_id,
                    tracked_job_id=tracked.job.id if tracked else None,
                )
                return False
            return await self._transition(tracked, event.state, event.error)

    async def refetch_status(self, job_id: str) -> JobStateChange | None:
        """Pull a job's state and apply it exactly like a pushed event.

        Returns None when ``job_id`` is not a tracked job.
        """
        async with self._lock:
            tracked = next((t for t in self._tracked.values() if t.job.id == job_id), None)
            if tracked is None:
                logger.info("stale_job_refetch_ignored", job_id=job_id)
                return None
            if tracked.job.state.is_terminal:
                return tracked.snapshot()

            try:
                job = await self.backend.get_job(job_id)
            except BackendError as e:
                logger.warning("job_refetch_failed", job_id=job_id, error=str(e))
                if self._is_current(tracked):
                    self._fail(tracked, FetchError(e.message))
                return tracked.snapshot()

            if not self._is_current(tracked):
                return None
            tracked.job.attempts = job.attempts
            tracked.job.max_attempts = job.max_attempts
            await self._transition(tracked, job.state, job.error_msg)
            return tracked.snapshot()

    async def handle_safety_result(self, event: SafetyResultEvent) -> bool:
        """Replace a completed safety report with a newer pushed verdict."""
        async with self._lock:
            tracked = self._tracked.get(JobKind.SAFETY)
            if (
                tracked is None
                or tracked.job.target_id != event.clip_id
                or tracked.stage != StageState.COMPLETED
                or not isinstance(tracked.result, SafetyReport)
            ):
                return False
            current = tracked.result
            if _aware(event.timestamp) <= _aware(current.created_at):
                return False
            tracked.result = SafetyReport(
                clip_id=current.clip_id,
                verdict=event.verdict,
                confidence=event.confidence,
                created_at=event.timestamp,
            )
            logger.info("safety_verdict_updated", clip_id=event.clip_id, verdict=str(event.verdict))
            self._emit(tracked)
            return True

    async def wait(self, kind: JobKind) -> JobStateChange:
        """Wait for the tracked job of ``kind`` to settle.

        When no event arrives within ``event_timeout`` the status is pulled,
        up to ``max_refetches`` times.
        """
        for _ in range(self.max_refetches + 1):
            tracked = self._tracked.get(kind)
            if tracked is None or tracked.settled.is_set():
                break
            try:
                await asyncio.wait_for(tracked.settled.wait(), self.event_timeout)
            except TimeoutError:
                logger.info("job_event_timeout", kind=str(kind), job_id=tracked.job.id)
                await self.refetch_status(tracked.job.id)
        return self.state(kind)

    # Transitions

    async def _transition(
        self, tracked: TrackedJob, state: JobState, error: str | None
    ) -> bool:
        if tracked.job.state.is_terminal:
            logger.debug("duplicate_job_event_ignored", job_id=tracked.job.id, state=str(state))
            return False
        tracked.job.state = state

        if state in (JobState.WAITING, JobState.RUNNING):
            progress = JOB_PROGRESS[state]
            if tracked.stage == StageState.ANALYZING and tracked.progress == progress:
                return False
            tracked.stage = StageState.ANALYZING
            tracked.progress = progress
            tracked.error = None
            tracked.failure = None
            tracked.settled.clear()
            self._emit(tracked)
            return True

        if state == JobState.FAILED:
            self._fail(tracked, JobFailedError(error or "Job failed"))
            return True

        try:
            result = await self._fetch_artifact(tracked.job)
        except FetchError as e:
            logger.warning("job_result_fetch_failed", job_id=tracked.job.id, error=str(e))
            if self._is_current(tracked):
                self._fail(tracked, e)
            return True

        if not self._is_current(tracked):
            logger.info("job_result_discarded", job_id=tracked.job.id)
            return False

        tracked.stage = StageState.COMPLETED
        tracked.progress = JOB_PROGRESS[JobState.SUCCEEDED]
        tracked.result = result
        tracked.error = None
        tracked.failure = None
        tracked.settled.set()
        logger.info("job_completed", kind=str(tracked.job.kind), job_id=tracked.job.id)
        self._emit(tracked)
        return True

    async def _fetch_artifact(self, job: Job) -> JobResult:
        try:
            if job.kind == JobKind.CUT:
                return await self.backend.get_clips(job.target_id, ClipStatus.DRAFT)
            report = await self.backend.get_safety_report(job.target_id)
        except BackendError as e:
            raise FetchError(e.message) from e
        if report is None:
            raise FetchError("Safety report is not available yet")
        return report

    def _fail(self, tracked: TrackedJob, failure: ClipStudioError) -> None:
        tracked.stage = StageState.FAILED
        tracked.error = str(failure)
        tracked.failure = failure
        tracked.settled.set()
        logger.warning(
            "job_stage_failed",
            kind=str(tracked.job.kind),
            job_id=tracked.job.id,
            error=tracked.error,
            failure=type(failure).__name__,
        )
        self._emit(tracked)

    def _is_current(self, tracked: TrackedJob) -> bool:
        return self._tracked.get(tracked.job.kind) is tracked

    def _emit(self, tracked: TrackedJob) -> None:
        change = tracked.snapshot()
        for listener in list(self._listeners.get(tracked.job.kind, [])):
            listener(change)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
