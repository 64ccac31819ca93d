"""Tests for the job bridge: push events, pull fallback and stale-event handling."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from clip_studio.adapters.events.base import EventName
from clip_studio.domain.enums import JobKind, JobState, SafetyVerdict, StageState
from clip_studio.domain.models import SafetyReport
from clip_studio.errors import (
    AuthError,
    BackendError,
    FetchError,
    JobCreationError,
    JobFailedError,
)
from clip_studio.services.job_bridge import JobBridge, JobStateChange


@pytest.fixture
def video(backend):
    return backend.add_video(duration_ms=180_000)


class TestStartJob:
    @pytest.mark.asyncio
    async def test_start_job_tracks_and_connects(self, bridge, channel, video) -> None:
        changes: list[JobStateChange] = []
        assert not channel.connected

        await bridge.subscribe(JobKind.CUT, changes.append)
        job_id = await bridge.start_job(JobKind.CUT, video.id)

        assert channel.connected
        assert bridge.tracked(JobKind.CUT).job.id == job_id
        state = bridge.state(JobKind.CUT)
        assert state.state == StageState.ANALYZING
        assert state.progress == 10
        assert changes[-1].job_id == job_id

    @pytest.mark.asyncio
    async def test_untracked_kind_is_idle(self, bridge) -> None:
        assert bridge.state(JobKind.SAFETY).state == StageState.IDLE

    @pytest.mark.asyncio
    async def test_explicit_zero_max_clips_is_sent(self, backend, channel, video) -> None:
        backend.create_cut_job = AsyncMock(wraps=backend.create_cut_job)
        bridge = JobBridge(backend, channel, max_clips=0)

        await bridge.start_job(JobKind.CUT, video.id)

        backend.create_cut_job.assert_awaited_once_with(video.id, max_clips=0)

    @pytest.mark.asyncio
    async def test_creation_failure_raises_job_creation_error(self, bridge) -> None:
        with pytest.raises(JobCreationError, match="Video not found"):
            await bridge.start_job(JobKind.CUT, "missing")
        assert bridge.tracked(JobKind.CUT) is None

    @pytest.mark.asyncio
    async def test_auth_error_is_not_wrapped(self, bridge, backend, video) -> None:
        backend.create_cut_job = AsyncMock(side_effect=AuthError("Session expired"))

        with pytest.raises(AuthError):
            await bridge.start_job(JobKind.CUT, video.id)


class TestPushEvents:
    @pytest.mark.asyncio
    async def test_success_fetches_clips_then_completes(self, bridge, backend, video) -> None:
        changes: list[JobStateChange] = []
        await bridge.subscribe(JobKind.CUT, changes.append)
        job_id = await bridge.start_job(JobKind.CUT, video.id)

        await backend.complete_job(job_id)

        state = bridge.state(JobKind.CUT)
        assert state.state == StageState.COMPLETED
        assert state.progress == 100
        assert len(state.result) == 3
        assert [c.score for c in state.result] == sorted(
            (c.score for c in state.result), reverse=True
        )
        assert [c.state for c in changes] == [StageState.ANALYZING, StageState.COMPLETED]

    @pytest.mark.asyncio
    async def test_stale_event_is_ignored(self, bridge, backend, video) -> None:
        first = await bridge.start_job(JobKind.CUT, video.id)
        second = await bridge.start_job(JobKind.CUT, video.id)
        backend.get_clips = AsyncMock(wraps=backend.get_clips)

        await backend.complete_job(first)

        backend.get_clips.assert_not_awaited()
        assert bridge.state(JobKind.CUT).state == StageState.ANALYZING
        assert bridge.state(JobKind.CUT).job_id == second

        await backend.complete_job(second)

        backend.get_clips.assert_awaited_once()
        assert bridge.state(JobKind.CUT).state == StageState.COMPLETED

    @pytest.mark.asyncio
    async def test_duplicate_terminal_event_is_noop(self, bridge, backend, channel, video) -> None:
        job_id = await bridge.start_job(JobKind.CUT, video.id)
        job = await backend.complete_job(job_id)
        backend.get_clips = AsyncMock(wraps=backend.get_clips)
        before = bridge.state(JobKind.CUT)

        await channel.publish(EventName.JOB_DONE, backend.job_done_payload(job))
        await channel.publish(
            EventName.JOB_DONE,
            {**backend.job_done_payload(job), "state": "FAILED", "error": "late"},
        )

        backend.get_clips.assert_not_awaited()
        assert bridge.state(JobKind.CUT) == before

    @pytest.mark.asyncio
    async def test_job_failure(self, bridge, backend, video) -> None:
        job_id = await bridge.start_job(JobKind.CUT, video.id)

        await backend.complete_job(job_id, JobState.FAILED, error="Could not decode video")

        state = bridge.state(JobKind.CUT)
        assert state.state == StageState.FAILED
        assert state.error == "Could not decode video"
        assert isinstance(state.failure, JobFailedError)
        assert state.result is None

    @pytest.mark.asyncio
    async def test_result_fetch_failure_is_distinct_from_job_failure(
        self, bridge, backend, video
    ) -> None:
        job_id = await bridge.start_job(JobKind.CUT, video.id)
        backend.get_clips = AsyncMock(side_effect=BackendError("HTTP error! status: 500", 500))

        await backend.complete_job(job_id)

        state = bridge.state(JobKind.CUT)
        assert state.state == StageState.FAILED
        assert isinstance(state.failure, FetchError)
        assert state.error == "HTTP error! status: 500"
        assert bridge.tracked(JobKind.CUT).job.state == JobState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_safety_job_fetches_report(self, bridge, backend, video) -> None:
        await backend.complete_job(await bridge.start_job(JobKind.CUT, video.id))
        clip = bridge.state(JobKind.CUT).result[0]
        backend.safety_verdict = SafetyVerdict.NEEDS_REVIEW

        job_id = await bridge.start_job(JobKind.SAFETY, clip.id)
        await backend.complete_job(job_id)

        state = bridge.state(JobKind.SAFETY)
        assert state.state == StageState.COMPLETED
        assert isinstance(state.result, SafetyReport)
        assert state.result.verdict == SafetyVerdict.NEEDS_REVIEW
        assert bridge.state(JobKind.CUT).state == StageState.COMPLETED


class TestPullFallback:
    @pytest.mark.asyncio
    async def test_push_and_pull_reach_the_same_state(self, backend, channel, video) -> None:
        pushed = JobBridge(backend, channel)
        pulled_channel = type(channel)()
        pulled = JobBridge(backend, pulled_channel)

        push_id = await pushed.start_job(JobKind.CUT, video.id)
        pull_id = await pulled.start_job(JobKind.CUT, video.id)
        await pulled_channel.close()

        await backend.complete_job(push_id)
        await backend.complete_job(pull_id, announce=False)
        await pulled.refetch_status(pull_id)

        a, b = pushed.state(JobKind.CUT), pulled.state(JobKind.CUT)
        assert (a.state, a.progress, a.error) == (b.state, b.progress, b.error)
        assert [(c.start_ms, c.end_ms) for c in a.result] == [
            (c.start_ms, c.end_ms) for c in b.result
        ]

    @pytest.mark.asyncio
    async def test_refetch_running_job_reports_progress(self, bridge, backend, video) -> None:
        job_id = await bridge.start_job(JobKind.CUT, video.id)
        backend.jobs[job_id].state = JobState.RUNNING

        change = await bridge.refetch_status(job_id)

        assert change.state == StageState.ANALYZING
        assert change.progress == 50

    @pytest.mark.asyncio
    async def test_refetch_of_superseded_job_is_ignored(self, bridge, video) -> None:
        first = await bridge.start_job(JobKind.CUT, video.id)
        await bridge.start_job(JobKind.CUT, video.id)

        assert await bridge.refetch_status(first) is None

    @pytest.mark.asyncio
    async def test_refetch_failure_marks_stage_failed(self, bridge, backend, video) -> None:
        job_id = await bridge.start_job(JobKind.CUT, video.id)
        backend.get_job = AsyncMock(
            side_effect=BackendError("Network error. Please check your connection.")
        )

        change = await bridge.refetch_status(job_id)

        assert change.state == StageState.FAILED
        assert isinstance(change.failure, FetchError)

    @pytest.mark.asyncio
    async def test_wait_pulls_after_event_timeout(self, bridge, backend, video) -> None:
        job_id = await bridge.start_job(JobKind.CUT, video.id)
        await backend.complete_job(job_id, announce=False)

        change = await bridge.wait(JobKind.CUT)

        assert change.state == StageState.COMPLETED
        assert len(change.result) == 3

    @pytest.mark.asyncio
    async def test_wait_returns_once_event_arrives(self, bridge, backend, video) -> None:
        job_id = await bridge.start_job(JobKind.CUT, video.id)

        async def finish_later() -> None:
            await asyncio.sleep(0)
            await backend.complete_job(job_id)

        task = asyncio.create_task(finish_later())
        change = await bridge.wait(JobKind.CUT)
        await task

        assert change.state == StageState.COMPLETED


class TestSafetyResult:
    @pytest.mark.asyncio
    async def test_newer_verdict_replaces_report(self, bridge, backend, channel, video) -> None:
        await backend.complete_job(await bridge.start_job(JobKind.CUT, video.id))
        clip = bridge.state(JobKind.CUT).result[0]
        await backend.complete_job(await bridge.start_job(JobKind.SAFETY, clip.id))
        report = bridge.state(JobKind.SAFETY).result

        await channel.publish(
            EventName.SAFETY_RESULT,
            {
                "clipId": clip.id,
                "verdict": "BLOCKED",
                "confidence": 0.9,
                "timestamp": (report.created_at + timedelta(minutes=5)).isoformat(),
            },
        )

        assert bridge.state(JobKind.SAFETY).result.verdict == SafetyVerdict.BLOCKED

    @pytest.mark.asyncio
    async def test_older_verdict_is_ignored(self, bridge, backend, channel, video) -> None:
        await backend.complete_job(await bridge.start_job(JobKind.CUT, video.id))
        clip = bridge.state(JobKind.CUT).result[0]
        await backend.complete_job(await bridge.start_job(JobKind.SAFETY, clip.id))

        await channel.publish(
            EventName.SAFETY_RESULT,
            {
                "clipId": clip.id,
                "verdict": "BLOCKED",
                "confidence": 0.9,
                "timestamp": datetime(2020, 1, 1, tzinfo=UTC).isoformat(),
            },
        )

        assert bridge.state(JobKind.SAFETY).result.verdict == SafetyVerdict.SAFE


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stream_yields_changes(self, bridge, backend, video) -> None:
        stream = bridge.stream(JobKind.CUT)
        first = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        job_id = await bridge.start_job(JobKind.CUT, video.id)
        change = await first
        assert change.job_id == job_id
        assert change.state == StageState.ANALYZING

        await backend.complete_job(job_id)
        assert (await stream.__anext__()).state == StageState.COMPLETED
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_close_disconnects_and_forgets(self, bridge, channel, video) -> None:
        await bridge.start_job(JobKind.CUT, video.id)

        await bridge.close()

        assert not channel.connected
        assert bridge.tracked(JobKind.CUT) is None
