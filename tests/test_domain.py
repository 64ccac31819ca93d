"""Tests for domain models and event payloads."""

from datetime import datetime

import pytest

from clip_studio.adapters.events.base import JobDoneEvent, SafetyResultEvent
from clip_studio.domain.enums import JobKind, JobState, Quality, SafetyVerdict
from clip_studio.domain.models import (
    Clip,
    PublishSettings,
    ReadinessChecklist,
    TrimEdit,
    TrimState,
)
from clip_studio.domain.session import WorkflowSession


class TestEnums:
    @pytest.mark.parametrize(
        ("state", "terminal"),
        [
            (JobState.WAITING, False),
            (JobState.RUNNING, False),
            (JobState.SUCCEEDED, True),
            (JobState.FAILED, True),
        ],
    )
    def test_terminal_states(self, state: JobState, terminal: bool) -> None:
        assert state.is_terminal is terminal

    def test_wire_values(self) -> None:
        assert JobKind.CUT == "CUT"
        assert SafetyVerdict.NEEDS_REVIEW == "NEEDS_REVIEW"
        assert Quality.ORIGINAL == "original"


class TestTrim:
    def test_edit_only_changes_given_fields(self) -> None:
        state = TrimState(5_000, 45_000, Quality.ORIGINAL)

        assert TrimEdit(end_ms=30_000).apply_to(state) == TrimState(5_000, 30_000)
        assert TrimEdit(quality=Quality.COMPRESSED).apply_to(state).quality == Quality.COMPRESSED

    def test_clip_duration(self) -> None:
        clip = Clip(id="c", video_id="v", start_ms=62_000, end_ms=92_000)

        assert clip.duration_ms == 30_000


class TestPublish:
    @pytest.mark.parametrize(
        ("checklist", "complete"),
        [
            (ReadinessChecklist(), False),
            (ReadinessChecklist(video=True, caption=True), False),
            (ReadinessChecklist(video=True, caption=True, schedule=True), True),
        ],
    )
    def test_checklist(self, checklist: ReadinessChecklist, complete: bool) -> None:
        assert checklist.complete is complete

    def test_enabled_platforms(self) -> None:
        settings = PublishSettings()
        settings.platforms["tiktok"] = False

        assert settings.enabled_platforms == ["youtube", "instagram"]


class TestSession:
    def test_clip_lookup(self) -> None:
        clip = Clip(id="c1", video_id="v", start_ms=0, end_ms=1_000)
        session = WorkflowSession(video_id="v", clips=[clip])

        assert session.clip_by_id("c1") is clip
        assert session.clip_by_id("c2") is None
        assert session.current_job is None


class TestEvents:
    def test_job_done_aliases(self) -> None:
        event = JobDoneEvent.model_validate(
            {"jobId": "job-1", "type": "CUT", "state": "SUCCEEDED", "videoId": "vid-1"}
        )

        assert event.job_id == "job-1"
        assert event.type == JobKind.CUT
        assert event.state == JobState.SUCCEEDED
        assert event.video_id == "vid-1"
        assert event.error is None

    def test_safety_result(self) -> None:
        event = SafetyResultEvent.model_validate(
            {
                "clipId": "clip-1",
                "verdict": "BLOCKED",
                "confidence": 0.85,
                "timestamp": "2030-01-01T00:00:00Z",
            }
        )

        assert event.verdict == SafetyVerdict.BLOCKED
        assert isinstance(event.timestamp, datetime)
