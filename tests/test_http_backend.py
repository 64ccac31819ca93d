"""Tests for the REST backend client."""

import json
from datetime import UTC, datetime

import httpx
import pytest

from clip_studio.adapters.auth import StaticTokenCredentials
from clip_studio.adapters.backend.rest import HttpBackendClient
from clip_studio.domain.enums import ClipStatus, JobKind, JobState, Quality, SafetyVerdict
from clip_studio.errors import AuthError, BackendError


def make_client(handler, credentials=None) -> HttpBackendClient:
    return HttpBackendClient(
        credentials or StaticTokenCredentials("token-123"),
        base_url="http://backend.test",
        transport=httpx.MockTransport(handler),
    )


class RefreshingCredentials(StaticTokenCredentials):
    """Swaps in a new token on the first refresh."""

    def __init__(self) -> None:
        super().__init__("expired")
        self.refreshes = 0

    async def refresh(self) -> bool:
        self.refreshes += 1
        self.token = "fresh"
        return True


class TestRequests:
    @pytest.mark.asyncio
    async def test_create_cut_job(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": {"jobId": "job-1"}, "error": None})

        client = make_client(handler)
        job_id = await client.create_cut_job("vid-1", max_clips=5)
        await client.close()

        assert job_id == "job-1"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/videos/vid-1/cut-jobs"
        assert request.headers["Authorization"] == "Bearer token-123"
        assert json.loads(request.content) == {"maxClips": 5}

    @pytest.mark.asyncio
    async def test_get_job(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": "job-2",
                        "job_type": "SAFETY",
                        "clip_id": "clip-9",
                        "state": "RUNNING",
                        "attempts": 1,
                        "max_attempts": 3,
                    }
                },
            )

        client = make_client(handler)
        job = await client.get_job("job-2")

        assert job.kind == JobKind.SAFETY
        assert job.target_id == "clip-9"
        assert job.state == JobState.RUNNING
        assert (job.attempts, job.max_attempts) == (1, 3)

    @pytest.mark.asyncio
    async def test_get_clips_filters_by_status(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "data": [
                        {
                            "id": "clip-1",
                            "video_id": "vid-1",
                            "start_ms": 5000,
                            "end_ms": 45000,
                            "score": 0.9,
                            "status": "DRAFT",
                            "quality_original": False,
                        }
                    ]
                },
            )

        client = make_client(handler)
        clips = await client.get_clips("vid-1")

        assert seen[0].url.params["status"] == "DRAFT"
        assert len(clips) == 1
        assert clips[0].duration_ms == 40_000
        assert clips[0].quality == Quality.COMPRESSED
        assert clips[0].status == ClipStatus.DRAFT

    @pytest.mark.asyncio
    async def test_update_clip_sends_only_given_fields(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "data": {"id": "clip-1", "video_id": "vid-1", "start_ms": 0, "end_ms": 30000}
                },
            )

        client = make_client(handler)
        clip = await client.update_clip("clip-1", end_ms=30_000)

        assert bodies == [{"end_ms": 30_000}]
        assert clip.end_ms == 30_000

    @pytest.mark.asyncio
    async def test_schedule_clip(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/clips/clip-1/schedule"
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": "clip-1",
                        "video_id": "vid-1",
                        "start_ms": 0,
                        "end_ms": 30000,
                        "status": "SCHEDULED",
                    }
                },
            )

        client = make_client(handler)
        when = datetime(2030, 1, 1, 12, tzinfo=UTC)
        clip = await client.schedule_clip("clip-1", "Caption", when, ["youtube"])

        assert clip.status == ClipStatus.SCHEDULED
        assert bodies[0]["schedule_at"] == when.isoformat()
        assert bodies[0]["platforms"] == ["youtube"]

    @pytest.mark.asyncio
    async def test_request_review_accepts_no_content(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        client = make_client(handler)
        assert await client.request_review("clip-1", note="Licensed footage") is None


class TestSafetyReport:
    @pytest.mark.asyncio
    async def test_report_is_parsed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "data": {
                        "clip_id": "clip-1",
                        "verdict": "NEEDS_REVIEW",
                        "confidence": 0.55,
                        "created_at": "2030-01-01T00:00:00Z",
                    }
                },
            )

        report = await make_client(handler).get_safety_report("clip-1")

        assert report.verdict == SafetyVerdict.NEEDS_REVIEW
        assert report.confidence == 0.55

    @pytest.mark.asyncio
    async def test_missing_report_is_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not found"})

        assert await make_client(handler).get_safety_report("clip-1") is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_error_message_from_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"message": "Clip duration cannot exceed 60 seconds"})

        with pytest.raises(BackendError) as exc_info:
            await make_client(handler).update_clip("clip-1", end_ms=90_000)

        assert exc_info.value.status_code == 422
        assert exc_info.value.message == "Clip duration cannot exceed 60 seconds"

    @pytest.mark.asyncio
    async def test_default_error_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="oops")

        with pytest.raises(BackendError, match="HTTP error! status: 500"):
            await make_client(handler).get_video("vid-1")

    @pytest.mark.asyncio
    async def test_envelope_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": None, "error": "Video is still uploading"})

        with pytest.raises(BackendError, match="still uploading"):
            await make_client(handler).create_cut_job("vid-1")

    @pytest.mark.asyncio
    async def test_malformed_payload(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"id": "vid-1", "status": "EXPLODED"}})

        with pytest.raises(BackendError, match="Malformed VideoPayload"):
            await make_client(handler).get_video("vid-1")

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendError, match="Network error"):
            await make_client(handler).get_job("job-1")


class TestAuth:
    @pytest.mark.asyncio
    async def test_unrecoverable_401_raises_auth_error(self) -> None:
        credentials = StaticTokenCredentials("expired")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Unauthorized"})

        with pytest.raises(AuthError):
            await make_client(handler, credentials).get_job("job-1")

        assert credentials.failed

    @pytest.mark.asyncio
    async def test_401_refreshes_and_retries_once(self) -> None:
        credentials = RefreshingCredentials()
        tokens: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            tokens.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer expired":
                return httpx.Response(401)
            return httpx.Response(200, json={"data": {"jobId": "job-1"}})

        job_id = await make_client(handler, credentials).create_safety_job("clip-1")

        assert job_id == "job-1"
        assert tokens == ["Bearer expired", "Bearer fresh"]
        assert credentials.refreshes == 1
        assert not credentials.failed
