"""REST backend client over httpx."""

from datetime import datetime
from typing import Any

import httpx
import pydantic

from clip_studio.adapters.auth import CredentialsProvider
from clip_studio.adapters.backend.base import BackendClient
from clip_studio.adapters.backend.schemas import (
    ClipPayload,
    JobCreatedPayload,
    JobPayload,
    SafetyReportPayload,
    VideoPayload,
)
from clip_studio.config import settings
from clip_studio.domain.enums import ClipStatus
from clip_studio.domain.models import Clip, Job, SafetyReport, Video
from clip_studio.errors import AuthError, BackendError
from clip_studio.logging import get_logger

logger = get_logger(__name__)

API_PREFIX = "/v1"


class HttpBackendClient(BackendClient):
    """Backend client speaking the ``{data, error}`` envelope over REST.

    A 401 triggers one credential refresh and a single retry. If the retry is
    still unauthorized the credentials are told and ``AuthError`` is raised.
    """

    def __init__(
        self,
        credentials: CredentialsProvider,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credentials = credentials
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.api_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the envelope's ``data`` (None for 204)."""
        response = await self._send(method, path, json=json, params=params)

        if response.status_code == 401 and await self.credentials.refresh():
            logger.info("auth_refreshed_retrying", path=path)
            response = await self._send(method, path, json=json, params=params)

        if response.status_code == 401:
            self.credentials.notify_auth_failure()
            raise AuthError("Session expired. Please sign in again.")

        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "backend_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise BackendError(message, status_code=response.status_code)

        if response.status_code == 204:
            return None

        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON from backend: {e}", response.status_code) from e

        if isinstance(body, dict) and body.get("error"):
            raise BackendError(str(body["error"]), response.status_code)
        return body.get("data") if isinstance(body, dict) else body

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json", **self.credentials.auth_headers()}
        try:
            return await self._client.request(
                method,
                f"{API_PREFIX}{path}",
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.warning("backend_unreachable", method=method, path=path, error=str(e))
            raise BackendError("Network error. Please check your connection.") from e

    @staticmethod
    def _parse(model: type[pydantic.BaseModel], data: Any) -> Any:
        if data is None:
            raise BackendError(f"Empty {model.__name__} response from backend")
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise BackendError(f"Malformed {model.__name__} response: {e}") from e

    async def create_cut_job(self, video_id: str, max_clips: int | None = None) -> str:
        body = {"maxClips": max_clips} if max_clips is not None else {}
        data = await self._request("POST", f"/videos/{video_id}/cut-jobs", json=body)
        return self._parse(JobCreatedPayload, data).job_id

    async def create_safety_job(self, clip_id: str) -> str:
        data = await self._request("POST", f"/clips/{clip_id}/safety-jobs")
        return self._parse(JobCreatedPayload, data).job_id

    async def get_job(self, job_id: str) -> Job:
        data = await self._request("GET", f"/jobs/{job_id}")
        return self._parse(JobPayload, data).to_domain()

    async def get_video(self, video_id: str) -> Video:
        data = await self._request("GET", f"/videos/{video_id}")
        return self._parse(VideoPayload, data).to_domain()

    async def get_clips(
        self, video_id: str, status: ClipStatus | None = ClipStatus.DRAFT
    ) -> list[Clip]:
        params = {"status": str(status)} if status else None
        data = await self._request("GET", f"/videos/{video_id}/clips", params=params)
        return [self._parse(ClipPayload, item).to_domain() for item in data or []]

    async def update_clip(
        self,
        clip_id: str,
        *,
        start_ms: int | None = None,
        end_ms: int | None = None,
        quality_original: bool | None = None,
    ) -> Clip:
        updates: dict[str, Any] = {}
        if start_ms is not None:
            updates["start_ms"] = start_ms
        if end_ms is not None:
            updates["end_ms"] = end_ms
        if quality_original is not None:
            updates["quality_original"] = quality_original
        data = await self._request("PATCH", f"/clips/{clip_id}", json=updates)
        return self._parse(ClipPayload, data).to_domain()

    async def get_safety_report(self, clip_id: str) -> SafetyReport | None:
        try:
            data = await self._request("GET", f"/clips/{clip_id}/safety")
        except BackendError as e:
            if e.status_code == 404:
                return None
            raise
        if data is None:
            return None
        return self._parse(SafetyReportPayload, data).to_domain()

    async def request_review(
        self,
        clip_id: str,
        evidence_url: str | None = None,
        note: str | None = None,
    ) -> None:
        await self._request(
            "POST",
            f"/clips/{clip_id}/request-review",
            json={"evidence_url": evidence_url, "note": note},
        )

    async def schedule_clip(
        self,
        clip_id: str,
        caption: str,
        schedule_at: datetime,
        platforms: list[str],
    ) -> Clip:
        data = await self._request(
            "POST",
            f"/clips/{clip_id}/schedule",
            json={
                "caption": caption,
                "schedule_at": schedule_at.isoformat(),
                "platforms": platforms,
            },
        )
        return self._parse(ClipPayload, data).to_domain()


def _error_message(response: httpx.Response) -> str:
    default = f"HTTP error! status: {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    return str(body.get("message") or body.get("error") or default)
