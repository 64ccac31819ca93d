"""Base interface for the clip studio backend."""

from abc import ABC, abstractmethod
from datetime import datetime

from clip_studio.domain.enums import ClipStatus
from clip_studio.domain.models import Clip, Job, SafetyReport, Video


class BackendClient(ABC):
    """Abstract backend that runs cut and safety jobs and stores clips.

    Implementations:
    - HttpBackendClient: REST backend over httpx
    - StubBackendClient: In-memory backend for tests and demos

    Every method raises ``BackendError`` on HTTP or transport failure and
    ``AuthError`` when credentials cannot be recovered.
    """

    @abstractmethod
    async def create_cut_job(self, video_id: str, max_clips: int | None = None) -> str:
        """Start scene detection for a video. Returns the job id."""
        ...

    @abstractmethod
    async def create_safety_job(self, clip_id: str) -> str:
        """Start a safety scan for a clip. Returns the job id."""
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Job: ...

    @abstractmethod
    async def get_video(self, video_id: str) -> Video: ...

    @abstractmethod
    async def get_clips(
        self, video_id: str, status: ClipStatus | None = ClipStatus.DRAFT
    ) -> list[Clip]: ...

    @abstractmethod
    async def update_clip(
        self,
        clip_id: str,
        *,
        start_ms: int | None = None,
        end_ms: int | None = None,
        quality_original: bool | None = None,
    ) -> Clip:
        """Persist trim changes. Only the given fields are sent."""
        ...

    @abstractmethod
    async def get_safety_report(self, clip_id: str) -> SafetyReport | None:
        """Latest safety report, or None when the clip has none yet."""
        ...

    @abstractmethod
    async def request_review(
        self,
        clip_id: str,
        evidence_url: str | None = None,
        note: str | None = None,
    ) -> None: ...

    @abstractmethod
    async def schedule_clip(
        self,
        clip_id: str,
        caption: str,
        schedule_at: datetime,
        platforms: list[str],
    ) -> Clip:
        """Queue a clip for publishing."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        return None
