"""Credential capability consumed by the backend adapters.

Token storage and proactive refresh live outside this package; adapters only
need to attach the current credentials and report an unrecoverable failure.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from clip_studio.logging import get_logger

logger = get_logger(__name__)


class CredentialsProvider(ABC):
    """Source of request credentials."""

    @abstractmethod
    def auth_headers(self) -> dict[str, str]:
        """Headers that authenticate the next request."""
        ...

    async def refresh(self) -> bool:
        """Try to obtain fresh credentials after a 401. Returns True on success."""
        return False

    @abstractmethod
    def notify_auth_failure(self) -> None:
        """Called once credentials are known to be unrecoverable."""
        ...


class StaticTokenCredentials(CredentialsProvider):
    """A fixed bearer token, with an optional callback on auth failure."""

    def __init__(
        self,
        token: str | None,
        on_failure: Callable[[], None] | None = None,
    ) -> None:
        self.token = token
        self._on_failure = on_failure
        self.failed = False

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def notify_auth_failure(self) -> None:
        self.failed = True
        logger.warning("auth_credentials_rejected")
        if self._on_failure is not None:
            self._on_failure()
