"""Error taxonomy for the clip workflow.

Only ``AuthError`` is meant to leave the workflow; everything else is caught
at a stage boundary and recorded as a stage-local failure.
"""


class ClipStudioError(Exception):
    """Base class for all clip studio errors."""


class ValidationError(ClipStudioError):
    """Input rejected locally, before anything reaches the backend."""


class TransitionBlockedError(ValidationError):
    """A stage transition guard refused the move."""


class BackendError(ClipStudioError):
    """HTTP or transport failure talking to the backend."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class JobCreationError(ClipStudioError):
    """Starting a backend job failed."""


class FetchError(ClipStudioError):
    """Polling a job or fetching its artifact failed."""


class JobFailedError(ClipStudioError):
    """The backend reported that the job itself failed."""


class AuthError(ClipStudioError):
    """Credentials could not be recovered; the session must end."""
