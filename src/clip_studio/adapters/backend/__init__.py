"""Backend adapters."""

from clip_studio.adapters.backend.base import BackendClient
from clip_studio.adapters.backend.rest import HttpBackendClient
from clip_studio.adapters.backend.stub import StubBackendClient

__all__ = ["BackendClient", "HttpBackendClient", "StubBackendClient"]
