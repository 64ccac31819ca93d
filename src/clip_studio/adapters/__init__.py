"""Adapters for external collaborators."""

from clip_studio.adapters.auth import CredentialsProvider, StaticTokenCredentials
from clip_studio.adapters.backend.base import BackendClient
from clip_studio.adapters.events.base import EventChannel

__all__ = [
    "BackendClient",
    "CredentialsProvider",
    "EventChannel",
    "StaticTokenCredentials",
]
