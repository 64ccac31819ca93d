"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment before importing app modules
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["API_BASE_URL"] = "http://backend.test"
os.environ["AUTOSAVE_DEBOUNCE_SECONDS"] = "2.0"
os.environ["REGENERATE_QUOTA"] = "2"


@pytest.fixture
def scheduler():
    """A virtual clock for debounce and notification timers."""
    from clip_studio.utils.timers import ManualScheduler

    return ManualScheduler()


@pytest.fixture
def notifier(scheduler):
    from clip_studio.services.notifications import Notifier

    return Notifier(scheduler)


@pytest.fixture
def channel():
    from clip_studio.adapters.events.memory import InMemoryEventChannel

    return InMemoryEventChannel()


@pytest.fixture
def backend(channel):
    """A stub backend whose jobs only finish when a test completes them."""
    from clip_studio.adapters.backend.stub import StubBackendClient

    return StubBackendClient(channel, auto_complete=False)


@pytest.fixture
def bridge(backend, channel):
    from clip_studio.services.job_bridge import JobBridge

    return JobBridge(backend, channel, event_timeout=0.05, max_refetches=3)


@pytest.fixture
def workflow(backend, bridge, scheduler, notifier):
    """A workflow wired to stub collaborators. Call ``await workflow.start()``."""
    from clip_studio.services.workflow import Workflow

    return Workflow(backend, bridge, scheduler=scheduler, notifier=notifier)


@pytest.fixture
def clip():
    from clip_studio.domain.models import Clip

    return Clip(id="clip-1", video_id="vid-1", start_ms=5_000, end_ms=45_000, score=0.9)
