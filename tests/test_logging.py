"""Tests for logging context helpers."""

import structlog

from clip_studio.logging import bind_workflow_context


def test_bind_replaces_previous_context() -> None:
    structlog.contextvars.clear_contextvars()

    bind_workflow_context(video_id="vid-1", clip_id="clip-1")
    bind_workflow_context(video_id="vid-2")

    assert structlog.contextvars.get_contextvars() == {"video_id": "vid-2"}
    structlog.contextvars.clear_contextvars()


def test_bind_keeps_unrelated_keys() -> None:
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id="r-1")

    bind_workflow_context()

    assert structlog.contextvars.get_contextvars() == {"request_id": "r-1"}
    structlog.contextvars.clear_contextvars()
