"""Workflow services."""

from clip_studio.services.autosave import DebouncedWriter
from clip_studio.services.edit_history import ClipEditHistory, HistoryResult
from clip_studio.services.job_bridge import JobBridge, JobStateChange
from clip_studio.services.notifications import Notification, Notifier
from clip_studio.services.workflow import Workflow, validate_upload

__all__ = [
    "ClipEditHistory",
    "DebouncedWriter",
    "HistoryResult",
    "JobBridge",
    "JobStateChange",
    "Notification",
    "Notifier",
    "Workflow",
    "validate_upload",
]
