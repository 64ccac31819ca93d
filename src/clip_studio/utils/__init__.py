"""Utility helpers."""

from clip_studio.utils.timers import AsyncioScheduler, ManualScheduler, Scheduler, TimerHandle

__all__ = ["AsyncioScheduler", "ManualScheduler", "Scheduler", "TimerHandle"]
