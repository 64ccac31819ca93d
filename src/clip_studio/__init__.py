"""Clip Studio - client-side coordinator for the clip cutter workflow."""

__version__ = "0.1.0"
