"""Utility modules for the gatekeeper."""

from . import task_tracker

__all__ = ["task_tracker"]
