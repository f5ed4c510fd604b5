"""Terminal interface for PrepCoach."""

from .session_screen import SessionScreen

__all__ = ["SessionScreen"]
