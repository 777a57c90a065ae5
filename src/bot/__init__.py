"""Telegram bot components for Flashdeck."""

from .agent import StudyAgent
from .telegram import build_application

__all__ = ["StudyAgent", "build_application"]
