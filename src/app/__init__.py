"""Application bootstrap helpers for the Flashdeck project."""

from .runtime import run_bot
from .settings import AppSettings, StudyConfig

__all__ = ["run_bot", "AppSettings", "StudyConfig"]
