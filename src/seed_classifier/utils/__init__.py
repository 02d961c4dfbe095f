"""Shared helpers for the seed classification pipeline; currently the console logger."""

from .logger import get_logger

__all__ = ["get_logger"]
