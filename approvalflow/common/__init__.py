"""Shared utilities for the approval flow engine."""

from .logger import setup_logger

__all__ = ["setup_logger"]
