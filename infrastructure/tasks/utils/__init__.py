"""Utility helpers for Celery tasks."""
from .base_task import BaseTask

__all__ = ["BaseTask"]
