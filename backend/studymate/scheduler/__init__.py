"""Scheduler module for background tasks."""

from studymate.scheduler.token_reaper import (
    purge_expired_tokens,
    shutdown_scheduler,
    start_scheduler,
)

__all__ = [
    "start_scheduler",
    "shutdown_scheduler",
    "purge_expired_tokens",
]
