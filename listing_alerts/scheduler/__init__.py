"""Scheduling module for the periodic reconciliation cycle."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
