"""Periodic execution of push rounds."""

from .scheduler import Scheduler, SchedulerError, SchedulerStats

__all__ = ['Scheduler', 'SchedulerError', 'SchedulerStats']
