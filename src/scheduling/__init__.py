"""Recompute scheduling: persisted work queue and async worker."""

from src.scheduling.scheduler import QueueScheduler, Scheduler
from src.scheduling.worker import BatchReport, RecomputeWorker

__all__ = ["BatchReport", "QueueScheduler", "RecomputeWorker", "Scheduler"]
