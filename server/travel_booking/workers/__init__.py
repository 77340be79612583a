"""Background workers for the travel booking service."""

from .booking_completion_worker import BookingCompletionWorker
from .manager import WorkerManager, worker_manager

__all__ = ["BookingCompletionWorker", "WorkerManager", "worker_manager"]
