"""
Queue engine: jobs, queues and the queue manager.
"""

from jobqueue.queue.events import EventEmitter, EventSubscription
from jobqueue.queue.job_queue import JobQueue
from jobqueue.queue.manager import QueueManager, create_default_manager

__all__ = [
    "EventEmitter",
    "EventSubscription",
    "JobQueue",
    "QueueManager",
    "create_default_manager",
]
