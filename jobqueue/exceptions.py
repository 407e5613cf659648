"""
Exceptions raised at the edges of the queue API.

Handler failures never surface as exceptions; they become job state.
These cover caller mistakes such as unknown queue names or invalid options.
"""


class JobQueueError(Exception):
    """Base class for job queue errors."""


class QueueNotFoundError(JobQueueError, LookupError):
    """Raised when a queue name is not registered with the manager."""

    def __init__(self, name: str):
        super().__init__(f"Queue not found: {name}")
        self.name = name


class InvalidJobOptionsError(JobQueueError, ValueError):
    """Raised when job or queue options fail validation."""
