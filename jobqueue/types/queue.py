"""
Queue-level type definitions.
"""

from pydantic import BaseModel, Field

from jobqueue.constants import JobState


class QueueCounters(BaseModel):
    """Cumulative counters kept by a queue since it was created."""

    processed: int = 0
    completed: int = 0
    failed: int = 0


class QueueStats(BaseModel):
    """
    Point-in-time statistics for one queue.

    ``processed``/``completed``/``failed`` are cumulative; ``states`` holds
    live counts of the jobs currently in the queue, keyed by state.
    """

    name: str
    concurrency: int
    paused: bool
    in_flight: int
    total: int
    processed: int
    completed: int
    failed: int
    states: dict[JobState, int] = Field(default_factory=dict)
