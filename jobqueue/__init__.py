"""
In-Process Job Queue

An asyncio background job queue with priority ordering, delayed scheduling,
per-attempt timeouts, exponential-backoff retries and typed lifecycle events.
"""

__version__ = "1.0.0"
