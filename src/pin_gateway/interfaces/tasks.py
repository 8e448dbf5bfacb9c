"""TaskQueue protocol - detached background work."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

TaskFactory = Callable[[], Awaitable[Any]]


class TaskQueue(Protocol):
    """Runs units of work detached from the request that scheduled them.

    Delivery is best effort: work may be lost if the process stops first.
    Failures are logged by the queue and never reach the submitter.
    """

    def submit(self, name: str, factory: TaskFactory) -> bool:
        """Hand off a unit of work. Returns False if it was refused."""
        ...
