"""Background work detached from the request that scheduled it."""

from pin_gateway.tasks.queue import BackgroundTaskQueue

__all__ = ["BackgroundTaskQueue"]
