"""Protocol interfaces for all pin_gateway collaborators."""

from pin_gateway.interfaces.backup import ColdStorage, DagExporter
from pin_gateway.interfaces.cluster import ClusterClient
from pin_gateway.interfaces.store import PinStore
from pin_gateway.interfaces.tasks import TaskFactory, TaskQueue

__all__ = [
    "ClusterClient",
    "PinStore",
    "TaskFactory", "TaskQueue",
    "ColdStorage", "DagExporter",
]
