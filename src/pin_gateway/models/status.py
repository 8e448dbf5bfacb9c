"""Replica and caller-facing pin states."""

from __future__ import annotations

from enum import Enum


class ReplicaStatus(str, Enum):
    """Tracker state of one replica on one cluster peer."""

    UNDEFINED = "Undefined"
    CLUSTER_ERROR = "ClusterError"
    PIN_ERROR = "PinError"
    UNPIN_ERROR = "UnpinError"
    PINNED = "Pinned"
    PINNING = "Pinning"
    UNPINNING = "Unpinning"
    UNPINNED = "Unpinned"
    REMOTE = "Remote"
    PIN_QUEUED = "PinQueued"
    UNPIN_QUEUED = "UnpinQueued"
    SHARDED = "Sharded"


class ApiPinStatus(str, Enum):
    """Pin status as reported by the pinning-service API."""

    QUEUED = "queued"
    PINNING = "pinning"
    PINNED = "pinned"
    FAILED = "failed"


class ReconcileOutcome(str, Enum):
    """Terminal state of one reconciliation run."""

    CONVERGED = "converged"
    TIMED_OUT = "timed_out"
