"""Replica status mapping and caller-facing status aggregation."""

from __future__ import annotations

from typing import Iterable, Mapping

from pin_gateway.models.records import PeerStatus, Pin, PinLocation
from pin_gateway.models.status import ApiPinStatus, ReplicaStatus

# Replica states considered OK once observed: the cluster has accepted the pin.
PIN_OK_STATUSES = frozenset({
    ReplicaStatus.PINNED,
    ReplicaStatus.PINNING,
    ReplicaStatus.PIN_QUEUED,
})

_PINNED = {ReplicaStatus.PINNED.value, ReplicaStatus.SHARDED.value}
_PINNING = {ReplicaStatus.PINNING.value}
_QUEUED = {ReplicaStatus.PIN_QUEUED.value, ReplicaStatus.REMOTE.value}

# IPFS Cluster tracker status wire names.
_CLUSTER_STATUS = {
    "undefined": ReplicaStatus.UNDEFINED,
    "cluster_error": ReplicaStatus.CLUSTER_ERROR,
    "pin_error": ReplicaStatus.PIN_ERROR,
    "unpin_error": ReplicaStatus.UNPIN_ERROR,
    "error": ReplicaStatus.PIN_ERROR,
    "pinned": ReplicaStatus.PINNED,
    "pinning": ReplicaStatus.PINNING,
    "unpinning": ReplicaStatus.UNPINNING,
    "unpinned": ReplicaStatus.UNPINNED,
    "remote": ReplicaStatus.REMOTE,
    "pin_queued": ReplicaStatus.PIN_QUEUED,
    "unpin_queued": ReplicaStatus.UNPIN_QUEUED,
    "sharded": ReplicaStatus.SHARDED,
}


def to_replica_status(cluster_status: str) -> ReplicaStatus:
    """Map a cluster tracker status (e.g. "pin_queued") to a ReplicaStatus."""
    return _CLUSTER_STATUS.get(cluster_status.lower(), ReplicaStatus.UNDEFINED)


def to_pins(peer_map: Mapping[str, PeerStatus]) -> list[Pin]:
    """Convert a cluster status peer map into Pins, one per peer."""
    return [
        Pin(
            status=to_replica_status(peer.status),
            location=PinLocation(peer_id=peer_id, peer_name=peer.peer_name),
        )
        for peer_id, peer in peer_map.items()
    ]


def is_ok(pin: Pin) -> bool:
    return pin.status in PIN_OK_STATUSES


def aggregate_status(statuses: Iterable[str]) -> ApiPinStatus:
    """Collapse per-replica statuses into one pinning-service status.

    First matching rule wins: any pinned (or sharded) replica makes the
    content pinned; then pinning; then queued/remote. No replicas at all is
    still queued. Anything else is failed.
    """
    values = {s.value if isinstance(s, ReplicaStatus) else str(s) for s in statuses}
    if values & _PINNED:
        return ApiPinStatus.PINNED
    if values & _PINNING:
        return ApiPinStatus.PINNING
    if values & _QUEUED:
        return ApiPinStatus.QUEUED
    if not values:
        return ApiPinStatus.QUEUED
    return ApiPinStatus.FAILED


def aggregate_pins(pins: Iterable[Pin]) -> ApiPinStatus:
    return aggregate_status(p.status for p in pins)
