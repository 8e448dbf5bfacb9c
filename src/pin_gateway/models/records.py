"""Record types exchanged between the gateway core and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field

from pin_gateway.models.status import ApiPinStatus, ReplicaStatus


@dataclass(frozen=True)
class DagStat:
    """Validated summary of a CAR."""

    size: int  # bytes, raw block sum or cumulative dag-pb size
    blocks: int


@dataclass(frozen=True)
class PinLocation:
    """One replica-holding node."""

    peer_id: str
    peer_name: str | None = None
    region: str | None = None


@dataclass
class Pin:
    """Observed placement state of one content item on one node."""

    status: ReplicaStatus
    location: PinLocation
    created: str = ""  # ISO 8601
    updated: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "location": {
                "peerId": self.location.peer_id,
                "peerName": self.location.peer_name,
                "region": self.location.region,
            },
            "created": self.created,
            "updated": self.updated,
        }


@dataclass(frozen=True)
class UserContext:
    """Authenticated caller of an upload."""

    user_id: int
    auth_key_id: int | None = None


# ── Cluster ────────────────────────────────────────────


@dataclass(frozen=True)
class AddResult:
    """Result of a cluster add. Only the root CID is meaningful for CARs."""

    cid: str
    size: int | None = None


@dataclass(frozen=True)
class PeerStatus:
    peer_name: str
    status: str  # cluster wire form, e.g. "pin_queued"
    error: str | None = None


@dataclass
class StatusResult:
    """Per-peer status of one CID as reported by the cluster."""

    cid: str
    peer_map: dict[str, PeerStatus] = field(default_factory=dict)


# ── Uploads ────────────────────────────────────────────


@dataclass
class UploadInput:
    """Everything needed to create an upload record in one write."""

    user_id: int
    content_cid: str  # normalized CIDv1
    source_cid: str  # as returned by the cluster
    name: str
    dag_size: int
    pins: list[Pin]
    upload_type: str = "Car"
    auth_key_id: int | None = None


@dataclass(frozen=True)
class UploadRecord:
    upload_id: int
    content_cid: str
    created: str = ""


@dataclass
class UploadResult:
    """Response of a successful CAR upload."""

    request_id: str
    cid: str
    name: str
    status: ApiPinStatus
    created: str
    dag_size: int
    pins: list[Pin] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "requestId": self.request_id,
            "cid": self.cid,
            "status": self.status.value,
            "created": self.created,
            "dagSize": self.dag_size,
            "pin": {"cid": self.cid, "name": self.name},
            "pins": [p.to_dict() for p in self.pins],
        }


@dataclass
class ContentStatus:
    """Pin and deal status of a piece of content."""

    cid: str
    dag_size: int | None
    created: str
    pins: list[Pin] = field(default_factory=list)
    deals: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "cid": self.cid,
            "dagSize": self.dag_size,
            "created": self.created,
            "pins": [p.to_dict() for p in self.pins],
            "deals": self.deals,
        }


# ── Pin requests ───────────────────────────────────────


@dataclass
class PinRequestRecord:
    """A pinning-service pin request as persisted."""

    request_id: str
    requested_cid: str  # as submitted by the caller
    content_cid: str  # normalized
    auth_key: str
    name: str | None = None
    origins: list[str] = field(default_factory=list)
    meta: dict[str, str] = field(default_factory=dict)
    created: str = ""
    pins: list[Pin] = field(default_factory=list)


@dataclass
class PinRequestFilter:
    """Filters accepted by the pin request listing."""

    cids: list[str] | None = None
    name: str | None = None
    match: str = "exact"
    statuses: list[str] | None = None
    before: str | None = None
    after: str | None = None
    limit: int = 10


@dataclass
class PinStatusResponse:
    """Pinning-service `PinStatus` object."""

    request_id: str
    status: ApiPinStatus
    created: str
    cid: str
    name: str | None = None
    origins: list[str] = field(default_factory=list)
    meta: dict[str, str] = field(default_factory=dict)
    delegates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        pin: dict = {"cid": self.cid}
        if self.name:
            pin["name"] = self.name
        if self.origins:
            pin["origins"] = self.origins
        if self.meta:
            pin["meta"] = self.meta
        return {
            "requestId": self.request_id,
            "status": self.status.value,
            "created": self.created,
            "delegates": self.delegates,
            "pin": pin,
        }


# ── Backups ────────────────────────────────────────────


@dataclass(frozen=True)
class BackupCandidate:
    """Pinned content with no recorded backup URL."""

    upload_id: int
    user_id: int
    source_cid: str
    content_cid: str


@dataclass(frozen=True)
class BackupRecord:
    backup_id: int
    upload_id: int
    url: str
    created: str = ""


@dataclass
class BackupReport:
    """Counters for one backup job invocation."""

    processed: int = 0
    successful: int = 0
    failed: int = 0
    duration_ms: int = 0
