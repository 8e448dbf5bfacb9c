"""Data models for the pinning gateway."""

from pin_gateway.models.config import (
    BackupConfig,
    ClusterConfig,
    GatewayConfig,
    ReconcileConfig,
    TaskConfig,
    UploadConfig,
)
from pin_gateway.models.records import (
    AddResult,
    BackupCandidate,
    BackupRecord,
    BackupReport,
    ContentStatus,
    DagStat,
    PeerStatus,
    Pin,
    PinLocation,
    PinRequestFilter,
    PinRequestRecord,
    PinStatusResponse,
    StatusResult,
    UploadInput,
    UploadRecord,
    UploadResult,
    UserContext,
)
from pin_gateway.models.status import ApiPinStatus, ReconcileOutcome, ReplicaStatus

__all__ = [
    "BackupConfig", "ClusterConfig", "GatewayConfig", "ReconcileConfig",
    "TaskConfig", "UploadConfig",
    "AddResult", "BackupCandidate", "BackupRecord", "BackupReport",
    "ContentStatus", "DagStat", "PeerStatus", "Pin", "PinLocation",
    "PinRequestFilter", "PinRequestRecord", "PinStatusResponse",
    "StatusResult", "UploadInput", "UploadRecord", "UploadResult", "UserContext",
    "ApiPinStatus", "ReconcileOutcome", "ReplicaStatus",
]
