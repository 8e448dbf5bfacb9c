"""Configuration models for the gateway."""

from __future__ import annotations

from dataclasses import dataclass, field

MAX_BLOCK_SIZE = 1 << 20  # 1 MiB
LOCAL_ADD_THRESHOLD = int(1024 * 1024 * 2.5)  # 2.5 MiB
MAX_DAG_SIZE = 1024 * 1024 * 1024 * 32  # 32 GiB


@dataclass
class ClusterConfig:
    """IPFS Cluster REST API and backing IPFS node."""

    url: str = "http://127.0.0.1:9094"
    basic_auth_user: str = ""
    basic_auth_password: str = ""
    timeout: int = 60  # seconds
    ipfs_api_url: str = "http://127.0.0.1:5001"

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        if self.basic_auth_user:
            return (self.basic_auth_user, self.basic_auth_password)
        return None


@dataclass
class UploadConfig:
    """CAR upload validation and initial persistence."""

    max_block_size: int = MAX_BLOCK_SIZE
    local_add_threshold: int = LOCAL_ADD_THRESHOLD
    create_upload_retries: int = 4  # retries after the first failure
    create_upload_min_timeout: float = 0.1  # seconds before the first retry
    create_upload_max_timeout: float = 1.0


@dataclass
class ReconcileConfig:
    """Pin status polling after an upload."""

    poll_interval: float = 5.0  # seconds between status checks
    max_wait: float = 30.0  # max seconds to poll for an OK status


@dataclass
class TaskConfig:
    """Background worker pool."""

    workers: int = 4
    max_queued: int = 1000


@dataclass
class BackupConfig:
    """Cold storage backup job."""

    bucket: str = ""
    region: str = "us-east-1"
    concurrency: int = 10
    query_limit: int = 10000
    max_dag_size: int = MAX_DAG_SIZE
    block_timeout: float = 30.0  # timeout if no block arrives in this many seconds
    size_timeout: float = 10.0  # timeout for determining the DAG size


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""

    log_level: str = "info"
    db_path: str = "~/.pin_gateway/state.db"

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    tasks: TaskConfig = field(default_factory=TaskConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
