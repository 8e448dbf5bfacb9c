"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from pin_gateway.models.config import GatewayConfig


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "PIN_GATEWAY_",
) -> GatewayConfig:
    """Load gateway configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (PIN_GATEWAY_CLUSTER_URL, etc.)
        2. TOML config file
        3. Defaults from GatewayConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = GatewayConfig()

    # ── Gateway section ────────────────────────────────────
    gateway = raw.get("gateway", {})
    if v := gateway.get("log_level"):
        cfg.log_level = str(v)

    # ── Cluster section ────────────────────────────────────
    cluster = raw.get("cluster", {})
    if v := cluster.get("url"):
        cfg.cluster.url = str(v)
    if v := cluster.get("basic_auth_user"):
        cfg.cluster.basic_auth_user = str(v)
    if v := cluster.get("basic_auth_password"):
        cfg.cluster.basic_auth_password = str(v)
    if v := cluster.get("timeout"):
        cfg.cluster.timeout = int(v)
    if v := cluster.get("ipfs_api_url"):
        cfg.cluster.ipfs_api_url = str(v)

    # ── Upload section ─────────────────────────────────────
    upload = raw.get("upload", {})
    if v := upload.get("max_block_size"):
        cfg.upload.max_block_size = int(v)
    if v := upload.get("local_add_threshold"):
        cfg.upload.local_add_threshold = int(v)
    if (v := upload.get("create_upload_retries")) is not None:
        cfg.upload.create_upload_retries = int(v)
    if v := upload.get("create_upload_min_timeout"):
        cfg.upload.create_upload_min_timeout = float(v)
    if v := upload.get("create_upload_max_timeout"):
        cfg.upload.create_upload_max_timeout = float(v)

    # ── Reconcile section ──────────────────────────────────
    reconcile = raw.get("reconcile", {})
    if v := reconcile.get("poll_interval"):
        cfg.reconcile.poll_interval = float(v)
    if v := reconcile.get("max_wait"):
        cfg.reconcile.max_wait = float(v)

    # ── Tasks section ──────────────────────────────────────
    tasks = raw.get("tasks", {})
    if v := tasks.get("workers"):
        cfg.tasks.workers = int(v)
    if v := tasks.get("max_queued"):
        cfg.tasks.max_queued = int(v)

    # ── Backup section ─────────────────────────────────────
    backup = raw.get("backup", {})
    if v := backup.get("bucket"):
        cfg.backup.bucket = str(v)
    if v := backup.get("region"):
        cfg.backup.region = str(v)
    if v := backup.get("concurrency"):
        cfg.backup.concurrency = int(v)
    if v := backup.get("query_limit"):
        cfg.backup.query_limit = int(v)
    if v := backup.get("max_dag_size"):
        cfg.backup.max_dag_size = int(v)
    if v := backup.get("block_timeout"):
        cfg.backup.block_timeout = float(v)
    if v := backup.get("size_timeout"):
        cfg.backup.size_timeout = float(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Environment variable overrides (highest priority) ──
    if url := os.environ.get(f"{env_prefix}CLUSTER_URL"):
        cfg.cluster.url = url
    if user := os.environ.get(f"{env_prefix}CLUSTER_USER"):
        cfg.cluster.basic_auth_user = user
    if password := os.environ.get(f"{env_prefix}CLUSTER_PASSWORD"):
        cfg.cluster.basic_auth_password = password
    if ipfs := os.environ.get(f"{env_prefix}IPFS_API_URL"):
        cfg.cluster.ipfs_api_url = ipfs
    if db_path := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db_path
    if bucket := os.environ.get(f"{env_prefix}BACKUP_BUCKET"):
        cfg.backup.bucket = bucket
    if region := os.environ.get(f"{env_prefix}BACKUP_REGION"):
        cfg.backup.region = region
    if limit := os.environ.get(f"{env_prefix}QUERY_LIMIT"):
        cfg.backup.query_limit = int(limit)
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg
