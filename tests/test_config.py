"""Configuration loading from TOML and environment."""

from __future__ import annotations

from pin_gateway.config import load_config
from pin_gateway.models.config import LOCAL_ADD_THRESHOLD, MAX_BLOCK_SIZE, MAX_DAG_SIZE


def test_defaults(monkeypatch):
    for key in ("CLUSTER_URL", "DB_PATH", "BACKUP_BUCKET", "LOG_LEVEL"):
        monkeypatch.delenv(f"PIN_GATEWAY_{key}", raising=False)

    cfg = load_config(None)

    assert cfg.cluster.url == "http://127.0.0.1:9094"
    assert cfg.cluster.basic_auth is None
    assert cfg.upload.max_block_size == MAX_BLOCK_SIZE == 1 << 20
    assert cfg.upload.local_add_threshold == LOCAL_ADD_THRESHOLD == 2621440
    assert cfg.upload.create_upload_retries == 4
    assert cfg.reconcile.poll_interval == 5.0
    assert cfg.reconcile.max_wait == 30.0
    assert cfg.backup.concurrency == 10
    assert cfg.backup.query_limit == 10000
    assert cfg.backup.max_dag_size == MAX_DAG_SIZE == 32 * 1024 ** 3
    assert not cfg.db_path.startswith("~")


def test_toml_sections(tmp_path):
    path = tmp_path / "gateway.toml"
    path.write_text(
        """
[gateway]
log_level = "debug"

[cluster]
url = "http://cluster.internal:9094"
basic_auth_user = "admin"
basic_auth_password = "secret"
ipfs_api_url = "http://ipfs.internal:5001"

[upload]
max_block_size = 2048
create_upload_retries = 0

[reconcile]
poll_interval = 1.5
max_wait = 10

[tasks]
workers = 8

[backup]
bucket = "car-backups"
region = "eu-central-1"
concurrency = 3

[storage]
db_path = "/tmp/gw/state.db"
"""
    )

    cfg = load_config(path)

    assert cfg.log_level == "debug"
    assert cfg.cluster.url == "http://cluster.internal:9094"
    assert cfg.cluster.basic_auth == ("admin", "secret")
    assert cfg.cluster.ipfs_api_url == "http://ipfs.internal:5001"
    assert cfg.upload.max_block_size == 2048
    assert cfg.upload.create_upload_retries == 0
    assert cfg.reconcile.poll_interval == 1.5
    assert cfg.reconcile.max_wait == 10.0
    assert cfg.tasks.workers == 8
    assert cfg.backup.bucket == "car-backups"
    assert cfg.backup.region == "eu-central-1"
    assert cfg.backup.concurrency == 3
    assert cfg.db_path == "/tmp/gw/state.db"


def test_env_overrides_toml(tmp_path, monkeypatch):
    path = tmp_path / "gateway.toml"
    path.write_text('[cluster]\nurl = "http://from-file:9094"\n')
    monkeypatch.setenv("PIN_GATEWAY_CLUSTER_URL", "http://from-env:9094")
    monkeypatch.setenv("PIN_GATEWAY_BACKUP_BUCKET", "env-bucket")
    monkeypatch.setenv("PIN_GATEWAY_QUERY_LIMIT", "25")

    cfg = load_config(path)

    assert cfg.cluster.url == "http://from-env:9094"
    assert cfg.backup.bucket == "env-bucket"
    assert cfg.backup.query_limit == 25


def test_missing_file_uses_defaults(tmp_path):
    cfg = load_config(tmp_path / "nope.toml")
    assert cfg.tasks.workers == 4
