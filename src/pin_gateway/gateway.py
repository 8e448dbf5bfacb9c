"""Gateway wiring - builds every component from one GatewayConfig."""

from __future__ import annotations

import logging

from pin_gateway.backup.job import BackupJob
from pin_gateway.backup.s3 import S3ColdStorage
from pin_gateway.cluster.client import IpfsClusterClient
from pin_gateway.ipfs.exporter import KuboDagExporter
from pin_gateway.models.config import GatewayConfig
from pin_gateway.models.records import BackupReport
from pin_gateway.pins.reconcile import PinReconciler
from pin_gateway.pins.service import PinService
from pin_gateway.pins.upload import UploadOrchestrator
from pin_gateway.storage.sqlite import SQLiteStore
from pin_gateway.tasks.queue import BackgroundTaskQueue

log = logging.getLogger(__name__)


class PinningGateway:
    """Owns the store, cluster client and background workers.

    Request handlers use `uploads` and `pins`; a scheduler calls
    `run_backup()`. Use as an async context manager, or call `start()` and
    `stop()` around its lifetime.
    """

    def __init__(self, cfg: GatewayConfig) -> None:
        self._cfg = cfg
        self._started = False

        # Core components
        self.store = SQLiteStore(cfg.db_path)
        self.cluster = IpfsClusterClient(
            cfg.cluster.url, cfg.cluster.basic_auth, cfg.cluster.timeout,
        )
        self.tasks = BackgroundTaskQueue(cfg.tasks.workers, cfg.tasks.max_queued)
        self.reconciler = PinReconciler(
            self.cluster, self.store,
            poll_interval=cfg.reconcile.poll_interval,
            max_wait=cfg.reconcile.max_wait,
        )
        self.uploads = UploadOrchestrator(
            self.cluster, self.store, self.tasks, self.reconciler, cfg.upload,
        )
        self.pins = PinService(self.cluster, self.store, self.tasks, self.reconciler)

        # Backups (optional - needs a bucket)
        self.backup: BackupJob | None = None
        if cfg.backup.bucket:
            self.backup = BackupJob(
                store=self.store,
                exporter=KuboDagExporter(cfg.cluster.ipfs_api_url, cfg.cluster.timeout),
                cold_storage=S3ColdStorage(cfg.backup.bucket, cfg.backup.region),
                concurrency=cfg.backup.concurrency,
                limit=cfg.backup.query_limit,
                max_dag_size=cfg.backup.max_dag_size,
                block_timeout=cfg.backup.block_timeout,
                size_timeout=cfg.backup.size_timeout,
            )

    async def start(self) -> None:
        if self._started:
            return
        log.info("Starting pinning gateway")
        log.info("  Cluster: %s", self._cfg.cluster.url)
        log.info("  IPFS: %s", self._cfg.cluster.ipfs_api_url)
        log.info("  DB: %s", self._cfg.db_path)
        log.info("  Backups: %s", self._cfg.backup.bucket or "(disabled)")

        await self.store.initialize()
        self.tasks.start()
        self._started = True

    async def stop(self) -> None:
        """Finish queued background work, then release connections."""
        if not self._started:
            return
        log.info("Stop requested")
        await self.tasks.stop(drain=True)
        await self.cluster.close()
        await self.store.close()
        self._started = False
        log.info("Gateway shut down cleanly")

    async def run_backup(self, limit: int | None = None) -> BackupReport:
        if self.backup is None:
            raise RuntimeError("Backups are disabled: no backup bucket configured")
        return await self.backup.run(limit)

    async def __aenter__(self) -> PinningGateway:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
