"""Upload orchestrator - validate a CAR, add it to the cluster, record it."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from pin_gateway.errors import NoReplicasError, WriteConflictError
from pin_gateway.interfaces.cluster import ClusterClient
from pin_gateway.interfaces.store import PinStore
from pin_gateway.interfaces.tasks import TaskQueue
from pin_gateway.ipld.car import car_stat
from pin_gateway.ipld.cid import normalize_cid
from pin_gateway.models.config import UploadConfig
from pin_gateway.models.records import (
    UploadInput,
    UploadRecord,
    UploadResult,
    UserContext,
)
from pin_gateway.pins.reconcile import PinReconciler
from pin_gateway.pins.status import aggregate_pins, is_ok, to_pins

log = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class UploadOrchestrator:
    """Handles CAR uploads end to end.

    1. Validate the CAR (fails before any write)
    2. Add it to the cluster, local-only when large
    3. Read back per-peer status; no peers is a cluster fault
    4. Create the upload record, retrying write conflicts with backoff
    5. Hand off storage accounting and pin reconciliation to background work
    """

    def __init__(
        self,
        cluster: ClusterClient,
        store: PinStore,
        tasks: TaskQueue,
        reconciler: PinReconciler,
        config: UploadConfig | None = None,
    ) -> None:
        self._cluster = cluster
        self._store = store
        self._tasks = tasks
        self._reconciler = reconciler
        self._config = config or UploadConfig()

    async def handle_car_upload(
        self,
        car: bytes,
        user: UserContext,
        name: str | None = None,
        upload_type: str = "Car",
    ) -> UploadResult:
        # Raises an InputError if the CAR is invalid by our standards.
        # Size is the block sum, or the cumulative DAG size for a dag-pb root.
        stat = car_stat(car, max_block_size=self._config.max_block_size)
        dag_size = stat.size

        # The add response's byte counts only describe this shard of the DAG,
        # so only its CID is used.
        local = len(car) > self._config.local_add_threshold
        added = await self._cluster.add(
            car, local=local, metadata={"size": str(len(car))},
        )
        cid = added.cid
        log.info(
            "Added CAR %s (%d bytes, %d blocks, dag size %d, local=%s)",
            cid, len(car), stat.blocks, dag_size, local,
        )

        status = await self._cluster.status(cid)
        pins = to_pins(status.peer_map)
        if not pins:
            raise NoReplicasError(cid)

        if not name or not isinstance(name, str):
            name = f"Upload at {_now()}"

        content_cid = normalize_cid(cid)
        upload = await self._create_upload(UploadInput(
            user_id=user.user_id,
            auth_key_id=user.auth_key_id,
            content_cid=content_cid,
            source_cid=cid,
            name=name,
            dag_size=dag_size,
            pins=pins,
            upload_type=upload_type,
        ))

        self._tasks.submit(
            f"used-storage:{user.user_id}",
            lambda: self._store.increment_used_storage(user.user_id, dag_size),
        )
        # Keep querying the cluster until a node reports something other
        # than unpinned, i.e. PinQueued, Pinning or Pinned.
        if not any(is_ok(p) for p in pins):
            self._tasks.submit(
                f"reconcile:{cid}",
                lambda: self._reconciler.reconcile(content_cid, cid),
            )

        return UploadResult(
            request_id=str(upload.upload_id),
            cid=cid,
            name=name,
            status=aggregate_pins(pins),
            created=upload.created or _now(),
            dag_size=dag_size,
            pins=pins,
        )

    async def _create_upload(self, data: UploadInput) -> UploadRecord:
        """Create the upload, retrying concurrent-modification aborts."""
        attempts = self._config.create_upload_retries + 1
        delay = self._config.create_upload_min_timeout
        attempt = 1
        while True:
            try:
                return await self._store.create_upload(data)
            except WriteConflictError as exc:
                if attempt >= attempts:
                    log.error(
                        "create_upload for %s failed after %d attempts: %s",
                        data.content_cid, attempts, exc,
                    )
                    raise
                log.warning(
                    "create_upload conflict for %s (attempt %d/%d), retrying in %.2fs",
                    data.content_cid, attempt, attempts, delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._config.create_upload_max_timeout)
                attempt += 1
