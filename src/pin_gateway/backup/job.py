"""Backup job - copies pinned uploads without a backup to cold storage."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator

from pin_gateway.errors import BlockStallError, DagTooBigError, SizeTimeoutError
from pin_gateway.interfaces.backup import ColdStorage, DagExporter
from pin_gateway.interfaces.store import PinStore
from pin_gateway.models.config import MAX_DAG_SIZE
from pin_gateway.models.records import BackupCandidate, BackupReport

log = logging.getLogger(__name__)


def backup_key(content_cid: str) -> str:
    return f"complete/{content_cid}.car"


class BackupJob:
    """One pass over pinned content that has no backup URL yet.

    For each candidate (at most `concurrency` at a time):
    1. Look up the DAG size, refusing DAGs above `max_dag_size` or whose
       size lookup times out (codecs without a size lookup pass unchecked)
    2. Stream a CAR export from IPFS, failing if a chunk stalls
    3. Upload it to cold storage as complete/<content cid>.car
    4. Record the backup URL against the upload

    A failing item is logged and counted; the rest of the batch continues.
    """

    def __init__(
        self,
        store: PinStore,
        exporter: DagExporter,
        cold_storage: ColdStorage,
        concurrency: int = 10,
        limit: int = 10000,
        max_dag_size: int = MAX_DAG_SIZE,
        block_timeout: float = 30.0,
        size_timeout: float = 10.0,
    ) -> None:
        self._store = store
        self._exporter = exporter
        self._cold_storage = cold_storage
        self._concurrency = concurrency
        self._limit = limit
        self._max_dag_size = max_dag_size
        self._block_timeout = block_timeout
        self._size_timeout = size_timeout

    async def run(self, limit: int | None = None) -> BackupReport:
        start_time = time.monotonic()
        candidates = await self._store.get_pins_not_backed_up(limit or self._limit)
        log.info("Backup run: %d candidate(s)", len(candidates))

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _backup_one(candidate: BackupCandidate) -> bool:
            async with semaphore:
                return await self._backup(candidate)

        results = await asyncio.gather(
            *(_backup_one(c) for c in candidates), return_exceptions=True,
        )

        report = BackupReport(processed=len(results))
        for result in results:
            if result is True:
                report.successful += 1
            else:
                report.failed += 1
        report.duration_ms = int((time.monotonic() - start_time) * 1000)

        log.info(
            "Backup run complete: %d processed, %d successful, %d failed in %dms",
            report.processed, report.successful, report.failed, report.duration_ms,
        )
        return report

    async def _backup(self, candidate: BackupCandidate) -> bool:
        cid = candidate.source_cid
        try:
            await self._check_size(cid)
            url = await self._cold_storage.upload(
                backup_key(candidate.content_cid), self._export(cid),
            )
            await self._store.record_backup(candidate.upload_id, url)
        except Exception as exc:
            log.error("Backup of %s (upload %d) failed: %s", cid, candidate.upload_id, exc)
            return False

        log.info("Backed up %s (upload %d) to %s", cid, candidate.upload_id, url)
        return True

    async def _check_size(self, cid: str) -> None:
        try:
            size = await asyncio.wait_for(
                self._exporter.get_size(cid), timeout=self._size_timeout,
            )
        except asyncio.TimeoutError:
            raise SizeTimeoutError(cid, self._size_timeout) from None

        if size is not None and size > self._max_dag_size:
            raise DagTooBigError(size, self._max_dag_size)

    async def _export(self, cid: str) -> AsyncIterator[bytes]:
        """Export stream that fails when no bytes arrive for `block_timeout`."""
        chunks = self._exporter.dag_export(cid).__aiter__()
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        chunks.__anext__(), timeout=self._block_timeout,
                    )
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError:
                    raise BlockStallError(cid, self._block_timeout) from None
                yield chunk
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()
