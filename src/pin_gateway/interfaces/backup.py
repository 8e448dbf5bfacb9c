"""Backup collaborators - DAG export from IPFS and cold storage upload."""

from __future__ import annotations

from typing import AsyncIterator, Protocol


class DagExporter(Protocol):
    """Exports content held by the IPFS node backing the cluster."""

    async def get_size(self, cid: str) -> int | None:
        """Total DAG size if cheaply knowable (raw / dag-pb), else None."""
        ...

    def dag_export(self, cid: str) -> AsyncIterator[bytes]:
        """Stream the DAG rooted at `cid` as CAR bytes."""
        ...


class ColdStorage(Protocol):
    """Durable object store for CAR backups."""

    async def upload(self, key: str, chunks: AsyncIterator[bytes]) -> str:
        """Store the streamed object under `key` and return its URL."""
        ...
