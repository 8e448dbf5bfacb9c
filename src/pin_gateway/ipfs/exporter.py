"""Kubo DAG exporter - sizes and exports DAGs via the Kubo HTTP RPC."""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from pin_gateway.ipld.cid import CODEC_DAG_PB, CODEC_RAW, cid_codec

log = logging.getLogger(__name__)


class KuboDagExporter:
    """Reads content from the IPFS node backing the cluster.

    Uses the Kubo HTTP RPC API at /api/v0/ for:
    - block/stat: size of a single raw block
    - object/stat: cumulative size of a dag-pb DAG
    - dag/export: the whole DAG as a CAR stream
    """

    def __init__(
        self,
        kubo_rpc_url: str = "http://127.0.0.1:5001",
        timeout: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = kubo_rpc_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/api/v0/{endpoint}"

    def _client(self, timeout: httpx.Timeout | float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def get_size(self, cid: str) -> int | None:
        """Total DAG size for raw and dag-pb roots, None for anything else."""
        codec = cid_codec(cid)
        if codec == CODEC_RAW:
            endpoint, key = "block/stat", "Size"
        elif codec == CODEC_DAG_PB:
            endpoint, key = "object/stat", "CumulativeSize"
        else:
            return None

        async with self._client(self._timeout) as client:
            resp = await client.post(self._url(endpoint), params={"arg": cid})
            resp.raise_for_status()
            size = resp.json().get(key)
        log.debug("%s size via %s: %s", cid, endpoint, size)
        return int(size) if size is not None else None

    async def dag_export(self, cid: str) -> AsyncIterator[bytes]:
        """Stream the DAG as CAR bytes.

        No read timeout is applied here; callers bound the wait per chunk.
        """
        timeout = httpx.Timeout(self._timeout, read=None)
        async with self._client(timeout) as client:
            async with client.stream(
                "POST", self._url("dag/export"), params={"arg": cid},
            ) as resp:
                resp.raise_for_status()
                total = 0
                async for chunk in resp.aiter_bytes():
                    total += len(chunk)
                    yield chunk
        log.debug("Exported %s (%d bytes)", cid, total)
