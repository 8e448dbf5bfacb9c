"""ClusterClient protocol - the pinning cluster collaborator."""

from __future__ import annotations

from typing import Protocol

from pin_gateway.models.records import AddResult, StatusResult


class ClusterClient(Protocol):
    """Adds, pins and reports replica placement of content on the cluster."""

    async def add(
        self,
        car: bytes,
        local: bool = False,
        metadata: dict[str, str] | None = None,
        name: str | None = None,
    ) -> AddResult:
        """Import a CAR. `local` skips waiting for replication to other peers."""
        ...

    async def status(self, cid: str) -> StatusResult:
        """Per-peer status of a CID."""
        ...

    async def pin(
        self,
        cid: str,
        origins: list[str] | None = None,
        name: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Ask the cluster to fetch and pin a CID from the network."""
        ...

    async def unpin(self, cid: str) -> None:
        ...
