"""PinStore protocol - persists uploads, pins, pin requests and backups."""

from __future__ import annotations

from typing import Protocol

from pin_gateway.models.records import (
    BackupCandidate,
    BackupRecord,
    ContentStatus,
    Pin,
    PinRequestFilter,
    PinRequestRecord,
    UploadInput,
    UploadRecord,
)


class PinStore(Protocol):
    """Transactional persistence collaborator.

    Every method is a single atomic operation. Callers never read-modify-write
    across two calls.
    """

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    # ── Uploads & content ──────────────────────────────────

    async def create_upload(self, data: UploadInput) -> UploadRecord:
        """Create content (if new), the upload and its initial pins.

        Raises WriteConflictError when the write lost a concurrency race.
        """
        ...

    async def get_status(self, cid: str) -> ContentStatus | None:
        ...

    # ── Pins ───────────────────────────────────────────────

    async def upsert_pin(self, content_cid: str, pin: Pin) -> int:
        """Create or update the pin keyed by (content, location)."""
        ...

    async def get_pins(self, content_cid: str) -> list[Pin]:
        ...

    # ── Users ──────────────────────────────────────────────

    async def increment_used_storage(self, user_id: int, amount: int) -> int:
        ...

    async def get_used_storage(self, user_id: int) -> int:
        ...

    # ── Pin requests ───────────────────────────────────────

    async def create_pin_request(
        self,
        requested_cid: str,
        content_cid: str,
        auth_key: str,
        name: str | None = None,
        origins: list[str] | None = None,
        meta: dict[str, str] | None = None,
    ) -> PinRequestRecord:
        ...

    async def get_pin_request(self, request_id: str, auth_key: str) -> PinRequestRecord | None:
        ...

    async def list_pin_requests(
        self, auth_key: str, filters: PinRequestFilter
    ) -> list[PinRequestRecord]:
        ...

    async def delete_pin_request(self, request_id: str, auth_key: str) -> bool:
        ...

    # ── Backups ────────────────────────────────────────────

    async def get_pins_not_backed_up(self, limit: int) -> list[BackupCandidate]:
        ...

    async def record_backup(self, upload_id: int, url: str) -> BackupRecord:
        ...

    async def get_backups(self, upload_id: int) -> list[BackupRecord]:
        ...
