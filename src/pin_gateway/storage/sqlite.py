"""SQLite implementation of the PinStore protocol."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from pin_gateway.errors import StoreError, WriteConflictError
from pin_gateway.models.records import (
    BackupCandidate,
    BackupRecord,
    ContentStatus,
    Pin,
    PinLocation,
    PinRequestFilter,
    PinRequestRecord,
    UploadInput,
    UploadRecord,
)
from pin_gateway.models.status import ReplicaStatus

log = logging.getLogger(__name__)

SCHEMA = """
-- Content, keyed by normalized CIDv1
CREATE TABLE IF NOT EXISTS content (
    cid TEXT PRIMARY KEY,
    dag_size INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Replica-holding cluster nodes
CREATE TABLE IF NOT EXISTS pin_location (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    peer_id TEXT NOT NULL UNIQUE,
    peer_name TEXT,
    region TEXT
);

-- Placement of one content item on one node
CREATE TABLE IF NOT EXISTS pin (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content_cid TEXT NOT NULL REFERENCES content(cid),
    pin_location_id INTEGER NOT NULL REFERENCES pin_location(id),
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (content_cid, pin_location_id)
);
CREATE INDEX IF NOT EXISTS idx_pin_status ON pin(status);

-- User uploads
CREATE TABLE IF NOT EXISTS upload (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    auth_key_id INTEGER,
    content_cid TEXT NOT NULL REFERENCES content(cid),
    source_cid TEXT NOT NULL,
    name TEXT,
    type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT,
    UNIQUE (user_id, source_cid)
);
CREATE INDEX IF NOT EXISTS idx_upload_content ON upload(content_cid);

-- Storage accounting
CREATE TABLE IF NOT EXISTS user_storage (
    user_id INTEGER PRIMARY KEY,
    used INTEGER NOT NULL DEFAULT 0
);

-- Pinning-service pin requests
CREATE TABLE IF NOT EXISTS pin_request (
    id TEXT PRIMARY KEY,
    auth_key TEXT NOT NULL,
    requested_cid TEXT NOT NULL,
    content_cid TEXT NOT NULL REFERENCES content(cid),
    name TEXT,
    origins TEXT NOT NULL DEFAULT '[]',
    meta TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    deleted_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_pin_request_key ON pin_request(auth_key, created_at);

-- Cold storage backups of uploads
CREATE TABLE IF NOT EXISTS backup (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    upload_id INTEGER NOT NULL REFERENCES upload(id),
    url TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (upload_id, url)
);
"""

PIN_COLUMNS = (
    "p.status, p.created_at, p.updated_at,"
    " l.peer_id, l.peer_name, l.region"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _utc(value: str) -> str:
    """Normalize an ISO 8601 timestamp so stored values compare as strings."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _row_to_pin(row) -> Pin:
    try:
        status = ReplicaStatus(row["status"])
    except ValueError:
        status = ReplicaStatus.UNDEFINED
    return Pin(
        status=status,
        location=PinLocation(
            peer_id=row["peer_id"],
            peer_name=row["peer_name"],
            region=row["region"],
        ),
        created=row["created_at"],
        updated=row["updated_at"],
    )


def _is_conflict(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


class SQLiteStore:
    """SQLite-backed implementation of the PinStore protocol."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        # One connection is shared by every coroutine; writers take turns so a
        # commit never publishes another writer's half-finished statements.
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys = ON")
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    @asynccontextmanager
    async def _transaction(self, op: str):
        """Run the enclosed statements as one unit: commit on exit, roll back on error."""
        async with self._write_lock:
            try:
                yield self.db
                await self.db.commit()
            except sqlite3.OperationalError as exc:
                await self.db.rollback()
                if _is_conflict(exc):
                    raise WriteConflictError(str(exc)) from exc
                raise StoreError(f"{op}: {exc}") from exc
            except BaseException:
                await self.db.rollback()
                raise

    # ── Uploads & content ──────────────────────────────────

    async def create_upload(self, data: UploadInput) -> UploadRecord:
        now = _now()
        async with self._transaction("create_upload") as db:
            await db.execute(
                "INSERT INTO content (cid, dag_size, created_at, updated_at)"
                " VALUES (?, ?, ?, ?)"
                " ON CONFLICT(cid) DO UPDATE SET"
                " dag_size=COALESCE(content.dag_size, excluded.dag_size),"
                " updated_at=excluded.updated_at",
                (data.content_cid, data.dag_size, now, now),
            )
            for pin in data.pins:
                await self._upsert_pin(data.content_cid, pin, now)
            await db.execute(
                "INSERT INTO upload"
                " (user_id, auth_key_id, content_cid, source_cid, name, type,"
                "  created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(user_id, source_cid) DO UPDATE SET"
                " name=excluded.name, updated_at=excluded.updated_at, deleted_at=NULL",
                (
                    data.user_id, data.auth_key_id, data.content_cid,
                    data.source_cid, data.name, data.upload_type, now, now,
                ),
            )
            async with db.execute(
                "SELECT id, created_at FROM upload WHERE user_id=? AND source_cid=?",
                (data.user_id, data.source_cid),
            ) as cur:
                row = await cur.fetchone()

        return UploadRecord(
            upload_id=row["id"],
            content_cid=data.content_cid,
            created=row["created_at"],
        )

    async def get_status(self, cid: str) -> ContentStatus | None:
        async with self.db.execute(
            "SELECT cid, dag_size, created_at FROM content WHERE cid=?", (cid,)
        ) as cur:
            row = await cur.fetchone()
        if row is None:
            return None
        return ContentStatus(
            cid=row["cid"],
            dag_size=row["dag_size"],
            created=row["created_at"],
            pins=await self.get_pins(cid),
        )

    async def _ensure_content(self, cid: str, now: str) -> None:
        await self.db.execute(
            "INSERT INTO content (cid, dag_size, created_at, updated_at)"
            " VALUES (?, NULL, ?, ?) ON CONFLICT(cid) DO NOTHING",
            (cid, now, now),
        )

    # ── Pins ───────────────────────────────────────────────

    async def _upsert_pin(self, content_cid: str, pin: Pin, now: str) -> int:
        loc = pin.location
        await self.db.execute(
            "INSERT INTO pin_location (peer_id, peer_name, region) VALUES (?, ?, ?)"
            " ON CONFLICT(peer_id) DO UPDATE SET"
            " peer_name=COALESCE(excluded.peer_name, pin_location.peer_name),"
            " region=COALESCE(excluded.region, pin_location.region)",
            (loc.peer_id, loc.peer_name, loc.region),
        )
        await self.db.execute(
            "INSERT INTO pin (content_cid, pin_location_id, status, created_at, updated_at)"
            " SELECT ?, id, ?, ?, ? FROM pin_location WHERE peer_id=?"
            " ON CONFLICT(content_cid, pin_location_id) DO UPDATE SET"
            " status=excluded.status, updated_at=excluded.updated_at",
            (content_cid, pin.status.value, now, now, loc.peer_id),
        )
        async with self.db.execute(
            "SELECT p.id FROM pin p JOIN pin_location l ON l.id = p.pin_location_id"
            " WHERE p.content_cid=? AND l.peer_id=?",
            (content_cid, loc.peer_id),
        ) as cur:
            row = await cur.fetchone()
        return row["id"]

    async def upsert_pin(self, content_cid: str, pin: Pin) -> int:
        now = _now()
        async with self._transaction("upsert_pin"):
            await self._ensure_content(content_cid, now)
            pin_id = await self._upsert_pin(content_cid, pin, now)
        log.debug("Upserted pin %d (%s on %s)", pin_id, pin.status.value, pin.location.peer_id)
        return pin_id

    async def get_pins(self, content_cid: str) -> list[Pin]:
        async with self.db.execute(
            f"SELECT {PIN_COLUMNS} FROM pin p"
            " JOIN pin_location l ON l.id = p.pin_location_id"
            " WHERE p.content_cid=? ORDER BY p.id",
            (content_cid,),
        ) as cur:
            return [_row_to_pin(row) async for row in cur]

    # ── Users ──────────────────────────────────────────────

    async def increment_used_storage(self, user_id: int, amount: int) -> int:
        async with self._transaction("increment_used_storage") as db:
            await db.execute(
                "INSERT INTO user_storage (user_id, used) VALUES (?, ?)"
                " ON CONFLICT(user_id) DO UPDATE SET used = user_storage.used + excluded.used",
                (user_id, amount),
            )
        return await self.get_used_storage(user_id)

    async def get_used_storage(self, user_id: int) -> int:
        async with self.db.execute(
            "SELECT used FROM user_storage WHERE user_id=?", (user_id,)
        ) as cur:
            row = await cur.fetchone()
            return row["used"] if row else 0

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
        now = _now()
        request_id = str(uuid.uuid4())
        async with self._transaction("create_pin_request") as db:
            await self._ensure_content(content_cid, now)
            await db.execute(
                "INSERT INTO pin_request"
                " (id, auth_key, requested_cid, content_cid, name, origins, meta, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    request_id, auth_key, requested_cid, content_cid, name,
                    json.dumps(origins or []), json.dumps(meta or {}), now,
                ),
            )
        return PinRequestRecord(
            request_id=request_id,
            requested_cid=requested_cid,
            content_cid=content_cid,
            auth_key=auth_key,
            name=name,
            origins=list(origins or []),
            meta=dict(meta or {}),
            created=now,
            pins=await self.get_pins(content_cid),
        )

    async def _row_to_pin_request(self, row) -> PinRequestRecord:
        return PinRequestRecord(
            request_id=row["id"],
            requested_cid=row["requested_cid"],
            content_cid=row["content_cid"],
            auth_key=row["auth_key"],
            name=row["name"],
            origins=json.loads(row["origins"]),
            meta=json.loads(row["meta"]),
            created=row["created_at"],
            pins=await self.get_pins(row["content_cid"]),
        )

    async def get_pin_request(self, request_id: str, auth_key: str) -> PinRequestRecord | None:
        async with self.db.execute(
            "SELECT * FROM pin_request WHERE id=? AND auth_key=? AND deleted_at IS NULL",
            (request_id, auth_key),
        ) as cur:
            row = await cur.fetchone()
        return await self._row_to_pin_request(row) if row else None

    async def list_pin_requests(
        self, auth_key: str, filters: PinRequestFilter
    ) -> list[PinRequestRecord]:
        clauses = ["auth_key=?", "deleted_at IS NULL"]
        params: list = [auth_key]

        if filters.cids:
            clauses.append(f"content_cid IN ({','.join('?' * len(filters.cids))})")
            params.extend(filters.cids)
        if filters.name:
            if filters.match == "iexact":
                clauses.append("lower(name) = lower(?)")
            elif filters.match == "partial":
                clauses.append("instr(name, ?) > 0")
            elif filters.match == "ipartial":
                clauses.append("instr(lower(name), lower(?)) > 0")
            else:
                clauses.append("name = ?")
            params.append(filters.name)
        if filters.before:
            clauses.append("created_at < ?")
            params.append(_utc(filters.before))
        if filters.after:
            clauses.append("created_at > ?")
            params.append(_utc(filters.after))

        sql = (
            "SELECT * FROM pin_request WHERE " + " AND ".join(clauses)
            + " ORDER BY created_at DESC, rowid DESC"
        )
        # Status is derived from pins after the query, so the caller applies
        # the limit itself when filtering by status.
        if not filters.statuses:
            sql += " LIMIT ?"
            params.append(filters.limit)

        async with self.db.execute(sql, params) as cur:
            rows = await cur.fetchall()
        return [await self._row_to_pin_request(row) for row in rows]

    async def delete_pin_request(self, request_id: str, auth_key: str) -> bool:
        async with self._transaction("delete_pin_request") as db:
            cur = await db.execute(
                "UPDATE pin_request SET deleted_at=?"
                " WHERE id=? AND auth_key=? AND deleted_at IS NULL",
                (_now(), request_id, auth_key),
            )
        return cur.rowcount > 0

    # ── Backups ────────────────────────────────────────────

    async def get_pins_not_backed_up(self, limit: int) -> list[BackupCandidate]:
        async with self.db.execute(
            "SELECT u.id, u.user_id, u.source_cid, u.content_cid FROM upload u"
            " WHERE u.deleted_at IS NULL"
            " AND EXISTS (SELECT 1 FROM pin p WHERE p.content_cid = u.content_cid"
            "             AND p.status = ?)"
            " AND NOT EXISTS (SELECT 1 FROM backup b WHERE b.upload_id = u.id)"
            " ORDER BY u.id LIMIT ?",
            (ReplicaStatus.PINNED.value, limit),
        ) as cur:
            return [
                BackupCandidate(
                    upload_id=row["id"],
                    user_id=row["user_id"],
                    source_cid=row["source_cid"],
                    content_cid=row["content_cid"],
                )
                async for row in cur
            ]

    async def record_backup(self, upload_id: int, url: str) -> BackupRecord:
        now = _now()
        async with self._transaction("record_backup") as db:
            await db.execute(
                "INSERT INTO backup (upload_id, url, created_at) VALUES (?, ?, ?)"
                " ON CONFLICT(upload_id, url) DO NOTHING",
                (upload_id, url, now),
            )
        async with self.db.execute(
            "SELECT * FROM backup WHERE upload_id=? AND url=?", (upload_id, url)
        ) as cur:
            row = await cur.fetchone()
        return BackupRecord(
            backup_id=row["id"],
            upload_id=row["upload_id"],
            url=row["url"],
            created=row["created_at"],
        )

    async def get_backups(self, upload_id: int) -> list[BackupRecord]:
        async with self.db.execute(
            "SELECT * FROM backup WHERE upload_id=? ORDER BY id", (upload_id,)
        ) as cur:
            return [
                BackupRecord(
                    backup_id=row["id"],
                    upload_id=row["upload_id"],
                    url=row["url"],
                    created=row["created_at"],
                )
                async for row in cur
            ]
