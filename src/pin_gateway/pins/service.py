"""Pinning-service API operations, independent of HTTP routing.

Each operation validates its inputs first and raises InvalidPinDataError
with one of the stable detail strings below before touching any
collaborator.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pin_gateway.errors import (
    ContentNotFoundError,
    InvalidIdentifierError,
    InvalidPinDataError,
    PinRequestNotFoundError,
)
from pin_gateway.interfaces.cluster import ClusterClient
from pin_gateway.interfaces.store import PinStore
from pin_gateway.interfaces.tasks import TaskQueue
from pin_gateway.ipld.cid import normalize_cid
from pin_gateway.models.records import (
    ContentStatus,
    PinRequestFilter,
    PinRequestRecord,
    PinStatusResponse,
)
from pin_gateway.models.status import ApiPinStatus
from pin_gateway.pins.reconcile import PinReconciler
from pin_gateway.pins.status import aggregate_pins

log = logging.getLogger(__name__)

INVALID_CID = "Invalid cid"
INVALID_LIMIT = "Limit should be an integer between 1 and 1000"
INVALID_MATCH = 'Match should be a string (i.e. "exact", "iexact", "partial", "ipartial")'
INVALID_META = "Meta should be an object with string values"
INVALID_NAME = "Name should be a string"
INVALID_ORIGINS = "Origins should be an array of strings"
INVALID_REQUEST_ID = "Request id should be a string"
INVALID_STATUS = "Status should be an array of strings"
INVALID_TIMESTAMP = "Before and after should be ISO 8601 timestamps"
REQUIRED_CID = "CID is required"
REQUIRED_REQUEST_ID = "Request id is required"
UNPERMITTED_MATCH = 'Match should be "exact", "iexact", "partial", or "ipartial"'
UNPERMITTED_STATUS = 'Status should be "queued", "pinning", "pinned", or "failed"'

MATCH_OPTIONS = ("exact", "iexact", "partial", "ipartial")
STATUS_OPTIONS = tuple(s.value for s in ApiPinStatus)
MAX_LIST_LIMIT = 1000
DEFAULT_LIST_LIMIT = 10


# ── Validation ─────────────────────────────────────────


def _validate_cid(cid) -> str:
    if not cid:
        raise InvalidPinDataError(REQUIRED_CID)
    if not isinstance(cid, str):
        raise InvalidPinDataError(INVALID_CID)
    try:
        return normalize_cid(cid)
    except InvalidIdentifierError:
        raise InvalidPinDataError(INVALID_CID) from None


def _validate_name(name) -> str | None:
    if name is not None and not isinstance(name, str):
        raise InvalidPinDataError(INVALID_NAME)
    return name


def _validate_origins(origins) -> list[str]:
    if origins is None:
        return []
    if not isinstance(origins, list) or not all(isinstance(o, str) for o in origins):
        raise InvalidPinDataError(INVALID_ORIGINS)
    return origins


def _validate_meta(meta) -> dict[str, str]:
    if meta is None:
        return {}
    if not isinstance(meta, dict) or not all(isinstance(v, str) for v in meta.values()):
        raise InvalidPinDataError(INVALID_META)
    return meta


def _validate_request_id(request_id) -> str:
    if request_id is None or request_id == "":
        raise InvalidPinDataError(REQUIRED_REQUEST_ID)
    if not isinstance(request_id, str):
        raise InvalidPinDataError(INVALID_REQUEST_ID)
    return request_id


def _split(value) -> list | None:
    """Accept either a list or a comma-separated query string."""
    if value is None:
        return None
    if isinstance(value, str):
        return [v for v in (p.strip() for p in value.split(",")) if v]
    return value


def _validate_timestamp(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidPinDataError(INVALID_TIMESTAMP)
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidPinDataError(INVALID_TIMESTAMP) from None
    return value


def parse_list_params(params: dict) -> PinRequestFilter:
    """Validate pin listing query parameters into a PinRequestFilter."""
    cids = _split(params.get("cid"))
    if cids is not None:
        if not isinstance(cids, list):
            raise InvalidPinDataError(INVALID_CID)
        cids = [_validate_cid(c) for c in cids]

    name = _validate_name(params.get("name"))

    match = params.get("match")
    if match is None:
        match = "exact"
    elif not isinstance(match, str):
        raise InvalidPinDataError(INVALID_MATCH)
    elif match not in MATCH_OPTIONS:
        raise InvalidPinDataError(UNPERMITTED_MATCH)

    statuses = _split(params.get("status"))
    if statuses is not None:
        if not isinstance(statuses, list) or not all(isinstance(s, str) for s in statuses):
            raise InvalidPinDataError(INVALID_STATUS)
        if not all(s in STATUS_OPTIONS for s in statuses):
            raise InvalidPinDataError(UNPERMITTED_STATUS)

    limit = params.get("limit", DEFAULT_LIST_LIMIT)
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise InvalidPinDataError(INVALID_LIMIT) from None
    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise InvalidPinDataError(INVALID_LIMIT)

    return PinRequestFilter(
        cids=cids or None,
        name=name,
        match=match,
        statuses=statuses or None,
        before=_validate_timestamp(params.get("before")),
        after=_validate_timestamp(params.get("after")),
        limit=limit,
    )


def _to_response(record: PinRequestRecord) -> PinStatusResponse:
    return PinStatusResponse(
        request_id=record.request_id,
        status=aggregate_pins(record.pins),
        created=record.created,
        cid=record.requested_cid,
        name=record.name,
        origins=record.origins,
        meta=record.meta,
    )


class PinService:
    """Pin request lifecycle: create, read, list, delete, plus content status."""

    def __init__(
        self,
        cluster: ClusterClient,
        store: PinStore,
        tasks: TaskQueue,
        reconciler: PinReconciler,
    ) -> None:
        self._cluster = cluster
        self._store = store
        self._tasks = tasks
        self._reconciler = reconciler

    async def create_pin(self, data: dict, auth_key: str) -> PinStatusResponse:
        """Ask the cluster to pin a CID and record the pin request."""
        cid = data.get("cid")
        content_cid = _validate_cid(cid)
        name = _validate_name(data.get("name"))
        origins = _validate_origins(data.get("origins"))
        meta = _validate_meta(data.get("meta"))

        await self._cluster.pin(content_cid, origins=origins, name=name, metadata=meta)
        record = await self._store.create_pin_request(
            requested_cid=cid,
            content_cid=content_cid,
            auth_key=auth_key,
            name=name,
            origins=origins,
            meta=meta,
        )
        log.info("Pin request %s created for %s", record.request_id, content_cid)

        # Content is fetched from the network, which can take a while, so
        # pin status is checked in the background.
        self._tasks.submit(
            f"reconcile:{content_cid}",
            lambda: self._reconciler.reconcile(content_cid, content_cid),
        )

        return PinStatusResponse(
            request_id=record.request_id,
            status=ApiPinStatus.QUEUED,
            created=record.created,
            cid=cid,
            name=name,
            origins=origins,
            meta=meta,
        )

    async def get_pin(self, request_id, auth_key: str) -> PinStatusResponse:
        request_id = _validate_request_id(request_id)
        record = await self._store.get_pin_request(request_id, auth_key)
        if record is None:
            raise PinRequestNotFoundError(request_id)
        return _to_response(record)

    async def list_pins(self, params: dict, auth_key: str) -> dict:
        """List pin requests. Status is derived per request, then filtered."""
        filters = parse_list_params(params)
        records = await self._store.list_pin_requests(auth_key, filters)
        results = [_to_response(r) for r in records]
        if filters.statuses:
            results = [r for r in results if r.status.value in filters.statuses]
        return {
            "count": len(results),
            "results": [r.to_dict() for r in results[:filters.limit]],
        }

    async def delete_pin(self, request_id, auth_key: str) -> None:
        """Remove a pin request. Replicas already placed are left alone."""
        request_id = _validate_request_id(request_id)
        if not await self._store.delete_pin_request(request_id, auth_key):
            raise PinRequestNotFoundError(request_id)
        log.info("Pin request %s deleted", request_id)

    async def get_status(self, cid: str) -> ContentStatus:
        """Pin and deal status of a CID, echoing back the CID as given."""
        normalized = normalize_cid(cid)
        status = await self._store.get_status(normalized)
        if status is None:
            raise ContentNotFoundError(cid)
        status.cid = cid
        return status
