"""Error taxonomy for the pinning gateway.

Input errors are caused by the client and are never retried. Upstream errors
come from the cluster or the persistence layer. Fault errors indicate an
internal inconsistency and are logged where they happen in background work.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for every error raised by pin_gateway."""

    reason: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, details: str | None = None) -> None:
        super().__init__(details or self.reason)
        self.details = details

    def to_payload(self) -> dict:
        """Build the `{ error: { reason, details? } }` response body."""
        error: dict = {"reason": self.reason}
        if self.details:
            error["details"] = self.details
        return {"error": error}


# ── Input errors ───────────────────────────────────────


class InputError(GatewayError):
    """Client-caused error, surfaced verbatim with a stable reason code."""

    reason = "INVALID_INPUT"
    status_code = 400


class InvalidIdentifierError(InputError):
    reason = "INVALID_CID"

    def __init__(self, cid: str) -> None:
        super().__init__(f"Invalid CID: {cid}")
        self.cid = cid


class MalformedArchiveError(InputError):
    reason = "INVALID_CAR"


class MissingRootError(InputError):
    reason = "MISSING_ROOT"

    def __init__(self) -> None:
        super().__init__("missing roots")


class TooManyRootsError(InputError):
    reason = "TOO_MANY_ROOTS"

    def __init__(self, count: int) -> None:
        super().__init__(f"too many roots: {count}")
        self.count = count


class BlockTooLargeError(InputError):
    reason = "BLOCK_TOO_LARGE"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"block too big: {size} > {limit}")
        self.size = size
        self.limit = limit


class EmptyArchiveError(InputError):
    reason = "EMPTY_CAR"

    def __init__(self) -> None:
        super().__init__("empty CAR")


class MissingRootBlockError(InputError):
    reason = "MISSING_ROOT_BLOCK"

    def __init__(self) -> None:
        super().__init__("missing root block")


class IncompleteDagError(InputError):
    reason = "INCOMPLETE_DAG"

    def __init__(self) -> None:
        super().__init__("CAR must contain at least one non-root block")


class InvalidPinDataError(InputError):
    """A pinning-service request field failed validation."""

    reason = "INVALID_PIN_DATA"


# ── Not found ──────────────────────────────────────────


class NotFoundError(GatewayError):
    reason = "NOT_FOUND"
    status_code = 404


class PinRequestNotFoundError(NotFoundError):
    def __init__(self, request_id: str) -> None:
        super().__init__(f"pin request not found: {request_id}")
        self.request_id = request_id


class ContentNotFoundError(NotFoundError):
    def __init__(self, cid: str) -> None:
        super().__init__(f"content not found: {cid}")
        self.cid = cid


# ── Upstream errors ────────────────────────────────────


class UpstreamError(GatewayError):
    reason = "UPSTREAM_ERROR"
    status_code = 502


class ClusterError(UpstreamError):
    """Raised when the cluster API returns an error."""

    reason = "CLUSTER_ERROR"

    def __init__(
        self, message: str, status_code: int | None = None, response: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.http_status = status_code
        self.response = response


class StoreError(UpstreamError):
    reason = "DB_ERROR"


class WriteConflictError(StoreError):
    """Transient write conflict; safe to retry the whole write."""

    reason = "DB_WRITE_CONFLICT"


# ── Faults ─────────────────────────────────────────────


class FaultError(GatewayError):
    reason = "INTERNAL_FAULT"


class NoReplicasError(FaultError):
    reason = "NO_REPLICAS"

    def __init__(self, cid: str) -> None:
        super().__init__(f"not pinning on any node: {cid}")
        self.cid = cid


class DecodeError(FaultError):
    reason = "DECODE_ERROR"


# ── Timeouts / resource bounds ─────────────────────────


class DagTooBigError(GatewayError):
    reason = "ERR_TOO_BIG"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"DAG too big: {size:,} > {limit:,}")
        self.size = size
        self.limit = limit


class BlockStallError(GatewayError):
    reason = "ERR_BLOCK_TIMEOUT"

    def __init__(self, cid: str, timeout: float) -> None:
        super().__init__(f"no data received for {cid} in {timeout}s")
        self.cid = cid
        self.timeout = timeout


class SizeTimeoutError(GatewayError):
    reason = "ERR_SIZE_TIMEOUT"

    def __init__(self, cid: str, timeout: float) -> None:
        super().__init__(f"size of {cid} not known within {timeout}s")
        self.cid = cid
        self.timeout = timeout
