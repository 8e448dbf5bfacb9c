"""Error payloads and status codes."""

from __future__ import annotations

import pytest

from pin_gateway.errors import (
    BlockTooLargeError,
    ClusterError,
    ContentNotFoundError,
    DagTooBigError,
    GatewayError,
    InputError,
    InvalidIdentifierError,
    MissingRootError,
    NoReplicasError,
    StoreError,
    WriteConflictError,
)


def test_payload_with_details():
    exc = InvalidIdentifierError("nope")
    assert exc.to_payload() == {"error": {"reason": "INVALID_CID", "details": "Invalid CID: nope"}}
    assert exc.status_code == 400


def test_payload_without_details():
    assert GatewayError().to_payload() == {"error": {"reason": "INTERNAL_ERROR"}}


@pytest.mark.parametrize(
    "exc, status",
    [
        (MissingRootError(), 400),
        (BlockTooLargeError(2, 1), 400),
        (ContentNotFoundError("bafy"), 404),
        (ClusterError("down", 503), 502),
        (StoreError("locked"), 502),
        (NoReplicasError("bafy"), 500),
    ],
)
def test_status_codes(exc, status):
    assert exc.status_code == status


def test_hierarchy():
    assert issubclass(WriteConflictError, StoreError)
    assert issubclass(BlockTooLargeError, InputError)
    assert not issubclass(ClusterError, InputError)


def test_cluster_error_keeps_upstream_status():
    exc = ClusterError("nope", 401, {"message": "nope"})
    assert exc.http_status == 401
    assert exc.status_code == 502
    assert exc.response == {"message": "nope"}


def test_dag_too_big_message():
    assert str(DagTooBigError(2048, 1024)) == "DAG too big: 2,048 > 1,024"
