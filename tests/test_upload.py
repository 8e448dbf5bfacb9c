"""CAR upload orchestration."""

from __future__ import annotations

import pytest

from pin_gateway.errors import (
    ClusterError,
    IncompleteDagError,
    NoReplicasError,
    WriteConflictError,
)
from pin_gateway.ipld.cid import CODEC_DAG_CBOR
from pin_gateway.models.config import UploadConfig
from pin_gateway.models.records import UserContext
from pin_gateway.models.status import ApiPinStatus, ReconcileOutcome, ReplicaStatus
from pin_gateway.pins.upload import UploadOrchestrator

from tests.factories import (
    cid_str,
    make_car,
    make_cbor_car,
    make_cbor_node,
    make_cid,
    make_pb_car,
    make_peer_map,
    make_pb_link,
    make_pb_node,
    make_raw_car,
)
from tests.mocks import ConflictingStore

USER = UserContext(user_id=7, auth_key_id=3)


# ── Test 1: Raw CAR happy path ────────────────────────────────────


async def test_raw_car_upload(orchestrator, mock_cluster, store, mock_tasks):
    car, root = make_raw_car(b"hello upload")
    mock_cluster.add_cid = cid_str(root)
    mock_cluster.peer_maps = [make_peer_map("pinned", "pin_queued")]

    result = await orchestrator.handle_car_upload(car, USER, name="my upload")

    assert result.cid == cid_str(root)
    assert result.name == "my upload"
    assert result.status == ApiPinStatus.PINNED
    assert result.dag_size == len(b"hello upload")
    assert len(result.pins) == 2

    # Added once, not local for a small CAR, with the CAR size as metadata
    assert len(mock_cluster.add_calls) == 1
    assert mock_cluster.add_calls[0]["local"] is False
    assert mock_cluster.add_calls[0]["metadata"] == {"size": str(len(car))}

    status = await store.get_status(cid_str(root))
    assert status is not None
    assert status.dag_size == len(b"hello upload")
    assert len(status.pins) == 2

    # OK pins already: only storage accounting runs in the background
    assert mock_tasks.names == ["used-storage:7"]
    await mock_tasks.run_all()
    assert await store.get_used_storage(7) == len(b"hello upload")


# ── Test 2: dag-pb size comes from the root's declared sizes ──────


async def test_dag_pb_size(orchestrator, mock_cluster):
    car, root_cid, root = make_pb_car([b"abc", b"defgh"])
    mock_cluster.add_cid = cid_str(root_cid)

    result = await orchestrator.handle_car_upload(car, USER)
    assert result.dag_size == len(root) + 3 + 5


# ── Test 3: dag-cbor end to end through reconciliation ────────────


async def test_dag_cbor_upload_reconciles(orchestrator, mock_cluster, store, mock_tasks):
    car, root = make_cbor_car()
    cid = cid_str(root)
    mock_cluster.add_cid = cid
    mock_cluster.peer_maps = [
        make_peer_map("unpinned", "unpinned"),  # upload-time status
        make_peer_map("unpinned", "unpinned"),  # first background poll
        make_peer_map("pinned", "unpinned"),
    ]

    result = await orchestrator.handle_car_upload(car, USER)
    assert result.status == ApiPinStatus.FAILED
    assert mock_tasks.names == ["used-storage:7", f"reconcile:{cid}"]

    outcomes = await mock_tasks.run_all()
    assert outcomes[1] == ReconcileOutcome.CONVERGED

    status = await store.get_status(cid)
    statuses = sorted(p.status.value for p in status.pins)
    assert statuses == ["Pinned", "Unpinned"]


# ── Test 3b: Single-block dag-cbor without links ──────────────────


async def test_single_block_cbor_upload(orchestrator, mock_cluster, store):
    root = make_cbor_node({"name": "standalone", "values": [1, 2, 3]})
    root_cid = make_cid(root, CODEC_DAG_CBOR)
    car = make_car([root_cid], [(root_cid, root)])
    mock_cluster.add_cid = cid_str(root_cid)
    mock_cluster.peer_maps = [make_peer_map("pinned")]

    result = await orchestrator.handle_car_upload(car, USER)

    assert result.dag_size == len(root)
    assert result.to_dict()["dagSize"] == len(root)
    assert result.status == ApiPinStatus.PINNED
    status = await store.get_status(cid_str(root_cid))
    assert status.dag_size == len(root)


# ── Test 4: Large CARs are added locally ──────────────────────────


async def test_large_car_added_locally(mock_cluster, store, mock_tasks, reconciler):
    orchestrator = UploadOrchestrator(
        mock_cluster, store, mock_tasks, reconciler,
        UploadConfig(local_add_threshold=10),
    )
    car, root = make_raw_car(b"more than ten bytes of content")
    mock_cluster.add_cid = cid_str(root)

    await orchestrator.handle_car_upload(car, USER)
    assert mock_cluster.add_calls[0]["local"] is True


# ── Test 5: Invalid CARs fail before any side effect ──────────────


async def test_invalid_car_has_no_side_effects(orchestrator, mock_cluster, store, mock_tasks):
    child = make_cid(b"child")
    root = make_pb_node([make_pb_link(child, "c", 5)])
    root_cid = make_cid(root, 0x70)
    car = make_car([root_cid], [(root_cid, root)])

    with pytest.raises(IncompleteDagError):
        await orchestrator.handle_car_upload(car, USER)

    assert mock_cluster.add_calls == []
    assert mock_tasks.submitted == []
    assert await store.get_status(cid_str(root_cid)) is None


# ── Test 6: No replicas at all ────────────────────────────────────


async def test_no_replicas(orchestrator, mock_cluster, store, mock_tasks):
    car, root = make_raw_car()
    mock_cluster.add_cid = cid_str(root)
    mock_cluster.peer_maps = [{}]

    with pytest.raises(NoReplicasError):
        await orchestrator.handle_car_upload(car, USER)

    assert mock_tasks.submitted == []
    assert await store.get_status(cid_str(root)) is None


# ── Test 7: Cluster failures propagate ────────────────────────────


async def test_cluster_add_failure(orchestrator, mock_cluster, mock_tasks):
    mock_cluster._add_error = ClusterError("boom", 500)
    car, _ = make_raw_car()

    with pytest.raises(ClusterError):
        await orchestrator.handle_car_upload(car, USER)
    assert mock_tasks.submitted == []


# ── Test 8: Default name ──────────────────────────────────────────


async def test_default_name(orchestrator, mock_cluster):
    car, root = make_raw_car()
    mock_cluster.add_cid = cid_str(root)

    result = await orchestrator.handle_car_upload(car, USER)
    assert result.name.startswith("Upload at ")


# ── Test 9: Write conflicts are retried ───────────────────────────


async def test_create_upload_retries_conflicts(test_config, mock_cluster, store, mock_tasks, reconciler):
    flaky = ConflictingStore(store, conflicts=3)
    orchestrator = UploadOrchestrator(mock_cluster, flaky, mock_tasks, reconciler, test_config.upload)
    car, root = make_raw_car()
    mock_cluster.add_cid = cid_str(root)

    result = await orchestrator.handle_car_upload(car, USER)

    assert flaky.create_calls == 4
    assert result.request_id
    assert await store.get_status(cid_str(root)) is not None


async def test_create_upload_gives_up(test_config, mock_cluster, store, mock_tasks, reconciler):
    flaky = ConflictingStore(store, conflicts=10)
    orchestrator = UploadOrchestrator(mock_cluster, flaky, mock_tasks, reconciler, test_config.upload)
    car, root = make_raw_car()
    mock_cluster.add_cid = cid_str(root)

    with pytest.raises(WriteConflictError):
        await orchestrator.handle_car_upload(car, USER)

    # 1 attempt + 4 retries
    assert flaky.create_calls == 5
    assert mock_tasks.submitted == []


# ── Test 10: Pins recorded with the upload ────────────────────────


async def test_initial_pins_persisted(orchestrator, mock_cluster, store):
    car, root = make_raw_car(b"pins with upload")
    mock_cluster.add_cid = cid_str(root)
    mock_cluster.peer_maps = [make_peer_map("pin_queued", "remote")]

    await orchestrator.handle_car_upload(car, USER)

    pins = await store.get_pins(cid_str(root))
    assert [p.status for p in pins] == [ReplicaStatus.PIN_QUEUED, ReplicaStatus.REMOTE]
