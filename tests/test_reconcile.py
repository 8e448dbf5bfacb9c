"""Pin status reconciliation loop."""

from __future__ import annotations

import pytest

from pin_gateway.errors import NoReplicasError
from pin_gateway.models.status import ReconcileOutcome, ReplicaStatus

from tests.factories import make_cid_str, make_peer_map

CID = make_cid_str(b"reconcile me")


# ── Test 1: Converges on first poll ───────────────────────────────


async def test_converges_immediately(reconciler, mock_cluster, store, clock):
    mock_cluster.peer_maps = [make_peer_map("pinned", "unpinned")]

    outcome = await reconciler.reconcile(CID, CID)

    assert outcome == ReconcileOutcome.CONVERGED
    assert clock.sleeps == []
    pins = await store.get_pins(CID)
    assert [p.status for p in pins] == [ReplicaStatus.PINNED]


# ── Test 2: Converges after a few polls ───────────────────────────


async def test_converges_after_polling(reconciler, mock_cluster, store, clock):
    mock_cluster.peer_maps = [
        make_peer_map("unpinned"),
        make_peer_map("unpinned"),
        make_peer_map("pin_queued", "pinning"),
    ]

    outcome = await reconciler.reconcile(CID, CID)

    assert outcome == ReconcileOutcome.CONVERGED
    assert len(mock_cluster.status_calls) == 3
    assert clock.sleeps == [5.0, 5.0]
    pins = await store.get_pins(CID)
    assert {p.status for p in pins} == {ReplicaStatus.PIN_QUEUED, ReplicaStatus.PINNING}


# ── Test 3: Times out without persisting ──────────────────────────


async def test_times_out(reconciler, mock_cluster, store, clock):
    mock_cluster.peer_maps = [make_peer_map("unpinned", "pin_error")]

    outcome = await reconciler.reconcile(CID, CID)

    assert outcome == ReconcileOutcome.TIMED_OUT
    # 30s budget at 5s per poll
    assert len(mock_cluster.status_calls) == 6
    assert clock.now == pytest.approx(30.0)
    assert await store.get_pins(CID) == []


# ── Test 3b: Acceptable state arrives only after the deadline ─────


async def test_ok_state_after_deadline_is_ignored(reconciler, mock_cluster, store, clock):
    mock_cluster.peer_maps = [make_peer_map("unpinned")] * 6 + [make_peer_map("pinned")]

    outcome = await reconciler.reconcile(CID, CID)

    assert outcome == ReconcileOutcome.TIMED_OUT
    assert len(mock_cluster.status_calls) == 6
    assert len(mock_cluster.peer_maps) == 1
    assert await store.get_pins(CID) == []
    assert await store.get_status(CID) is None


# ── Test 4: No peers at all is a fault ────────────────────────────


async def test_no_peers_raises(reconciler, mock_cluster, store):
    mock_cluster.peer_maps = [{}]

    with pytest.raises(NoReplicasError, match="not pinning on any node"):
        await reconciler.reconcile(CID, CID)

    assert await store.get_pins(CID) == []
    assert await store.get_status(CID) is None


# ── Test 5: Pins recorded against the content CID ─────────────────


async def test_pins_recorded_against_content_cid(reconciler, mock_cluster, store):
    source = "source-form-of-cid"
    mock_cluster.peer_maps = [make_peer_map("pinned")]

    await reconciler.reconcile(CID, source)

    assert mock_cluster.status_calls == [source]
    assert len(await store.get_pins(CID)) == 1


# ── Test 6: Repeated runs are idempotent ──────────────────────────


async def test_repeated_runs_upsert(reconciler, mock_cluster, store):
    mock_cluster.peer_maps = [make_peer_map("pin_queued")]
    await reconciler.reconcile(CID, CID)
    mock_cluster.peer_maps = [make_peer_map("pinned")]
    await reconciler.reconcile(CID, CID)

    pins = await store.get_pins(CID)
    assert [p.status for p in pins] == [ReplicaStatus.PINNED]
