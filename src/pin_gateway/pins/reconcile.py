"""Pin status reconciliation - polls the cluster until replicas are placed."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from pin_gateway.errors import NoReplicasError
from pin_gateway.interfaces.cluster import ClusterClient
from pin_gateway.interfaces.store import PinStore
from pin_gateway.models.status import ReconcileOutcome
from pin_gateway.pins.status import is_ok, to_pins

log = logging.getLogger(__name__)


class PinReconciler:
    """Polls replica status for one CID until an OK state or a deadline.

    Each run is independent: deadline and progress live only for the length
    of one `reconcile()` call. States:

        polling -> converged   at least one replica is queued/pinning/pinned;
                               every OK replica is upserted before returning
        polling -> timed_out   the deadline passed first; nothing persisted
        polling -> error       the cluster reports no peers (NoReplicasError)
    """

    def __init__(
        self,
        cluster: ClusterClient,
        store: PinStore,
        poll_interval: float = 5.0,
        max_wait: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._cluster = cluster
        self._store = store
        self._poll_interval = poll_interval
        self._max_wait = max_wait
        self._clock = clock
        self._sleep = sleep

    async def reconcile(self, content_cid: str, cid: str) -> ReconcileOutcome:
        """Poll `cid` and record OK pins against `content_cid`."""
        deadline = self._clock() + self._max_wait
        polls = 0

        while True:
            polls += 1
            result = await self._cluster.status(cid)
            pins = to_pins(result.peer_map)
            if not pins:
                raise NoReplicasError(cid)

            ok_pins = [p for p in pins if is_ok(p)]
            if ok_pins:
                for pin in ok_pins:
                    await self._store.upsert_pin(content_cid, pin)
                log.info(
                    "Pins for %s converged after %d poll(s): %d OK of %d",
                    cid, polls, len(ok_pins), len(pins),
                )
                return ReconcileOutcome.CONVERGED

            log.debug("No OK pins for %s yet (poll %d)", cid, polls)
            await self._sleep(self._poll_interval)
            if self._clock() >= deadline:
                log.warning(
                    "Gave up waiting for pins of %s after %.1fs (%d polls)",
                    cid, self._max_wait, polls,
                )
                return ReconcileOutcome.TIMED_OUT
