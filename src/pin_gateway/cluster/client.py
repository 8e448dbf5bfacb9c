"""IPFS Cluster REST API client over httpx."""

from __future__ import annotations

import json
import logging

import httpx

from pin_gateway.errors import ClusterError
from pin_gateway.models.records import AddResult, PeerStatus, StatusResult

log = logging.getLogger(__name__)


def _cid_str(value) -> str:
    """Cluster encodes CIDs either as plain strings or as {"/": cid} links."""
    if isinstance(value, dict):
        return value.get("/", "")
    return value or ""


def _parse_ndjson(text: str) -> list[dict]:
    return [json.loads(line) for line in text.strip().split("\n") if line.strip()]


def _meta_params(metadata: dict[str, str] | None) -> dict[str, str]:
    return {f"meta-{k}": v for k, v in (metadata or {}).items()}


class IpfsClusterClient:
    """Talks to the cluster's REST API (default port 9094).

    - POST /add?format=car   import a CAR, response is NDJSON
    - GET /pins/<cid>        per-peer status
    - POST /pins/<cid>       pin by CID, content fetched from the network
    - DELETE /pins/<cid>     unpin
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:9094",
        basic_auth: tuple[str, str] | None = None,
        timeout: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            auth=basic_auth,
            timeout=httpx.Timeout(timeout, connect=10),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        log.debug("Cluster request: %s %s", method, endpoint)
        try:
            resp = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            raise ClusterError(f"{method} {endpoint}: {exc}") from exc

        if resp.status_code == 401:
            raise ClusterError("Unauthorized: check basic auth credentials", 401)
        if resp.status_code >= 400:
            body = None
            try:
                body = resp.json()
                msg = body.get("message", resp.text) if isinstance(body, dict) else resp.text
            except ValueError:
                msg = resp.text
            raise ClusterError(msg, resp.status_code, body)
        return resp

    async def add(
        self,
        car: bytes,
        local: bool = False,
        metadata: dict[str, str] | None = None,
        name: str | None = None,
    ) -> AddResult:
        params = {
            "format": "car",
            "stream-channels": "false",
            "local": "true" if local else "false",
            **_meta_params(metadata),
        }
        if name:
            params["name"] = name

        resp = await self._request(
            "POST", "/add", params=params,
            files={"file": ("upload.car", car, "application/vnd.ipld.car")},
        )
        entries = _parse_ndjson(resp.text)
        if not entries:
            raise ClusterError("empty add response", resp.status_code)

        # Last entry is the root
        root = entries[-1]
        cid = _cid_str(root.get("cid"))
        if not cid:
            raise ClusterError("add response has no cid", resp.status_code, root)
        size = root.get("size")
        log.debug("Cluster add returned %s (%d entries)", cid, len(entries))
        return AddResult(cid=cid, size=int(size) if size is not None else None)

    async def status(self, cid: str) -> StatusResult:
        resp = await self._request("GET", f"/pins/{cid}")
        data = resp.json()
        peer_map = {
            peer_id: PeerStatus(
                peer_name=info.get("peername", ""),
                status=info.get("status", "undefined"),
                error=info.get("error") or None,
            )
            for peer_id, info in (data.get("peer_map") or {}).items()
        }
        return StatusResult(cid=_cid_str(data.get("cid")) or cid, peer_map=peer_map)

    async def pin(
        self,
        cid: str,
        origins: list[str] | None = None,
        name: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        params = _meta_params(metadata)
        if name:
            params["name"] = name
        if origins:
            params["origins"] = ",".join(origins)
        await self._request("POST", f"/pins/{cid}", params=params)
        log.info("Requested cluster pin for %s", cid)

    async def unpin(self, cid: str) -> None:
        await self._request("DELETE", f"/pins/{cid}")
        log.info("Unpinned %s from cluster", cid)
