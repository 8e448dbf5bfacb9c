"""IPFS Cluster REST client against a mocked transport."""

from __future__ import annotations

import json

import httpx
import pytest

from pin_gateway.cluster.client import IpfsClusterClient
from pin_gateway.errors import ClusterError

ROOT = "bafyreib6kyyqrgvtg2hxxmhgnhd2m6stw2dozmdvvxd3dfcxvc7ouu4y7e"


def make_client(handler, **kwargs) -> IpfsClusterClient:
    return IpfsClusterClient(
        "http://cluster:9094", transport=httpx.MockTransport(handler), **kwargs,
    )


async def test_add_returns_root_from_ndjson():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["body"] = request.read()
        lines = [
            {"name": "leaf", "cid": "bafkreileaf", "size": 10},
            {"name": "", "cid": {"/": ROOT}, "size": 123},
        ]
        return httpx.Response(200, text="\n".join(json.dumps(x) for x in lines) + "\n")

    client = make_client(handler)
    result = await client.add(b"CARDATA", local=True, metadata={"size": "7"}, name="n")
    await client.close()

    assert result.cid == ROOT
    assert result.size == 123
    assert seen["path"] == "/add"
    assert seen["params"]["format"] == "car"
    assert seen["params"]["local"] == "true"
    assert seen["params"]["meta-size"] == "7"
    assert seen["params"]["name"] == "n"
    assert b"CARDATA" in seen["body"]


async def test_status_parses_peer_map():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == f"/pins/{ROOT}"
        return httpx.Response(200, json={
            "cid": ROOT,
            "name": "",
            "peer_map": {
                "12D3KooWA": {"peername": "node-a", "status": "pinned", "error": ""},
                "12D3KooWB": {"peername": "node-b", "status": "pin_error", "error": "boom"},
            },
        })

    client = make_client(handler)
    status = await client.status(ROOT)
    await client.close()

    assert status.cid == ROOT
    assert status.peer_map["12D3KooWA"].peer_name == "node-a"
    assert status.peer_map["12D3KooWA"].status == "pinned"
    assert status.peer_map["12D3KooWA"].error is None
    assert status.peer_map["12D3KooWB"].error == "boom"


async def test_status_empty_peer_map():
    client = make_client(lambda request: httpx.Response(200, json={"cid": ROOT, "peer_map": None}))
    status = await client.status(ROOT)
    await client.close()
    assert status.peer_map == {}


async def test_pin_sends_options():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"cid": ROOT})

    client = make_client(handler)
    await client.pin(ROOT, origins=["/ip4/1.2.3.4/tcp/4001", "/dnsaddr/x"], name="pin", metadata={"a": "b"})
    await client.close()

    assert seen["method"] == "POST"
    assert seen["params"] == {
        "name": "pin", "origins": "/ip4/1.2.3.4/tcp/4001,/dnsaddr/x", "meta-a": "b",
    }


async def test_unpin():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        return httpx.Response(200, json={})

    client = make_client(handler)
    await client.unpin(ROOT)
    await client.close()
    assert seen == {"method": "DELETE", "path": f"/pins/{ROOT}"}


async def test_basic_auth_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"cid": ROOT, "peer_map": {}})

    client = make_client(handler, basic_auth=("user", "pass"))
    await client.status(ROOT)
    await client.close()
    assert seen["auth"].startswith("Basic ")


@pytest.mark.parametrize("code", [400, 401, 500, 503])
async def test_http_errors_raise(code):
    client = make_client(lambda request: httpx.Response(code, json={"message": "nope"}))
    with pytest.raises(ClusterError) as exc_info:
        await client.status(ROOT)
    await client.close()
    assert exc_info.value.http_status == code


async def test_error_message_from_body():
    client = make_client(lambda request: httpx.Response(500, json={"code": 500, "message": "ipfs down"}))
    with pytest.raises(ClusterError, match="ipfs down") as exc_info:
        await client.pin(ROOT)
    await client.close()
    assert exc_info.value.response == {"code": 500, "message": "ipfs down"}


async def test_transport_errors_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(ClusterError, match="connection refused"):
        await client.status(ROOT)
    await client.close()


async def test_empty_add_response():
    client = make_client(lambda request: httpx.Response(200, text=""))
    with pytest.raises(ClusterError, match="empty add response"):
        await client.add(b"CAR")
    await client.close()
