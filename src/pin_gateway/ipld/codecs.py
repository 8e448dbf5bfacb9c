"""Static registry of IPLD block decoders.

Only the codecs needed to find a root node's links are understood: raw,
dag-pb and dag-cbor. Unknown codecs have no decoder; callers fall back to
raw block sums instead of failing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import cbor2

from pin_gateway.errors import DecodeError
from pin_gateway.ipld.cid import (
    CODEC_DAG_CBOR,
    CODEC_DAG_PB,
    CODEC_RAW,
    RawCid,
    parse_cid_bytes,
    read_varint,
)

log = logging.getLogger(__name__)

CBOR_CID_TAG = 42

_WIRE_VARINT = 0
_WIRE_LEN = 2


@dataclass(frozen=True)
class Link:
    """A child reference from a decoded node."""

    cid: RawCid
    name: str | None = None
    size: int | None = None  # declared cumulative size (dag-pb Tsize)


@dataclass
class DecodedNode:
    codec: int
    links: list[Link] = field(default_factory=list)
    data: Any = None
    size_annotated: bool = False  # links carry cumulative sizes


@dataclass(frozen=True)
class Decoder:
    code: int
    name: str
    decode: Callable[[bytes], DecodedNode]


# ── raw ────────────────────────────────────────────────


def _decode_raw(data: bytes) -> DecodedNode:
    return DecodedNode(codec=CODEC_RAW, data=data)


# ── dag-pb ─────────────────────────────────────────────


def _iter_fields(buf: memoryview):
    """Yield (field_number, wire_type, value) from a protobuf message."""
    pos = 0
    while pos < len(buf):
        key, pos = read_varint(buf, pos)
        field_no, wire_type = key >> 3, key & 0x07
        if wire_type == _WIRE_VARINT:
            value, pos = read_varint(buf, pos)
        elif wire_type == _WIRE_LEN:
            length, pos = read_varint(buf, pos)
            if pos + length > len(buf):
                raise ValueError("truncated length-delimited field")
            value = buf[pos:pos + length]
            pos += length
        else:
            raise ValueError(f"unexpected wire type {wire_type}")
        yield field_no, wire_type, value


def _decode_pb_link(buf: memoryview) -> Link:
    cid: RawCid | None = None
    name: str | None = None
    size: int | None = None
    for field_no, wire_type, value in _iter_fields(buf):
        if field_no == 1 and wire_type == _WIRE_LEN:
            cid, end = parse_cid_bytes(value)
            if end != len(value):
                raise ValueError("trailing bytes after link hash")
        elif field_no == 2 and wire_type == _WIRE_LEN:
            name = bytes(value).decode("utf-8")
        elif field_no == 3 and wire_type == _WIRE_VARINT:
            size = value
        else:
            raise ValueError(f"unexpected PBLink field {field_no}")
    if cid is None:
        raise ValueError("PBLink missing Hash")
    return Link(cid=cid, name=name, size=size)


def _decode_dag_pb(data: bytes) -> DecodedNode:
    links: list[Link] = []
    node_data: bytes | None = None
    for field_no, wire_type, value in _iter_fields(memoryview(data)):
        if field_no == 2 and wire_type == _WIRE_LEN:
            links.append(_decode_pb_link(value))
        elif field_no == 1 and wire_type == _WIRE_LEN:
            node_data = bytes(value)
        else:
            raise ValueError(f"unexpected PBNode field {field_no}")
    return DecodedNode(codec=CODEC_DAG_PB, links=links, data=node_data, size_annotated=True)


# ── dag-cbor ───────────────────────────────────────────


def _cbor_links(value: Any, out: list[Link]) -> None:
    if isinstance(value, cbor2.CBORTag):
        if value.tag == CBOR_CID_TAG:
            raw = value.value
            if not isinstance(raw, bytes) or not raw or raw[0] != 0x00:
                raise ValueError("malformed CID tag")
            cid, _ = parse_cid_bytes(raw, 1)
            out.append(Link(cid=cid))
        else:
            _cbor_links(value.value, out)
    elif isinstance(value, dict):
        for item in value.values():
            _cbor_links(item, out)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _cbor_links(item, out)


def _decode_dag_cbor(data: bytes) -> DecodedNode:
    value = cbor2.loads(data)
    links: list[Link] = []
    _cbor_links(value, links)
    return DecodedNode(codec=CODEC_DAG_CBOR, links=links, data=value)


DECODERS: dict[int, Decoder] = {
    d.code: d
    for d in (
        Decoder(CODEC_RAW, "raw", _decode_raw),
        Decoder(CODEC_DAG_PB, "dag-pb", _decode_dag_pb),
        Decoder(CODEC_DAG_CBOR, "dag-cbor", _decode_dag_cbor),
    )
}


def get_decoder(codec: int) -> Decoder | None:
    return DECODERS.get(codec)


def decode_block(codec: int, data: bytes) -> DecodedNode | None:
    """Decode a block with its registered decoder, or None if the codec is unknown."""
    decoder = get_decoder(codec)
    if decoder is None:
        log.debug("No decoder registered for codec 0x%x", codec)
        return None
    try:
        return decoder.decode(data)
    except (ValueError, UnicodeDecodeError, cbor2.CBORDecodeError) as exc:
        raise DecodeError(f"{decoder.name} decode failed: {exc}") from exc
