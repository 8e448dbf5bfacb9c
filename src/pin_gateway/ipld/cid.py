"""Content identifier parsing and normalization."""

from __future__ import annotations

from dataclasses import dataclass

from multiformats import CID

from pin_gateway.errors import InvalidIdentifierError

CODEC_RAW = 0x55
CODEC_DAG_PB = 0x70
CODEC_DAG_CBOR = 0x71

_V0_PREFIX = b"\x12\x20"  # sha2-256, 32 byte digest
_V0_LENGTH = 34
_MAX_VARINT_BYTES = 9


def normalize_cid(cid: str) -> str:
    """Return the CIDv1 base32 form of any supported CID string.

    Two CIDs with different multibase encodings or versions but the same
    codec and multihash normalize to the same string. Idempotent.
    """
    try:
        parsed = CID.decode(cid)
        return str(parsed.set(base="base32", version=1))
    except Exception as exc:
        raise InvalidIdentifierError(cid) from exc


def cid_codec(cid: str) -> int:
    """Multicodec code of a CID string."""
    try:
        return CID.decode(cid).codec.code
    except Exception as exc:
        raise InvalidIdentifierError(cid) from exc


def read_varint(buf: bytes | memoryview, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned LEB128 varint. Returns (value, next_offset)."""
    value = 0
    shift = 0
    for i in range(_MAX_VARINT_BYTES):
        pos = offset + i
        if pos >= len(buf):
            raise ValueError("truncated varint")
        byte = buf[pos]
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, pos + 1
        shift += 7
    raise ValueError("varint too long")


@dataclass(frozen=True)
class RawCid:
    """A binary CID as it appears inside CAR sections and IPLD links."""

    version: int
    codec: int
    raw: bytes

    def __str__(self) -> str:
        return str(CID.decode(self.raw).set(base="base32", version=1))


def parse_cid_bytes(buf: bytes | memoryview, offset: int = 0) -> tuple[RawCid, int]:
    """Decode a binary CID starting at `offset`. Returns (cid, next_offset).

    Raises ValueError on malformed input.
    """
    if bytes(buf[offset:offset + 2]) == _V0_PREFIX:
        end = offset + _V0_LENGTH
        if end > len(buf):
            raise ValueError("truncated CIDv0")
        return RawCid(0, CODEC_DAG_PB, bytes(buf[offset:end])), end

    version, pos = read_varint(buf, offset)
    if version != 1:
        raise ValueError(f"unsupported CID version {version}")
    codec, pos = read_varint(buf, pos)
    _hash_code, pos = read_varint(buf, pos)
    digest_len, pos = read_varint(buf, pos)
    end = pos + digest_len
    if end > len(buf):
        raise ValueError("truncated multihash digest")
    return RawCid(version, codec, bytes(buf[offset:end])), end
