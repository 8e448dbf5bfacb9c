"""CAR (Content Addressable aRchive) streaming reader and validator.

A CARv1 is a varint-prefixed dag-cbor header `{roots: [CID], version: 1}`
followed by varint-prefixed sections of `CID || block bytes`. A CARv2 wraps a
CARv1 payload behind a fixed pragma and a 40 byte header; the reader unwraps
it and streams the inner payload.
"""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator

import cbor2

from pin_gateway.errors import (
    BlockTooLargeError,
    EmptyArchiveError,
    IncompleteDagError,
    MalformedArchiveError,
    MissingRootBlockError,
    MissingRootError,
    TooManyRootsError,
)
from pin_gateway.ipld.cid import RawCid, parse_cid_bytes
from pin_gateway.ipld.codecs import CBOR_CID_TAG, decode_block
from pin_gateway.ipld.dag_size import cumulative_size
from pin_gateway.models.config import MAX_BLOCK_SIZE
from pin_gateway.models.records import DagStat

log = logging.getLogger(__name__)

MAX_HEADER_SIZE = 1 << 20
_CID_PREFIX_MAX = 256
_V2_HEADER = struct.Struct("<16sQQQ")  # characteristics, data offset, data size, index offset


@dataclass(frozen=True)
class Block:
    cid: RawCid
    data: bytes


class CarBlockReader:
    """Reads a CAR one section at a time without buffering the archive.

    `roots` is available after construction. Iterating yields `Block`s in
    stream order. Malformed input raises MalformedArchiveError; a block over
    `max_block_size` raises BlockTooLargeError before its bytes are read.
    """

    def __init__(self, stream: BinaryIO, max_block_size: int | None = None) -> None:
        self._stream = stream
        self._max_block_size = max_block_size
        self._pos = 0
        self._limit: int | None = None
        self.version, self.roots = self._read_header()

    # ── Low level reads ───────────────────────────────────

    def _read(self, n: int) -> bytes:
        if self._limit is not None and self._pos + n > self._limit:
            raise MalformedArchiveError("section runs past the CARv2 data payload")
        data = self._stream.read(n)
        if len(data) != n:
            raise MalformedArchiveError(f"unexpected end of archive at byte {self._pos + len(data)}")
        self._pos += n
        return data

    def _at_end(self) -> bool:
        if self._limit is not None:
            return self._pos >= self._limit
        return False

    def _read_varint(self, allow_eof: bool = False) -> int | None:
        value = 0
        shift = 0
        for i in range(9):
            if i == 0 and (allow_eof and self._at_end()):
                return None
            byte = self._stream.read(1)
            if not byte:
                if i == 0 and allow_eof:
                    return None
                raise MalformedArchiveError("truncated varint")
            self._pos += 1
            b = byte[0]
            value |= (b & 0x7F) << shift
            if not b & 0x80:
                return value
            shift += 7
        raise MalformedArchiveError("varint too long")

    # ── Header ────────────────────────────────────────────

    def _decode_header(self) -> dict:
        length = self._read_varint()
        if not length or length > MAX_HEADER_SIZE:
            raise MalformedArchiveError(f"invalid header length {length}")
        try:
            header = cbor2.loads(self._read(length))
        except (cbor2.CBORDecodeError, ValueError) as exc:
            raise MalformedArchiveError(f"invalid header: {exc}") from exc
        if not isinstance(header, dict) or not isinstance(header.get("version"), int):
            raise MalformedArchiveError("invalid header: missing version")
        return header

    def _read_header(self) -> tuple[int, list[RawCid]]:
        header = self._decode_header()
        version = header["version"]
        if version == 2:
            _characteristics, data_offset, data_size, _index = _V2_HEADER.unpack(
                self._read(_V2_HEADER.size)
            )
            if data_offset < self._pos:
                raise MalformedArchiveError("CARv2 data offset overlaps header")
            self._read(data_offset - self._pos)
            self._limit = data_offset + data_size
            header = self._decode_header()
            if header["version"] != 1:
                raise MalformedArchiveError("CARv2 payload is not a CARv1")
        elif version != 1:
            raise MalformedArchiveError(f"unsupported CAR version {version}")

        roots = header.get("roots") or []
        if not isinstance(roots, list):
            raise MalformedArchiveError("invalid header: roots is not a list")
        return version, [self._root_cid(r) for r in roots]

    @staticmethod
    def _root_cid(value) -> RawCid:
        if not isinstance(value, cbor2.CBORTag) or value.tag != CBOR_CID_TAG:
            raise MalformedArchiveError("invalid header: root is not a CID")
        raw = value.value
        if not isinstance(raw, bytes) or not raw or raw[0] != 0x00:
            raise MalformedArchiveError("invalid header: malformed root CID")
        try:
            cid, end = parse_cid_bytes(raw, 1)
        except ValueError as exc:
            raise MalformedArchiveError(f"invalid root CID: {exc}") from exc
        if end != len(raw):
            raise MalformedArchiveError("invalid header: trailing bytes in root CID")
        return cid

    # ── Sections ──────────────────────────────────────────

    def __iter__(self) -> Iterator[Block]:
        while True:
            length = self._read_varint(allow_eof=True)
            if length is None:
                return
            if length == 0:
                raise MalformedArchiveError("zero length section")
            yield self._read_section(length)

    def _read_section(self, length: int) -> Block:
        head = self._read(min(length, _CID_PREFIX_MAX))
        try:
            cid, cid_end = parse_cid_bytes(head)
        except ValueError as exc:
            raise MalformedArchiveError(f"invalid block CID: {exc}") from exc
        block_size = length - cid_end
        if self._max_block_size is not None and block_size > self._max_block_size:
            raise BlockTooLargeError(block_size, self._max_block_size)
        data = head[cid_end:] + self._read(length - len(head))
        return Block(cid=cid, data=data)


def car_stat(source: bytes | BinaryIO, max_block_size: int = MAX_BLOCK_SIZE) -> DagStat:
    """Validate a CAR and return the sum of its block sizes and block count.

    Where the root is dag-pb, `size` is the cumulative size of the full DAG
    (root bytes plus declared link sizes), even if the CAR is a partial shard.

    Raises if the CAR does not conform:
    - missing root CIDs, or more than one
    - any block bigger than `max_block_size`
    - no blocks, or the root block is absent
    - a single-block CAR whose root has links
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(bytes(source))

    reader = CarBlockReader(source, max_block_size=max_block_size)
    if not reader.roots:
        raise MissingRootError()
    if len(reader.roots) > 1:
        raise TooManyRootsError(len(reader.roots))
    root_cid = reader.roots[0]

    root_bytes: bytes | None = None
    blocks = 0
    size = 0
    for block in reader:
        block_size = len(block.data)
        if block_size > max_block_size:
            raise BlockTooLargeError(block_size, max_block_size)
        if root_bytes is None and block.cid.raw == root_cid.raw:
            root_bytes = block.data
        size += block_size
        blocks += 1

    if blocks == 0:
        raise EmptyArchiveError()
    if root_bytes is None:
        raise MissingRootBlockError()

    node = decode_block(root_cid.codec, root_bytes)
    if node is not None:
        # A root with links needs at least one more block in the CAR.
        if blocks == 1 and node.links:
            raise IncompleteDagError()
        if node.size_annotated:
            size = cumulative_size(root_bytes, node.links)

    log.debug("car_stat root=%s size=%d blocks=%d", root_cid, size, blocks)
    return DagStat(size=size, blocks=blocks)
