"""DAG size resolution from a root node and its declared link sizes."""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable

from pin_gateway.errors import MissingRootBlockError
from pin_gateway.ipld.cid import cid_codec, normalize_cid
from pin_gateway.ipld.codecs import decode_block

BlockGetter = Callable[[str], Awaitable["bytes | None"]]
SizeLookup = Callable[[str], Awaitable["int | None"]]


def cumulative_size(node_bytes: bytes, links: Iterable) -> int:
    """The size of a node plus the declared size of each link.

    Declared sizes (dag-pb Tsize) are optional producer-supplied metadata and
    may be missing or wrong. This matches how go/js-ipfs report the
    cumulative size of a dag-pb DAG.
    """
    return len(node_bytes) + sum(link.size or 0 for link in links)


async def resolve_dag_size(
    root_cid: str,
    get_block: BlockGetter,
    get_declared_size: SizeLookup | None = None,
) -> int:
    """Compute the cumulative size of a DAG whose blocks are available locally.

    dag-pb nodes report their own length plus declared link sizes; links
    without a declared size are resolved with `get_declared_size` when given.
    Other registered codecs sum the distinct reachable blocks. Unknown codecs
    report the root block's own length.
    """
    root = normalize_cid(root_cid)
    seen: set[str] = set()

    async def _declared(cid: str) -> int:
        if get_declared_size is None:
            return 0
        return await get_declared_size(cid) or 0

    async def _size_of(cid: str, codec: int, is_root: bool = False) -> int:
        seen.add(cid)
        data = await get_block(cid)
        if data is None:
            if is_root:
                raise MissingRootBlockError()
            return await _declared(cid)

        node = decode_block(codec, data)
        if node is None or not node.links:
            return len(data)

        if node.size_annotated:
            total = len(data)
            for link in node.links:
                if link.size is not None:
                    total += link.size
                else:
                    total += await _declared(str(link.cid))
            return total

        total = len(data)
        for link in node.links:
            child = str(link.cid)
            if child not in seen:
                total += await _size_of(child, link.cid.codec)
        return total

    return await _size_of(root, cid_codec(root), is_root=True)
