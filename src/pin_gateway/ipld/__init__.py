"""IPLD helpers: CID normalization, CAR validation and DAG sizing."""

from pin_gateway.ipld.car import Block, CarBlockReader, car_stat
from pin_gateway.ipld.cid import RawCid, normalize_cid
from pin_gateway.ipld.codecs import DECODERS, DecodedNode, Link, decode_block, get_decoder
from pin_gateway.ipld.dag_size import cumulative_size, resolve_dag_size

__all__ = [
    "Block", "CarBlockReader", "car_stat",
    "RawCid", "normalize_cid",
    "DECODERS", "DecodedNode", "Link", "decode_block", "get_decoder",
    "cumulative_size", "resolve_dag_size",
]
