"""IPFS node access."""

from pin_gateway.ipfs.exporter import KuboDagExporter

__all__ = ["KuboDagExporter"]
