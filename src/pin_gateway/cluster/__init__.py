"""Pinning cluster client."""

from pin_gateway.cluster.client import IpfsClusterClient

__all__ = ["IpfsClusterClient"]
