"""pin_gateway - pinning gateway for content-addressed data."""

__version__ = "0.1.0"
