"""Pin placement: status aggregation, reconciliation, uploads and pin requests."""

from pin_gateway.pins.reconcile import PinReconciler
from pin_gateway.pins.service import PinService
from pin_gateway.pins.status import aggregate_pins, aggregate_status, is_ok, to_pins
from pin_gateway.pins.upload import UploadOrchestrator

__all__ = [
    "PinReconciler", "PinService", "UploadOrchestrator",
    "aggregate_pins", "aggregate_status", "is_ok", "to_pins",
]
