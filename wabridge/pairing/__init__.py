"""Pairing of WhatsApp numbers."""

from wabridge.pairing.backend import (
    DEFAULT_QR_URL_TEMPLATE,
    ManualPairingBackend,
    PairingBackend,
    TimerPairingBackend,
)
from wabridge.pairing.coordinator import PairingCoordinator

__all__ = [
    "DEFAULT_QR_URL_TEMPLATE",
    "PairingBackend",
    "TimerPairingBackend",
    "ManualPairingBackend",
    "PairingCoordinator",
]
