"""Live inventory sources."""
from .base import (
    ControllerClient,
    Devices,
    Inventory,
    Observation,
    Site,
    SourceFetchFailed,
)
from .unifi import UnifiController

__all__ = [
    "ControllerClient",
    "Devices",
    "Inventory",
    "Observation",
    "Site",
    "SourceFetchFailed",
    "UnifiController",
]
