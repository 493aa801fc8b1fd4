# brewnode/transport/__init__.py
"""Controller transports."""

from brewnode.transport.base import BrewTransport
from brewnode.transport.simulated_controller import (
    DISCONNECTED_SENSOR_VALUE,
    SimulatedBrewController,
)

__all__ = ["BrewTransport", "SimulatedBrewController", "DISCONNECTED_SENSOR_VALUE"]
