# tests/conftest.py
"""Shared pytest fixtures for brewnode supervisor tests.

Foundation components are tested with real dependencies wherever
possible: a real stepped clock, the real registry and the in-process
simulated controller. ScriptedTransport is used where a test needs to
dictate the exact payload of a tick.
"""

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest
import yaml

from brewnode.equipment.registry import DEFAULT_REGISTRY, EquipmentRegistry
from brewnode.errors import TransportError
from brewnode.supervisor.brew_supervisor import BrewSupervisor
from brewnode.time.supervisor_clock import ClockMode, SupervisorClock
from brewnode.transport.base import BrewTransport
from brewnode.transport.simulated_controller import SimulatedBrewController


# ----------------------------------------------------------------
# Transport double
# ----------------------------------------------------------------
class ScriptedTransport(BrewTransport):
    """Transport whose telemetry and command outcomes are set by the test.

    Attributes:
        payload: Returned by every fetch_telemetry() call
        fetch_errors: Raised (and consumed) by fetch_telemetry() before
            payload is returned
        command_error: Raised by every send_command() call while set
        commands: (path, params) of every command received
    """

    def __init__(self, payload: Sequence[Any] | None = None):
        self.payload: Sequence[Any] = list(payload or [])
        self.fetch_errors: list[TransportError] = []
        self.command_error: TransportError | None = None
        self.commands: list[tuple[str, dict[str, str]]] = []
        self.fetch_count = 0
        self.closed = False
        self.on_fetch: Callable[[], Any] | None = None

    async def fetch_telemetry(self) -> Sequence[Any]:
        self.fetch_count += 1
        if self.on_fetch is not None:
            await self.on_fetch()
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        return list(self.payload)

    async def send_command(self, path: str, params: Mapping[str, str]) -> Any:
        self.commands.append((path, dict(params)))
        if self.command_error is not None:
            raise self.command_error
        return {"status": "ok"}

    async def close(self) -> None:
        self.closed = True


def power_payload(
    fan: float = 0.0,
    glycol_heater: float = 0.0,
    glycol_chiller: float = 0.0,
    kettle_heater: float = 0.0,
    named: Sequence[Any] = (),
    tail: Sequence[Any] = (),
) -> list[Any]:
    """Payload laid out like the controller's.

    Up to nine named records fill indexes 0-8 (blanks pad the rest),
    positional power follows at 9-12, then any tail records.
    """
    if len(named) > 9:
        raise ValueError("at most nine named records fit before index 9")
    records: list[Any] = list(named)
    records.extend([""] * (9 - len(records)))
    records.extend([fan, glycol_heater, glycol_chiller, kettle_heater])
    records.extend(tail)
    return records


# ----------------------------------------------------------------
# Clock and registry fixtures
# ----------------------------------------------------------------
@pytest.fixture
def stepped_clock() -> SupervisorClock:
    """Clock that only advances when the test steps it."""
    return SupervisorClock(mode=ClockMode.STEPPED)


@pytest.fixture
def registry() -> EquipmentRegistry:
    return DEFAULT_REGISTRY


# ----------------------------------------------------------------
# Transport fixtures
# ----------------------------------------------------------------
@pytest.fixture
def make_payload() -> Callable[..., list[Any]]:
    """Factory for controller-shaped payloads (see power_payload)."""
    return power_payload


@pytest.fixture
def scripted_transport() -> ScriptedTransport:
    return ScriptedTransport(power_payload())


@pytest.fixture
def controller(stepped_clock) -> SimulatedBrewController:
    """Simulated controller with a 0.5s actuation delay."""
    return SimulatedBrewController(stepped_clock, actuation_delay_s=0.5)


# ----------------------------------------------------------------
# Supervisor fixtures
# ----------------------------------------------------------------
@pytest.fixture
async def supervisor(scripted_transport, stepped_clock):
    """Supervisor over a scripted transport; polled manually via poll_once()."""
    sup = BrewSupervisor(scripted_transport, stepped_clock)
    yield sup
    await sup.stop()


@pytest.fixture
async def simulated_supervisor(controller, stepped_clock):
    """Supervisor over the simulated controller."""
    sup = BrewSupervisor(controller, stepped_clock)
    yield sup
    await sup.stop()


# ----------------------------------------------------------------
# Configuration fixtures
# ----------------------------------------------------------------
@pytest.fixture
def temp_config_dir(tmp_path) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def write_yaml(temp_config_dir) -> Callable[[str, dict], Path]:
    """Write a YAML file into the temporary config directory."""

    def _write(name: str, data: dict) -> Path:
        path = temp_config_dir / name
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)
        return path

    return _write
