# brewnode/transport/simulated_controller.py
"""
In-process simulated rig controller.

Behaves like the real controller as seen from the supervisor:
- Commands are acknowledged immediately but only take effect after an
  actuation delay on the supervisor clock
- Telemetry uses the controller's inconsistent wire format: named records,
  positional power numbers at indexes 9-12, blank placeholders, string
  valve states and duplicate aliases for the same equipment
- Temperatures drift towards their targets while heaters and the glycol
  chiller run

Fault injection:
- disconnect_sensor(): sensor reports the -273 sentinel
- fail_next_commands(): commands raise TransportError
- drop_telemetry(): sensor status requests raise TransportError
- set_stuck(): unit acknowledges commands but never actuates
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from brewnode.equipment.registry import (
    DEFAULT_REGISTRY,
    EquipmentRegistry,
    EquipmentUnit,
)
from brewnode.errors import TransportError
from brewnode.time.supervisor_clock import SupervisorClock
from brewnode.transport.base import BrewTransport

logger = logging.getLogger(__name__)

__all__ = [
    "SimulatedBrewController",
    "ScheduledActuation",
    "DISCONNECTED_SENSOR_VALUE",
    "DEFAULT_POWER_DRAW",
    "DEFAULT_TEMPERATURES",
]

DISCONNECTED_SENSOR_VALUE = -273.0

# Power draw reported while a unit is on (watts)
DEFAULT_POWER_DRAW: dict[str, float] = {
    "fan": 40.0,
    "kettlePump": 25.0,
    "mashPump": 25.0,
    "glycolPump": 18.0,
    "kettleHeater": 3500.0,
    "glycolHeater": 300.0,
    "glycolChiller": 550.0,
}

DEFAULT_TEMPERATURES: dict[str, float] = {
    "tempKettle": 18.0,
    "tempMash": 18.0,
    "tempFermenter": 19.5,
    "tempGlycol": 4.0,
    "tempAmbient": 18.0,
}

# Degrees per second while the driving unit runs
KETTLE_HEAT_RATE = 0.05
GLYCOL_HEAT_RATE = 0.02
GLYCOL_CHILL_RATE = 0.03
AMBIENT_DRIFT_RATE = 0.001
BOIL_TEMPERATURE = 100.0
GLYCOL_FLOOR = -4.0


@dataclass
class ScheduledActuation:
    """Command acknowledged but not yet applied."""

    unit_key: str
    turn_on: bool
    apply_at: float


class SimulatedBrewController(BrewTransport):
    """
    Simulated controller backed by the supervisor clock.

    Example:
        >>> controller = SimulatedBrewController(clock, actuation_delay_s=0.5)
        >>> await controller.send_command("/fan", {"onOff": "On"})
        >>> await clock.step(0.5)
        >>> payload = await controller.fetch_telemetry()
    """

    def __init__(
        self,
        clock: SupervisorClock,
        registry: EquipmentRegistry = DEFAULT_REGISTRY,
        actuation_delay_s: float = 0.5,
        power_draw: Mapping[str, float] | None = None,
        temperatures: Mapping[str, float] | None = None,
    ):
        if actuation_delay_s < 0:
            raise ValueError(
                f"actuation_delay_s must be >= 0, got {actuation_delay_s}"
            )

        self.clock = clock
        self.registry = registry
        self.actuation_delay_s = actuation_delay_s
        self.power_draw = dict(DEFAULT_POWER_DRAW if power_draw is None else power_draw)
        self.temperatures = {**DEFAULT_TEMPERATURES, **(temperatures or {})}

        self._routes: dict[str, EquipmentUnit] = {
            unit.command.path: unit for unit in registry.controllable_units()
        }
        self.unit_states: dict[str, bool] = {
            unit.key: False for unit in self._routes.values()
        }
        self._scheduled: dict[str, ScheduledActuation] = {}
        self._last_update = clock.now()

        # Fault injection
        self._disconnected: set[str] = set()
        self._stuck: set[str] = set()
        self._failing_commands = 0
        self._failing_polls = 0
        self.failure_status = 503

        # Diagnostics
        self.command_log: list[tuple[float, str, dict[str, str]]] = []
        self.telemetry_requests = 0

    # ----------------------------------------------------------------
    # Transport interface
    # ----------------------------------------------------------------

    async def send_command(self, path: str, params: Mapping[str, str]) -> Any:
        now = self.clock.now()
        self.command_log.append((now, path, dict(params)))

        if self._failing_commands > 0:
            self._failing_commands -= 1
            raise TransportError(
                f"Controller rejected {path}",
                status_code=self.failure_status,
                body={"error": "controller unavailable"},
            )

        unit = self._routes.get(path)
        if unit is None:
            raise TransportError(
                f"Unknown command endpoint {path}",
                status_code=404,
                body={"error": "not found"},
            )

        route = unit.command
        value = params.get(route.param)
        if value == route.on_value:
            turn_on = True
        elif value == route.off_value:
            turn_on = False
        else:
            raise TransportError(
                f"Bad {route.param} value {value!r} for {path}",
                status_code=400,
                body={"error": "bad request"},
            )

        self._advance(now)

        if unit.key in self._stuck:
            logger.debug(f"Unit {unit.key} is stuck, ignoring command")
        else:
            self._scheduled[unit.key] = ScheduledActuation(
                unit_key=unit.key,
                turn_on=turn_on,
                apply_at=now + self.actuation_delay_s,
            )

        return {"status": "ok", "path": path, route.param: value}

    async def fetch_telemetry(self) -> Sequence[Any]:
        self.telemetry_requests += 1

        if self._failing_polls > 0:
            self._failing_polls -= 1
            raise TransportError(
                "Sensor status request failed",
                status_code=self.failure_status,
                body=None,
            )

        self._advance(self.clock.now())
        return self.build_payload()

    # ----------------------------------------------------------------
    # Simulation
    # ----------------------------------------------------------------

    def _advance(self, now: float) -> None:
        """Apply due actuations and integrate temperatures up to now."""
        for unit_key, actuation in list(self._scheduled.items()):
            if actuation.apply_at <= now:
                self.unit_states[unit_key] = actuation.turn_on
                del self._scheduled[unit_key]
                logger.debug(
                    f"Actuated {unit_key} -> {'on' if actuation.turn_on else 'off'}"
                )

        dt = max(0.0, now - self._last_update)
        self._last_update = now
        if dt > 0:
            self._update_temperatures(dt)

    def _update_temperatures(self, dt: float) -> None:
        ambient = self.temperatures.get("tempAmbient", 18.0)

        if "tempKettle" in self.temperatures:
            kettle = self.temperatures["tempKettle"]
            if self.unit_states.get("kettleHeater"):
                kettle = min(BOIL_TEMPERATURE, kettle + KETTLE_HEAT_RATE * dt)
            else:
                kettle += (ambient - kettle) * AMBIENT_DRIFT_RATE * dt
            self.temperatures["tempKettle"] = kettle

        if "tempGlycol" in self.temperatures:
            glycol = self.temperatures["tempGlycol"]
            if self.unit_states.get("glycolChiller"):
                glycol = max(GLYCOL_FLOOR, glycol - GLYCOL_CHILL_RATE * dt)
            if self.unit_states.get("glycolHeater"):
                glycol += GLYCOL_HEAT_RATE * dt
            self.temperatures["tempGlycol"] = glycol

    def _reading_for(self, unit_key: str) -> float:
        if not self.unit_states.get(unit_key):
            return 0.0
        return self.power_draw.get(unit_key, 1.0)

    def _temperature(self, key: str) -> float:
        if key in self._disconnected:
            return DISCONNECTED_SENSOR_VALUE
        return round(self.temperatures[key], 2)

    def _valve_state(self, unit_key: str) -> str:
        return "Open" if self.unit_states.get(unit_key) else "Closed"

    def build_payload(self) -> list[Any]:
        """
        Build a sensor status payload in the controller's wire format.

        Layout:
            0-4   named temperatures
            5-7   named pump power
            8     blank placeholder
            9-12  positional power (fan, glycol heater, glycol chiller,
                  kettle heater)
            13-16 named valve states
            17-18 duplicate valve aliases
            19    null placeholder
            20    duplicate named fan record
        """
        temperature_names = {
            "tempKettle": "Temp Kettle",
            "tempMash": "Temp Mash",
            "tempFermenter": "Temp Fermenter",
            "tempGlycol": "Temp Glycol",
            "tempAmbient": "Temp Ambient",
        }
        payload: list[Any] = [
            {"name": name, "value": self._temperature(key)}
            for key, name in temperature_names.items()
        ]

        payload.extend(
            [
                {"name": "Pump Kettle", "value": self._reading_for("kettlePump")},
                {"name": "Pump Mash", "value": self._reading_for("mashPump")},
                {"name": "Pump Glycol", "value": self._reading_for("glycolPump")},
                "",
                self._reading_for("fan"),
                self._reading_for("glycolHeater"),
                self._reading_for("glycolChiller"),
                self._reading_for("kettleHeater"),
                {"name": "Valve Kettle-in", "value": self._valve_state("kettleIn")},
                {"name": "Valve Mash-in", "value": self._valve_state("mashIn")},
                {
                    "name": "Valve Chill Wort-in",
                    "value": self._valve_state("chillWortIn"),
                },
                {
                    "name": "Valve Chill Wort-out",
                    "value": self._valve_state("chillWortOut"),
                },
                {"name": "mashInValve", "value": self._valve_state("mashIn")},
                {"name": "kettleInValve", "value": self._valve_state("kettleIn")},
                None,
                {"name": "Fan", "value": self._reading_for("fan")},
            ]
        )
        return payload

    # ----------------------------------------------------------------
    # Fault injection
    # ----------------------------------------------------------------

    def disconnect_sensor(self, key: str) -> None:
        if key not in self.temperatures:
            raise ValueError(f"Unknown temperature sensor: {key}")
        self._disconnected.add(key)

    def reconnect_sensor(self, key: str) -> None:
        self._disconnected.discard(key)

    def fail_next_commands(self, count: int = 1, status_code: int = 503) -> None:
        self._failing_commands = count
        self.failure_status = status_code

    def drop_telemetry(self, count: int = 1, status_code: int = 503) -> None:
        self._failing_polls = count
        self.failure_status = status_code

    def set_stuck(self, unit_key: str, stuck: bool = True) -> None:
        """Make a unit acknowledge commands without actuating."""
        unit = self.registry.get(unit_key)
        if stuck:
            self._stuck.add(unit.key)
            self._scheduled.pop(unit.key, None)
        else:
            self._stuck.discard(unit.key)

    def force_state(self, unit_key: str, is_on: bool) -> None:
        """Change a unit's state directly, as if operated at the rig."""
        unit = self.registry.get(unit_key)
        self.unit_states[unit.key] = is_on
        self._scheduled.pop(unit.key, None)

    def get_status(self) -> dict[str, Any]:
        return {
            "unit_states": dict(self.unit_states),
            "temperatures": dict(self.temperatures),
            "pending_actuations": sorted(self._scheduled),
            "disconnected_sensors": sorted(self._disconnected),
            "stuck_units": sorted(self._stuck),
            "commands_received": len(self.command_log),
            "telemetry_requests": self.telemetry_requests,
        }

