# brewnode/supervisor/status_summary.py
"""
Operator-facing status summary and labels.

Quick-status figures (sensor count, active pumps, open valves, fan) and
the text shown for temperatures and equipment, including sensor fault
labels such as 'Error (-273.0°C)'.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from brewnode.control.reconciler import DisplayState
from brewnode.equipment.registry import (
    DEFAULT_REGISTRY,
    EquipmentRegistry,
    SensorCategory,
)
from brewnode.telemetry.normalizer import CanonicalReading, TelemetrySnapshot

__all__ = [
    "StatusSummary",
    "summarize",
    "format_temperature",
    "format_equipment",
    "PENDING_LABEL",
]

PENDING_LABEL = "Updating..."


@dataclass(frozen=True)
class StatusSummary:
    """Quick-status figures for one frame."""

    temperature_sensors: int
    active_pumps: int
    open_valves: int
    fan_on: bool
    fan_power_watts: float | None
    pending_units: tuple[str, ...]
    sensor_faults: tuple[str, ...]
    fan_label: str

    def to_dict(self) -> dict:
        return {
            "temperature_sensors": self.temperature_sensors,
            "active_pumps": self.active_pumps,
            "open_valves": self.open_valves,
            "fan": self.fan_label,
            "pending_units": list(self.pending_units),
            "sensor_faults": list(self.sensor_faults),
        }


def _watts(power: float | None) -> str:
    if power is None or power <= 0:
        return ""
    return f" ({power:g}W)"


def format_temperature(reading: CanonicalReading | None) -> str:
    """
    Label for a temperature reading.

    '65.2°C' for a good reading, 'Error (-273.0°C)' when the sensor
    reported a fault value, 'Error' when there is no reading at all.
    """
    if reading is not None and reading.value is not None:
        return f"{reading.value:.1f}°C"
    if reading is not None and reading.raw_error_value is not None:
        return f"Error ({reading.raw_error_value:.1f}°C)"
    return "Error"


def format_equipment(display: DisplayState, category: SensorCategory) -> str:
    """Label for a unit: 'Updating...', 'On (40W)', 'Off', 'Open' or 'Closed'."""
    if display.is_pending:
        return PENDING_LABEL
    if category == SensorCategory.VALVE:
        return f"Open{_watts(display.power_watts)}" if display.is_on else "Closed"
    return f"On{_watts(display.power_watts)}" if display.is_on else "Off"


def summarize(
    snapshot: TelemetrySnapshot,
    display_states: Mapping[str, DisplayState],
    registry: EquipmentRegistry = DEFAULT_REGISTRY,
) -> StatusSummary:
    """Build quick-status figures from a snapshot and its display states."""
    active_pumps = 0
    open_valves = 0
    fan_display: DisplayState | None = None

    for unit_key, display in display_states.items():
        if unit_key not in registry:
            continue
        category = registry.get(unit_key).category
        if category == SensorCategory.PUMP and display.is_on:
            active_pumps += 1
        elif category == SensorCategory.VALVE and display.is_on:
            open_valves += 1
        elif category == SensorCategory.FAN and fan_display is None:
            fan_display = display

    if fan_display is None:
        fan_label = "Off"
    elif fan_display.is_pending:
        fan_label = PENDING_LABEL
    elif fan_display.is_on:
        fan_label = f"On{_watts(fan_display.power_watts)}"
    else:
        fan_label = "Off (0W)"

    return StatusSummary(
        temperature_sensors=len(snapshot.by_category(SensorCategory.TEMPERATURE)),
        active_pumps=active_pumps,
        open_valves=open_valves,
        fan_on=bool(fan_display and fan_display.is_on),
        fan_power_watts=fan_display.power_watts if fan_display else None,
        pending_units=tuple(
            sorted(key for key, d in display_states.items() if d.is_pending)
        ),
        sensor_faults=tuple(r.key for r in snapshot.sensor_faults()),
        fan_label=fan_label,
    )
