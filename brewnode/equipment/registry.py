# brewnode/equipment/registry.py
"""
Static equipment registry for the brewing rig.

The controller reports the same physical unit under several names
("Valve Mash-in", "mashInValve", "valveMashIn"). This table is the single
place where those spellings are tied to one canonical identity:
- Canonical unit key (used for commands and display state)
- Reading key (the snapshot key the unit's telemetry lands under)
- Category (temperature, pump, valve, heater, fan)
- Alias rules (exact names, then ordered regex fallbacks)
- Command route (controller path and parameter values)

Matching runs on the compacted name: lowercase, alphanumerics only.
Exact aliases across all units are tried first; regex patterns are then
tried unit by unit in table order and the first match wins. Names that
mention a temperature only fall back to temperature sensor patterns.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from brewnode.errors import UnknownEquipmentError

logger = logging.getLogger(__name__)

__all__ = [
    "SensorCategory",
    "CommandRoute",
    "EquipmentUnit",
    "Resolution",
    "EquipmentRegistry",
    "DEFAULT_UNITS",
    "DEFAULT_REGISTRY",
    "compact_name",
    "unit_from_config",
]

_NON_ALNUM = re.compile(r"[^0-9a-z]")


def compact_name(raw_name: str) -> str:
    """Lowercase a raw name and strip everything but letters and digits."""
    return _NON_ALNUM.sub("", raw_name.lower())


class SensorCategory(Enum):
    """Category of a canonical reading."""

    TEMPERATURE = "temperature"
    PUMP = "pump"
    VALVE = "valve"
    HEATER = "heater"
    FAN = "fan"
    OTHER = "other"  # generic key, no registry entry


@dataclass(frozen=True)
class CommandRoute:
    """Controller endpoint used to switch a unit on or off.

    Attributes:
        path: Controller path (e.g. '/pump/mash')
        param: Query parameter carrying the requested state
        on_value: Parameter value for 'on'
        off_value: Parameter value for 'off'
    """

    path: str
    param: str = "onOff"
    on_value: str = "On"
    off_value: str = "Off"

    def params_for(self, desired_on: bool) -> dict[str, str]:
        """Build request parameters for the requested state."""
        return {self.param: self.on_value if desired_on else self.off_value}


@dataclass(frozen=True)
class EquipmentUnit:
    """One physical unit (or sensor) on the rig.

    Attributes:
        key: Canonical unit key, camelCase
        category: Sensor category
        aliases: Exact raw names that identify this unit
        patterns: Regex fallbacks, searched against the compacted name
        on_threshold: Reading value above which the unit counts as on
        reading_key: Snapshot key for this unit ('' = same as key)
        reports_power: Reading value is a power draw in watts
        command: Command route, None for read-only sensors
    """

    key: str
    category: SensorCategory
    aliases: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    on_threshold: float = 0.0
    reading_key: str = ""
    reports_power: bool = False
    command: CommandRoute | None = None

    def __post_init__(self):
        if not self.key:
            raise ValueError("Equipment key cannot be empty")
        if not self.reading_key:
            object.__setattr__(self, "reading_key", self.key)

    @property
    def controllable(self) -> bool:
        return self.command is not None

    def exact_names(self) -> set[str]:
        """Compacted exact names, including the unit and reading keys."""
        names = {compact_name(alias) for alias in self.aliases}
        names.add(compact_name(self.key))
        names.add(compact_name(self.reading_key))
        return names


@dataclass(frozen=True)
class Resolution:
    """Result of resolving a raw telemetry name."""

    key: str
    category: SensorCategory
    unit: EquipmentUnit


@dataclass
class _CompiledUnit:
    unit: EquipmentUnit
    exact: set[str] = field(default_factory=set)
    patterns: list[re.Pattern] = field(default_factory=list)


class EquipmentRegistry:
    """
    Ordered, immutable lookup table from raw names to equipment units.

    Construction enforces the registry invariants:
    - unit keys are unique
    - reading keys are unique
    - an exact alias belongs to exactly one unit

    Example:
        >>> DEFAULT_REGISTRY.resolve("Valve Mash-in").key
        'mashIn'
        >>> DEFAULT_REGISTRY.resolve("mashInValve").key
        'mashIn'
    """

    def __init__(self, units: Iterable[EquipmentUnit]):
        self._units: dict[str, EquipmentUnit] = {}
        self._by_reading_key: dict[str, EquipmentUnit] = {}
        self._exact: dict[str, EquipmentUnit] = {}
        self._compiled: list[_CompiledUnit] = []

        for unit in units:
            self._add(unit)

        logger.debug(f"Equipment registry built with {len(self._units)} units")

    def _add(self, unit: EquipmentUnit) -> None:
        if unit.key in self._units:
            raise ValueError(f"Duplicate equipment key '{unit.key}'")
        if unit.reading_key in self._by_reading_key:
            raise ValueError(
                f"Reading key '{unit.reading_key}' already used by "
                f"'{self._by_reading_key[unit.reading_key].key}'"
            )

        compiled = _CompiledUnit(unit=unit, exact=unit.exact_names())
        for name in compiled.exact:
            owner = self._exact.get(name)
            if owner is not None:
                raise ValueError(
                    f"Alias '{name}' claimed by both '{owner.key}' and '{unit.key}'"
                )
            self._exact[name] = unit

        try:
            compiled.patterns = [re.compile(p) for p in unit.patterns]
        except re.error as e:
            raise ValueError(f"Invalid alias pattern for '{unit.key}': {e}") from e

        self._units[unit.key] = unit
        self._by_reading_key[unit.reading_key] = unit
        self._compiled.append(compiled)

    # ----------------------------------------------------------------
    # Lookup
    # ----------------------------------------------------------------

    def resolve(self, raw_name: str) -> Resolution | None:
        """
        Resolve a raw telemetry name to its canonical unit.

        Args:
            raw_name: Name as reported by the controller

        Returns:
            Resolution, or None if no unit matches
        """
        compact = compact_name(raw_name)
        if not compact:
            return None

        unit = self._exact.get(compact)
        if unit is None:
            # a temperature sensor named after its unit is still a temperature
            temperature_only = "temp" in compact
            for compiled in self._compiled:
                if (
                    temperature_only
                    and compiled.unit.category != SensorCategory.TEMPERATURE
                ):
                    continue
                if any(p.search(compact) for p in compiled.patterns):
                    unit = compiled.unit
                    break

        if unit is None:
            return None
        return Resolution(key=unit.reading_key, category=unit.category, unit=unit)

    def get(self, unit_key: str) -> EquipmentUnit:
        """Return a unit by canonical key.

        Raises:
            UnknownEquipmentError: If the key is not registered
        """
        unit = self._units.get(unit_key)
        if unit is None:
            raise UnknownEquipmentError(unit_key)
        return unit

    def by_reading_key(self, reading_key: str) -> EquipmentUnit | None:
        return self._by_reading_key.get(reading_key)

    def controllable_units(self) -> list[EquipmentUnit]:
        return [u for u in self._units.values() if u.controllable]

    @property
    def units(self) -> list[EquipmentUnit]:
        return list(self._units.values())

    def extended(self, units: Iterable[EquipmentUnit]) -> "EquipmentRegistry":
        """Return a new registry with extra units appended after these."""
        return EquipmentRegistry([*self._units.values(), *units])

    @classmethod
    def from_config(
        cls,
        entries: list[dict[str, Any]],
        base: Iterable[EquipmentUnit] | None = None,
    ) -> "EquipmentRegistry":
        """Build a registry from the default table plus config entries."""
        units = list(DEFAULT_UNITS if base is None else base)
        units.extend(unit_from_config(entry) for entry in entries)
        return cls(units)

    def __contains__(self, unit_key: object) -> bool:
        return unit_key in self._units

    def __iter__(self) -> Iterator[EquipmentUnit]:
        return iter(self._units.values())

    def __len__(self) -> int:
        return len(self._units)

    def __repr__(self) -> str:
        return f"<EquipmentRegistry units={len(self._units)}>"


def _command_value(value: Any) -> str:
    # YAML 1.1 reads unquoted On/Off as booleans
    if isinstance(value, bool):
        return "On" if value else "Off"
    return str(value)


def unit_from_config(entry: dict[str, Any]) -> EquipmentUnit:
    """
    Build an EquipmentUnit from an equipment.yml entry.

    Args:
        entry: Mapping with key, category and optional aliases, patterns,
            reading_key, on_threshold, reports_power and command

    Raises:
        ValueError: If key or category is missing or invalid
    """
    key = entry.get("key")
    if not key:
        raise ValueError(f"Equipment entry missing 'key': {entry}")

    try:
        category = SensorCategory(entry.get("category", ""))
    except ValueError as e:
        raise ValueError(
            f"Equipment '{key}' has invalid category {entry.get('category')!r}"
        ) from e

    command = None
    command_cfg = entry.get("command")
    if command_cfg:
        command = CommandRoute(
            path=command_cfg["path"],
            param=command_cfg.get("param", "onOff"),
            on_value=_command_value(command_cfg.get("on_value", "On")),
            off_value=_command_value(command_cfg.get("off_value", "Off")),
        )

    return EquipmentUnit(
        key=key,
        category=category,
        aliases=tuple(entry.get("aliases", [])),
        patterns=tuple(entry.get("patterns", [])),
        on_threshold=float(entry.get("on_threshold", 0.0)),
        reading_key=entry.get("reading_key", ""),
        reports_power=bool(entry.get("reports_power", False)),
        command=command,
    )


# ----------------------------------------------------------------
# Reference rig
# ----------------------------------------------------------------

_VALVE = {"on_value": "Open", "off_value": "Close"}

DEFAULT_UNITS: tuple[EquipmentUnit, ...] = (
    # Fan
    EquipmentUnit(
        key="fan",
        category=SensorCategory.FAN,
        reading_key="fanPower",
        aliases=("Fan", "Extractor Fan", "Fan Status"),
        patterns=(r"fan",),
        reports_power=True,
        command=CommandRoute("/fan"),
    ),
    # Pumps
    EquipmentUnit(
        key="kettlePump",
        category=SensorCategory.PUMP,
        aliases=("Pump Kettle", "Kettle Pump"),
        patterns=(r"kettle.*pump", r"pump.*kettle"),
        reports_power=True,
        command=CommandRoute("/pump/kettle"),
    ),
    EquipmentUnit(
        key="mashPump",
        category=SensorCategory.PUMP,
        aliases=("Pump Mash", "Mash Pump"),
        patterns=(r"mash.*pump", r"pump.*mash"),
        reports_power=True,
        command=CommandRoute("/pump/mash"),
    ),
    EquipmentUnit(
        key="glycolPump",
        category=SensorCategory.PUMP,
        aliases=("Pump Glycol", "Glycol Pump"),
        patterns=(r"glycol.*pump", r"pump.*glycol"),
        reports_power=True,
        command=CommandRoute("/pump/glycol"),
    ),
    # Valves
    EquipmentUnit(
        key="kettleIn",
        category=SensorCategory.VALVE,
        aliases=("Valve Kettle-in", "kettleInValve", "valveKettleIn"),
        patterns=(r"kettlein",),
        command=CommandRoute("/valve/kettlein", **_VALVE),
    ),
    EquipmentUnit(
        key="mashIn",
        category=SensorCategory.VALVE,
        aliases=("Valve Mash-in", "mashInValve", "valveMashIn"),
        patterns=(r"mashin",),
        command=CommandRoute("/valve/mashin", **_VALVE),
    ),
    EquipmentUnit(
        key="chillWortIn",
        category=SensorCategory.VALVE,
        aliases=(
            "Valve Chill Wort-in",
            "chillWortInValve",
            "valveChillWortIn",
            "chillerWortIn",
        ),
        patterns=(r"chill(er)?wortin",),
        command=CommandRoute("/valve/chillwortin", **_VALVE),
    ),
    EquipmentUnit(
        key="chillWortOut",
        category=SensorCategory.VALVE,
        aliases=(
            "Valve Chill Wort-out",
            "chillWortOutValve",
            "valveChillWortOut",
            "chillerWortOut",
        ),
        patterns=(r"chill(er)?wortout",),
        command=CommandRoute("/valve/chillwortout", **_VALVE),
    ),
    # Heaters and chillers
    EquipmentUnit(
        key="kettleHeater",
        category=SensorCategory.HEATER,
        reading_key="kettleHeaterPower",
        aliases=("Kettle Heater", "Heat", "Heater"),
        patterns=(r"kettle.*heat", r"heat.*kettle"),
        reports_power=True,
        command=CommandRoute("/heat"),
    ),
    EquipmentUnit(
        key="glycolHeater",
        category=SensorCategory.HEATER,
        reading_key="glycolHeaterPower",
        aliases=("Glycol Heater", "Glycol Heat"),
        patterns=(r"glycol.*heat", r"heat.*glycol"),
        reports_power=True,
        command=CommandRoute("/glycol/heat"),
    ),
    EquipmentUnit(
        key="glycolChiller",
        category=SensorCategory.HEATER,
        reading_key="glycolChillerPower",
        aliases=("Glycol Chiller", "Glycol Chill"),
        patterns=(r"glycol.*chill", r"chill.*glycol"),
        reports_power=True,
        command=CommandRoute("/glycol/chill"),
    ),
    # Temperature sensors (read-only)
    EquipmentUnit(
        key="tempKettle",
        category=SensorCategory.TEMPERATURE,
        aliases=("Temp Kettle", "Kettle Temp", "Kettle Temperature"),
        patterns=(r"^temp(erature)?kettle", r"kettletemp"),
    ),
    EquipmentUnit(
        key="tempMash",
        category=SensorCategory.TEMPERATURE,
        aliases=("Temp Mash", "Mash Temp", "Mash Temperature"),
        patterns=(r"^temp(erature)?mash", r"mashtemp"),
    ),
    EquipmentUnit(
        key="tempFermenter",
        category=SensorCategory.TEMPERATURE,
        aliases=("Temp Fermenter", "Fermenter Temp", "Temp Fermentor"),
        patterns=(r"^temp(erature)?ferment", r"ferment(er|or)temp"),
    ),
    EquipmentUnit(
        key="tempGlycol",
        category=SensorCategory.TEMPERATURE,
        aliases=("Temp Glycol", "Glycol Temp", "Glycol Temperature"),
        patterns=(r"^temp(erature)?glycol", r"glycoltemp"),
    ),
    EquipmentUnit(
        key="tempAmbient",
        category=SensorCategory.TEMPERATURE,
        aliases=("Temp Ambient", "Ambient Temp", "Ambient Temperature"),
        patterns=(r"^temp(erature)?ambient", r"ambienttemp"),
    ),
)

DEFAULT_REGISTRY = EquipmentRegistry(DEFAULT_UNITS)
