# brewnode/telemetry/normalizer.py
"""
Telemetry normalizer.

Converts one raw sensor status payload into a canonical, deduplicated
snapshot of readings.

Rules, in order of application:
1. Blank placeholders are discarded
2. Positional bare numbers are mapped through the index table first;
   a named record never overwrites an index-derived key
3. Named records resolve through the equipment registry, then the
   temperature naming rule, then the generic camelCase rule
4. First record seen for a canonical key wins; later aliases are dropped
5. Temperatures below the sensor fault floor keep their raw value in
   raw_error_value and expose value=None

normalize() is a pure function of its arguments.
"""

import logging
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from brewnode.equipment.registry import (
    DEFAULT_REGISTRY,
    EquipmentRegistry,
    SensorCategory,
)
from brewnode.telemetry.records import (
    BlankRecord,
    MalformedRecord,
    NamedRecord,
    PositionalRecord,
    classify_record,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CanonicalReading",
    "DroppedRecord",
    "TelemetrySnapshot",
    "TelemetryNormalizer",
    "normalize",
    "derive_key",
    "temperature_key",
    "generic_key",
    "DEFAULT_POSITIONAL_KEYS",
    "SENSOR_FAULT_FLOOR",
    "RAW_SUFFIX",
]

# Positional power readings reported without a name
DEFAULT_POSITIONAL_KEYS: dict[int, str] = {
    9: "fanPower",
    10: "glycolHeaterPower",
    11: "glycolChillerPower",
    12: "kettleHeaterPower",
}

# DS18B20 disconnect reads as -127 or -273; nothing real is this cold
SENSOR_FAULT_FLOOR = -200.0

RAW_SUFFIX = "Raw"

_TEMP_TOKENS = frozenset({"temp", "temperature"})
_WORDS = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")
_WHITESPACE_THEN_CHAR = re.compile(r"\s+(.)")
_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


@dataclass(frozen=True)
class CanonicalReading:
    """One normalized reading.

    Attributes:
        key: Canonical camelCase key, unique within a snapshot
        category: Sensor category
        value: Reading as a float, or None if unavailable
        raw_error_value: Raw value when the sensor reported a fault
        source: Raw name, or '#<index>' for positional readings
    """

    key: str
    category: SensorCategory
    value: float | None
    raw_error_value: float | None = None
    source: str = ""

    @property
    def sensor_fault(self) -> bool:
        return self.raw_error_value is not None


@dataclass(frozen=True)
class DroppedRecord:
    """A payload entry that could not be normalized."""

    index: int
    reason: str


class TelemetrySnapshot(Mapping):
    """
    Immutable mapping of canonical key -> CanonicalReading for one poll.

    Also carries normalization diagnostics: malformed entries that were
    dropped and the number of alias records collapsed into an earlier key.
    """

    def __init__(
        self,
        readings: Mapping[str, CanonicalReading] | None = None,
        dropped: Sequence[DroppedRecord] = (),
        dropped_aliases: int = 0,
    ):
        self._readings: dict[str, CanonicalReading] = dict(readings or {})
        self.dropped: tuple[DroppedRecord, ...] = tuple(dropped)
        self.dropped_aliases = dropped_aliases

    def __getitem__(self, key: str) -> CanonicalReading:
        return self._readings[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._readings)

    def __len__(self) -> int:
        return len(self._readings)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TelemetrySnapshot):
            return NotImplemented
        return (
            self._readings == other._readings
            and self.dropped == other.dropped
            and self.dropped_aliases == other.dropped_aliases
        )

    __hash__ = None

    @property
    def malformed_count(self) -> int:
        return len(self.dropped)

    def value(self, key: str) -> float | None:
        """Return the reading value for key, or None if absent."""
        reading = self._readings.get(key)
        return reading.value if reading else None

    def flat(self) -> dict[str, float | None]:
        """
        Flatten to key -> value.

        Faulted temperature sensors appear twice: '<key>' with None and
        '<key>Raw' with the raw sentinel value.
        """
        values: dict[str, float | None] = {}
        for key, reading in self._readings.items():
            values[key] = reading.value
            if reading.raw_error_value is not None:
                values[f"{key}{RAW_SUFFIX}"] = reading.raw_error_value
        return values

    def sensor_faults(self) -> list[CanonicalReading]:
        return [r for r in self._readings.values() if r.sensor_fault]

    def by_category(self, category: SensorCategory) -> list[CanonicalReading]:
        return [r for r in self._readings.values() if r.category == category]

    def __repr__(self) -> str:
        return (
            f"<TelemetrySnapshot readings={len(self._readings)} "
            f"malformed={self.malformed_count} aliases={self.dropped_aliases}>"
        )


# ----------------------------------------------------------------
# Key derivation
# ----------------------------------------------------------------


def _words(name: str) -> list[str]:
    return _WORDS.findall(name)


def temperature_key(name: str) -> str | None:
    """
    Canonical key for a temperature sensor name, or None if the name
    does not mention a temperature.

    'Temp Kettle' -> 'tempKettle', 'kettleTemp' -> 'tempKettle',
    'HLT Temperature' -> 'tempHlt'
    """
    words = _words(name)
    if not any(w.lower() in _TEMP_TOKENS for w in words):
        return None
    rest = [w for w in words if w.lower() not in _TEMP_TOKENS]
    return "temp" + "".join(w[:1].upper() + w[1:].lower() for w in rest)


def generic_key(name: str) -> str:
    """
    Fallback key for names that match no registry unit.

    Lowercase, whitespace followed by a character becomes that character
    upper-cased, then everything but letters and digits is stripped.
    'Flow Rate' -> 'flowRate'
    """
    key = _WHITESPACE_THEN_CHAR.sub(lambda m: m.group(1).upper(), name.strip().lower())
    return _NON_ALNUM.sub("", key)


def derive_key(
    name: str, registry: EquipmentRegistry = DEFAULT_REGISTRY
) -> tuple[str, SensorCategory]:
    """Derive (canonical key, category) for a raw record name."""
    resolution = registry.resolve(name)
    if resolution is not None:
        return resolution.key, resolution.category

    temp_key = temperature_key(name)
    if temp_key is not None:
        return temp_key, SensorCategory.TEMPERATURE

    return generic_key(name), SensorCategory.OTHER


def _make_reading(
    key: str,
    category: SensorCategory,
    value: float | None,
    source: str,
    fault_floor: float,
) -> CanonicalReading:
    if (
        category == SensorCategory.TEMPERATURE
        and value is not None
        and value < fault_floor
    ):
        return CanonicalReading(
            key=key,
            category=category,
            value=None,
            raw_error_value=value,
            source=source,
        )
    return CanonicalReading(key=key, category=category, value=value, source=source)


# ----------------------------------------------------------------
# Normalization
# ----------------------------------------------------------------


def normalize(
    payload: Any,
    registry: EquipmentRegistry = DEFAULT_REGISTRY,
    positional_keys: Mapping[int, str] | None = None,
    fault_floor: float = SENSOR_FAULT_FLOOR,
) -> TelemetrySnapshot:
    """
    Normalize one raw telemetry payload.

    Args:
        payload: Ordered sequence of raw records
        registry: Equipment registry used to resolve names
        positional_keys: Index -> reading key table for bare numbers
        fault_floor: Temperatures below this are sensor faults

    Returns:
        TelemetrySnapshot with unique canonical keys
    """
    if positional_keys is None:
        positional_keys = DEFAULT_POSITIONAL_KEYS

    if isinstance(payload, (str, bytes, Mapping)) or not isinstance(payload, Sequence):
        logger.debug(f"Telemetry payload is not a sequence: {type(payload).__name__}")
        return TelemetrySnapshot(
            dropped=[DroppedRecord(-1, "payload is not a sequence")]
        )

    records = [classify_record(index, raw) for index, raw in enumerate(payload)]
    readings: dict[str, CanonicalReading] = {}
    dropped: list[DroppedRecord] = []
    dropped_aliases = 0

    # Positional readings are authoritative and claim their keys first
    for record in records:
        if not isinstance(record, PositionalRecord):
            continue
        key = positional_keys.get(record.index)
        if key is None:
            dropped.append(DroppedRecord(record.index, "unmapped positional number"))
            continue
        unit = registry.by_reading_key(key)
        category = unit.category if unit else SensorCategory.OTHER
        readings[key] = _make_reading(
            key, category, record.value, f"#{record.index}", fault_floor
        )

    for record in records:
        if isinstance(record, NamedRecord):
            key, category = derive_key(record.name, registry)
            if not key:
                dropped.append(DroppedRecord(record.index, "empty canonical key"))
                continue
            if key in readings:
                dropped_aliases += 1
                continue
            readings[key] = _make_reading(
                key, category, record.value, record.name, fault_floor
            )
        elif isinstance(record, MalformedRecord):
            dropped.append(DroppedRecord(record.index, record.reason))
        elif isinstance(record, BlankRecord):
            continue

    dropped.sort(key=lambda d: d.index)
    for entry in dropped:
        logger.debug(f"Dropped telemetry record #{entry.index}: {entry.reason}")

    return TelemetrySnapshot(readings, dropped, dropped_aliases)


class TelemetryNormalizer:
    """
    Configured normalizer with cumulative diagnostics.

    Wraps normalize() with a fixed registry, positional table and fault
    floor, and keeps running totals of dropped records for status reports.

    Example:
        >>> normalizer = TelemetryNormalizer()
        >>> snapshot = normalizer.normalize(payload)
        >>> normalizer.total_malformed
        0
    """

    def __init__(
        self,
        registry: EquipmentRegistry = DEFAULT_REGISTRY,
        positional_keys: Mapping[int, str] | None = None,
        fault_floor: float = SENSOR_FAULT_FLOOR,
    ):
        self.registry = registry
        self.positional_keys = dict(
            DEFAULT_POSITIONAL_KEYS if positional_keys is None else positional_keys
        )
        self.fault_floor = fault_floor

        self.total_payloads: int = 0
        self.total_malformed: int = 0
        self.total_aliases_dropped: int = 0

    def normalize(self, payload: Any) -> TelemetrySnapshot:
        snapshot = normalize(
            payload,
            registry=self.registry,
            positional_keys=self.positional_keys,
            fault_floor=self.fault_floor,
        )
        self.total_payloads += 1
        self.total_malformed += snapshot.malformed_count
        self.total_aliases_dropped += snapshot.dropped_aliases
        return snapshot

    def get_diagnostics(self) -> dict[str, Any]:
        return {
            "total_payloads": self.total_payloads,
            "total_malformed": self.total_malformed,
            "total_aliases_dropped": self.total_aliases_dropped,
            "positional_keys": dict(self.positional_keys),
            "fault_floor": self.fault_floor,
        }
