# brewnode/telemetry/__init__.py
"""
Telemetry normalization.

Turns the controller's heterogeneous sensor status payload into a
canonical snapshot of readings keyed by stable camelCase names.
"""

from brewnode.telemetry.normalizer import (
    DEFAULT_POSITIONAL_KEYS,
    SENSOR_FAULT_FLOOR,
    CanonicalReading,
    DroppedRecord,
    TelemetryNormalizer,
    TelemetrySnapshot,
    derive_key,
    generic_key,
    normalize,
    temperature_key,
)
from brewnode.telemetry.records import (
    BlankRecord,
    MalformedRecord,
    NamedRecord,
    PositionalRecord,
    classify_record,
)

__all__ = [
    # Records
    "NamedRecord",
    "PositionalRecord",
    "BlankRecord",
    "MalformedRecord",
    "classify_record",
    # Normalizer
    "CanonicalReading",
    "DroppedRecord",
    "TelemetrySnapshot",
    "TelemetryNormalizer",
    "normalize",
    "derive_key",
    "generic_key",
    "temperature_key",
    "DEFAULT_POSITIONAL_KEYS",
    "SENSOR_FAULT_FLOOR",
]
