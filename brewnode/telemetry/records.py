# brewnode/telemetry/records.py
"""
Wire-level telemetry record shapes.

The controller's sensor status payload is an ordered list in which each
entry is one of:
- {"name": ..., "value": ...} named record
- a bare number, identified only by its position in the list
- a blank placeholder ("" or null)

classify_record() turns each raw entry into exactly one of the record
types below; anything else becomes a MalformedRecord.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = [
    "NamedRecord",
    "PositionalRecord",
    "BlankRecord",
    "MalformedRecord",
    "TelemetryRecord",
    "classify_record",
    "coerce_value",
    "STATUS_ON_WORDS",
    "STATUS_OFF_WORDS",
]

STATUS_ON_WORDS = frozenset({"on", "open", "active", "true"})
STATUS_OFF_WORDS = frozenset({"off", "closed", "close", "inactive", "false"})


@dataclass(frozen=True)
class NamedRecord:
    """Record carrying its own name."""

    index: int
    name: str
    value: float | None


@dataclass(frozen=True)
class PositionalRecord:
    """Bare number identified by its index in the payload."""

    index: int
    value: float


@dataclass(frozen=True)
class BlankRecord:
    """Empty placeholder; discarded."""

    index: int


@dataclass(frozen=True)
class MalformedRecord:
    """Entry with an unrecognised shape; dropped and counted."""

    index: int
    reason: str
    raw: Any = None


TelemetryRecord = NamedRecord | PositionalRecord | BlankRecord | MalformedRecord


class _Unparseable(ValueError):
    pass


def coerce_value(value: Any) -> float | None:
    """
    Convert a named record's value to a float.

    Numbers and numeric strings convert directly; status words map to
    1.0 / 0.0; None stays None.

    Raises:
        ValueError: If the value cannot be represented as a float
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return 1.0 if value else 0.0

    if isinstance(value, (int, float)):
        try:
            result = float(value)
        except OverflowError:
            raise _Unparseable("number out of range") from None
    elif isinstance(value, str):
        text = value.strip()
        lowered = text.lower()
        if lowered in STATUS_ON_WORDS:
            return 1.0
        if lowered in STATUS_OFF_WORDS:
            return 0.0
        try:
            result = float(text)
        except ValueError:
            raise _Unparseable(f"unparseable value {value!r}") from None
    else:
        raise _Unparseable(f"unsupported value type {type(value).__name__}")

    if not math.isfinite(result):
        raise _Unparseable(f"non-finite value {value!r}")
    return result


def classify_record(index: int, raw: Any) -> TelemetryRecord:
    """
    Classify one raw payload entry.

    Args:
        index: Position of the entry in the payload
        raw: Entry as decoded from the wire

    Returns:
        One of NamedRecord, PositionalRecord, BlankRecord, MalformedRecord
    """
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        return BlankRecord(index)

    # bool is an int subclass; a bare true/false carries no identity
    if isinstance(raw, bool):
        return MalformedRecord(index, "bare boolean", raw)

    if isinstance(raw, (int, float)):
        try:
            value = float(raw)
        except OverflowError:
            return MalformedRecord(index, "number out of range", raw)
        if not math.isfinite(value):
            return MalformedRecord(index, "non-finite number", raw)
        return PositionalRecord(index, value)

    if isinstance(raw, Mapping):
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            return MalformedRecord(index, "missing name", raw)
        if "value" not in raw:
            return MalformedRecord(index, "missing value", raw)
        try:
            value = coerce_value(raw["value"])
        except ValueError as e:
            return MalformedRecord(index, str(e), raw)
        return NamedRecord(index, name.strip(), value)

    return MalformedRecord(index, f"unsupported record type {type(raw).__name__}", raw)
