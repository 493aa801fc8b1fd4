# brewnode/control/reconciler.py
"""
Transition reconciler.

Per-unit state machine that resolves operator intents against polled
telemetry and produces the state each unit should be displayed in.

States:
- Settled: no intent; display follows telemetry
- Pending: intent outstanding; display shows the requested state

Each poll, a pending unit:
- settles once telemetry matches AND the minimum hold has elapsed
- stays pending while confirmed but inside the hold window
- times out at the deadline and falls back to telemetry
- otherwise stays pending

reconcile() is a pure function of (snapshot, intents, now). It keeps no
history beyond the intent set it is given.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from brewnode.control.intents import DEFAULT_TIMING, Intent, IntentTiming
from brewnode.equipment.registry import (
    DEFAULT_REGISTRY,
    EquipmentRegistry,
    EquipmentUnit,
)
from brewnode.telemetry.normalizer import TelemetrySnapshot

logger = logging.getLogger(__name__)

__all__ = [
    "ResolutionOutcome",
    "IntentResolution",
    "DisplayState",
    "ReconcileResult",
    "TransitionReconciler",
    "actual_is_on",
    "power_for",
    "display_for",
    "reconcile",
]


class ResolutionOutcome(Enum):
    """How an intent left the pending state."""

    SETTLED = "settled"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class IntentResolution:
    """Record of one intent being resolved on a poll tick."""

    unit_key: str
    outcome: ResolutionOutcome
    intent: Intent
    actual_on: bool | None
    resolved_at: float


@dataclass(frozen=True)
class DisplayState:
    """What the operator sees for one unit.

    Attributes:
        unit_key: Canonical unit key
        is_on: Displayed on/off state
        is_pending: A command is in flight ('Updating...')
        power_watts: Power draw for power-reporting units, else None
        timed_out: Fell back to telemetry this tick after a timeout
    """

    unit_key: str
    is_on: bool
    is_pending: bool
    power_watts: float | None
    timed_out: bool = False


@dataclass(frozen=True)
class ReconcileResult:
    """Output of one reconciliation pass."""

    display_states: dict[str, DisplayState]
    intents: dict[str, Intent]
    resolutions: tuple[IntentResolution, ...]

    @property
    def timed_out_units(self) -> list[str]:
        return [
            r.unit_key
            for r in self.resolutions
            if r.outcome == ResolutionOutcome.TIMED_OUT
        ]

    @property
    def settled_units(self) -> list[str]:
        return [
            r.unit_key
            for r in self.resolutions
            if r.outcome == ResolutionOutcome.SETTLED
        ]


# ----------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------


def actual_is_on(unit: EquipmentUnit, snapshot: TelemetrySnapshot) -> bool | None:
    """
    Telemetry state of a unit.

    Returns:
        True/False from the unit's reading, None if the reading is
        missing or unavailable
    """
    value = snapshot.value(unit.reading_key)
    if value is None:
        return None
    return value > unit.on_threshold


def power_for(unit: EquipmentUnit, snapshot: TelemetrySnapshot) -> float | None:
    if not unit.reports_power:
        return None
    return snapshot.value(unit.reading_key)


def display_for(
    unit: EquipmentUnit,
    snapshot: TelemetrySnapshot,
    intent: Intent | None = None,
    timed_out: bool = False,
) -> DisplayState:
    """Display state for one unit given its (optional) outstanding intent."""
    power = power_for(unit, snapshot)
    if intent is not None:
        return DisplayState(
            unit_key=unit.key,
            is_on=intent.expected_on,
            is_pending=True,
            power_watts=power,
        )
    return DisplayState(
        unit_key=unit.key,
        is_on=bool(actual_is_on(unit, snapshot)),
        is_pending=False,
        power_watts=power,
        timed_out=timed_out,
    )


def reconcile(
    snapshot: TelemetrySnapshot,
    intents: Mapping[str, Intent],
    now: float,
    registry: EquipmentRegistry = DEFAULT_REGISTRY,
) -> ReconcileResult:
    """
    Resolve intents against a snapshot and compute display states.

    Args:
        snapshot: Normalized telemetry for this tick
        intents: Outstanding intents as of tick start, by unit key
        now: Clock time for this tick
        registry: Equipment registry

    Returns:
        ReconcileResult with display states for every controllable unit,
        the intents still outstanding and the resolutions made this tick
    """
    remaining: dict[str, Intent] = {}
    resolutions: list[IntentResolution] = []

    for unit_key, intent in intents.items():
        if unit_key not in registry:
            logger.warning(f"Discarding intent for unknown unit '{unit_key}'")
            continue

        unit = registry.get(unit_key)
        actual = actual_is_on(unit, snapshot)
        confirmed = actual is not None and actual == intent.expected_on

        if confirmed and intent.hold_elapsed(now):
            outcome = ResolutionOutcome.SETTLED
        elif confirmed:
            remaining[unit_key] = intent
            continue
        elif intent.expired(now):
            outcome = ResolutionOutcome.TIMED_OUT
        else:
            remaining[unit_key] = intent
            continue

        resolutions.append(
            IntentResolution(
                unit_key=unit_key,
                outcome=outcome,
                intent=intent,
                actual_on=actual,
                resolved_at=now,
            )
        )

    timed_out = {
        r.unit_key for r in resolutions if r.outcome == ResolutionOutcome.TIMED_OUT
    }
    display_states = {
        unit.key: display_for(
            unit, snapshot, remaining.get(unit.key), timed_out=unit.key in timed_out
        )
        for unit in registry.controllable_units()
    }

    return ReconcileResult(
        display_states=display_states,
        intents=remaining,
        resolutions=tuple(resolutions),
    )


# ----------------------------------------------------------------
# Configured reconciler
# ----------------------------------------------------------------


class TransitionReconciler:
    """
    Reconciler bound to a registry and intent timing.

    Example:
        >>> reconciler = TransitionReconciler()
        >>> result = reconciler.reconcile(snapshot, intents, now=12.0)
        >>> result.display_states["fan"].is_pending
        False
    """

    def __init__(
        self,
        registry: EquipmentRegistry = DEFAULT_REGISTRY,
        timing: IntentTiming = DEFAULT_TIMING,
    ):
        self.registry = registry
        self.timing = timing

        self.total_settled: int = 0
        self.total_timed_out: int = 0

    def reconcile(
        self,
        snapshot: TelemetrySnapshot,
        intents: Mapping[str, Intent],
        now: float,
    ) -> ReconcileResult:
        result = reconcile(snapshot, intents, now, self.registry)

        for resolution in result.resolutions:
            elapsed = now - resolution.intent.issued_at
            state = "on" if resolution.intent.expected_on else "off"
            if resolution.outcome == ResolutionOutcome.SETTLED:
                self.total_settled += 1
                logger.debug(
                    f"Intent settled: {resolution.unit_key} -> {state} "
                    f"after {elapsed:.1f}s"
                )
            else:
                self.total_timed_out += 1
                logger.warning(
                    f"Intent timed out: {resolution.unit_key} -> {state} "
                    f"not confirmed after {elapsed:.1f}s "
                    f"(telemetry reports {resolution.actual_on})"
                )

        return result

    def display_for(
        self,
        unit_key: str,
        snapshot: TelemetrySnapshot,
        intent: Intent | None = None,
    ) -> DisplayState:
        return display_for(self.registry.get(unit_key), snapshot, intent)

    def actual_is_on(self, unit_key: str, snapshot: TelemetrySnapshot) -> bool | None:
        return actual_is_on(self.registry.get(unit_key), snapshot)

    def override_allowed(self, intent: Intent | None, now: float) -> bool:
        """A new command may replace intent once it has been pending
        longer than the override grace period."""
        if intent is None:
            return True
        return intent.pending_for(now) > self.timing.override_grace_s
