# brewnode/state/supervisor_state.py
"""
Centralised supervisor state.

Holds the latest telemetry snapshot, the outstanding intents and the
display states derived from them as ONE immutable frame. Every mutation
swaps the frame reference under an async lock, so a reader never sees an
intent set from one poll tick paired with a snapshot from another.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any

from brewnode.control.intents import Intent
from brewnode.control.reconciler import DisplayState, ReconcileResult, reconcile
from brewnode.equipment.registry import DEFAULT_REGISTRY, EquipmentRegistry
from brewnode.telemetry.normalizer import TelemetrySnapshot

logger = logging.getLogger(__name__)

__all__ = ["SupervisorFrame", "PollStats", "SupervisorState"]


@dataclass(frozen=True)
class SupervisorFrame:
    """Consistent view of the supervisor at one instant.

    Attributes:
        tick: Poll tick that produced the snapshot (0 = no telemetry yet)
        timestamp: Clock time of that tick, None before the first tick
        snapshot: Normalized telemetry from that tick
        intents: Outstanding intents by unit key
        display_states: Display state by unit key
    """

    tick: int
    timestamp: float | None
    snapshot: TelemetrySnapshot
    intents: Mapping[str, Intent]
    display_states: Mapping[str, DisplayState]


@dataclass
class PollStats:
    """Polling counters.

    Attributes:
        total_polls: Ticks attempted
        successful_polls: Ticks committed
        failed_polls: Ticks whose fetch failed
        consecutive_failures: Failed ticks since the last success
        last_error: Message of the most recent fetch failure
        last_success_at: Clock time of the last committed tick
        malformed_records: Telemetry records dropped across all ticks
    """

    total_polls: int = 0
    successful_polls: int = 0
    failed_polls: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    last_success_at: float | None = None
    malformed_records: int = 0


def _pending_display(display: DisplayState, intent: Intent) -> DisplayState:
    return replace(
        display, is_on=intent.expected_on, is_pending=True, timed_out=False
    )


class SupervisorState:
    """
    Single source of truth for what the supervisor shows.

    Example:
        >>> state = SupervisorState()
        >>> await state.put_intent(intent)
        >>> state.frame.display_states["fan"].is_pending
        True
    """

    def __init__(self, registry: EquipmentRegistry = DEFAULT_REGISTRY):
        self.registry = registry
        self.stats = PollStats()
        self._lock = asyncio.Lock()

        empty = TelemetrySnapshot()
        initial = reconcile(empty, {}, 0.0, registry)
        self._frame = SupervisorFrame(
            tick=0,
            timestamp=None,
            snapshot=empty,
            intents=MappingProxyType({}),
            display_states=MappingProxyType(initial.display_states),
        )

    # ----------------------------------------------------------------
    # Reads (lock-free: the frame reference is replaced, never mutated)
    # ----------------------------------------------------------------

    @property
    def frame(self) -> SupervisorFrame:
        return self._frame

    def intents_snapshot(self) -> dict[str, Intent]:
        """Copy of the outstanding intents, taken at tick start."""
        return dict(self._frame.intents)

    def get_intent(self, unit_key: str) -> Intent | None:
        return self._frame.intents.get(unit_key)

    # ----------------------------------------------------------------
    # Mutations
    # ----------------------------------------------------------------

    async def put_intent(self, intent: Intent) -> None:
        """Record an intent, replacing any previous one for the unit.

        The unit's display state switches to pending immediately.
        """
        async with self._lock:
            frame = self._frame
            previous = frame.intents.get(intent.unit_key)

            intents = dict(frame.intents)
            intents[intent.unit_key] = intent

            display_states = dict(frame.display_states)
            if intent.unit_key in display_states:
                display_states[intent.unit_key] = _pending_display(
                    display_states[intent.unit_key], intent
                )

            self._frame = replace(
                frame,
                intents=MappingProxyType(intents),
                display_states=MappingProxyType(display_states),
            )

        if previous is not None:
            logger.debug(
                f"Intent {previous.command_id} for {intent.unit_key} "
                f"replaced by {intent.command_id}"
            )

    async def commit_tick(
        self,
        tick: int,
        timestamp: float,
        snapshot: TelemetrySnapshot,
        result: ReconcileResult,
        started_with: Mapping[str, Intent],
    ) -> SupervisorFrame:
        """
        Atomically install the outcome of one poll tick.

        Intents put after the tick started (new units, or replacements of
        an intent the tick was reconciling) are kept as they are and shown
        pending; they are reconciled on the next tick.

        Args:
            tick: Poll tick number
            timestamp: Clock time used for reconciliation
            snapshot: Snapshot fetched this tick
            result: Reconciliation of started_with against snapshot
            started_with: Intent set copied at tick start

        Returns:
            The committed frame
        """
        async with self._lock:
            intents = dict(result.intents)
            display_states = dict(result.display_states)

            for unit_key, live in self._frame.intents.items():
                original = started_with.get(unit_key)
                if original is not None and original.command_id == live.command_id:
                    continue
                intents[unit_key] = live
                if unit_key in display_states:
                    display_states[unit_key] = _pending_display(
                        display_states[unit_key], live
                    )

            self._frame = SupervisorFrame(
                tick=tick,
                timestamp=timestamp,
                snapshot=snapshot,
                intents=MappingProxyType(intents),
                display_states=MappingProxyType(display_states),
            )

            self.stats.total_polls += 1
            self.stats.successful_polls += 1
            self.stats.consecutive_failures = 0
            self.stats.last_success_at = timestamp
            self.stats.malformed_records += snapshot.malformed_count

            return self._frame

    async def record_poll_failure(self, error: Exception) -> int:
        """Count a failed fetch.

        Returns:
            Consecutive failures including this one
        """
        async with self._lock:
            self.stats.total_polls += 1
            self.stats.failed_polls += 1
            self.stats.consecutive_failures += 1
            self.stats.last_error = str(error)
            return self.stats.consecutive_failures

    # ----------------------------------------------------------------
    # Status reporting
    # ----------------------------------------------------------------

    async def get_summary(self) -> dict[str, Any]:
        async with self._lock:
            frame = self._frame
            return {
                "tick": frame.tick,
                "timestamp": frame.timestamp,
                "readings": len(frame.snapshot),
                "pending_units": sorted(frame.intents),
                "polls": {
                    "total": self.stats.total_polls,
                    "successful": self.stats.successful_polls,
                    "failed": self.stats.failed_polls,
                    "consecutive_failures": self.stats.consecutive_failures,
                    "last_error": self.stats.last_error,
                    "last_success_at": self.stats.last_success_at,
                },
                "malformed_records": self.stats.malformed_records,
            }
