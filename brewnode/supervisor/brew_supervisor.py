# brewnode/supervisor/brew_supervisor.py
"""
Brew supervisor: the polling loop and the operator-facing API.

Each poll tick:
1. Copy the outstanding intents (tick-start view)
2. Fetch telemetry from the transport
3. Normalize it into a snapshot
4. Reconcile the tick-start intents against the snapshot
5. Commit snapshot, intents and display states as one frame
6. Notify on_snapshot_updated subscribers

A failed fetch is counted and logged; the loop keeps its interval and no
reconciliation or notification happens for that tick. Commands run
independently of the loop; an intent recorded while a tick is in flight
is reconciled on the next tick.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from brewnode.config_loader import SupervisorSettings
from brewnode.control.dispatcher import CommandDispatcher
from brewnode.control.reconciler import (
    DisplayState,
    IntentResolution,
    TransitionReconciler,
)
from brewnode.errors import CommandPendingError, TransportError, UnknownEquipmentError
from brewnode.logging_system import EventCategory, EventSeverity, get_logger
from brewnode.state.supervisor_state import SupervisorFrame, SupervisorState
from brewnode.supervisor.status_summary import StatusSummary, summarize
from brewnode.telemetry.normalizer import TelemetryNormalizer, TelemetrySnapshot
from brewnode.time.supervisor_clock import SupervisorClock
from brewnode.transport.base import BrewTransport

__all__ = ["BrewSupervisor", "SnapshotUpdate", "SnapshotCallback"]


@dataclass(frozen=True)
class SnapshotUpdate:
    """Notification payload for one committed poll tick.

    Attributes:
        tick: Poll tick number (1-based)
        timestamp: Clock time used for reconciliation
        snapshot: Normalized telemetry
        display_states: Display state by unit key
        resolutions: Intents settled or timed out this tick
        timed_out_units: Units whose command was not confirmed in time
        malformed_count: Payload records dropped as malformed
    """

    tick: int
    timestamp: float
    snapshot: TelemetrySnapshot
    display_states: Mapping[str, DisplayState]
    resolutions: tuple[IntentResolution, ...]
    timed_out_units: tuple[str, ...]
    malformed_count: int


SnapshotCallback = Callable[[SnapshotUpdate], Awaitable[None] | None]


class BrewSupervisor:
    """
    Supervises one brewing rig controller.

    Example:
        >>> supervisor = BrewSupervisor(transport, clock)
        >>> await supervisor.start()
        >>> await supervisor.issue_command("fan", True)
        >>> supervisor.get_display_state("fan").is_pending
        True
    """

    def __init__(
        self,
        transport: BrewTransport,
        clock: SupervisorClock | None = None,
        settings: SupervisorSettings | None = None,
    ):
        """
        Initialise supervisor.

        Args:
            transport: Controller transport
            clock: Time authority (REALTIME clock if None)
            settings: Validated settings (defaults if None)
        """
        self.transport = transport
        self.clock = clock or SupervisorClock()
        self.settings = settings or SupervisorSettings()
        self.registry = self.settings.registry

        self.normalizer = TelemetryNormalizer(
            registry=self.registry,
            positional_keys=self.settings.positional_keys,
            fault_floor=self.settings.sensor_fault_floor,
        )
        self.reconciler = TransitionReconciler(self.registry, self.settings.timing)
        self.state = SupervisorState(self.registry)
        self.dispatcher = CommandDispatcher(
            transport,
            self.clock,
            self.state.put_intent,
            registry=self.registry,
            timing=self.settings.timing,
        )

        self.logger = get_logger(__name__, component="supervisor")

        self._callbacks: list[SnapshotCallback] = []
        self._tick = 0
        self._tick_lock = asyncio.Lock()
        self._running = False
        self._poll_task: asyncio.Task | None = None

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            self.logger.warning("Supervisor already running")
            return

        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop())
        self.logger.log_event(
            EventSeverity.NOTICE,
            EventCategory.SYSTEM,
            f"Supervisor started (poll interval {self.settings.poll_interval_s}s)",
        )

    async def stop(self) -> None:
        """Stop the polling loop. Outstanding intents are kept."""
        if not self._running:
            return

        self._running = False
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        await self.transport.close()
        self.logger.log_event(
            EventSeverity.NOTICE, EventCategory.SYSTEM, "Supervisor stopped"
        )

    async def _poll_loop(self) -> None:
        self.logger.debug(
            f"Poll loop started (interval: {self.settings.poll_interval_s}s)"
        )

        while self._running:
            try:
                await self.poll_once()
                await asyncio.sleep(self.settings.poll_interval_s)
            except asyncio.CancelledError:
                self._running = False
                break
            except Exception as e:
                self.logger.error(f"Error in poll tick: {e}", exc_info=True)
                await asyncio.sleep(self.settings.poll_interval_s)

    # ----------------------------------------------------------------
    # Poll tick
    # ----------------------------------------------------------------

    async def poll_once(self) -> SnapshotUpdate | None:
        """
        Run one poll tick.

        Returns:
            SnapshotUpdate for the committed tick, or None if the fetch failed
        """
        async with self._tick_lock:
            started_with = self.state.intents_snapshot()

            try:
                payload = await self.transport.fetch_telemetry()
            except TransportError as e:
                await self._handle_poll_failure(e)
                return None

            previous_failures = self.state.stats.consecutive_failures
            self._tick += 1

            snapshot = self.normalizer.normalize(payload)
            now = self.clock.now()
            result = self.reconciler.reconcile(snapshot, started_with, now)

            frame = await self.state.commit_tick(
                tick=self._tick,
                timestamp=now,
                snapshot=snapshot,
                result=result,
                started_with=started_with,
            )

            update = SnapshotUpdate(
                tick=frame.tick,
                timestamp=now,
                snapshot=snapshot,
                display_states=frame.display_states,
                resolutions=result.resolutions,
                timed_out_units=tuple(result.timed_out_units),
                malformed_count=snapshot.malformed_count,
            )

        if previous_failures >= self.settings.lost_connection_threshold:
            self.logger.log_event(
                EventSeverity.NOTICE,
                EventCategory.COMMUNICATION,
                f"Controller connection restored after {previous_failures} failed polls",
            )

        for unit_key in update.timed_out_units:
            self.logger.log_event(
                EventSeverity.WARNING,
                EventCategory.RECONCILIATION,
                "Command may not have taken effect: telemetry did not confirm "
                f"within {self.settings.timing.max_wait_s}s",
                unit=unit_key,
            )

        await self._notify(update)
        return update

    async def _handle_poll_failure(self, error: TransportError) -> None:
        failures = await self.state.record_poll_failure(error)
        threshold = self.settings.lost_connection_threshold

        if failures == threshold:
            self.logger.log_event(
                EventSeverity.WARNING,
                EventCategory.COMMUNICATION,
                f"Lost connection to controller: {failures} consecutive polls failed",
                data={"status_code": error.status_code},
            )
        else:
            self.logger.warning(f"Telemetry poll failed ({failures} in a row): {error}")

    async def _notify(self, update: SnapshotUpdate) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(update)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(
                    f"Snapshot callback {getattr(callback, '__name__', callback)} "
                    f"failed: {e}",
                    exc_info=True,
                )

    # ----------------------------------------------------------------
    # Operator API
    # ----------------------------------------------------------------

    async def issue_command(self, unit_key: str, desired_on: bool) -> None:
        """
        Command a unit on or off.

        The unit displays the requested state as pending as soon as the
        controller acknowledges the command.

        Raises:
            UnknownEquipmentError: If the unit is unknown or not controllable
            CommandPendingError: If the unit is still within the override
                grace period of a previous command
            CommandTransportError: If the controller rejected the command
        """
        unit = self.registry.get(unit_key)
        current = self.state.get_intent(unit.key)
        now = self.clock.now()

        if not self.reconciler.override_allowed(current, now):
            await self.dispatcher.logger.log_command(
                unit=unit.key,
                desired_on=desired_on,
                result="REFUSED",
                command_id=current.command_id,
            )
            raise CommandPendingError(
                unit.key,
                current.pending_for(now),
                self.settings.timing.override_grace_s,
            )

        if current is not None:
            self.logger.info(
                f"Manual override of {unit.key}: pending "
                f"{current.pending_for(now):.1f}s, replacing intent {current.command_id}"
            )

        await self.dispatcher.issue(unit.key, desired_on)

    def get_display_state(self, unit_key: str) -> DisplayState:
        """
        Current display state of a unit.

        Raises:
            UnknownEquipmentError: If the unit is unknown or has no display
        """
        unit = self.registry.get(unit_key)
        display = self.state.frame.display_states.get(unit.key)
        if display is None:
            raise UnknownEquipmentError(unit_key, "unit is not controllable")
        return display

    def get_display_states(self) -> dict[str, DisplayState]:
        return dict(self.state.frame.display_states)

    def on_snapshot_updated(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Subscribe to committed poll ticks.

        Returns:
            Function that removes the subscription
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    @property
    def frame(self) -> SupervisorFrame:
        return self.state.frame

    @property
    def latest_snapshot(self) -> TelemetrySnapshot:
        return self.state.frame.snapshot

    def summary(self) -> StatusSummary:
        frame = self.state.frame
        return summarize(frame.snapshot, frame.display_states, self.registry)

    async def get_status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "clock": self.clock.get_status(),
            "state": await self.state.get_summary(),
            "commands": self.dispatcher.get_status(),
            "telemetry": self.normalizer.get_diagnostics(),
            "reconciliation": {
                "settled": self.reconciler.total_settled,
                "timed_out": self.reconciler.total_timed_out,
            },
        }
