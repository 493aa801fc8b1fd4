#!/usr/bin/env python3
# tools/supervisor_manager.py
"""
Brewnode Supervisor Manager

Runs the supervisor against the in-process simulated controller:
- Loads config/ (supervisor.yml, equipment.yml)
- Configures logging on the supervisor clock
- Starts the polling loop and logs each committed tick
- Optionally toggles units at start-up (--toggle)

Usage:
    python tools/supervisor_manager.py --duration 30 --toggle fan
"""

import argparse
import asyncio
import logging
import signal
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from brewnode.config_loader import ConfigLoader, SupervisorSettings
from brewnode.equipment.registry import SensorCategory
from brewnode.errors import BrewnodeError
from brewnode.logging_system import configure_logging
from brewnode.supervisor.brew_supervisor import BrewSupervisor, SnapshotUpdate
from brewnode.supervisor.status_summary import format_temperature
from brewnode.time.supervisor_clock import SupervisorClock
from brewnode.transport.simulated_controller import SimulatedBrewController

logger = logging.getLogger(__name__)


class SupervisorManager:
    """
    Orchestrates one supervisor run.

    Example:
        >>> manager = SupervisorManager(config_dir="config", toggles=["fan"])
        >>> await manager.run(duration_s=10)
    """

    def __init__(self, config_dir: str = "config", toggles: Sequence[str] = ()):
        """Initialise supervisor manager.

        Args:
            config_dir: Directory containing configuration files
            toggles: Unit keys to toggle once the supervisor is running
        """
        self.config_dir = Path(config_dir)
        self.toggles = list(toggles)

        self.settings: SupervisorSettings | None = None
        self.clock: SupervisorClock | None = None
        self.controller: SimulatedBrewController | None = None
        self.supervisor: BrewSupervisor | None = None

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._ticks_seen = 0

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    async def initialise(self) -> None:
        """Load configuration and build the supervisor."""
        config = ConfigLoader(self.config_dir).load_all()
        self.settings = SupervisorSettings.from_config(config)

        self.clock = SupervisorClock()
        configure_logging(log_dir=self.settings.log_dir, clock=self.clock)

        self.controller = SimulatedBrewController(
            self.clock, registry=self.settings.registry
        )
        self.supervisor = BrewSupervisor(self.controller, self.clock, self.settings)
        self.supervisor.on_snapshot_updated(self._log_update)

        logger.info(
            f"Initialised supervisor for {len(self.settings.registry)} units "
            f"from {self.config_dir}"
        )

    async def start(self) -> None:
        if self.supervisor is None:
            raise RuntimeError("Manager not initialised")

        await self.supervisor.start()
        self._running = True

        for unit_key in self.toggles:
            await self.toggle(unit_key)

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        await self.supervisor.stop()
        await self._log_final_statistics()

    async def toggle(self, unit_key: str) -> bool:
        """Flip a unit's displayed state.

        Returns:
            True if the command was acknowledged
        """
        try:
            current = self.supervisor.get_display_state(unit_key)
            await self.supervisor.issue_command(unit_key, not current.is_on)
        except BrewnodeError as e:
            logger.error(f"Toggle {unit_key} failed: {e}")
            return False

        logger.info(f"Toggled {unit_key} -> {'off' if current.is_on else 'on'}")
        return True

    # ----------------------------------------------------------------
    # Reporting
    # ----------------------------------------------------------------

    def _log_update(self, update: SnapshotUpdate) -> None:
        self._ticks_seen += 1

        temperatures = ", ".join(
            f"{reading.key}={format_temperature(reading)}"
            for reading in update.snapshot.by_category(SensorCategory.TEMPERATURE)
        )
        summary = self.supervisor.summary()
        logger.info(
            f"Tick {update.tick} @ {update.timestamp:.1f}s: {temperatures}; "
            f"pumps={summary.active_pumps}, valves={summary.open_valves}, "
            f"fan={summary.fan_label}"
        )

        if summary.pending_units:
            logger.info(f"  pending: {', '.join(summary.pending_units)}")
        if update.timed_out_units:
            logger.warning(f"  timed out: {', '.join(update.timed_out_units)}")

    async def get_status(self) -> dict[str, Any]:
        if self.supervisor is None:
            return {"initialised": False}
        status = await self.supervisor.get_status()
        status["initialised"] = True
        status["controller"] = self.controller.get_status()
        return status

    async def _log_final_statistics(self) -> None:
        status = await self.get_status()
        polls = status["state"]["polls"]

        logger.info("--- Final Statistics ---")
        logger.info(f"Poll ticks: {polls['successful']}/{polls['total']} committed")
        logger.info(f"Commands sent: {status['commands']['commands_sent']}")
        logger.info(
            f"Intents settled: {status['reconciliation']['settled']}, "
            f"timed out: {status['reconciliation']['timed_out']}"
        )
        logger.info(f"Malformed records: {status['state']['malformed_records']}")
        logger.info("------------------------")

    # ----------------------------------------------------------------
    # Signal handling
    # ----------------------------------------------------------------

    def setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def wait_for_shutdown(self, duration_s: float | None = None) -> None:
        """Wait for a shutdown signal, or at most duration_s seconds."""
        if duration_s is None:
            await self._shutdown_event.wait()
            return
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=duration_s)
        except asyncio.TimeoutError:
            logger.info(f"Run duration of {duration_s}s reached")

    # ----------------------------------------------------------------
    # Main run method
    # ----------------------------------------------------------------

    async def run(self, duration_s: float | None = None) -> None:
        """Run the supervisor until interrupted or duration_s elapses."""
        try:
            self.setup_signal_handlers()
            await self.initialise()
            await self.start()

            logger.info("Supervisor running. Press Ctrl+C to stop.")
            await self.wait_for_shutdown(duration_s)

        except KeyboardInterrupt:
            logger.info("KeyboardInterrupt received")
        finally:
            if self._running:
                await self.stop()


# ----------------------------------------------------------------
# Command-line interface
# ----------------------------------------------------------------


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the brewnode supervisor against the simulated controller"
    )
    parser.add_argument(
        "--config-dir",
        default="config",
        help="Directory containing supervisor.yml and equipment.yml",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    parser.add_argument(
        "--toggle",
        action="append",
        default=[],
        metavar="UNIT",
        help="Toggle a unit after start-up (repeatable)",
    )
    return parser.parse_args(argv)


async def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("=== Brewnode Supervisor ===")

    manager = SupervisorManager(config_dir=args.config_dir, toggles=args.toggle)
    await manager.run(duration_s=args.duration)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
