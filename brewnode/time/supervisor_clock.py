# brewnode/time/supervisor_clock.py
"""
Supervisor clock.

Single time authority for intents, reconciliation and the simulated
controller. All timestamps are float seconds since start/reset.

Modes:
- REALTIME: advances with the monotonic wall clock
- STEPPED: advances only through step(); used by tests
- PAUSED: frozen until resume()
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

__all__ = ["ClockMode", "ClockState", "SupervisorClock"]


# ----------------------------------------------------------------
# Clock modes
# ----------------------------------------------------------------
class ClockMode(Enum):
    """Supervisor clock operation modes."""

    REALTIME = "realtime"
    STEPPED = "stepped"
    PAUSED = "paused"


@dataclass
class ClockState:
    """State container for clock tracking."""

    offset: float = 0.0  # clock time accumulated before the current anchor
    anchor: float = 0.0  # monotonic reading when offset was taken
    mode: ClockMode = ClockMode.REALTIME
    resume_mode: ClockMode = ClockMode.REALTIME


class SupervisorClock:
    """Clock shared by the supervisor and its collaborators.

    Unlike a process-wide singleton, each supervisor owns its clock so
    tests can run several independent supervisors.

    Example:
        >>> clock = SupervisorClock(mode=ClockMode.STEPPED)
        >>> await clock.step(2.5)
        >>> clock.now()
        2.5
    """

    def __init__(
        self,
        mode: ClockMode = ClockMode.REALTIME,
        time_source: Callable[[], float] = time.monotonic,
    ):
        self._time_source = time_source
        self._lock = asyncio.Lock()
        self.state = ClockState(
            anchor=time_source(),
            mode=mode,
            resume_mode=ClockMode.REALTIME if mode == ClockMode.PAUSED else mode,
        )

    # ----------------------------------------------------------------
    # Time queries
    # ----------------------------------------------------------------
    def now(self) -> float:
        """Get current clock time in seconds."""
        if self.state.mode == ClockMode.REALTIME:
            return self.state.offset + (self._time_source() - self.state.anchor)
        return self.state.offset

    def delta(self, last_time: float) -> float:
        """Time elapsed since a previous clock reading."""
        return self.now() - last_time

    @property
    def mode(self) -> ClockMode:
        return self.state.mode

    def is_paused(self) -> bool:
        return self.state.mode == ClockMode.PAUSED

    # ----------------------------------------------------------------
    # Time control
    # ----------------------------------------------------------------
    async def step(self, delta_seconds: float) -> float:
        """Manually advance the clock (STEPPED or PAUSED mode).

        Args:
            delta_seconds: Amount of time to advance in seconds

        Returns:
            Clock time after the step

        Raises:
            ValueError: If delta_seconds is negative
            RuntimeError: If the clock is in REALTIME mode
        """
        if delta_seconds < 0:
            raise ValueError(f"Cannot step negative time: {delta_seconds}")

        async with self._lock:
            if self.state.mode == ClockMode.REALTIME:
                raise RuntimeError(
                    "step() only valid in STEPPED or PAUSED mode, "
                    f"current mode is {self.state.mode.value}"
                )
            self.state.offset += delta_seconds

        logger.debug(f"Clock stepped by {delta_seconds}s to {self.state.offset}s")
        return self.state.offset

    async def pause(self) -> None:
        async with self._lock:
            if self.state.mode == ClockMode.PAUSED:
                logger.warning("Clock already paused")
                return
            self.state.offset = self.now()
            self.state.resume_mode = self.state.mode
            self.state.mode = ClockMode.PAUSED

        logger.info("Clock paused")

    async def resume(self) -> None:
        async with self._lock:
            if self.state.mode != ClockMode.PAUSED:
                logger.warning("Clock not paused")
                return
            self.state.anchor = self._time_source()
            self.state.mode = self.state.resume_mode

        logger.info(f"Clock resumed in {self.state.mode.value} mode")

    async def reset(self) -> None:
        """Reset clock time to zero, preserving the mode."""
        async with self._lock:
            self.state.offset = 0.0
            self.state.anchor = self._time_source()

        logger.info("Clock reset to zero")

    def get_status(self) -> dict:
        return {
            "time": self.now(),
            "mode": self.state.mode.value,
        }
