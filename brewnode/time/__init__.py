# brewnode/time/__init__.py
"""Supervisor clock."""

from brewnode.time.supervisor_clock import ClockMode, ClockState, SupervisorClock

__all__ = ["ClockMode", "ClockState", "SupervisorClock"]
