# brewnode/state/__init__.py
"""Supervisor frame state."""

from brewnode.state.supervisor_state import PollStats, SupervisorFrame, SupervisorState

__all__ = ["PollStats", "SupervisorFrame", "SupervisorState"]
