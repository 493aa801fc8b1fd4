# brewnode/supervisor/__init__.py
"""Polling loop, operator API and status summary."""

from brewnode.supervisor.brew_supervisor import (
    BrewSupervisor,
    SnapshotCallback,
    SnapshotUpdate,
)
from brewnode.supervisor.status_summary import (
    StatusSummary,
    format_equipment,
    format_temperature,
    summarize,
)

__all__ = [
    "BrewSupervisor",
    "SnapshotCallback",
    "SnapshotUpdate",
    "StatusSummary",
    "format_equipment",
    "format_temperature",
    "summarize",
]
