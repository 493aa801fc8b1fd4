# brewnode/control/__init__.py
"""Intents, transition reconciliation and command dispatch."""

from brewnode.control.dispatcher import CommandDispatcher
from brewnode.control.intents import (
    DEFAULT_TIMING,
    MAX_WAIT_S,
    MIN_DISPLAY_S,
    OVERRIDE_GRACE_S,
    Intent,
    IntentTiming,
)
from brewnode.control.reconciler import (
    DisplayState,
    IntentResolution,
    ReconcileResult,
    ResolutionOutcome,
    TransitionReconciler,
    reconcile,
)

__all__ = [
    "CommandDispatcher",
    "DEFAULT_TIMING",
    "MAX_WAIT_S",
    "MIN_DISPLAY_S",
    "OVERRIDE_GRACE_S",
    "Intent",
    "IntentTiming",
    "DisplayState",
    "IntentResolution",
    "ReconcileResult",
    "ResolutionOutcome",
    "TransitionReconciler",
    "reconcile",
]
