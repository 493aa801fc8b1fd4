# brewnode/control/intents.py
"""
Operator intents.

An Intent records what the operator asked a unit to do and when, so the
display can show the requested state before telemetry confirms it.
"""

import uuid
from dataclasses import dataclass, field

__all__ = [
    "MIN_DISPLAY_S",
    "MAX_WAIT_S",
    "OVERRIDE_GRACE_S",
    "IntentTiming",
    "DEFAULT_TIMING",
    "Intent",
]

MIN_DISPLAY_S = 2.0  # pending affordance shown at least this long
MAX_WAIT_S = 10.0  # give up waiting for telemetry after this
OVERRIDE_GRACE_S = 3.0  # pending this long before a new command is accepted


@dataclass(frozen=True)
class IntentTiming:
    """Timing windows applied to every new intent (seconds)."""

    min_display_s: float = MIN_DISPLAY_S
    max_wait_s: float = MAX_WAIT_S
    override_grace_s: float = OVERRIDE_GRACE_S

    def __post_init__(self):
        if self.min_display_s < 0:
            raise ValueError(f"min_display_s must be >= 0, got {self.min_display_s}")
        if self.max_wait_s <= self.min_display_s:
            raise ValueError(
                f"max_wait_s ({self.max_wait_s}) must exceed "
                f"min_display_s ({self.min_display_s})"
            )
        if self.override_grace_s < 0:
            raise ValueError(
                f"override_grace_s must be >= 0, got {self.override_grace_s}"
            )


DEFAULT_TIMING = IntentTiming()


def _new_command_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Intent:
    """Outstanding expectation for one unit.

    Attributes:
        unit_key: Canonical unit key
        expected_on: State the operator requested
        issued_at: Clock time the command was acknowledged
        deadline: Clock time after which the intent times out
        min_hold_until: Clock time before which the intent cannot settle
        command_id: Identifies this command across replacements
    """

    unit_key: str
    expected_on: bool
    issued_at: float
    deadline: float
    min_hold_until: float
    command_id: str = field(default_factory=_new_command_id)

    @classmethod
    def create(
        cls,
        unit_key: str,
        expected_on: bool,
        now: float,
        timing: IntentTiming = DEFAULT_TIMING,
    ) -> "Intent":
        return cls(
            unit_key=unit_key,
            expected_on=expected_on,
            issued_at=now,
            deadline=now + timing.max_wait_s,
            min_hold_until=now + timing.min_display_s,
        )

    def pending_for(self, now: float) -> float:
        return now - self.issued_at

    def hold_elapsed(self, now: float) -> bool:
        return now >= self.min_hold_until

    def expired(self, now: float) -> bool:
        return now >= self.deadline
