# brewnode/errors.py
"""
Exception hierarchy for the Brewnode supervisor.

Only conditions that abort a single operation are exceptions. Malformed
telemetry, sensor faults and reconciliation timeouts are represented
in-model (see telemetry.normalizer and control.reconciler).
"""

from typing import Any


class BrewnodeError(Exception):
    """Base class for all supervisor errors."""


class TransportError(BrewnodeError, RuntimeError):
    """Raised by a transport when the controller cannot be reached
    or answers with a non-2xx status."""

    def __init__(
        self, message: str, status_code: int | None = None, body: Any = None
    ):
        self.status_code = status_code
        self.body = body
        detail = f" (status={status_code})" if status_code is not None else ""
        super().__init__(f"{message}{detail}")


class CommandTransportError(TransportError):
    """A control command could not be delivered. No intent was recorded."""

    def __init__(
        self,
        unit_key: str,
        desired_on: bool,
        status_code: int | None = None,
        body: Any = None,
    ):
        self.unit_key = unit_key
        self.desired_on = desired_on
        state = "on" if desired_on else "off"
        super().__init__(
            f"Command '{unit_key}' -> {state} failed",
            status_code=status_code,
            body=body,
        )


class UnknownEquipmentError(BrewnodeError, ValueError):
    """Raised for a unit key that is not in the equipment registry."""

    def __init__(self, unit_key: str, reason: str = "not registered"):
        self.unit_key = unit_key
        super().__init__(f"Unknown equipment '{unit_key}': {reason}")


class CommandPendingError(BrewnodeError, RuntimeError):
    """Raised when a unit is still pending and the override grace
    period has not yet elapsed."""

    def __init__(self, unit_key: str, pending_for_s: float, grace_s: float):
        self.unit_key = unit_key
        self.pending_for_s = pending_for_s
        self.grace_s = grace_s
        super().__init__(
            f"Unit '{unit_key}' pending for {pending_for_s:.1f}s, "
            f"override allowed after {grace_s:.1f}s"
        )
