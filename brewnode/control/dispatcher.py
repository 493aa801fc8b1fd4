# brewnode/control/dispatcher.py
"""
Command dispatcher.

Translates an operator's on/off request for a unit into a controller
command and, once the controller acknowledges it, records an Intent so
the display can show the requested state before telemetry catches up.

A failed command never records an intent.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from brewnode.control.intents import DEFAULT_TIMING, Intent, IntentTiming
from brewnode.equipment.registry import DEFAULT_REGISTRY, EquipmentRegistry
from brewnode.errors import CommandTransportError, TransportError, UnknownEquipmentError
from brewnode.logging_system import get_logger
from brewnode.time.supervisor_clock import SupervisorClock
from brewnode.transport.base import BrewTransport

__all__ = ["CommandDispatcher", "IntentSink"]

IntentSink = Callable[[Intent], Awaitable[None]]


class CommandDispatcher:
    """
    Sends unit commands and hands acknowledged ones to an intent sink.

    The sink is typically SupervisorState.put_intent; exactly one intent
    per unit is kept there and a newer one replaces the old.

    Example:
        >>> dispatcher = CommandDispatcher(transport, clock, state.put_intent)
        >>> await dispatcher.issue("kettlePump", True)
        >>> dispatcher.last_intent.expected_on
        True
    """

    def __init__(
        self,
        transport: BrewTransport,
        clock: SupervisorClock,
        intent_sink: IntentSink,
        registry: EquipmentRegistry = DEFAULT_REGISTRY,
        timing: IntentTiming = DEFAULT_TIMING,
    ):
        self.transport = transport
        self.clock = clock
        self.intent_sink = intent_sink
        self.registry = registry
        self.timing = timing

        self.logger = get_logger(__name__, component="dispatcher")

        self.commands_sent: int = 0
        self.commands_failed: int = 0
        self.last_ack: Any = None
        self.last_intent: Intent | None = None

    async def issue(self, unit_key: str, desired_on: bool) -> Any:
        """
        Send an on/off command for a unit.

        Args:
            unit_key: Canonical unit key
            desired_on: Requested state

        Returns:
            The controller acknowledgement

        Raises:
            UnknownEquipmentError: If the unit is unknown or has no command
            CommandTransportError: If the controller did not acknowledge
        """
        unit = self.registry.get(unit_key)
        if not unit.controllable:
            raise UnknownEquipmentError(unit_key, "unit is not controllable")

        route = unit.command
        params = route.params_for(desired_on)

        try:
            ack = await self.transport.send_command(route.path, params)
        except TransportError as e:
            self.commands_failed += 1
            await self.logger.log_command(
                unit=unit.key,
                desired_on=desired_on,
                result="FAILED",
                data={"path": route.path, "status_code": e.status_code},
            )
            raise CommandTransportError(
                unit.key, desired_on, status_code=e.status_code, body=e.body
            ) from e

        intent = Intent.create(unit.key, desired_on, self.clock.now(), self.timing)
        await self.intent_sink(intent)

        self.commands_sent += 1
        self.last_ack = ack
        self.last_intent = intent
        await self.logger.log_command(
            unit=unit.key,
            desired_on=desired_on,
            result="ACKNOWLEDGED",
            command_id=intent.command_id,
            data={"path": route.path, **params},
        )
        return ack

    def get_status(self) -> dict[str, Any]:
        return {
            "commands_sent": self.commands_sent,
            "commands_failed": self.commands_failed,
        }
