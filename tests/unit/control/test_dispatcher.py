# tests/unit/control/test_dispatcher.py
"""Tests for the command dispatcher.

Test Coverage:
- Command routing (paths and On/Off vs Open/Close parameters)
- Intent recorded only after acknowledgement
- Failures raise CommandTransportError and record nothing
- Command trail logging
"""

import pytest

from brewnode.control.dispatcher import CommandDispatcher
from brewnode.errors import CommandTransportError, TransportError, UnknownEquipmentError
from brewnode.state.supervisor_state import SupervisorState


@pytest.fixture
def state():
    return SupervisorState()


@pytest.fixture
def dispatcher(scripted_transport, stepped_clock, state):
    return CommandDispatcher(scripted_transport, stepped_clock, state.put_intent)


# ================================================================
# ROUTING
# ================================================================
class TestRouting:
    """Test translation of unit commands to controller requests."""

    @pytest.mark.asyncio
    async def test_pump_on(self, dispatcher, scripted_transport):
        """Test routing of a pump on-command.

        WHY: Pumps take On/Off on their own controller path.
        """
        await dispatcher.issue("kettlePump", True)

        assert scripted_transport.commands == [("/pump/kettle", {"onOff": "On"})]

    @pytest.mark.asyncio
    async def test_heater_off(self, dispatcher, scripted_transport):
        """Test routing of an off-command to the glycol chiller.

        WHY: The chiller shares the glycol path family with the heater; the
        route must pick the chiller endpoint.
        """
        await dispatcher.issue("glycolChiller", False)

        assert scripted_transport.commands == [("/glycol/chill", {"onOff": "Off"})]

    @pytest.mark.asyncio
    async def test_valve_open(self, dispatcher, scripted_transport):
        """Test that valves are opened with 'Open', not 'On'.

        WHY: The controller's valve endpoints only understand Open/Close.
        """
        await dispatcher.issue("chillWortIn", True)

        assert scripted_transport.commands == [
            ("/valve/chillwortin", {"onOff": "Open"})
        ]

    @pytest.mark.asyncio
    async def test_returns_acknowledgement(self, dispatcher):
        """Test that issue() returns the controller's acknowledgement.

        WHY: Callers may inspect the ack; it is also kept for get_status().
        """
        ack = await dispatcher.issue("fan", True)

        assert ack == {"status": "ok"}
        assert dispatcher.last_ack == {"status": "ok"}


# ================================================================
# INTENTS
# ================================================================
class TestIntentRecording:
    """Test intent creation on acknowledgement."""

    @pytest.mark.asyncio
    async def test_intent_recorded_on_ack(self, dispatcher, state, stepped_clock):
        """Test the intent windows computed from the clock at acknowledgement.

        WHY: The hold and deadline are measured from when the controller
        accepted the command.
        """
        await stepped_clock.step(5.0)

        await dispatcher.issue("fan", True)

        intent = state.get_intent("fan")
        assert intent is dispatcher.last_intent
        assert intent.expected_on is True
        assert intent.issued_at == 5.0
        assert intent.min_hold_until == 7.0
        assert intent.deadline == 15.0

    @pytest.mark.asyncio
    async def test_display_pending_immediately(self, dispatcher, state):
        """Test optimistic display right after the command.

        WHY: The operator must see 'Updating...' without waiting for the
        next poll tick.
        """
        await dispatcher.issue("mashIn", True)

        display = state.frame.display_states["mashIn"]
        assert display.is_on is True
        assert display.is_pending is True

    @pytest.mark.asyncio
    async def test_new_command_replaces_intent(self, dispatcher, state):
        """Test that a second command replaces the unit's intent.

        WHY: Each unit has at most one outstanding intent; the dispatcher
        leaves the grace check to the supervisor.
        """
        await dispatcher.issue("fan", True)
        first = state.get_intent("fan")

        await dispatcher.issue("fan", False)

        second = state.get_intent("fan")
        assert second.command_id != first.command_id
        assert second.expected_on is False
        assert len(state.frame.intents) == 1

    @pytest.mark.asyncio
    async def test_counts_commands(self, dispatcher):
        """Test the sent-command counter.

        WHY: The count is reported in the run statistics.
        """
        await dispatcher.issue("fan", True)
        await dispatcher.issue("mashPump", True)

        assert dispatcher.get_status() == {"commands_sent": 2, "commands_failed": 0}


# ================================================================
# FAILURES
# ================================================================
class TestFailures:
    """Test command failure handling."""

    @pytest.mark.asyncio
    async def test_failed_command_records_no_intent(
        self, dispatcher, scripted_transport, state
    ):
        """Test that a rejected command leaves the unit settled.

        WHY: Showing 'Updating...' for a command the controller never
        accepted would mislead the operator for ten seconds.
        """
        scripted_transport.command_error = TransportError(
            "Service unavailable", status_code=503, body="busy"
        )

        with pytest.raises(CommandTransportError) as exc_info:
            await dispatcher.issue("kettleHeater", True)

        error = exc_info.value
        assert error.unit_key == "kettleHeater"
        assert error.desired_on is True
        assert error.status_code == 503
        assert error.body == "busy"
        assert isinstance(error.__cause__, TransportError)
        assert state.get_intent("kettleHeater") is None
        assert state.frame.display_states["kettleHeater"].is_pending is False
        assert dispatcher.last_intent is None
        assert dispatcher.get_status()["commands_failed"] == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_intent(
        self, dispatcher, scripted_transport, state
    ):
        """Test that a failed override leaves the earlier intent in place.

        WHY: The earlier command was acknowledged and may still take effect.
        """
        await dispatcher.issue("fan", True)
        first = state.get_intent("fan")
        scripted_transport.command_error = TransportError("timeout")

        with pytest.raises(CommandTransportError):
            await dispatcher.issue("fan", False)

        assert state.get_intent("fan") is first

    @pytest.mark.asyncio
    async def test_unknown_unit(self, dispatcher, scripted_transport):
        """Test commanding an unregistered unit.

        WHY: Nothing may be sent to the controller for a unit it does not have.
        """
        with pytest.raises(UnknownEquipmentError):
            await dispatcher.issue("boilerPump", True)

        assert scripted_transport.commands == []

    @pytest.mark.asyncio
    async def test_sensor_not_controllable(self, dispatcher):
        """Test commanding a read-only sensor.

        WHY: Sensors have no command route.
        """
        with pytest.raises(UnknownEquipmentError, match="not controllable"):
            await dispatcher.issue("tempKettle", True)


# ================================================================
# COMMAND TRAIL
# ================================================================
class TestCommandTrail:
    """Test that every command lands in the command trail."""

    @pytest.mark.asyncio
    async def test_trail_records_outcomes(self, dispatcher, scripted_transport):
        """Test the command trail entries for success and failure.

        WHY: The trail is the audit record of what the operator asked for
        and what the controller answered.
        """
        await dispatcher.issue("glycolPump", True)
        scripted_transport.command_error = TransportError("down", status_code=500)
        with pytest.raises(CommandTransportError):
            await dispatcher.issue("glycolPump", False)

        trail = await dispatcher.logger.get_command_trail(unit="glycolPump")

        assert [entry.data["result"] for entry in trail[-2:]] == [
            "ACKNOWLEDGED",
            "FAILED",
        ]
        assert trail[-2].command_id == dispatcher.last_intent.command_id
        assert trail[-1].command_id == ""
