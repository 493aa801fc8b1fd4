# brewnode/transport/base.py
"""
Transport contract between the supervisor and the rig controller.

The controller exposes a sensor status endpoint returning an ordered list
of raw records, and one command endpoint per unit accepting an on/off
parameter. Implementations raise TransportError for unreachable
controllers and non-2xx answers.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any


class BrewTransport(ABC):
    """Abstract controller transport."""

    @abstractmethod
    async def fetch_telemetry(self) -> Sequence[Any]:
        """
        Fetch the current sensor status payload.

        Returns:
            Ordered sequence of raw telemetry records

        Raises:
            TransportError: If the controller cannot be reached
        """

    @abstractmethod
    async def send_command(self, path: str, params: Mapping[str, str]) -> Any:
        """
        Send a fire-and-forget command.

        Args:
            path: Command endpoint, e.g. '/pump/kettle'
            params: Query parameters, e.g. {'onOff': 'On'}

        Returns:
            Controller acknowledgement

        Raises:
            TransportError: If the command was not acknowledged
        """

    async def close(self) -> None:
        """Release transport resources."""
        return None
