from __future__ import annotations

from typing import Optional, Union

import websockets
from websockets.protocol import State

from hyperate.core.EventTypes import EventType
from shared.envelope import KEEPALIVE_REF, KEEPALIVE_TOPIC, Envelope, create_envelope
from shared.log import get_logger

logger = get_logger(__name__)


class NotConnectedError(ConnectionError):
    """Raised when sending while no connection is open."""
    pass


class ConnectionLink:
    """Wrapper around one websocket connection and its endpoint"""

    def __init__(self, websocket: websockets.ClientConnection, endpoint: str):
        self.websocket = websocket
        self.endpoint = endpoint  # base URL, without the token query
        # set once the session has reported this connection as gone
        self.lost = False

    @property
    def is_open(self) -> bool:
        return not self.lost and self.websocket.state is State.OPEN

    async def recv_message(self) -> Union[str, bytes]:
        """
        Wait for the next complete message.

        Fragmented frames are reassembled by websockets before recv returns.
        Raises websockets.exceptions.ConnectionClosed once the peer has closed.
        """
        return await self.websocket.recv()

    async def send_message(self, envelope: Envelope) -> None:
        """Send an envelope as a single JSON text frame. Transport errors propagate."""
        await self.websocket.send(envelope.to_json())
        logger.debug("Sent %s", envelope.event, extra={"topic": envelope.topic, "ref": envelope.ref})

    # Convenience senders for the three outbound packets
    async def send_join(self, topic: str, ref: int) -> None:
        await self.send_message(create_envelope(EventType.PHX_JOIN.value, topic, ref))

    async def send_leave(self, topic: str, ref: int) -> None:
        await self.send_message(create_envelope(EventType.PHX_LEAVE.value, topic, ref))

    async def send_keepalive(self) -> None:
        await self.send_message(create_envelope(EventType.HEARTBEAT.value, KEEPALIVE_TOPIC, KEEPALIVE_REF))

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        """Close the websocket connection"""
        try:
            await self.websocket.close(code=code, reason=reason or "")
        except Exception as e:
            logger.error(f"Error closing connection: {e}")

    def __repr__(self) -> str:
        return f"ConnectionLink(endpoint={self.endpoint!r}, state={self.websocket.state.name}, lost={self.lost})"
