"""
Session notifications and the observer registry that delivers them.

Listeners are registered per SessionEvent and may be plain callables or
coroutine functions. Emission awaits each listener in registration order
before returning, so the receive loop hands out notifications in the order
packets arrived. A listener that raises is logged and skipped; it never
stops the session loops or the remaining listeners.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union

from shared.log import get_logger

logger = get_logger(__name__)


class SessionEvent(str, Enum):
    CONNECTED = "connected"                    # no argument
    DISCONNECTED = "disconnected"              # no argument
    CHANNEL_JOINED = "channel_joined"          # channel name
    CHANNEL_LEFT = "channel_left"              # channel name
    HEARTBEAT_RECEIVED = "heartbeat_received"  # HeartbeatReceived
    CLIP_CREATED = "clip_created"              # ClipCreated


@dataclass(frozen=True)
class HeartbeatReceived:
    device: str
    heartbeat: int


@dataclass(frozen=True)
class ClipCreated:
    device: str
    twitch_slug: str


Listener = Callable[..., Union[None, Awaitable[None]]]


class EventEmitter:
    """Per-event listener lists with ordered, isolated delivery."""

    def __init__(self) -> None:
        self._listeners: Dict[SessionEvent, List[Listener]] = {event: [] for event in SessionEvent}

    def on(self, event: SessionEvent, listener: Listener) -> Listener:
        """Register a listener and return it, so it can be kept for off()."""
        self._listeners[SessionEvent(event)].append(listener)
        return listener

    def off(self, event: SessionEvent, listener: Listener) -> None:
        listeners = self._listeners[SessionEvent(event)]
        if listener in listeners:
            listeners.remove(listener)

    async def emit(self, event: SessionEvent, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener %r for %s failed", listener, event.value)
