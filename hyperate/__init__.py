"""
HypeRate channel client.

Connects to the HypeRate real-time API, joins heartbeat and clip channels
for devices, and reports what arrives on them through session listeners.
"""

from .session import HypeRateSession
from .events import ClipCreated, HeartbeatReceived, SessionEvent
from .core.ChannelManager import ChannelManager
from .core.ConnectionLink import NotConnectedError
from .core.EventTypes import ChannelState, ChannelType, RefType, determine_channel_type

__all__ = [
    "HypeRateSession",
    "SessionEvent",
    "HeartbeatReceived",
    "ClipCreated",
    "ChannelManager",
    "ChannelState",
    "ChannelType",
    "RefType",
    "NotConnectedError",
    "determine_channel_type",
]
