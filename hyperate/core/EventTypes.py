from __future__ import annotations

from enum import Enum
from typing import Optional


class EventType(str, Enum):
    """Event names carried in the envelope ``event`` field."""

    # Client -> server
    PHX_JOIN = "phx_join"                # Join a channel
    PHX_LEAVE = "phx_leave"              # Leave a channel
    HEARTBEAT = "heartbeat"              # Keep-alive on the "phoenix" topic

    # Server -> client
    PHX_REPLY = "phx_reply"              # Ack for a join/leave, correlated by ref
    HR_UPDATE = "hr_update"              # New heart rate on an "hr:" topic
    CLIP_CREATED = "clip:created"        # New clip on a "clips:" topic

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional[EventType]:
        """Convert string to EventType, None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class ChannelType(str, Enum):
    """Channel classification by topic prefix."""
    HEARTBEAT = "heartbeat"
    CLIPS = "clips"
    UNKNOWN = "unknown"


class RefType(str, Enum):
    """What an inbound ref correlates to."""
    JOIN = "join"
    LEAVE = "leave"
    UNKNOWN = "unknown"


class ChannelState(str, Enum):
    """Membership state of one channel name."""
    ABSENT = "absent"
    JOINING = "joining"
    JOINED = "joined"
    LEAVING = "leaving"


class PacketKind(str, Enum):
    """Classification of an inbound envelope."""
    SYSTEM = "system"
    HEARTBEAT = "heartbeat"
    CLIPS = "clips"
    UNKNOWN = "unknown"


HEARTBEAT_TOPIC_PREFIX = "hr:"
CLIPS_TOPIC_PREFIX = "clips:"


def determine_channel_type(channel_name: str) -> ChannelType:
    """Classify a channel by its topic prefix."""
    if channel_name.startswith(HEARTBEAT_TOPIC_PREFIX):
        return ChannelType.HEARTBEAT
    if channel_name.startswith(CLIPS_TOPIC_PREFIX):
        return ChannelType.CLIPS
    return ChannelType.UNKNOWN
