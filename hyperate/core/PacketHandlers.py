from __future__ import annotations

import math
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Optional, Union

from hyperate.core.EventTypes import (
    CLIPS_TOPIC_PREFIX,
    HEARTBEAT_TOPIC_PREFIX,
    EventType,
    PacketKind,
    RefType,
)
from hyperate.events import ClipCreated, HeartbeatReceived, SessionEvent
from shared.envelope import Envelope, EnvelopeError
from shared.log import get_logger, log_packet
from shared.utils import strip_topic_prefix

if TYPE_CHECKING:
    from hyperate.session import HypeRateSession

logger = get_logger(__name__)

# Type alias for handler functions
PacketHandler = Callable[["HypeRateSession", Envelope], Awaitable[None]]

_PACKET_KINDS: Dict[EventType, PacketKind] = {
    EventType.PHX_REPLY: PacketKind.SYSTEM,
    EventType.HR_UPDATE: PacketKind.HEARTBEAT,
    EventType.CLIP_CREATED: PacketKind.CLIPS,
}


def classify(envelope: Envelope) -> PacketKind:
    """Classify an inbound envelope by its event name."""
    event_type = EventType.from_string(envelope.event)
    if event_type is None:
        return PacketKind.UNKNOWN
    return _PACKET_KINDS.get(event_type, PacketKind.UNKNOWN)


def decode_heartbeat(envelope: Envelope) -> Optional[HeartbeatReceived]:
    """
    Read an hr_update payload ({"hr": <number>}).

    Returns None when the topic or a finite numeric hr is missing.
    """
    hr = envelope.payload.get("hr")
    if isinstance(hr, bool) or not isinstance(hr, (int, float)):
        return None
    if isinstance(hr, float) and not math.isfinite(hr):
        return None
    if envelope.topic is None:
        return None
    device = strip_topic_prefix(envelope.topic, HEARTBEAT_TOPIC_PREFIX)
    return HeartbeatReceived(device=device, heartbeat=int(hr))


def decode_clip(envelope: Envelope) -> Optional[ClipCreated]:
    """
    Read a clip:created payload ({"twitch_slug": <string>}).

    Returns None when the topic or the slug is missing.
    """
    slug = envelope.payload.get("twitch_slug")
    if not isinstance(slug, str):
        return None
    if envelope.topic is None:
        return None
    device = strip_topic_prefix(envelope.topic, CLIPS_TOPIC_PREFIX)
    return ClipCreated(device=device, twitch_slug=slug)


class SystemPacketHandlers:
    """Handlers for phoenix system traffic."""

    @staticmethod
    async def handle_phx_reply(session: "HypeRateSession", envelope: Envelope) -> None:
        """Resolve a join/leave ack against the current channel manager."""
        ref = envelope.ref
        if ref is None:
            log_packet(logger, "debug", "Reply without ref ignored", envelope.to_dict())
            return

        channels = session.channels
        ref_type = channels.determine_ref_type(ref)
        if ref_type is RefType.JOIN:
            joined = channels.handle_join(ref)
            if joined is not None:
                logger.info("Joined channel", extra={"topic": joined, "ref": ref})
                await session.events.emit(SessionEvent.CHANNEL_JOINED, joined)
        elif ref_type is RefType.LEAVE:
            left = channels.handle_leave(ref)
            if left is not None:
                logger.info("Left channel", extra={"topic": left, "ref": ref})
                await session.events.emit(SessionEvent.CHANNEL_LEFT, left)
        else:
            log_packet(logger, "debug", "Reply for unknown ref ignored", envelope.to_dict())


class DataPacketHandlers:
    """Handlers for per-device data pushed on joined channels."""

    @staticmethod
    async def handle_hr_update(session: "HypeRateSession", envelope: Envelope) -> None:
        heartbeat = decode_heartbeat(envelope)
        if heartbeat is None:
            log_packet(logger, "warning", "Dropping hr_update without usable hr", envelope.to_dict())
            return
        await session.events.emit(SessionEvent.HEARTBEAT_RECEIVED, heartbeat)

    @staticmethod
    async def handle_clip_created(session: "HypeRateSession", envelope: Envelope) -> None:
        clip = decode_clip(envelope)
        if clip is None:
            log_packet(logger, "warning", "Dropping clip:created without twitch_slug", envelope.to_dict())
            return
        await session.events.emit(SessionEvent.CLIP_CREATED, clip)


PACKET_HANDLER_REGISTRY: Dict[EventType, PacketHandler] = {
    EventType.PHX_REPLY: SystemPacketHandlers.handle_phx_reply,
    EventType.HR_UPDATE: DataPacketHandlers.handle_hr_update,
    EventType.CLIP_CREATED: DataPacketHandlers.handle_clip_created,
}


async def dispatch_packet(session: "HypeRateSession", raw: Union[str, bytes]) -> None:
    """
    Decode one raw frame and route it to its handler.

    Undecodable frames and unknown events are dropped here; nothing is raised
    back into the receive loop for them.
    """
    try:
        envelope = Envelope.from_json(raw)
    except EnvelopeError as e:
        logger.warning("Dropping malformed frame: %s", e)
        return

    if classify(envelope) is PacketKind.UNKNOWN:
        log_packet(logger, "debug", "Ignoring unhandled event", envelope.to_dict())
        return

    handler = PACKET_HANDLER_REGISTRY[EventType(envelope.event)]
    await handler(session, envelope)
