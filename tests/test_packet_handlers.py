import json

import pytest

from conftest import Recorder, reply
from hyperate.core.EventTypes import ChannelState, EventType, PacketKind
from hyperate.core.PacketHandlers import (
    PACKET_HANDLER_REGISTRY,
    classify,
    decode_clip,
    decode_heartbeat,
    dispatch_packet,
)
from hyperate.events import ClipCreated, HeartbeatReceived, SessionEvent
from hyperate.session import HypeRateSession
from shared.envelope import Envelope


def make_session(recorder: Recorder) -> HypeRateSession:
    session = HypeRateSession(api_token="token")
    for event in SessionEvent:
        session.on(event, recorder.listener(event.value))
    return session


# Classification


@pytest.mark.parametrize(
    "event, kind",
    [
        ("phx_reply", PacketKind.SYSTEM),
        ("hr_update", PacketKind.HEARTBEAT),
        ("clip:created", PacketKind.CLIPS),
        ("presence_diff", PacketKind.UNKNOWN),
        ("phx_join", PacketKind.UNKNOWN),
        (None, PacketKind.UNKNOWN),
    ],
)
def test_classify(event, kind):
    assert classify(Envelope(event=event)) is kind


def test_registry_covers_inbound_events():
    assert set(PACKET_HANDLER_REGISTRY) == {EventType.PHX_REPLY, EventType.HR_UPDATE, EventType.CLIP_CREATED}


# Typed decoding


def test_decode_heartbeat_strips_prefix():
    env = Envelope.from_json('{"event":"hr_update","topic":"hr:ABC123","payload":{"hr":72}}')
    assert decode_heartbeat(env) == HeartbeatReceived(device="ABC123", heartbeat=72)


def test_decode_heartbeat_truncates_float():
    env = Envelope(event="hr_update", topic="hr:ABC", payload={"hr": 71.9})
    assert decode_heartbeat(env) == HeartbeatReceived(device="ABC", heartbeat=71)


@pytest.mark.parametrize("payload", [{}, {"hr": None}, {"hr": "72"}, {"hr": True}, {"hr": float("nan")}])
def test_decode_heartbeat_requires_numeric_hr(payload):
    assert decode_heartbeat(Envelope(event="hr_update", topic="hr:ABC", payload=payload)) is None


def test_decode_heartbeat_requires_topic():
    assert decode_heartbeat(Envelope(event="hr_update", payload={"hr": 72})) is None


def test_decode_clip_strips_prefix():
    env = Envelope(event="clip:created", topic="clips:ABC123", payload={"twitch_slug": "FunnySlug"})
    assert decode_clip(env) == ClipCreated(device="ABC123", twitch_slug="FunnySlug")


@pytest.mark.parametrize("payload", [{}, {"twitch_slug": None}, {"twitch_slug": 12}])
def test_decode_clip_requires_slug(payload):
    assert decode_clip(Envelope(event="clip:created", topic="clips:ABC", payload=payload)) is None


# Dispatch


@pytest.mark.asyncio
async def test_dispatch_heartbeat_emits_notification(recorder):
    session = make_session(recorder)
    await dispatch_packet(session, '{"event":"hr_update","topic":"hr:ABC","payload":{"hr":72}}')
    assert recorder.calls == [("heartbeat_received", HeartbeatReceived("ABC", 72))]


@pytest.mark.asyncio
async def test_dispatch_heartbeat_without_hr_is_dropped(recorder):
    session = make_session(recorder)
    await dispatch_packet(session, '{"event":"hr_update","topic":"hr:ABC","payload":{}}')
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_dispatch_clip_emits_notification(recorder):
    session = make_session(recorder)
    frame = json.dumps({"event": "clip:created", "topic": "clips:ABC", "payload": {"twitch_slug": "Slug"}})
    await dispatch_packet(session, frame)
    assert recorder.calls == [("clip_created", ClipCreated("ABC", "Slug"))]


@pytest.mark.asyncio
async def test_dispatch_join_ack_emits_channel_joined_once(recorder):
    session = make_session(recorder)
    ref = session.channels.join_channel("hr:ABC")

    await dispatch_packet(session, json.dumps(reply(ref, "hr:ABC")))
    await dispatch_packet(session, json.dumps(reply(ref, "hr:ABC")))

    assert recorder.calls == [("channel_joined", "hr:ABC")]
    assert session.channels.state_of("hr:ABC") is ChannelState.JOINED


@pytest.mark.asyncio
async def test_dispatch_leave_ack_emits_channel_left(recorder):
    session = make_session(recorder)
    session.channels.handle_join(session.channels.join_channel("hr:ABC"))
    ref = session.channels.leave_channel("hr:ABC")

    await dispatch_packet(session, json.dumps(reply(ref, "hr:ABC")))

    assert recorder.calls == [("channel_left", "hr:ABC")]
    assert session.channels.state_of("hr:ABC") is ChannelState.ABSENT


@pytest.mark.asyncio
@pytest.mark.parametrize("ref", [None, 0, 987654])
async def test_dispatch_reply_with_unknown_or_missing_ref_is_ignored(recorder, ref):
    session = make_session(recorder)
    session.channels.join_channel("hr:ABC")
    await dispatch_packet(session, json.dumps(reply(ref)))
    assert recorder.calls == []
    assert session.channels.state_of("hr:ABC") is ChannelState.JOINING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "frame",
    [
        "",
        "garbage",
        "[]",
        '{"event":"presence_state","topic":"hr:ABC","payload":{}}',
        '{"topic":"hr:ABC","payload":{"hr":72}}',
    ],
)
async def test_dispatch_drops_malformed_and_unknown_frames(recorder, frame):
    session = make_session(recorder)
    await dispatch_packet(session, frame)
    assert recorder.calls == []
