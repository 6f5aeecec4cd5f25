from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
import json

# Reserved ref for keep-alive packets; never handed out for join/leave.
KEEPALIVE_REF = 0
KEEPALIVE_TOPIC = "phoenix"


class EnvelopeError(ValueError):
    """Raised when an inbound frame is not a usable envelope."""
    pass


@dataclass
class Envelope:
    """
    Every frame on the socket, in either direction, uses the envelope:
    {
    "event":   "STRING",
    "topic":   "STRING",
    "ref":     "INT | null",
    "payload": { ... }
    }

    Inbound frames may omit any of event/topic/ref; payload defaults to {}.
    """
    event: Optional[str] = None
    topic: Optional[str] = None
    ref: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> 'Envelope':
        """Parse a raw frame into an Envelope, validating structure"""
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise EnvelopeError(f"Frame is not UTF-8: {e}")
        if not raw or not raw.strip():
            raise EnvelopeError("Empty frame")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise EnvelopeError(f"Invalid JSON: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> 'Envelope':
        """Create Envelope from dictionary, validating field types"""
        if not isinstance(data, dict):
            raise EnvelopeError("Envelope must be a JSON object")

        event = data.get('event')
        if event is not None and not isinstance(event, str):
            raise EnvelopeError("'event' must be a string")
        topic = data.get('topic')
        if topic is not None and not isinstance(topic, str):
            raise EnvelopeError("'topic' must be a string")
        ref = data.get('ref')
        # bool is an int subclass; a JSON true/false is not a ref
        if ref is not None and (isinstance(ref, bool) or not isinstance(ref, int)):
            raise EnvelopeError("'ref' must be an integer or null")
        payload = data.get('payload')
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise EnvelopeError("'payload' must be an object")

        return cls(event=event, topic=topic, ref=ref, payload=payload)

    def to_dict(self) -> Dict[str, Any]:
        """Convert Envelope back to dictionary"""
        return {
            'event': self.event,
            'topic': self.topic,
            'ref': self.ref,
            'payload': self.payload,
        }

    def to_json(self) -> str:
        """Convert Envelope to JSON string"""
        return json.dumps(self.to_dict(), separators=(',', ':'))


def create_envelope(event: str, topic: str, ref: int,
                    payload: Optional[Dict[str, Any]] = None) -> Envelope:
    """Helper to create a new outbound envelope (empty payload if not provided)"""
    return Envelope(event=event, topic=topic, ref=ref, payload=dict(payload or {}))
