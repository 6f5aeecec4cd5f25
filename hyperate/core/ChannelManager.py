"""
Channel membership bookkeeping for one connection.

Each channel name is in exactly one of four states:

    ABSENT --join--> JOINING(ref) --ack--> JOINED --leave--> LEAVING(ref) --ack--> ABSENT
                         |
                         +--leave (local only, nothing sent)--> ABSENT

Refs tie an outbound phx_join/phx_leave to the server's phx_reply. A manager
lives exactly as long as one connection; the session builds a fresh one on
every connect, so refs from a dead socket can never resolve against a new one.

All methods are synchronous. The session calls them from a single event loop,
which is what serialises the receive loop's acks against caller join/leave.
"""

from __future__ import annotations

import random
from typing import Dict, List, Optional, Set

from hyperate.core.EventTypes import ChannelState, RefType
from shared.envelope import KEEPALIVE_REF
from shared.log import get_logger

logger = get_logger(__name__)

MIN_REF = KEEPALIVE_REF + 1
MAX_REF = 2**31 - 2  # INT32_MAX - 1


class RefAllocator:
    """
    Hands out random refs in [MIN_REF, MAX_REF] that are not currently reserved.

    A ref is reserved from allocation until ``release`` is called for it.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._in_use: Set[int] = set()

    def allocate(self) -> int:
        while True:
            candidate = self._rng.randint(MIN_REF, MAX_REF)
            if candidate not in self._in_use:
                self._in_use.add(candidate)
                return candidate

    def release(self, ref: int) -> None:
        self._in_use.discard(ref)

    @property
    def in_use(self) -> Set[int]:
        return set(self._in_use)


class ChannelManager:
    """
    Join/leave state machine for the channels of one connection.

    join_channel/leave_channel return the ref to send with the request, or
    None when nothing should be sent. handle_join/handle_leave resolve a
    server ack and return the channel name to notify about, or None when the
    ref is not one we are waiting on.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._refs = RefAllocator(rng)
        # dicts rather than sets so iteration order follows insertion
        self._joined: Dict[str, None] = {}
        self._joining: Dict[int, str] = {}
        self._leaving: Dict[int, str] = {}
        # reverse indexes so name lookups stay O(1)
        self._joining_by_name: Dict[str, int] = {}
        self._leaving_by_name: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def join_channel(self, channel_name: str) -> Optional[int]:
        state = self.state_of(channel_name)
        if state is not ChannelState.ABSENT:
            logger.debug("Join ignored, channel is %s", state.value, extra={"topic": channel_name})
            return None

        ref = self._refs.allocate()
        self._joining[ref] = channel_name
        self._joining_by_name[channel_name] = ref
        return ref

    def leave_channel(self, channel_name: str) -> Optional[int]:
        pending_join = self._joining_by_name.pop(channel_name, None)
        if pending_join is not None:
            # Nothing to retract server-side yet. The ref stays reserved so a
            # late ack for it resolves as unknown instead of hitting a newer request.
            del self._joining[pending_join]
            logger.debug("Dropped pending join", extra={"topic": channel_name, "ref": pending_join})
            return None

        if channel_name not in self._joined:
            return None

        ref = self._refs.allocate()
        del self._joined[channel_name]
        self._leaving[ref] = channel_name
        self._leaving_by_name[channel_name] = ref
        return ref

    def handle_join(self, ref: int) -> Optional[str]:
        channel_name = self._joining.pop(ref, None)
        if channel_name is None:
            return None

        del self._joining_by_name[channel_name]
        self._joined[channel_name] = None
        self._refs.release(ref)
        return channel_name

    def handle_leave(self, ref: int) -> Optional[str]:
        channel_name = self._leaving.pop(ref, None)
        if channel_name is None:
            return None

        del self._leaving_by_name[channel_name]
        self._refs.release(ref)
        return channel_name

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def determine_ref_type(self, ref: int) -> RefType:
        if ref in self._joining:
            return RefType.JOIN
        if ref in self._leaving:
            return RefType.LEAVE
        return RefType.UNKNOWN

    def state_of(self, channel_name: str) -> ChannelState:
        if channel_name in self._joined:
            return ChannelState.JOINED
        if channel_name in self._joining_by_name:
            return ChannelState.JOINING
        if channel_name in self._leaving_by_name:
            return ChannelState.LEAVING
        return ChannelState.ABSENT

    def get_channels_to_rejoin(self) -> List[str]:
        """Joined channels, then pending joins, skipping anything being left."""
        leaving = self._leaving_by_name
        rejoin = [name for name in self._joined if name not in leaving]
        rejoin.extend(name for name in self._joining.values() if name not in leaving)
        return rejoin

    @property
    def joined_channels(self) -> List[str]:
        return list(self._joined)

    @property
    def joining_channels(self) -> Dict[int, str]:
        return dict(self._joining)

    @property
    def leaving_channels(self) -> Dict[int, str]:
        return dict(self._leaving)

    @property
    def refs_in_use(self) -> Set[int]:
        return self._refs.in_use

    def __repr__(self) -> str:
        return (
            f"ChannelManager(joined={len(self._joined)}, "
            f"joining={len(self._joining)}, leaving={len(self._leaving)})"
        )
