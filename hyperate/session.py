#!/usr/bin/env python3
"""
HypeRate channel session.

One HypeRateSession owns one websocket connection at a time and a
ChannelManager tracking which topics are joined over it. Two background
tasks run while the session is started:

- the keep-alive loop sends a phoenix heartbeat every keepalive_interval
  seconds while the connection is open;
- the receive loop reads frames one at a time, in arrival order, and hands
  each to the packet dispatcher.

Usage:
    async with HypeRateSession(api_token="...") as session:
        session.on(SessionEvent.HEARTBEAT_RECEIVED, print)
        await session.connect()
        await session.join_heartbeat_channel("abc123")
        ...
"""

from __future__ import annotations
import asyncio
import random
from contextlib import suppress
from typing import Any, Awaitable, Callable, List, Optional, Set, TypeVar
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed

from hyperate.core.ChannelManager import ChannelManager
from hyperate.core.ConnectionLink import ConnectionLink, NotConnectedError
from hyperate.core.EventTypes import (
    CLIPS_TOPIC_PREFIX,
    HEARTBEAT_TOPIC_PREFIX,
    ChannelType,
    determine_channel_type,
)
from hyperate.core.PacketHandlers import dispatch_packet
from hyperate.events import EventEmitter, Listener, SessionEvent
from shared.config import DEFAULT_BASE_URL, DEFAULT_IDLE_DELAY, DEFAULT_KEEPALIVE_INTERVAL, ClientSettings
from shared.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Anything awaitable that yields an open websocket, e.g. websockets.connect
Connector = Callable[[str], Awaitable[Any]]


class HypeRateSession:

    def __init__(
        self,
        api_token: str = "",
        base_url: str = DEFAULT_BASE_URL,
        *,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        idle_delay: float = DEFAULT_IDLE_DELAY,
        connector: Optional[Connector] = None,
        rng: Optional[random.Random] = None,
    ):
        self.api_token = api_token.strip()
        self.base_url = base_url
        self.keepalive_interval = keepalive_interval
        self.idle_delay = idle_delay
        self.events = EventEmitter()

        self._connector: Connector = connector or websockets.connect
        self._rng = rng
        self._channels = ChannelManager(rng)
        self._link: Optional[ConnectionLink] = None
        # connect/disconnect/reconnect never interleave
        self._connection_lock = asyncio.Lock()
        self._background_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: ClientSettings, **kwargs: Any) -> "HypeRateSession":
        return cls(
            settings.api_token,
            settings.base_url,
            keepalive_interval=settings.keepalive_interval,
            idle_delay=settings.idle_delay,
            **kwargs,
        )

    # ========================================
    #           STATE
    # ========================================

    def set_api_token(self, api_token: str) -> None:
        """Use a new token from the next connect on. Surrounding whitespace is dropped."""
        self.api_token = api_token.strip()

    @property
    def connection_url(self) -> str:
        separator = "&" if "?" in self.base_url else "?"
        return f"{self.base_url}{separator}{urlencode({'token': self.api_token})}"

    @property
    def channels(self) -> ChannelManager:
        """Channel bookkeeping for the current connection. Replaced on every connect."""
        return self._channels

    @property
    def is_connected(self) -> bool:
        return self._link is not None and self._link.is_open

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._background_tasks)

    @staticmethod
    def determine_channel_type(channel_name: str) -> ChannelType:
        return determine_channel_type(channel_name)

    # ========================================
    #           OBSERVERS
    # ========================================

    def on(self, event: SessionEvent, listener: Listener) -> Listener:
        return self.events.on(event, listener)

    def off(self, event: SessionEvent, listener: Listener) -> None:
        self.events.off(event, listener)

    # ========================================
    #           LIFECYCLE
    # ========================================

    def _track_background_task(self, task: asyncio.Task) -> None:
        """Keep a strong reference to background tasks until completion."""
        self._background_tasks.add(task)

        def _discard(_task: asyncio.Task) -> None:
            self._background_tasks.discard(_task)

        task.add_done_callback(_discard)

    async def start(self) -> None:
        """Start the keep-alive and receive loops. Calling it twice is harmless."""
        if self.is_running:
            return
        for coroutine in (self._keepalive_loop(), self._receive_loop()):
            task = asyncio.create_task(coroutine)
            self._track_background_task(task)
        logger.debug("Session loops started")

    async def stop(self) -> None:
        """Cancel both loops and close the connection if one is open."""
        for task in list(self._background_tasks):
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self.disconnect()
        logger.debug("Session stopped")

    async def __aenter__(self) -> "HypeRateSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ========================================
    #           CONNECTION
    # ========================================

    async def connect(self, timeout: Optional[float] = None) -> None:
        """
        Open a connection with the configured token and start fresh bookkeeping.

        Transport errors (refused connection, bad handshake, timeout) propagate.
        An already open connection is closed first.
        """
        async with self._connection_lock:
            await self._connect(timeout)

    async def disconnect(self, timeout: Optional[float] = None) -> None:
        """
        Close the connection. Channel bookkeeping is kept so that a later
        reconnect knows what to rejoin; it is only reset by the next connect.
        """
        async with self._connection_lock:
            await self._disconnect(timeout)

    async def reconnect(self, timeout: Optional[float] = None) -> None:
        """Disconnect, connect again and rejoin every channel that was joined or joining."""
        async with self._connection_lock:
            channels_to_rejoin = self._channels.get_channels_to_rejoin()
            await self._disconnect(timeout)
            await self._connect(timeout)

        logger.info("Rejoining %d channel(s)", len(channels_to_rejoin))
        for channel_name in channels_to_rejoin:
            await self.join_channel(channel_name, timeout=timeout)

    async def _connect(self, timeout: Optional[float]) -> None:
        if self._link is not None:
            await self._disconnect(timeout)

        if not self.api_token:
            logger.warning("Connecting without an API token; the server will refuse the handshake")
        logger.info("Connecting to %s", self.base_url)
        websocket = await _with_timeout(self._connector(self.connection_url), timeout)

        self._channels = ChannelManager(self._rng)
        self._link = ConnectionLink(websocket, self.base_url)
        logger.info("Connected to %s", self.base_url)
        await self.events.emit(SessionEvent.CONNECTED)

    async def _disconnect(self, timeout: Optional[float]) -> None:
        link = self._link
        if link is None:
            logger.debug("Disconnect requested with no connection")
            return

        # Detach first so the receive loop treats the close as expected
        self._link = None
        link.lost = True
        await _with_timeout(link.close(), timeout)
        logger.info("Disconnected from %s", link.endpoint)
        await self.events.emit(SessionEvent.DISCONNECTED)

    async def _handle_link_lost(self, link: ConnectionLink) -> None:
        """Report a connection that died underneath us, once per connection."""
        if link.lost:
            return
        link.lost = True
        if self._link is link:
            self._link = None
        logger.warning("Connection to %s lost", link.endpoint)
        await self.events.emit(SessionEvent.DISCONNECTED)

    # ========================================
    #           CHANNELS
    # ========================================

    async def join_channel(self, channel_name: str, timeout: Optional[float] = None) -> None:
        """Request to join a channel. Nothing is sent if it is already joined or joining."""
        link = self._require_link()
        join_ref = self._channels.join_channel(channel_name)
        if join_ref is None:
            return
        await self._send(link, link.send_join(channel_name, join_ref), timeout)

    async def leave_channel(self, channel_name: str, timeout: Optional[float] = None) -> None:
        """
        Request to leave a channel. A channel whose join is still pending is
        dropped locally without sending anything.
        """
        link = self._require_link()
        leave_ref = self._channels.leave_channel(channel_name)
        if leave_ref is None:
            return
        await self._send(link, link.send_leave(channel_name, leave_ref), timeout)

    async def join_heartbeat_channel(self, device_id: str, timeout: Optional[float] = None) -> None:
        await self.join_channel(f"{HEARTBEAT_TOPIC_PREFIX}{device_id}", timeout)

    async def leave_heartbeat_channel(self, device_id: str, timeout: Optional[float] = None) -> None:
        await self.leave_channel(f"{HEARTBEAT_TOPIC_PREFIX}{device_id}", timeout)

    async def join_clips_channel(self, device_id: str, timeout: Optional[float] = None) -> None:
        await self.join_channel(f"{CLIPS_TOPIC_PREFIX}{device_id}", timeout)

    async def leave_clips_channel(self, device_id: str, timeout: Optional[float] = None) -> None:
        await self.leave_channel(f"{CLIPS_TOPIC_PREFIX}{device_id}", timeout)

    def get_channels_to_rejoin(self) -> List[str]:
        return self._channels.get_channels_to_rejoin()

    # ========================================
    #           SEND PATH
    # ========================================

    def _require_link(self) -> ConnectionLink:
        link = self._link
        if link is None or not link.is_open:
            raise NotConnectedError("Not connected to the HypeRate server")
        return link

    async def _send(self, link: ConnectionLink, send: Awaitable[None], timeout: Optional[float]) -> None:
        try:
            await _with_timeout(send, timeout)
        except ConnectionClosed:
            await self._handle_link_lost(link)
            raise

    # ========================================
    #           DUTY LOOPS
    # ========================================

    async def _keepalive_loop(self) -> None:
        """Send a phoenix heartbeat every keepalive_interval while connected."""
        while True:
            link = self._link
            if link is not None and link.is_open:
                try:
                    await self._send(link, link.send_keepalive(), None)
                except Exception as e:
                    logger.warning(f"Keep-alive send failed: {e}")
            await asyncio.sleep(self.keepalive_interval)

    async def _receive_loop(self) -> None:
        """Read and dispatch frames in arrival order; idle while there is no open connection."""
        while True:
            link = self._link
            if link is None:
                await asyncio.sleep(self.idle_delay)
                continue
            if not link.is_open:
                await self._handle_link_lost(link)
                continue

            try:
                message = await link.recv_message()
            except ConnectionClosed as e:
                logger.info(f"Connection closed by server: {e}")
                await self._handle_link_lost(link)
                continue
            except Exception as e:
                logger.error(f"Error reading from connection: {e}")
                await asyncio.sleep(self.idle_delay)
                continue

            # disconnect/reconnect may have finished while the read was pending
            if link.lost or self._link is not link:
                logger.debug("Dropping frame from a closed connection")
                continue

            try:
                await dispatch_packet(self, message)
            except Exception:
                logger.exception("Error dispatching packet")


async def _with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout)
