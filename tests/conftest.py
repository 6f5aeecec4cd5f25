import asyncio
import json
import random
from typing import Any, List, Optional, Union

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.protocol import State


class FakeWebSocket:
    """Stands in for a websockets client connection: records sends, replays queued frames."""

    def __init__(self) -> None:
        self.sent_messages: list[str] = []
        self.state = State.OPEN
        self.close_code: int | None = None
        self.fail_sends = False
        # seconds send/close stall before completing, to exercise timeouts
        self.send_delay = 0.0
        self.close_delay = 0.0
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_sends and self.state is State.OPEN:
            self.drop()
        if self.state is not State.OPEN:
            raise ConnectionClosedError(None, None)
        self.sent_messages.append(data)

    async def recv(self) -> Union[str, bytes]:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.state = State.CLOSED
        self.close_code = code
        self._incoming.put_nowait(ConnectionClosedOK(None, None))

    # test helpers

    def feed(self, message: Union[str, bytes, dict]) -> None:
        if isinstance(message, dict):
            message = json.dumps(message)
        self._incoming.put_nowait(message)

    def feed_error(self, exc: BaseException) -> None:
        self._incoming.put_nowait(exc)

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self.state = State.CLOSED
        self._incoming.put_nowait(ConnectionClosedError(None, None))

    @property
    def sent_envelopes(self) -> List[dict]:
        return [json.loads(m) for m in self.sent_messages]

    def sent_events(self, event: str) -> List[dict]:
        return [env for env in self.sent_envelopes if env["event"] == event]


class FakeConnector:
    """Callable used in place of websockets.connect."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.sockets: list[FakeWebSocket] = []
        self.error: Optional[BaseException] = None
        self.delay: float = 0.0

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


class Recorder:
    """Collects listener calls as (event, args) tuples."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def listener(self, name: str):
        def _record(*args: Any) -> None:
            self.calls.append((name, *args))
        return _record

    def named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


async def wait_for(predicate, timeout: float = 1.0) -> bool:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.005)
    return predicate()


def reply(ref: Optional[int], topic: str = "phoenix") -> dict:
    return {"event": "phx_reply", "topic": topic, "ref": ref, "payload": {"status": "ok", "response": {}}}


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
