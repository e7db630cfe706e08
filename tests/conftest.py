"""Shared fixtures: in-memory transports standing in for venue websockets."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, Mapping

import pytest

from common.errors import TransportError
from feed.transport import Transport

_CLOSED = object()


class FakeTransport(Transport):
    """Scriptable transport: tests push inbound frames and inspect sent ones."""

    def __init__(self, url: str, fail_connect: bool = False, hold_connect: bool = False) -> None:
        self.url = url
        self.fail_connect = fail_connect
        self.sent: list[dict[str, Any]] = []
        self.connected = False
        self.closed = False
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()
        self._release = asyncio.Event()
        if not hold_connect:
            self._release.set()

    @property
    def writable(self) -> bool:
        return self.connected and not self.closed

    async def connect(self) -> None:
        await self._release.wait()
        if self.fail_connect:
            raise TransportError(f"refused by {self.url}")
        self.connected = True

    async def send_json(self, message: Mapping[str, Any]) -> None:
        if not self.writable:
            raise TransportError("not open")
        self.sent.append(dict(message))

    async def close(self) -> None:
        self.closed = True

    async def __aiter__(self) -> AsyncIterator[str | bytes]:
        while True:
            item = await self._inbound.get()
            if item is _CLOSED:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def release(self) -> None:
        self._release.set()

    def push(self, raw: str | bytes) -> None:
        self._inbound.put_nowait(raw)

    def drop(self) -> None:
        """Simulate the venue closing the socket."""

        self._inbound.put_nowait(_CLOSED)

    def fail(self, message: str = "connection reset") -> None:
        self._inbound.put_nowait(TransportError(message))


class TransportRecorder:
    """Transport factory that remembers every transport it created."""

    def __init__(self, **options: Any) -> None:
        self.options = options
        self.created: list[FakeTransport] = []

    def __call__(self, url: str) -> FakeTransport:
        transport = FakeTransport(url, **self.options)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def transports() -> TransportRecorder:
    return TransportRecorder()
