"""Websocket transports used by the feed session manager."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, Mapping, Optional

import aiohttp

from common.errors import TransportError

logger = logging.getLogger(__name__)


class Transport(ABC):
    """One bidirectional connection to a venue.

    ``connect`` returning is the open event, iteration yields inbound frames,
    :class:`TransportError` is the error event and iteration ending is the
    close event.
    """

    @property
    @abstractmethod
    def writable(self) -> bool:
        """Whether :meth:`send_json` can currently succeed."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection."""

    @abstractmethod
    async def send_json(self, message: Mapping[str, Any]) -> None:
        """Send a JSON frame."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str | bytes]:
        """Yield raw inbound frames until the venue closes the connection."""


class AiohttpTransport(Transport):
    """:class:`Transport` backed by an ``aiohttp`` client websocket."""

    def __init__(
        self,
        url: str,
        session: aiohttp.ClientSession | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self.url = url
        self.connect_timeout = connect_timeout
        self._session = session
        self._owned_session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def writable(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        if self._ws is not None:
            raise TransportError(f"Transport to {self.url} already connected")

        session = self._session
        if session is None:
            session = self._owned_session = aiohttp.ClientSession()
        try:
            self._ws = await asyncio.wait_for(
                session.ws_connect(self.url, autoping=True), timeout=self.connect_timeout
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            await self.close()
            raise TransportError(f"Could not connect to {self.url}: {exc!r}") from exc
        logger.debug("Websocket connected to %s", self.url)

    async def send_json(self, message: Mapping[str, Any]) -> None:
        if not self.writable:
            raise TransportError(f"Transport to {self.url} is not open")
        assert self._ws is not None
        try:
            await self._ws.send_json(dict(message))
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as exc:
            raise TransportError(f"Send to {self.url} failed: {exc!r}") from exc

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        owned, self._owned_session = self._owned_session, None
        if owned is not None:
            await owned.close()

    async def __aiter__(self) -> AsyncIterator[str | bytes]:
        ws = self._ws
        if ws is None:
            raise TransportError(f"Transport to {self.url} is not open")
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(f"Websocket error from {self.url}: {ws.exception()!r}")
        logger.debug("Websocket to %s closed with code %s", self.url, ws.close_code)


__all__ = ["AiohttpTransport", "Transport"]
