"""Single-slot live feed session manager.

At most one venue session exists at a time. Activating a venue tears down
the previous occupant before the new transport is opened.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from common.bus import EventBus
from common.errors import TransportError
from common.models import CanonicalBook, ConnectionState, FeedUpdate, Venue
from venues import RawMessage, VenueAdapter, get_adapter

from .transport import AiohttpTransport, Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], Transport]


@dataclass(eq=False)
class VenueSession:
    """The live subscription owned by :class:`FeedSessionManager`."""

    venue: Venue
    symbol: str
    adapter: VenueAdapter
    transport: Transport
    state: ConnectionState = ConnectionState.CONNECTING
    book: CanonicalBook = field(default_factory=CanonicalBook.empty)
    keepalive_task: Optional[asyncio.Task[None]] = None
    reader_task: Optional[asyncio.Task[None]] = None

    @property
    def label(self) -> str:
        return f"{self.venue.value}:{self.symbol}"


class FeedSessionManager:
    """Drive one venue session and republish its canonical book.

    State machine: ``idle -> connecting -> open -> closing -> idle`` with
    ``errored`` reachable from ``connecting`` and ``open``. Failures are
    published as connection state; reconnecting is left to the caller.
    """

    def __init__(
        self,
        bus: EventBus[FeedUpdate],
        transport_factory: TransportFactory | None = None,
        adapters: Mapping[Venue, VenueAdapter] | None = None,
        urls: Mapping[Venue, str] | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._bus = bus
        self._connect_timeout = connect_timeout
        self._transport_factory = transport_factory or self._default_transport
        self._adapters = dict(adapters or {})
        self._urls = dict(urls or {})
        self._current: Optional[VenueSession] = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> Optional[VenueSession]:
        return self._current

    @property
    def connection_state(self) -> ConnectionState:
        return self._current.state if self._current else ConnectionState.IDLE

    @property
    def book(self) -> CanonicalBook:
        return self._current.book if self._current else CanonicalBook.empty()

    def snapshot(self) -> FeedUpdate:
        """Current ``{book, connection_state}`` view for renderers."""

        session = self._current
        if session is None:
            return FeedUpdate()
        return self._update_for(session)

    async def activate(self, venue: Venue | str, symbol: str) -> VenueSession:
        """Replace the active session with a subscription to ``symbol`` on ``venue``.

        Returns once the new session is connecting; the handshake and message
        loop run in a background task.
        """

        venue = Venue.parse(venue)
        symbol = symbol.strip()
        if not symbol:
            raise ValueError("symbol must not be empty")

        async with self._lock:
            await self._teardown()

            adapter = self._adapters.get(venue) or get_adapter(venue)
            url = self._urls.get(venue, adapter.url)
            session = VenueSession(
                venue=venue,
                symbol=symbol,
                adapter=adapter,
                transport=self._transport_factory(url),
            )
            self._current = session
            logger.info("Connecting to %s at %s", session.label, url)
            await self._publish(session)
            session.reader_task = asyncio.create_task(
                self._run(session), name=f"{venue.value.lower()}-feed"
            )
            return session

    async def deactivate(self) -> None:
        """Tear down the active session. A no-op when already idle."""

        async with self._lock:
            await self._teardown()

    async def on_inbound_message(
        self, raw: RawMessage, session: Optional[VenueSession] = None
    ) -> None:
        """Handle one inbound frame; the only place the published book changes."""

        session = session or self._current
        if session is None:
            return
        adapter = session.adapter

        payload = adapter.decode(raw)
        if payload is None:
            return

        if adapter.is_keepalive(payload):
            reply = adapter.keepalive_reply(payload)
            if reply is not None:
                try:
                    await session.transport.send_json(reply)
                except TransportError as exc:
                    logger.debug("Keep-alive reply to %s failed: %s", session.label, exc)
            return

        book = adapter.parse_update(payload, session.symbol)
        if book is None:
            return
        if session is not self._current or session.state is not ConnectionState.OPEN:
            return

        session.book = book
        await self._publish(session)

    async def _run(self, session: VenueSession) -> None:
        try:
            await session.transport.connect()
            await session.transport.send_json(session.adapter.build_subscribe(session.symbol))
            session.state = ConnectionState.OPEN
            logger.info("Subscribed to %s book", session.label)
            await self._publish(session)
            self._start_keepalive(session)

            async for raw in session.transport:
                await self.on_inbound_message(raw, session)
            raise TransportError("connection closed by venue")
        except TransportError as exc:
            if session.state is not ConnectionState.CLOSING:
                logger.warning("%s feed failed: %s", session.label, exc)
            await self._fail(session)
        except Exception as exc:  # pragma: no cover - logged for operators
            logger.exception("%s feed errored: %s", session.label, exc)
            await self._fail(session)
        finally:
            await self._stop_keepalive(session)

    async def _fail(self, session: VenueSession) -> None:
        if session.state in (ConnectionState.CLOSING, ConnectionState.IDLE):
            return

        session.state = ConnectionState.ERRORED
        await self._publish(session)
        await self._stop_keepalive(session)
        with suppress(TransportError):
            await session.transport.close()

        session.state = ConnectionState.IDLE
        session.book = CanonicalBook.empty()
        if self._current is session:
            self._current = None
        await self._publish(session)

    async def _teardown(self) -> None:
        session = self._current
        if session is None:
            return

        self._current = None
        was_open = session.state is ConnectionState.OPEN
        if session.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            session.state = ConnectionState.CLOSING
            await self._publish(session)

        await self._stop_keepalive(session)
        if was_open and session.transport.writable:
            try:
                await session.transport.send_json(
                    session.adapter.build_unsubscribe(session.symbol)
                )
            except TransportError as exc:
                logger.debug("Unsubscribe from %s failed: %s", session.label, exc)

        task = session.reader_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        with suppress(TransportError):
            await session.transport.close()

        if session.state is not ConnectionState.IDLE:
            session.state = ConnectionState.IDLE
            session.book = CanonicalBook.empty()
            await self._publish(session)
        logger.info("Closed %s session", session.label)

    def _start_keepalive(self, session: VenueSession) -> None:
        interval = session.adapter.ping_interval
        if not interval:
            return
        session.keepalive_task = asyncio.create_task(
            self._keepalive(session, interval),
            name=f"{session.venue.value.lower()}-keepalive",
        )

    async def _stop_keepalive(self, session: VenueSession) -> None:
        task, session.keepalive_task = session.keepalive_task, None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _keepalive(self, session: VenueSession, interval: float) -> None:
        ping = session.adapter.build_ping()
        if ping is None:
            return
        while True:
            await asyncio.sleep(interval)
            if session.state is not ConnectionState.OPEN or not session.transport.writable:
                return
            try:
                await session.transport.send_json(ping)
            except TransportError as exc:
                logger.warning("Ping to %s failed: %s", session.label, exc)
                return

    async def _publish(self, session: VenueSession) -> None:
        await self._bus.publish(self._update_for(session))

    @staticmethod
    def _update_for(session: VenueSession) -> FeedUpdate:
        return FeedUpdate(
            venue=session.venue,
            symbol=session.symbol,
            connection_state=session.state,
            book=session.book,
        )

    def _default_transport(self, url: str) -> Transport:
        return AiohttpTransport(url, connect_timeout=self._connect_timeout)


__all__ = ["FeedSessionManager", "TransportFactory", "VenueSession"]
