"""Base class shared by venue protocol adapters."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from decimal import InvalidOperation
from typing import Any, ClassVar, Mapping, Optional, Union

from common.errors import ParseError
from common.models import CanonicalBook, Venue

logger = logging.getLogger(__name__)

RawMessage = Union[str, bytes, bytearray, Mapping[str, Any]]


class VenueAdapter(ABC):
    """Translate one venue's wire protocol to and from canonical books.

    Adapters are stateless. They never raise for malformed inbound frames;
    anything that is not a book update for the subscribed channel yields
    ``None`` from :meth:`parse_update`.
    """

    venue: ClassVar[Venue]
    url: ClassVar[str]
    # Seconds between client-initiated pings, ``None`` when the venue drives keep-alive.
    ping_interval: ClassVar[Optional[float]] = None

    @abstractmethod
    def build_subscribe(self, symbol: str) -> dict[str, Any]:
        """Return the subscribe frame for ``symbol``'s book channel."""

    @abstractmethod
    def build_unsubscribe(self, symbol: str) -> dict[str, Any]:
        """Return the unsubscribe frame mirroring :meth:`build_subscribe`."""

    def build_ping(self) -> Optional[dict[str, Any]]:
        return None

    def decode(self, raw: RawMessage) -> Optional[dict[str, Any]]:
        """Decode a raw frame into a JSON object, or ``None`` if it is not one."""

        if isinstance(raw, Mapping):
            return dict(raw)
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug("Undecodable %s frame dropped", self.venue.value)
                return None
        text = raw.strip()
        if text.lower() in {"ping", "pong"}:
            return {"op": text.lower()}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Non JSON %s payload: %s", self.venue.value, text[:200])
            return None
        return payload if isinstance(payload, dict) else None

    def is_keepalive(self, message: RawMessage) -> bool:
        payload = self.decode(message)
        if payload is None:
            return False
        return payload.get("op") == "pong" or payload.get("event") == "pong"

    def keepalive_reply(self, message: RawMessage) -> Optional[dict[str, Any]]:
        """Frame to send back for a server-initiated ping, if the venue needs one."""

        return None

    def parse_update(
        self, message: RawMessage, symbol: Optional[str] = None
    ) -> Optional[CanonicalBook]:
        """Return the canonical book carried by ``message``, or ``None``.

        When ``symbol`` is given, book updates for other instruments are
        ignored as well.
        """

        payload = self.decode(message)
        if payload is None or self.is_keepalive(payload):
            return None
        try:
            return self._parse_book(payload, symbol)
        except (
            ParseError, InvalidOperation, KeyError, IndexError, TypeError, AttributeError
        ) as exc:
            logger.debug("Dropping malformed %s book message: %s", self.venue.value, exc)
            return None

    @abstractmethod
    def _parse_book(
        self, payload: dict[str, Any], symbol: Optional[str]
    ) -> Optional[CanonicalBook]:
        """Extract the book from a decoded payload; may raise on bad shapes."""


def require_list(value: object, field: str) -> list[Any]:
    if not isinstance(value, list):
        raise ParseError(f"Expected list for {field}, got {type(value).__name__}")
    return value


__all__ = ["RawMessage", "VenueAdapter", "require_list"]
