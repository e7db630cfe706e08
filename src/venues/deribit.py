"""Deribit JSON-RPC ``book.<instrument>.100ms`` adapter."""

from __future__ import annotations

from typing import Any, Optional

from common.errors import ParseError
from common.models import CanonicalBook, Venue

from .base import RawMessage, VenueAdapter, require_list

WS_URL = "wss://www.deribit.com/ws/api/v2"


def _channel(symbol: str) -> str:
    return f"book.{symbol}.100ms"


def _normalise_row(row: object) -> list[Any]:
    """Map a Deribit level row to ``[price, size]``.

    Rows arrive either as ``[price, amount]`` or ``[action, price, amount]``;
    a ``delete`` action carries no resting size.
    """

    entries = require_list(row, "level")
    if entries and isinstance(entries[0], str):
        if len(entries) < 3:
            raise ParseError(f"Short Deribit level row: {entries!r}")
        action, price, amount = entries[0], entries[1], entries[2]
        return [price, 0 if action == "delete" else amount]
    return entries


class DeribitBookAdapter(VenueAdapter):
    """Venue C: JSON-RPC envelope, server heartbeats and native numeric levels."""

    venue = Venue.DERIBIT
    url = WS_URL

    def build_subscribe(self, symbol: str) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "method": "public/subscribe",
            "params": {"channels": [_channel(symbol)]},
        }

    def build_unsubscribe(self, symbol: str) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "method": "public/unsubscribe",
            "params": {"channels": [_channel(symbol)]},
        }

    def is_keepalive(self, message: RawMessage) -> bool:
        payload = self.decode(message)
        if payload is None:
            return False
        return payload.get("method") == "heartbeat" or super().is_keepalive(payload)

    def keepalive_reply(self, message: RawMessage) -> Optional[dict[str, Any]]:
        payload = self.decode(message)
        if not payload or payload.get("method") != "heartbeat":
            return None
        params = payload.get("params")
        if isinstance(params, dict) and params.get("type") == "test_request":
            return {"jsonrpc": "2.0", "method": "public/test", "params": {}}
        return None

    def _parse_book(
        self, payload: dict[str, Any], symbol: Optional[str]
    ) -> Optional[CanonicalBook]:
        if payload.get("method") != "subscription":
            # RPC results and errors carry an "id" instead
            return None

        params = payload.get("params")
        if not isinstance(params, dict):
            return None
        channel = params.get("channel")
        if not isinstance(channel, str) or not channel.startswith("book."):
            return None
        if symbol is not None and channel != _channel(symbol):
            return None

        data = params.get("data")
        if not isinstance(data, dict):
            return None
        return CanonicalBook.from_raw(
            [_normalise_row(row) for row in require_list(data["bids"], "bids")],
            [_normalise_row(row) for row in require_list(data["asks"], "asks")],
        )


__all__ = ["DeribitBookAdapter", "WS_URL"]
