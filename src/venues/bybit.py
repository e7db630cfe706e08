"""Bybit spot ``orderbook.50`` adapter."""

from __future__ import annotations

from typing import Any, Optional

from common.models import CanonicalBook, Venue

from .base import RawMessage, VenueAdapter, require_list

WS_URL = "wss://stream.bybit.com/v5/public/spot"
TOPIC_PREFIX = "orderbook.50."
PING_INTERVAL_SECONDS = 20.0


def _topic(symbol: str) -> str:
    return f"{TOPIC_PREFIX}{symbol}"


class BybitBookAdapter(VenueAdapter):
    """Venue B: string topic args and a client ping every 20 seconds."""

    venue = Venue.BYBIT
    url = WS_URL
    ping_interval = PING_INTERVAL_SECONDS

    def build_subscribe(self, symbol: str) -> dict[str, Any]:
        return {"op": "subscribe", "args": [_topic(symbol)]}

    def build_unsubscribe(self, symbol: str) -> dict[str, Any]:
        return {"op": "unsubscribe", "args": [_topic(symbol)]}

    def build_ping(self) -> dict[str, Any]:
        return {"op": "ping"}

    def is_keepalive(self, message: RawMessage) -> bool:
        payload = self.decode(message)
        if payload is None:
            return False
        if payload.get("op") in {"ping", "pong"} or payload.get("event") == "pong":
            return True
        # Spot answers client pings as {"success": true, "ret_msg": "pong", "op": "ping"}.
        return payload.get("ret_msg") == "pong"

    def keepalive_reply(self, message: RawMessage) -> Optional[dict[str, Any]]:
        payload = self.decode(message)
        if payload and payload.get("op") == "ping" and "ret_msg" not in payload:
            return {"op": "pong"}
        return None

    def _parse_book(
        self, payload: dict[str, Any], symbol: Optional[str]
    ) -> Optional[CanonicalBook]:
        if "success" in payload:
            # command acknowledgement
            return None

        topic = payload.get("topic")
        if not isinstance(topic, str) or not topic.startswith(TOPIC_PREFIX):
            return None
        if symbol is not None and topic != _topic(symbol):
            return None

        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        return CanonicalBook.from_raw(
            require_list(data["b"], "b"),
            require_list(data["a"], "a"),
        )


__all__ = ["BybitBookAdapter", "PING_INTERVAL_SECONDS", "WS_URL"]
