"""OKX public ``books`` channel adapter."""

from __future__ import annotations

from typing import Any, Optional

from common.models import CanonicalBook, Venue

from .base import VenueAdapter, require_list

WS_URL = "wss://ws.okx.com:8443/ws/v5/public"
BOOK_CHANNEL = "books"


class OkxBookAdapter(VenueAdapter):
    """Venue A: subscription args are channel/instId objects, keep-alive is server driven."""

    venue = Venue.OKX
    url = WS_URL

    def build_subscribe(self, symbol: str) -> dict[str, Any]:
        return {"op": "subscribe", "args": [{"channel": BOOK_CHANNEL, "instId": symbol}]}

    def build_unsubscribe(self, symbol: str) -> dict[str, Any]:
        return {"op": "unsubscribe", "args": [{"channel": BOOK_CHANNEL, "instId": symbol}]}

    def _parse_book(
        self, payload: dict[str, Any], symbol: Optional[str]
    ) -> Optional[CanonicalBook]:
        if "event" in payload:
            # subscribe/unsubscribe/error acknowledgements
            return None

        arg = payload.get("arg")
        if not isinstance(arg, dict) or arg.get("channel") != BOOK_CHANNEL:
            return None
        if symbol is not None and arg.get("instId") != symbol:
            return None

        data = payload.get("data")
        if not data:
            return None
        snapshot = require_list(data, "data")[0]
        # Rows are [price, size, liquidated orders, order count]; extras are ignored.
        return CanonicalBook.from_raw(
            require_list(snapshot["bids"], "bids"),
            require_list(snapshot["asks"], "asks"),
        )


__all__ = ["OkxBookAdapter", "WS_URL"]
