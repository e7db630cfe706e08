"""Canonical book models shared by venue adapters, the feed and the simulator."""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ParseError

BookSideName = Literal["bids", "asks"]


class Venue(str, Enum):
    """Venues with a protocol adapter."""

    OKX = "OKX"
    BYBIT = "BYBIT"
    DERIBIT = "DERIBIT"

    @classmethod
    def parse(cls, value: str | "Venue") -> "Venue":
        """Resolve a venue from its name, case-insensitively."""

        if isinstance(value, Venue):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown venue {value!r}") from None


class ConnectionState(str, Enum):
    """Lifecycle of the single live venue session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    ERRORED = "errored"


def to_decimal(value: object) -> Decimal:
    """Coerce a venue numeric field (string or native number) to ``Decimal``.

    Floats go through ``str`` so the printed value is what gets stored.
    """

    if isinstance(value, bool):
        raise ParseError(f"Boolean is not a numeric field: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ParseError(f"Not a decimal string: {value!r}") from None
    else:
        raise ParseError(f"Unsupported numeric field: {value!r}")
    if not result.is_finite():
        raise ParseError(f"Non-finite numeric field: {value!r}")
    return result


class PriceLevel(BaseModel):
    """One price on one side of the ladder."""

    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(..., gt=0, description="Level price")
    size: Decimal = Field(..., ge=0, description="Resting quantity at this price")


class CanonicalBook(BaseModel):
    """Venue independent two-sided price ladder.

    Bids are strictly descending, asks strictly ascending, and the book is
    never crossed when both sides are populated.
    """

    model_config = ConfigDict(frozen=True)

    bids: tuple[PriceLevel, ...] = ()
    asks: tuple[PriceLevel, ...] = ()

    @model_validator(mode="after")
    def _check_ladder(self) -> "CanonicalBook":
        for earlier, later in zip(self.bids, self.bids[1:]):
            if later.price >= earlier.price:
                raise ValueError("bids must be strictly descending by price")
        for earlier, later in zip(self.asks, self.asks[1:]):
            if later.price <= earlier.price:
                raise ValueError("asks must be strictly ascending by price")
        if self.bids and self.asks and self.bids[0].price >= self.asks[0].price:
            raise ValueError("best bid must be below best ask")
        return self

    @classmethod
    def empty(cls) -> "CanonicalBook":
        return cls()

    @classmethod
    def from_raw(
        cls,
        bids: Iterable[Sequence[Any]],
        asks: Iterable[Sequence[Any]],
    ) -> "CanonicalBook":
        """Build a book from venue ``[price, size, ...]`` rows in any order.

        Zero-size rows are dropped and a repeated price keeps its last size.

        Raises:
            ParseError: if a row is malformed or the result is crossed.
        """

        bid_levels = _collect_levels(bids)
        ask_levels = _collect_levels(asks)
        try:
            return cls(
                bids=tuple(sorted(bid_levels, key=lambda level: level.price, reverse=True)),
                asks=tuple(sorted(ask_levels, key=lambda level: level.price)),
            )
        except ValidationError as exc:
            raise ParseError(f"Invalid ladder: {exc}") from exc

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks[0] if self.asks else None

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    def side(self, name: BookSideName) -> tuple[PriceLevel, ...]:
        return self.bids if name == "bids" else self.asks

    def depth(self, limit: int) -> "CanonicalBook":
        """Return a copy truncated to the best ``limit`` levels per side."""

        return CanonicalBook(bids=self.bids[:limit], asks=self.asks[:limit])


def _collect_levels(rows: Iterable[Sequence[Any]]) -> list[PriceLevel]:
    by_price: dict[Decimal, Decimal] = {}
    for row in rows:
        if isinstance(row, (str, bytes)) or not isinstance(row, Sequence) or len(row) < 2:
            raise ParseError(f"Malformed level row: {row!r}")
        price = to_decimal(row[0])
        size = to_decimal(row[1])
        if price <= 0 or size < 0:
            raise ParseError(f"Out of range level: {row!r}")
        by_price[price] = size
    return [
        PriceLevel(price=price, size=size) for price, size in by_price.items() if size > 0
    ]


class FeedUpdate(BaseModel):
    """Snapshot published to renderers on every book or connection change."""

    venue: Optional[Venue] = Field(None, description="Active venue, if any")
    symbol: Optional[str] = Field(None, description="Venue specific instrument id")
    connection_state: ConnectionState = Field(
        ConnectionState.IDLE, description="Current session state"
    )
    book: CanonicalBook = Field(default_factory=CanonicalBook.empty)
    timestamp_ms: int = Field(
        default_factory=lambda: int(time.time() * 1000),
        description="Publication time in milliseconds",
    )


__all__ = [
    "BookSideName",
    "CanonicalBook",
    "ConnectionState",
    "FeedUpdate",
    "PriceLevel",
    "Venue",
    "to_decimal",
]
