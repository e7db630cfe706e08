"""Order impact simulation against a canonical book.

Everything in this module is pure: the same order and book always produce
the same :class:`ImpactResult`.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from common.errors import EmptyBookError, OrderValidationError
from common.models import CanonicalBook, PriceLevel

logger = logging.getLogger(__name__)

ZERO = Decimal(0)
HUNDRED = Decimal(100)
DEFAULT_WARNING_THRESHOLD = Decimal("0.5")


class OrderSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class OrderType(str, Enum):
    MARKET = "Market"
    LIMIT = "Limit"


def _now_ms() -> int:
    return int(time.time() * 1000)


class SimulatedOrder(BaseModel):
    """A hypothetical order. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    side: OrderSide = Field(..., description="Buy consumes asks, Sell consumes bids")
    order_type: OrderType = Field(..., description="Market or Limit")
    quantity: Decimal = Field(..., gt=0, description="Base quantity to fill")
    limit_price: Optional[Decimal] = Field(
        None, gt=0, description="Worst acceptable price, Limit orders only"
    )
    symbol: Optional[str] = Field(None, description="Instrument the order was entered for")
    delay_seconds: float = Field(0.0, ge=0, description="Simulated execution latency")
    submitted_at_ms: int = Field(default_factory=_now_ms)

    @field_validator("side", "order_type", mode="before")
    @classmethod
    def _normalise_case(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().capitalize()
        return value

    @model_validator(mode="after")
    def _check_limit_price(self) -> "SimulatedOrder":
        if self.order_type is OrderType.LIMIT and self.limit_price is None:
            raise ValueError("limit_price is required for Limit orders")
        if self.order_type is OrderType.MARKET and self.limit_price is not None:
            raise ValueError("limit_price is only valid for Limit orders")
        return self

    @property
    def effective_at_ms(self) -> int:
        return self.submitted_at_ms + round(self.delay_seconds * 1000)

    @classmethod
    def create(cls, **fields: Any) -> "SimulatedOrder":
        """Build an order, raising :class:`OrderValidationError` when malformed."""

        try:
            return cls(**fields)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'order'}: {error['msg']}"
                for error in exc.errors()
            )
            raise OrderValidationError(problems) from exc


class ImpactResult(BaseModel):
    """Execution quality estimate for one order against one book."""

    model_config = ConfigDict(frozen=True)

    filled_quantity: Decimal = ZERO
    fill_percent: Decimal = Field(ZERO, ge=0, le=100)
    average_fill_price: Decimal = ZERO
    slippage_percent: Decimal = Field(ZERO, ge=0)
    price_impact: Decimal = Field(ZERO, ge=0)
    warning: Optional[str] = None
    book_locator_index: int = Field(-1, ge=-1)


def liquidity_for(order: SimulatedOrder, book: CanonicalBook) -> tuple[PriceLevel, ...]:
    """Return the side of ``book`` the order consumes.

    Raises:
        EmptyBookError: if that side has no levels.
    """

    side = book.asks if order.side is OrderSide.BUY else book.bids
    if not side:
        name = "ask" if order.side is OrderSide.BUY else "bid"
        raise EmptyBookError(f"no {name} levels to fill a {order.side.value} order")
    return side


def reference_price(order: SimulatedOrder, book: CanonicalBook) -> Optional[Decimal]:
    """Price used to place the order in the ladder.

    Limit orders use their limit; market orders the best opposite level.
    """

    if order.order_type is OrderType.LIMIT:
        return order.limit_price
    best = book.best_ask if order.side is OrderSide.BUY else book.best_bid
    return best.price if best else None


def locate_in_book(order: SimulatedOrder, book: CanonicalBook) -> int:
    """Index of the first level the order's price sits at or ahead of, else -1."""

    price = reference_price(order, book)
    if price is None:
        return -1
    if order.side is OrderSide.BUY:
        ladder, at_or_ahead = book.asks, lambda level: price >= level.price
    else:
        ladder, at_or_ahead = book.bids, lambda level: price <= level.price
    return next((index for index, level in enumerate(ladder) if at_or_ahead(level)), -1)


def _walk(
    levels: Sequence[PriceLevel],
    quantity: Decimal,
    eligible: Optional[Callable[[Decimal], bool]] = None,
) -> tuple[Decimal, Decimal]:
    remaining = quantity
    filled = cost = ZERO
    for level in levels:
        if remaining <= 0:
            break
        if eligible is not None and not eligible(level.price):
            continue
        take = min(remaining, level.size)
        filled += take
        cost += take * level.price
        remaining -= take
    return filled, cost


def slippage_warning(price_impact: Decimal) -> str:
    return (
        "High slippage warning! Your order may cause a price impact of "
        f"approximately ${price_impact:.2f}."
    )


def simulate_impact(
    order: SimulatedOrder,
    book: CanonicalBook,
    warning_threshold: Decimal = DEFAULT_WARNING_THRESHOLD,
) -> ImpactResult:
    """Walk ``book`` to estimate fill, average price, slippage and impact.

    Limit orders fill only at levels at or better than their limit and keep
    slippage and impact at zero.
    """

    locator = locate_in_book(order, book)
    try:
        levels = liquidity_for(order, book)
    except EmptyBookError as exc:
        logger.info("Simulated %s unfilled: %s", order.order_type.value, exc)
        return ImpactResult(book_locator_index=locator)

    entry_price = levels[0].price
    if order.order_type is OrderType.LIMIT:
        limit = order.limit_price
        assert limit is not None
        if order.side is OrderSide.BUY:
            eligible = lambda price: price <= limit  # noqa: E731
        else:
            eligible = lambda price: price >= limit  # noqa: E731
        filled, cost = _walk(levels, order.quantity, eligible)
    else:
        filled, cost = _walk(levels, order.quantity)

    average_price = cost / filled if filled > 0 else ZERO
    slippage = impact = ZERO
    if order.order_type is OrderType.MARKET and filled > 0:
        impact = abs(average_price - entry_price)
        if entry_price > 0:
            slippage = impact / entry_price * HUNDRED

    fill_percent = min(filled / order.quantity * HUNDRED, HUNDRED)
    return ImpactResult(
        filled_quantity=filled,
        fill_percent=fill_percent,
        average_fill_price=average_price,
        slippage_percent=slippage,
        price_impact=impact,
        warning=slippage_warning(impact) if slippage > warning_threshold else None,
        book_locator_index=locator,
    )


__all__ = [
    "DEFAULT_WARNING_THRESHOLD",
    "ImpactResult",
    "OrderSide",
    "OrderType",
    "SimulatedOrder",
    "liquidity_for",
    "locate_in_book",
    "reference_price",
    "simulate_impact",
    "slippage_warning",
]
