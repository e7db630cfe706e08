"""Single-slot scheduler that runs simulations after a configurable latency."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from common.bus import EventBus
from common.models import CanonicalBook

from .impact import (
    DEFAULT_WARNING_THRESHOLD,
    ImpactResult,
    SimulatedOrder,
    reference_price,
    simulate_impact,
)

logger = logging.getLogger(__name__)

BookProvider = Callable[[], CanonicalBook]


class SimulationReport(BaseModel):
    """Published once a submitted order's simulation has run."""

    order: SimulatedOrder
    reference_price: Optional[Decimal] = Field(
        None, description="Price used to highlight the order in the ladder"
    )
    result: ImpactResult
    completed_at_ms: int = Field(default_factory=lambda: int(time.time() * 1000))


class OrderSimulator:
    """Run order simulations against whatever book is current at effective time.

    Only the most recent submission ever executes: submitting again cancels a
    pending delayed simulation outright.
    """

    def __init__(
        self,
        book_provider: BookProvider,
        bus: EventBus[SimulationReport] | None = None,
        default_delay_seconds: float = 0.0,
        warning_threshold: Decimal = DEFAULT_WARNING_THRESHOLD,
    ) -> None:
        self._book_provider = book_provider
        self._bus = bus
        self.default_delay_seconds = default_delay_seconds
        self.warning_threshold = warning_threshold
        self._pending: Optional[asyncio.Task[None]] = None
        self._pending_order: Optional[SimulatedOrder] = None
        self._last_report: Optional[SimulationReport] = None

    @property
    def pending(self) -> Optional[SimulatedOrder]:
        if self._pending is None or self._pending.done():
            return None
        return self._pending_order

    @property
    def last_report(self) -> Optional[SimulationReport]:
        return self._last_report

    async def submit(self, **fields: Any) -> SimulatedOrder:
        """Validate and schedule an order, replacing any pending one.

        Raises:
            OrderValidationError: if the order is malformed. A rejected
                submission leaves the pending one untouched.
        """

        fields.setdefault("delay_seconds", self.default_delay_seconds)
        if fields["delay_seconds"] is None:
            fields["delay_seconds"] = self.default_delay_seconds
        order = SimulatedOrder.create(**fields)

        self.cancel()
        if order.delay_seconds > 0:
            logger.info(
                "Simulating %s %s %s in %.1fs",
                order.order_type.value,
                order.side.value,
                order.quantity,
                order.delay_seconds,
            )
            self._pending_order = order
            self._pending = asyncio.create_task(self._run_delayed(order), name="order-simulation")
        else:
            await self._execute(order)
        return order

    def run(self, order: SimulatedOrder) -> SimulationReport:
        """Simulate ``order`` against the current book right now."""

        book = self._book_provider()
        return SimulationReport(
            order=order,
            reference_price=reference_price(order, book),
            result=simulate_impact(order, book, self.warning_threshold),
        )

    def cancel(self) -> bool:
        """Cancel the pending simulation, if any. Returns whether one was cancelled."""

        task, self._pending = self._pending, None
        self._pending_order = None
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Cancelled pending order simulation")
        return True

    async def close(self) -> None:
        task = self._pending
        self.cancel()
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    async def _run_delayed(self, order: SimulatedOrder) -> None:
        await asyncio.sleep(order.delay_seconds)
        if self._pending is asyncio.current_task():
            self._pending = None
            self._pending_order = None
        await self._execute(order)

    async def _execute(self, order: SimulatedOrder) -> None:
        report = self.run(order)
        self._last_report = report
        result = report.result
        if result.warning:
            logger.warning("Simulation: %s", result.warning)
        logger.info(
            "Simulated %s %s %s: filled %s (%.2f%%), slippage %.4f%%",
            order.order_type.value,
            order.side.value,
            order.quantity,
            result.filled_quantity,
            result.fill_percent,
            result.slippage_percent,
        )
        if self._bus is not None:
            await self._bus.publish(report)


__all__ = ["BookProvider", "OrderSimulator", "SimulationReport"]
