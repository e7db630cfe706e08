"""Tests for the delayed, cancellable order simulation slot."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

pytest.importorskip("pydantic")

from common.bus import EventBus
from common.errors import OrderValidationError
from common.models import CanonicalBook
from simulator import OrderSimulator, SimulationReport

FIRST_BOOK = CanonicalBook.from_raw(bids=[["99", "1"]], asks=[["100", "1"], ["101", "2"]])
SECOND_BOOK = CanonicalBook.from_raw(bids=[["109", "1"]], asks=[["110", "4"]])


class _BookHolder:
    def __init__(self, book: CanonicalBook) -> None:
        self.book = book

    def __call__(self) -> CanonicalBook:
        return self.book


def _reports(queue: asyncio.Queue[SimulationReport]) -> list[SimulationReport]:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.mark.asyncio
async def test_immediate_submission_publishes_report() -> None:
    bus: EventBus[SimulationReport] = EventBus()
    queue = bus.subscribe()
    simulator = OrderSimulator(_BookHolder(FIRST_BOOK), bus)

    order = await simulator.submit(side="Buy", order_type="Market", quantity="2")

    reports = _reports(queue)
    assert len(reports) == 1
    assert reports[0].order == order
    assert reports[0].reference_price == Decimal("100")
    assert reports[0].result.filled_quantity == Decimal("2")
    assert simulator.last_report is reports[0]
    assert simulator.pending is None


@pytest.mark.asyncio
async def test_delayed_submission_uses_book_at_effective_time() -> None:
    bus: EventBus[SimulationReport] = EventBus()
    queue = bus.subscribe()
    books = _BookHolder(FIRST_BOOK)
    simulator = OrderSimulator(books, bus)

    order = await simulator.submit(
        side="Buy", order_type="Market", quantity="1", delay_seconds=0.05
    )
    assert simulator.pending is order
    assert order.effective_at_ms == order.submitted_at_ms + 50
    books.book = SECOND_BOOK

    await asyncio.sleep(0.1)

    reports = _reports(queue)
    assert len(reports) == 1
    assert reports[0].result.average_fill_price == Decimal("110")
    assert simulator.pending is None


@pytest.mark.asyncio
async def test_new_submission_cancels_pending_one() -> None:
    bus: EventBus[SimulationReport] = EventBus()
    queue = bus.subscribe()
    simulator = OrderSimulator(_BookHolder(FIRST_BOOK), bus)

    first = await simulator.submit(
        side="Buy", order_type="Market", quantity="1", delay_seconds=0.05
    )
    second = await simulator.submit(
        side="Sell", order_type="Market", quantity="1", delay_seconds=0.02
    )
    await asyncio.sleep(0.1)

    reports = _reports(queue)
    assert [report.order for report in reports] == [second]
    assert first not in [report.order for report in reports]


@pytest.mark.asyncio
async def test_cancel_prevents_publication() -> None:
    bus: EventBus[SimulationReport] = EventBus()
    queue = bus.subscribe()
    simulator = OrderSimulator(_BookHolder(FIRST_BOOK), bus)

    await simulator.submit(side="Buy", order_type="Market", quantity="1", delay_seconds=0.03)
    assert simulator.cancel() is True
    await asyncio.sleep(0.06)

    assert queue.empty()
    assert simulator.last_report is None
    assert simulator.cancel() is False


@pytest.mark.asyncio
async def test_rejected_submission_keeps_pending_one() -> None:
    bus: EventBus[SimulationReport] = EventBus()
    queue = bus.subscribe()
    simulator = OrderSimulator(_BookHolder(FIRST_BOOK), bus)

    pending = await simulator.submit(
        side="Buy", order_type="Market", quantity="1", delay_seconds=0.03
    )
    with pytest.raises(OrderValidationError):
        await simulator.submit(side="Buy", order_type="Limit", quantity="1")

    assert simulator.pending is pending
    await asyncio.sleep(0.06)
    assert [report.order for report in _reports(queue)] == [pending]


@pytest.mark.asyncio
async def test_default_delay_applies_when_not_given() -> None:
    simulator = OrderSimulator(_BookHolder(FIRST_BOOK), default_delay_seconds=5)

    order = await simulator.submit(side="Buy", order_type="Market", quantity="1")

    assert order.delay_seconds == 5
    assert simulator.pending is order
    await simulator.close()
    assert simulator.pending is None
    assert simulator.last_report is None
