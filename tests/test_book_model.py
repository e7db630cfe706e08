"""Unit tests for the canonical book model."""

from __future__ import annotations

from decimal import Decimal

import pytest

pytest.importorskip("pydantic")

from pydantic import ValidationError

from common.errors import ParseError
from common.models import CanonicalBook, PriceLevel, to_decimal


def _prices(levels) -> list[Decimal]:
    return [level.price for level in levels]


def test_from_raw_sorts_each_side_into_canonical_order() -> None:
    book = CanonicalBook.from_raw(
        bids=[["98", "2"], ["99", "1"], ["97.5", "3"]],
        asks=[["102", "5"], ["100", "1"], ["101", "2"]],
    )

    assert _prices(book.bids) == [Decimal("99"), Decimal("98"), Decimal("97.5")]
    assert _prices(book.asks) == [Decimal("100"), Decimal("101"), Decimal("102")]
    assert book.best_bid == PriceLevel(price=Decimal("99"), size=Decimal("1"))
    assert book.best_ask.price == Decimal("100")


def test_from_raw_drops_zero_size_and_keeps_last_duplicate() -> None:
    book = CanonicalBook.from_raw(
        bids=[["99", "1"], ["98", "0"], ["99", "4"]],
        asks=[["100", "0.5", "0", "3"]],
    )

    assert _prices(book.bids) == [Decimal("99")]
    assert book.bids[0].size == Decimal("4")
    assert book.asks[0].size == Decimal("0.5")


def test_from_raw_rejects_crossed_book() -> None:
    with pytest.raises(ParseError):
        CanonicalBook.from_raw(bids=[["101", "1"]], asks=[["100", "1"]])


@pytest.mark.parametrize(
    "row",
    [["abc", "1"], ["100"], "100,1", ["-1", "1"], ["100", "-2"], [True, "1"], ["NaN", "1"]],
)
def test_from_raw_rejects_malformed_rows(row) -> None:
    with pytest.raises(ParseError):
        CanonicalBook.from_raw(bids=[row], asks=[])


def test_direct_construction_enforces_ordering() -> None:
    with pytest.raises(ValidationError):
        CanonicalBook(
            bids=(
                PriceLevel(price=Decimal("98"), size=Decimal("1")),
                PriceLevel(price=Decimal("99"), size=Decimal("1")),
            )
        )
    with pytest.raises(ValidationError):
        CanonicalBook(
            asks=(
                PriceLevel(price=Decimal("100"), size=Decimal("1")),
                PriceLevel(price=Decimal("100"), size=Decimal("2")),
            )
        )


def test_native_numbers_match_string_representation() -> None:
    assert to_decimal(68000.5) == to_decimal("68000.5")
    assert str(to_decimal(0.1)) == "0.1"
    assert str(to_decimal(12)) == "12"
    assert float(to_decimal(68123.25)) == 68123.25


def test_depth_truncates_both_sides() -> None:
    book = CanonicalBook.from_raw(
        bids=[[str(100 - i), "1"] for i in range(1, 6)],
        asks=[[str(100 + i), "1"] for i in range(1, 6)],
    )

    shallow = book.depth(2)

    assert len(shallow.bids) == 2
    assert len(shallow.asks) == 2
    assert shallow.best_bid == book.best_bid
    assert CanonicalBook.empty().is_empty
