"""Unit tests for venue protocol adapters."""

from __future__ import annotations

import json
from decimal import Decimal

import pytest

pytest.importorskip("pydantic")

from common.models import CanonicalBook, Venue
from venues import BybitBookAdapter, DeribitBookAdapter, OkxBookAdapter, get_adapter


def _assert_canonical(book: CanonicalBook) -> None:
    bid_prices = [level.price for level in book.bids]
    ask_prices = [level.price for level in book.asks]
    assert bid_prices == sorted(set(bid_prices), reverse=True)
    assert ask_prices == sorted(set(ask_prices))
    if bid_prices and ask_prices:
        assert bid_prices[0] < ask_prices[0]


def test_get_adapter_resolves_each_venue() -> None:
    assert isinstance(get_adapter("okx"), OkxBookAdapter)
    assert isinstance(get_adapter(Venue.BYBIT), BybitBookAdapter)
    assert isinstance(get_adapter("Deribit"), DeribitBookAdapter)
    with pytest.raises(ValueError):
        get_adapter("kraken")


def test_okx_subscription_frames() -> None:
    adapter = OkxBookAdapter()

    assert adapter.build_subscribe("BTC-USD-SWAP") == {
        "op": "subscribe",
        "args": [{"channel": "books", "instId": "BTC-USD-SWAP"}],
    }
    assert adapter.build_unsubscribe("BTC-USD-SWAP") == {
        "op": "unsubscribe",
        "args": [{"channel": "books", "instId": "BTC-USD-SWAP"}],
    }
    assert adapter.ping_interval is None
    assert adapter.build_ping() is None


def test_okx_book_message_normalises_ladder() -> None:
    adapter = OkxBookAdapter()
    payload = {
        "arg": {"channel": "books", "instId": "BTC-USD-SWAP"},
        "action": "snapshot",
        "data": [
            {
                "bids": [["68000.1", "3", "0", "2"], ["67999.5", "1.5", "0", "1"]],
                "asks": [["68002.0", "4", "0", "1"], ["68000.5", "2", "0", "3"]],
                "ts": "1712345678901",
            }
        ],
    }

    book = adapter.parse_update(json.dumps(payload), "BTC-USD-SWAP")

    assert book is not None
    _assert_canonical(book)
    assert book.best_bid.price == Decimal("68000.1")
    assert book.best_ask.price == Decimal("68000.5")
    assert book.best_ask.size == Decimal("2")


@pytest.mark.parametrize(
    "raw",
    [
        '{"event": "subscribe", "arg": {"channel": "books", "instId": "BTC-USD-SWAP"}}',
        '{"arg": {"channel": "trades", "instId": "BTC-USD-SWAP"}, "data": [{}]}',
        '{"arg": {"channel": "books", "instId": "ETH-USD-SWAP"}, "data": [{"bids": [], "asks": []}]}',
        '{"arg": {"channel": "books", "instId": "BTC-USD-SWAP"}, "data": [{"bids": []}]}',
        '{"arg": {"channel": "books", "instId": "BTC-USD-SWAP"}, "data": [{"bids": [["x", "1"]], "asks": []}]}',
        "not json",
        "[1, 2, 3]",
        b"\xff\xfe",
        "pong",
    ],
)
def test_okx_non_book_messages_yield_none(raw) -> None:
    assert OkxBookAdapter().parse_update(raw, "BTC-USD-SWAP") is None


def test_okx_pong_is_keepalive() -> None:
    adapter = OkxBookAdapter()

    assert adapter.is_keepalive("pong")
    assert adapter.is_keepalive({"event": "pong"})
    assert adapter.is_keepalive('{"op": "pong"}')
    assert not adapter.is_keepalive('{"arg": {"channel": "books"}}')
    assert adapter.keepalive_reply("pong") is None


def test_bybit_subscription_and_ping_frames() -> None:
    adapter = BybitBookAdapter()

    assert adapter.build_subscribe("BTCUSDT") == {"op": "subscribe", "args": ["orderbook.50.BTCUSDT"]}
    assert adapter.build_unsubscribe("BTCUSDT") == {
        "op": "unsubscribe",
        "args": ["orderbook.50.BTCUSDT"],
    }
    assert adapter.build_ping() == {"op": "ping"}
    assert adapter.ping_interval == 20.0


def test_bybit_book_message_normalises_ladder() -> None:
    adapter = BybitBookAdapter()
    payload = {
        "topic": "orderbook.50.BTCUSDT",
        "type": "snapshot",
        "ts": 1712345678901,
        "data": {
            "s": "BTCUSDT",
            "b": [["68000.10", "0.5"], ["67999.00", "1.25"]],
            "a": [["68000.20", "0.75"], ["68001.00", "2"]],
            "u": 12345,
        },
    }

    book = adapter.parse_update(payload, "BTCUSDT")

    assert book is not None
    _assert_canonical(book)
    assert book.best_bid.size == Decimal("0.5")
    assert [level.price for level in book.asks] == [Decimal("68000.20"), Decimal("68001.00")]


def test_bybit_acks_and_other_topics_are_ignored() -> None:
    adapter = BybitBookAdapter()
    ack = {"success": True, "ret_msg": "", "op": "subscribe", "conn_id": "abc"}
    other = {"topic": "orderbook.50.ETHUSDT", "data": {"b": [["1", "1"]], "a": [["2", "1"]]}}

    assert adapter.parse_update(ack, "BTCUSDT") is None
    assert adapter.parse_update(other, "BTCUSDT") is None
    assert adapter.parse_update({"topic": "orderbook.50.BTCUSDT", "data": {"b": []}}) is None


def test_bybit_keepalive_frames() -> None:
    adapter = BybitBookAdapter()
    pong = {"success": True, "ret_msg": "pong", "conn_id": "abc", "op": "ping"}

    assert adapter.is_keepalive(pong)
    assert adapter.is_keepalive('{"op": "pong"}')
    assert adapter.keepalive_reply(pong) is None
    assert adapter.keepalive_reply('{"op": "ping"}') == {"op": "pong"}
    assert adapter.parse_update(pong) is None


def test_deribit_subscription_frames() -> None:
    adapter = DeribitBookAdapter()

    assert adapter.build_subscribe("BTC-PERPETUAL") == {
        "jsonrpc": "2.0",
        "method": "public/subscribe",
        "params": {"channels": ["book.BTC-PERPETUAL.100ms"]},
    }
    assert adapter.build_unsubscribe("BTC-PERPETUAL")["method"] == "public/unsubscribe"


def test_deribit_numeric_levels_are_coerced_to_decimal() -> None:
    adapter = DeribitBookAdapter()
    payload = {
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {
            "channel": "book.BTC-PERPETUAL.100ms",
            "data": {
                "type": "snapshot",
                "bids": [[68000.5, 1200.0], [67999, 10]],
                "asks": [[68001.25, 300.0]],
            },
        },
    }

    book = adapter.parse_update(json.dumps(payload), "BTC-PERPETUAL")

    assert book is not None
    _assert_canonical(book)
    assert book.best_bid.price == Decimal("68000.5")
    assert float(book.best_bid.price) == 68000.5
    assert book.best_ask.price == Decimal("68001.25")
    assert book.best_ask.size == Decimal("300.0")


def test_deribit_action_rows_drop_deleted_levels() -> None:
    adapter = DeribitBookAdapter()
    payload = {
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {
            "channel": "book.BTC-PERPETUAL.100ms",
            "data": {
                "bids": [["new", 68000.0, 10.0], ["delete", 67990.0, 0.0]],
                "asks": [["change", 68010.0, 5.0]],
            },
        },
    }

    book = adapter.parse_update(payload)

    assert book is not None
    assert [level.price for level in book.bids] == [Decimal("68000.0")]
    assert book.asks[0].size == Decimal("5.0")


def test_deribit_heartbeats_and_rpc_results() -> None:
    adapter = DeribitBookAdapter()
    heartbeat = {"jsonrpc": "2.0", "method": "heartbeat", "params": {"type": "heartbeat"}}
    test_request = {"jsonrpc": "2.0", "method": "heartbeat", "params": {"type": "test_request"}}
    result = {"jsonrpc": "2.0", "id": 1, "result": ["book.BTC-PERPETUAL.100ms"]}

    assert adapter.is_keepalive(heartbeat)
    assert adapter.keepalive_reply(heartbeat) is None
    assert adapter.keepalive_reply(test_request) == {
        "jsonrpc": "2.0",
        "method": "public/test",
        "params": {},
    }
    assert adapter.parse_update(heartbeat) is None
    assert adapter.parse_update(result) is None
