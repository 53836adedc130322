"""
Tests for client/ws.py -- market channel message handling and the reconnect loop.
"""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from client.ws import MarketFeed
from scanner.quote_cache import QuoteCache

URL = "wss://example.test/ws/market"


def _feed(**kwargs):
    return MarketFeed(url=URL, token_ids=["t1", "t2"], cache=QuoteCache(), **kwargs)


class FakeSocket:
    def __init__(self, messages):
        self.messages = list(messages)
        self.sent = []

    async def send(self, data):
        self.sent.append(data)

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for msg in self.messages:
            yield msg


class FakeConnect:
    """Stands in for websockets' connect(): async context manager over a FakeSocket."""

    def __init__(self, socket):
        self.socket = socket

    async def __aenter__(self):
        return self.socket

    async def __aexit__(self, *exc):
        return False


class TestHandleMessage:
    def test_book_snapshot(self):
        feed = _feed()
        msg = json.dumps({
            "event_type": "book",
            "asset_id": "t1",
            "bids": [{"price": "0.40", "size": "10"}, {"price": "0.42", "size": "5"}],
            "asks": [{"price": "0.47", "size": "10"}, {"price": "0.45", "size": "3"}],
        })
        assert feed.handle_message(msg) == 1
        quote = feed.cache.get("t1")
        assert quote.bid == Decimal("0.42")
        assert quote.ask == Decimal("0.45")

    def test_legacy_book_keys(self):
        feed = _feed()
        feed.handle_message(json.dumps({
            "event_type": "book", "asset_id": "t1",
            "buys": [{"price": "0.30", "size": "1"}], "sells": [{"price": "0.35", "size": "1"}],
        }))
        assert feed.cache.get("t1").ask == Decimal("0.35")

    def test_batched_events(self):
        feed = _feed()
        msg = json.dumps([
            {"event_type": "book", "asset_id": "t1", "bids": [], "asks": [{"price": "0.5", "size": "1"}]},
            {"event_type": "book", "asset_id": "t2", "bids": [], "asks": [{"price": "0.6", "size": "1"}]},
        ])
        assert feed.handle_message(msg) == 2
        assert feed.cache.size == 2

    def test_price_changes_current_format(self):
        feed = _feed()
        feed.handle_message(json.dumps({
            "event_type": "book", "asset_id": "t1", "bids": [], "asks": [{"price": "0.50", "size": "1"}],
        }))
        applied = feed.handle_message(json.dumps({
            "event_type": "price_change",
            "price_changes": [
                {"asset_id": "t1", "price": "0.48", "size": "20", "side": "SELL"},
                {"asset_id": "t2", "price": "0.30", "size": "5", "side": "BUY"},
            ],
        }))
        assert applied == 2
        assert feed.cache.get("t1").ask == Decimal("0.48")
        assert feed.cache.get("t2").bid == Decimal("0.30")

    def test_price_change_legacy_format(self):
        feed = _feed()
        feed.handle_message(json.dumps({
            "event_type": "price_change", "asset_id": "t1",
            "changes": [{"price": "0.55", "size": "4", "side": "SELL"}],
        }))
        assert feed.cache.get("t1").ask == Decimal("0.55")

    def test_best_bid_ask(self):
        feed = _feed()
        feed.handle_message(json.dumps({
            "event_type": "best_bid_ask", "asset_id": "t2", "best_bid": "0.61", "best_ask": "0.63",
        }))
        quote = feed.cache.get("t2")
        assert (quote.bid, quote.ask) == (Decimal("0.61"), Decimal("0.63"))

    def test_non_json_ignored(self):
        feed = _feed()
        assert feed.handle_message("PONG") == 0
        assert not feed.is_healthy()

    def test_unknown_event_ignored(self):
        feed = _feed()
        assert feed.handle_message(json.dumps({"event_type": "tick_size_change", "asset_id": "t1"})) == 0
        assert feed.cache.size == 0


class TestReconnect:
    @pytest.mark.asyncio
    async def test_fixed_delay_after_connect_failures(self):
        feed = _feed(reconnect_delay_sec=2.0)
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)
            if len(delays) == 3:
                feed._running = False

        with patch("client.ws.connect", side_effect=OSError("connection refused")), \
             patch("client.ws.asyncio.sleep", side_effect=fake_sleep):
            await feed.run()

        assert delays == [2.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_subscribes_and_reconnects_after_server_close(self):
        feed = _feed(reconnect_delay_sec=0.5)
        book = json.dumps({
            "event_type": "book", "asset_id": "t1", "bids": [], "asks": [{"price": "0.45", "size": "1"}],
        })
        sockets = [FakeSocket([book]), FakeSocket([])]
        sleep = AsyncMock()

        def fake_connect(url):
            assert url == URL
            socket = sockets[feed._connects]
            if feed._connects == 1:
                feed._running = False
            return FakeConnect(socket)

        with patch("client.ws.connect", side_effect=fake_connect), \
             patch("client.ws.asyncio.sleep", sleep):
            await feed.run()

        assert feed._connects == 2
        assert json.loads(sockets[0].sent[0]) == {"assets_ids": ["t1", "t2"], "type": "market"}
        assert feed.cache.get("t1").ask == Decimal("0.45")
        sleep.assert_awaited_once_with(0.5)


class TestMalformedFrames:
    def test_null_price_changes_dropped(self):
        feed = _feed()
        assert feed.handle_message(json.dumps(
            {"event_type": "price_change", "asset_id": "t1", "price_changes": None},
        )) == 0

    def test_bad_event_does_not_block_rest_of_frame(self):
        feed = _feed()
        msg = json.dumps([
            {"event_type": "book", "asset_id": "t1", "bids": [["0.40", "1"]], "asks": []},
            {"event_type": "price_change", "price_changes": ["garbage", 7]},
            {"event_type": "best_bid_ask", "asset_id": "t2", "best_bid": "0.20", "best_ask": "0.25"},
        ])
        assert feed.handle_message(msg) == 1
        assert feed.cache.get("t2").ask == Decimal("0.25")
        assert feed.cache.get("t1") is None

    def test_non_string_side_dropped(self):
        feed = _feed()
        feed.handle_message(json.dumps({
            "event_type": "price_change", "asset_id": "t1",
            "changes": [{"price": "0.5", "size": "1", "side": 1}],
        }))
        feed.handle_message(json.dumps({
            "event_type": "best_bid_ask", "asset_id": "t1", "best_bid": "0.48", "best_ask": "0.52",
        }))
        assert feed.cache.get("t1").bid == Decimal("0.48")

    @pytest.mark.asyncio
    async def test_feed_survives_malformed_frame(self):
        feed = _feed(reconnect_delay_sec=0.5)
        bad = json.dumps({"event_type": "price_change", "asset_id": "t1", "price_changes": None})
        good = json.dumps({"event_type": "best_bid_ask", "asset_id": "t1", "best_bid": "0.4", "best_ask": "0.45"})
        socket = FakeSocket([bad, good])

        def fake_connect(url):
            feed._running = feed._connects == 0
            return FakeConnect(socket)

        with patch("client.ws.connect", side_effect=fake_connect), \
             patch("client.ws.asyncio.sleep", AsyncMock()):
            await feed.run()

        assert feed.cache.get("t1").ask == Decimal("0.45")

    @pytest.mark.asyncio
    async def test_unexpected_error_reconnects(self):
        feed = _feed(reconnect_delay_sec=2.0)
        frame = json.dumps({"event_type": "best_bid_ask", "asset_id": "t1", "best_bid": "0.4", "best_ask": "0.45"})
        sockets = [FakeSocket([frame]), FakeSocket([frame])]
        sleep = AsyncMock()

        def fake_connect(url):
            socket = sockets[feed._connects]
            if feed._connects == 1:
                feed._running = False
            return FakeConnect(socket)

        with patch("client.ws.connect", side_effect=fake_connect), \
             patch("client.ws.asyncio.sleep", sleep), \
             patch.object(MarketFeed, "handle_message", side_effect=[RuntimeError("boom"), 1]):
            await feed.run()

        assert feed._connects == 2
        sleep.assert_awaited_once_with(2.0)
