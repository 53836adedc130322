"""
Tests for client/clob.py -- top-of-book reduction over SDK order books.
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from client.clob import _retry_api_call, best_bid_ask, get_quote, get_quotes


def _levels(*prices):
    return [SimpleNamespace(price=p, size="100") for p in prices]


def _book(asset_id, bids=(), asks=()):
    return SimpleNamespace(asset_id=asset_id, bids=_levels(*bids), asks=_levels(*asks))


class TestBestBidAsk:
    def test_unsorted_levels(self):
        """Best bid is the max and best ask the min regardless of order."""
        bid, ask = best_bid_ask(_levels("0.40", "0.44", "0.42"), _levels("0.50", "0.46", "0.48"))
        assert bid == Decimal("0.44")
        assert ask == Decimal("0.46")

    def test_empty_sides_are_none(self):
        assert best_bid_ask([], []) == (None, None)
        assert best_bid_ask(None, _levels("0.5")) == (None, Decimal("0.5"))

    def test_unparseable_level_dropped(self):
        bid, _ = best_bid_ask(_levels("abc", "0.30"), [])
        assert bid == Decimal("0.30")


class TestGetQuotes:
    def test_single_token(self):
        client = MagicMock()
        client.get_order_book.return_value = _book("tok", bids=("0.40",), asks=("0.45",))
        quote = get_quote(client, "tok")
        assert quote.token_id == "tok"
        assert quote.bid == Decimal("0.40")
        assert quote.ask == Decimal("0.45")

    def test_batch_keyed_by_asset_id(self):
        client = MagicMock()
        client.get_order_books.return_value = [
            _book("b", asks=("0.51",)),
            _book("a", bids=("0.30",), asks=("0.35", "0.33")),
        ]
        quotes = get_quotes(client, ["a", "b", "c"])
        assert set(quotes) == {"a", "b"}
        assert quotes["a"].ask == Decimal("0.33")
        assert quotes["b"].bid is None
        params = client.get_order_books.call_args.args[0]
        assert [p.token_id for p in params] == ["a", "b", "c"]

    def test_empty_token_list_makes_no_request(self):
        client = MagicMock()
        assert get_quotes(client, []) == {}
        client.get_order_books.assert_not_called()


class TestRetry:
    def test_connection_error_retried(self):
        fn = MagicMock(side_effect=[Exception("Request exception!"), "ok"])
        with patch("client.clob.time.sleep") as sleep:
            assert _retry_api_call(fn, "x") == "ok"
        assert fn.call_count == 2
        sleep.assert_called_once_with(0.5)

    def test_http_error_not_retried(self):
        fn = MagicMock(side_effect=Exception("PolyApiException[status_code=404]"))
        with patch("client.clob.time.sleep"):
            with pytest.raises(Exception, match="404"):
                _retry_api_call(fn)
        assert fn.call_count == 1

    def test_gives_up_after_max_retries(self):
        fn = MagicMock(side_effect=Exception("status_code=None"))
        with patch("client.clob.time.sleep"):
            with pytest.raises(Exception):
                _retry_api_call(fn, max_retries=3)
        assert fn.call_count == 3
