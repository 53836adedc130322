"""
Snapshot acquisition for a market pair, and the cancellable snapshot stream
consumed by the runner.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterator, Protocol, runtime_checkable

from py_clob_client.client import ClobClient

from client.clob import get_quotes
from scanner.models import Market, MarketPair, MarketQuotes, MarketSnapshot, OutcomeQuote
from scanner.quote_cache import QuoteCache

logger = logging.getLogger(__name__)


class SnapshotUnavailable(Exception):
    """Quotes could not be fetched this tick. The loop skips the tick."""
    pass


@runtime_checkable
class SnapshotSource(Protocol):
    def fetch(self, pair: MarketPair) -> MarketSnapshot:
        ...


def _market_quotes(market: Market, quotes: dict[str, OutcomeQuote]) -> MarketQuotes:
    return MarketQuotes(
        condition_id=market.condition_id,
        name=market.asset.upper(),
        up=quotes.get(market.up_token_id),
        down=quotes.get(market.down_token_id),
    )


class RestSnapshotSource:
    """Polls /books for the four outcome tokens each tick."""

    def __init__(self, client: ClobClient) -> None:
        self._client = client

    def fetch(self, pair: MarketPair) -> MarketSnapshot:
        try:
            quotes = get_quotes(self._client, pair.token_ids)
        except Exception as e:
            raise SnapshotUnavailable(f"order book fetch failed: {e}") from e
        return MarketSnapshot(
            market_a=_market_quotes(pair.market_a, quotes),
            market_b=_market_quotes(pair.market_b, quotes),
        )


class CacheSnapshotSource:
    """
    Reads the WebSocket-fed cache. Stale or missing tokens show up as no quote.
    observed_at is the update time of the oldest quote used.
    """

    def __init__(self, cache: QuoteCache) -> None:
        self._cache = cache

    def fetch(self, pair: MarketPair) -> MarketSnapshot:
        quotes = {}
        for token_id in pair.token_ids:
            quote = self._cache.get(token_id)
            if quote is not None:
                quotes[token_id] = quote
        if not quotes:
            raise SnapshotUnavailable("no fresh quotes in cache")
        # Snapshot is as old as its oldest quote
        observed_at = min(self._cache.last_update(token_id) for token_id in quotes)
        return MarketSnapshot(
            market_a=_market_quotes(pair.market_a, quotes),
            market_b=_market_quotes(pair.market_b, quotes),
            observed_at=observed_at,
        )


def iter_snapshots(
    source: SnapshotSource,
    pair: MarketPair,
    interval_sec: float,
    cancel: threading.Event,
    deadline: float | None = None,
    on_skip: Callable[[SnapshotUnavailable], None] | None = None,
) -> Iterator[MarketSnapshot]:
    """
    One snapshot per tick until cancel is set or the deadline (unix seconds) passes.
    Ticks never overlap: the next fetch starts after the consumer returns.
    Failed fetches are logged and the tick is skipped.
    """
    while not cancel.is_set():
        tick_start = time.time()
        if deadline is not None and tick_start >= deadline:
            logger.info("Snapshot stream reached window end")
            return

        try:
            snapshot = source.fetch(pair)
        except SnapshotUnavailable as e:
            logger.warning("Snapshot skipped: %s", e)
            if on_skip is not None:
                on_skip(e)
        else:
            yield snapshot

        elapsed = time.time() - tick_start
        wait = max(0.0, interval_sec - elapsed)
        if deadline is not None:
            wait = min(wait, max(0.0, deadline - time.time()))
        if wait > 0 and cancel.wait(wait):
            return
