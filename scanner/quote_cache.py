"""
Top-of-book cache fed by the market WebSocket.

Thread-safe for the WS-writer + main-loop-reader pattern via threading.Lock.
Keeps price levels per token so deltas can be applied; readers only see best bid/ask.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from scanner.models import OutcomeQuote

logger = logging.getLogger(__name__)


def _dec(value) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


@dataclass
class _TokenBook:
    bids: dict[Decimal, Decimal] = field(default_factory=dict)   # price -> size
    asks: dict[Decimal, Decimal] = field(default_factory=dict)
    # Explicit top of book from best_bid_ask events, cleared by the next book/delta
    best_bid: Decimal | None = None
    best_ask: Decimal | None = None
    explicit: bool = False
    updated_at: float = 0.0

    def quote(self, token_id: str) -> OutcomeQuote:
        if self.explicit:
            return OutcomeQuote(token_id=token_id, bid=self.best_bid, ask=self.best_ask)
        bid = max(self.bids) if self.bids else None
        ask = min(self.asks) if self.asks else None
        return OutcomeQuote(token_id=token_id, bid=bid, ask=ask)


@dataclass
class QuoteCache:
    """
    In-memory quotes per token_id. Entries older than max_age_sec read as missing.
    """
    max_age_sec: float = 10.0
    _books: dict[str, _TokenBook] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def apply_book(self, token_id: str, bids: list[dict], asks: list[dict]) -> None:
        """
        Replace the whole book from a 'book' event.
        bids/asks: [{"price": "0.52", "size": "100"}, ...]
        """
        book = _TokenBook(
            bids=_parse_levels(bids),
            asks=_parse_levels(asks),
            updated_at=time.time(),
        )
        with self._lock:
            self._books[token_id] = book

    def apply_change(self, token_id: str, price, size, side: str) -> None:
        """
        One level update from a 'price_change' event. Size 0 removes the level.
        side: "BUY" updates bids, "SELL" updates asks.
        """
        p, s = _dec(price), _dec(size)
        if p is None or s is None:
            logger.debug("Malformed price_change for %s: price=%r size=%r", token_id, price, size)
            return
        side = (side or "").upper()
        with self._lock:
            book = self._books.setdefault(token_id, _TokenBook())
            if side == "BUY":
                levels = book.bids
            elif side == "SELL":
                levels = book.asks
            else:
                logger.debug("Unknown side %r in price_change for %s", side, token_id)
                return
            if s > 0:
                levels[p] = s
            else:
                levels.pop(p, None)
            book.explicit = False
            book.updated_at = time.time()

    def apply_best(self, token_id: str, best_bid, best_ask) -> None:
        """Top of book from a 'best_bid_ask' event."""
        with self._lock:
            book = self._books.setdefault(token_id, _TokenBook())
            book.best_bid = _dec(best_bid)
            book.best_ask = _dec(best_ask)
            book.explicit = True
            book.updated_at = time.time()

    def get(self, token_id: str) -> OutcomeQuote | None:
        """Current quote, or None if the token is unknown or the entry is stale."""
        with self._lock:
            book = self._books.get(token_id)
            if book is None:
                return None
            if time.time() - book.updated_at > self.max_age_sec:
                return None
            return book.quote(token_id)

    def last_update(self, token_id: str) -> float:
        with self._lock:
            book = self._books.get(token_id)
            return book.updated_at if book else 0.0

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._books)


def _parse_levels(raw: list[dict]) -> dict[Decimal, Decimal]:
    levels = {}
    for level in raw or []:
        price, size = _dec(level.get("price")), _dec(level.get("size"))
        if price is None or size is None or size <= 0:
            continue
        levels[price] = size
    return levels
