"""
CLOB REST price reads. Thin layer converting SDK order books to best bid/ask quotes.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import BookParams

from scanner.models import OutcomeQuote

logger = logging.getLogger(__name__)

# Retry config for flaky CLOB API (HTTP/2 connection resets, SSL errors)
_MAX_RETRIES = 3
_RETRY_BACKOFF_SEC = 0.5

# Patch py_clob_client's shared httpx client:
#   - Disable HTTP/2: the CLOB server sends GOAWAY frames that crash the shared
#     connection pool (httpcore.RemoteProtocolError: ConnectionTerminated)
#   - Bound the timeout so one slow read only delays a single tick
import httpx as _httpx
from py_clob_client.http_helpers import helpers as _clob_helpers
_clob_helpers._http_client = _httpx.Client(http2=False, timeout=10.0)


def _retry_api_call(fn, *args, max_retries: int = _MAX_RETRIES, **kwargs):
    """Retry a py_clob_client call with exponential backoff on connection errors."""
    last_exc = None
    for attempt in range(max_retries):
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            last_exc = exc
            err_str = str(exc)
            # Only retry on connection-level errors (status_code=None), not 4xx/5xx
            is_connection_error = "Request exception" in err_str or "status_code=None" in err_str
            if not is_connection_error or attempt == max_retries - 1:
                raise
            wait = _RETRY_BACKOFF_SEC * (2 ** attempt)
            logger.debug("CLOB API retry %d/%d after %.1fs: %s", attempt + 1, max_retries, wait, exc)
            time.sleep(wait)
    raise last_exc  # unreachable, but satisfies type checker


def _level_prices(raw_levels) -> list[Decimal]:
    """Decimal prices from SDK levels. Unparseable levels are dropped."""
    prices = []
    for level in raw_levels or []:
        try:
            price = Decimal(str(level.price))
        except (InvalidOperation, AttributeError):
            logger.debug("Dropping unparseable book level: %r", level)
            continue
        if price >= 0:
            prices.append(price)
    return prices


def best_bid_ask(raw_bids, raw_asks) -> tuple[Decimal | None, Decimal | None]:
    """
    Best bid = highest bid, best ask = lowest ask.
    The SDK does NOT guarantee sort order. An empty side is None (no liquidity).
    """
    bids = _level_prices(raw_bids)
    asks = _level_prices(raw_asks)
    return (max(bids) if bids else None, min(asks) if asks else None)


def get_quote(client: ClobClient, token_id: str) -> OutcomeQuote:
    """Fetch the book for one token and reduce it to its top of book."""
    raw = _retry_api_call(client.get_order_book, token_id)
    bid, ask = best_bid_ask(raw.bids, raw.asks)
    return OutcomeQuote(token_id=token_id, bid=bid, ask=ask)


def get_quotes(client: ClobClient, token_ids: list[str]) -> dict[str, OutcomeQuote]:
    """
    Fetch top of book for several tokens in one /books request.
    Tokens missing from the response are absent from the result.
    """
    if not token_ids:
        return {}
    params = [BookParams(token_id=tid) for tid in token_ids]
    raws = _retry_api_call(client.get_order_books, params)
    result = {}
    for raw in raws:
        tid = raw.asset_id
        bid, ask = best_bid_ask(raw.bids, raw.asks)
        result[tid] = OutcomeQuote(token_id=tid, bid=bid, ask=ask)
    return result
