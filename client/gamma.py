"""
Gamma API client for up/down market discovery. Pure REST, no SDK dependency.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import replace
from datetime import datetime

import httpx

from scanner.models import Market, MarketPair

logger = logging.getLogger(__name__)

_TIMEOUT = 30.0
WINDOW_SEC = 900
# The current window's market may not be listed yet; fall back this many windows
LOOKBACK_WINDOWS = 3


class MarketNotFound(Exception):
    """No live market for the asset in the current or recent windows."""
    pass


def _get(base_url: str, path: str, params: dict | None = None) -> dict | list:
    """Make a GET request to the Gamma API. Raises on non-200."""
    url = f"{base_url}{path}"
    resp = httpx.get(url, params=params, timeout=_TIMEOUT)
    resp.raise_for_status()
    return resp.json()


def current_window_start(now: float | None = None, window_sec: int = WINDOW_SEC) -> int:
    ts = int(time.time() if now is None else now)
    return (ts // window_sec) * window_sec


def time_remaining(end_ts: float, now: float | None = None) -> float:
    """Seconds until end_ts, never negative."""
    now = time.time() if now is None else now
    return max(0.0, end_ts - now)


def market_slug(asset: str, window_start: int) -> str:
    return f"{asset.lower()}-updown-15m-{window_start}"


def _parse_iso(raw: str) -> float:
    if not raw:
        return 0.0
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _json_list(raw) -> list:
    """clobTokenIds / outcomes may be a JSON string or a list."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return []
    return raw if isinstance(raw, list) else []


def parse_updown_market(raw: dict, asset: str) -> Market | None:
    """
    Gamma market dict -> Market. None if token ids are missing.
    Token order follows `outcomes` when it names Up/Down, else first = up.
    """
    token_ids = [str(t) for t in _json_list(raw.get("clobTokenIds") or raw.get("clob_token_ids"))]
    if len(token_ids) < 2:
        return None

    up_id, down_id = token_ids[0], token_ids[1]
    outcomes = [str(o).lower() for o in _json_list(raw.get("outcomes"))]
    if len(outcomes) >= 2 and outcomes[0] == "down" and outcomes[1] == "up":
        up_id, down_id = down_id, up_id

    end_raw = str(raw.get("endDateIso") or raw.get("endDateISO") or raw.get("endDate") or "")
    return Market(
        condition_id=str(raw.get("conditionId", "")),
        slug=str(raw.get("slug", "")),
        asset=asset.lower(),
        up_token_id=up_id,
        down_token_id=down_id,
        end_ts=_parse_iso(end_raw),
        active=bool(raw.get("active", True)),
        closed=bool(raw.get("closed", False)),
    )


def get_market_by_slug(gamma_host: str, slug: str, asset: str) -> Market | None:
    """First market of the event with this slug. None if the event has none."""
    data = _get(gamma_host, f"/events/slug/{slug}")
    markets = data.get("markets") if isinstance(data, dict) else None
    if not markets:
        return None
    return parse_updown_market(markets[0], asset)


def discover_market(
    gamma_host: str,
    asset: str,
    now: float | None = None,
    window_sec: int = WINDOW_SEC,
    exclude: set[str] | None = None,
) -> Market:
    """
    Live up/down market for asset: current window first, then up to three prior.
    Closed/inactive markets and condition ids in `exclude` are skipped.
    Raises MarketNotFound.
    """
    exclude = exclude or set()
    base = current_window_start(now, window_sec)
    for i in range(LOOKBACK_WINDOWS + 1):
        slug = market_slug(asset, base - i * window_sec)
        try:
            market = get_market_by_slug(gamma_host, slug, asset)
        except httpx.HTTPError as e:
            logger.debug("Slug %s not available: %s", slug, e)
            continue
        if market is None or not market.active or market.closed:
            continue
        if market.condition_id in exclude:
            continue
        if market.end_ts == 0.0:
            market = replace(market, end_ts=float(base - i * window_sec + window_sec))
        logger.info("Found %s market: %s", asset.upper(), market.slug)
        return market

    raise MarketNotFound(f"No active {asset.upper()} up/down market found near window {base}")


def discover_pair(
    gamma_host: str,
    asset_a: str,
    asset_b: str,
    now: float | None = None,
    window_sec: int = WINDOW_SEC,
) -> MarketPair:
    """Both markets for one window. The second never reuses the first's condition id."""
    market_a = discover_market(gamma_host, asset_a, now, window_sec)
    market_b = discover_market(gamma_host, asset_b, now, window_sec, exclude={market_a.condition_id})
    return MarketPair(
        market_a=market_a,
        market_b=market_b,
        window_start=current_window_start(now, window_sec),
    )
