"""
Cross-market up/down arbitrage detector.

Two correlated markets for the same window (e.g. ETH and BTC up/down). Buying
A-up + B-down (or A-down + B-up) for less than $1.00 per pair is treated as an
edge. Pure function of the snapshot and the thresholds: no state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from scanner.models import ArbitrageOpportunity, MarketQuotes, MarketSnapshot, OutcomeQuote

logger = logging.getLogger(__name__)

ONE = Decimal(1)


@dataclass(frozen=True)
class DetectorConfig:
    min_profit_threshold: Decimal = Decimal("0.005")
    max_sum_threshold: Decimal = Decimal("0.99")
    min_reasonable_price: Decimal = Decimal("0.15")
    max_reasonable_price: Decimal = Decimal("0.95")
    min_total_cost: Decimal = Decimal("0.50")


class CrossMarketDetector:
    """
    Evaluates exactly two pairings per snapshot: (A up, B down) and (A down, B up).
    Filters, in order, first failure rejects the pairing:
      1. both asks below min_reasonable_price (stale / zero quotes)
      2. both asks above max_reasonable_price
      3. sum below min_total_cost (corrupted feed)
      4. sum at or above max_sum_threshold
      5. 1 - sum below min_profit_threshold
    """

    def __init__(self, config: DetectorConfig | None = None) -> None:
        self._config = config or DetectorConfig()

    @property
    def config(self) -> DetectorConfig:
        return self._config

    def detect(self, snapshot: MarketSnapshot) -> list[ArbitrageOpportunity]:
        a, b = snapshot.market_a, snapshot.market_b
        opportunities = []
        for quote_a, label_a, quote_b, label_b in (
            (a.up, "UP", b.down, "DOWN"),
            (a.down, "DOWN", b.up, "UP"),
        ):
            opp = self._evaluate_pair(
                a, quote_a, b, quote_b,
                label=f"{a.name} {label_a} + {b.name} {label_b}",
                observed_at=snapshot.observed_at,
            )
            if opp is not None:
                opportunities.append(opp)
        return opportunities

    def _evaluate_pair(
        self,
        market_a: MarketQuotes,
        quote_a: OutcomeQuote | None,
        market_b: MarketQuotes,
        quote_b: OutcomeQuote | None,
        label: str,
        observed_at: float,
    ) -> ArbitrageOpportunity | None:
        if quote_a is None or quote_b is None or quote_a.ask is None or quote_b.ask is None:
            return None

        cfg = self._config
        price_a, price_b = quote_a.ask, quote_b.ask

        if price_a < cfg.min_reasonable_price and price_b < cfg.min_reasonable_price:
            logger.debug("%s: both asks below %s (%s, %s), likely stale", label,
                         cfg.min_reasonable_price, price_a, price_b)
            return None
        if price_a > cfg.max_reasonable_price and price_b > cfg.max_reasonable_price:
            logger.debug("%s: both asks above %s (%s, %s)", label,
                         cfg.max_reasonable_price, price_a, price_b)
            return None

        total_cost = price_a + price_b
        if total_cost < cfg.min_total_cost:
            logger.debug("%s: total %s below sanity floor %s", label, total_cost, cfg.min_total_cost)
            return None
        if total_cost >= cfg.max_sum_threshold:
            return None

        expected_profit = ONE - total_cost
        if expected_profit < cfg.min_profit_threshold:
            return None

        logger.debug("%s: %s + %s = %s, edge %s", label, price_a, price_b, total_cost, expected_profit)
        return ArbitrageOpportunity(
            token_a=quote_a.token_id,
            token_b=quote_b.token_id,
            price_a=price_a,
            price_b=price_b,
            total_cost=total_cost,
            expected_profit=expected_profit,
            market_a_id=market_a.condition_id,
            market_b_id=market_b.condition_id,
            label=label,
            observed_at=observed_at,
        )
