"""
Data models for the cross-market scanner and executor. Pure data, no behavior.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Side(Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def code(self) -> int:
        """Numeric side discriminator used in the signed order struct."""
        return 0 if self is Side.BUY else 1


@dataclass(frozen=True)
class Market:
    """A live up/down market for one asset and one time window."""
    condition_id: str
    slug: str
    asset: str            # "eth", "btc"
    up_token_id: str
    down_token_id: str
    end_ts: float = 0.0   # unix seconds, 0 = unknown
    active: bool = True
    closed: bool = False


@dataclass(frozen=True)
class MarketPair:
    """Two correlated markets watched together for one window."""
    market_a: Market
    market_b: Market
    window_start: int

    @property
    def token_ids(self) -> list[str]:
        return [
            self.market_a.up_token_id,
            self.market_a.down_token_id,
            self.market_b.up_token_id,
            self.market_b.down_token_id,
        ]


@dataclass(frozen=True)
class OutcomeQuote:
    """Best bid/ask for one outcome token. None means no observable liquidity."""
    token_id: str
    bid: Decimal | None = None
    ask: Decimal | None = None


@dataclass(frozen=True)
class MarketQuotes:
    condition_id: str
    name: str
    up: OutcomeQuote | None = None
    down: OutcomeQuote | None = None


@dataclass(frozen=True)
class MarketSnapshot:
    """Quotes for both markets of a pair, captured at one instant."""
    market_a: MarketQuotes
    market_b: MarketQuotes
    observed_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """Two outcome tokens (one per market) to buy together."""
    token_a: str
    token_b: str
    price_a: Decimal
    price_b: Decimal
    total_cost: Decimal
    expected_profit: Decimal   # 1 - total_cost, per unit pair
    market_a_id: str
    market_b_id: str
    label: str = ""            # e.g. "ETH UP + BTC DOWN"
    observed_at: float = field(default_factory=time.time)

    @property
    def age_sec(self) -> float:
        return time.time() - self.observed_at


class ExecutionStatus(Enum):
    SKIPPED = "skipped"       # sub-minimum size or stale, not an error
    ABORTED = "aborted"       # blocked before any leg was submitted
    ATTEMPTED = "attempted"   # both legs were attempted


class LegStatus(Enum):
    ACCEPTED = "accepted"
    SIMULATED = "simulated"
    REJECTED = "rejected"
    NETWORK_ERROR = "network_error"
    SIGNING_FAILED = "signing_failed"
    FAILED = "failed"         # unexpected error while signing or submitting

    @property
    def ok(self) -> bool:
        return self in (LegStatus.ACCEPTED, LegStatus.SIMULATED)


@dataclass(frozen=True)
class LegResult:
    token_id: str
    side: Side
    price: Decimal
    size: Decimal
    status: LegStatus
    order_id: str = ""
    error: str = ""


@dataclass(frozen=True)
class ExecutionResult:
    opportunity: ArbitrageOpportunity
    status: ExecutionStatus
    units: Decimal = Decimal(0)
    spend: Decimal = Decimal(0)
    legs: tuple[LegResult, ...] = ()
    reason: str = ""
    execution_time_ms: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def legs_ok(self) -> int:
        return sum(1 for leg in self.legs if leg.status.ok)

    @property
    def unhedged(self) -> bool:
        """True when exactly one leg went through."""
        return len(self.legs) == 2 and self.legs_ok == 1
