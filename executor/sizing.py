"""
Position sizing. One policy per process, selected from config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from enum import Enum

logger = logging.getLogger(__name__)

# Dynamic mode: 1% of balance scaled by edge, never more than 25%
DYNAMIC_BASE_FRACTION = Decimal("0.01")
DYNAMIC_MAX_FRACTION = Decimal("0.25")


class SizingMode(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"
    DYNAMIC = "DYNAMIC"
    FREE = "FREE"

    @classmethod
    def _missing_(cls, value):
        # TRADE_MODE=percentage etc.
        if isinstance(value, str):
            for member in cls:
                if member.value == value.upper():
                    return member
        return None


@dataclass(frozen=True)
class SizingPolicy:
    """
    Closed set of sizing modes. Only the parameters of the active mode are read:
      FIXED      -> fixed_usd
      PERCENTAGE -> fraction (0.10 = 10% of balance)
      DYNAMIC    -> none
      FREE       -> cap_usd (None = whole balance)
    """
    mode: SizingMode
    fixed_usd: Decimal = Decimal("5")
    fraction: Decimal = Decimal("0.10")
    cap_usd: Decimal | None = None


@dataclass(frozen=True)
class PositionSize:
    spend: Decimal   # quote currency budget for the opportunity
    units: Decimal   # outcome shares bought on each leg

    @property
    def is_empty(self) -> bool:
        return self.units <= 0 or self.spend <= 0


def compute_spend(policy: SizingPolicy, balance: Decimal, expected_profit: Decimal) -> Decimal:
    """Quote-currency budget for one opportunity under the active policy."""
    if policy.mode is SizingMode.FIXED:
        spend = policy.fixed_usd
    elif policy.mode is SizingMode.PERCENTAGE:
        spend = balance * policy.fraction
    elif policy.mode is SizingMode.DYNAMIC:
        spend = min(
            balance * DYNAMIC_BASE_FRACTION * (1 + expected_profit),
            balance * DYNAMIC_MAX_FRACTION,
        )
    elif policy.mode is SizingMode.FREE:
        spend = balance if policy.cap_usd is None else min(balance, policy.cap_usd)
    else:
        raise ValueError(f"Unknown sizing mode: {policy.mode}")
    return max(spend, Decimal(0))


def units_for(spend: Decimal, total_cost: Decimal) -> Decimal:
    """Whole unit pairs affordable with spend. The remainder is dropped, never rounded up."""
    if total_cost <= 0 or spend <= 0:
        return Decimal(0)
    return (spend / total_cost).to_integral_value(rounding=ROUND_FLOOR)


def compute_position_size(
    policy: SizingPolicy,
    balance: Decimal,
    expected_profit: Decimal,
    total_cost: Decimal,
) -> PositionSize:
    """
    Convert balance + edge into a spend and a per-leg unit count.
    An empty size is a normal outcome; the caller decides whether it clears the minimum.
    """
    spend = compute_spend(policy, balance, expected_profit)
    units = units_for(spend, total_cost)
    logger.debug(
        "Sizing: mode=%s balance=$%.2f edge=%.4f spend=$%.2f units=%s",
        policy.mode.value, balance, expected_profit, spend, units,
    )
    return PositionSize(spend=spend, units=units)
