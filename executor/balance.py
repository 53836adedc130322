"""
Last-observed USDC balance of the maker wallet. The only mutable state shared
between the runner and the coordinator; always re-read from chain before use.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal

from client.chain import ChainClient, from_base_units

logger = logging.getLogger(__name__)


@dataclass
class BalanceState:
    """
    Owned balance holder passed to the coordinator.
    refresh() reads from chain and stores the value under the lock.
    """
    chain: ChainClient
    wallet: str
    _balance: Decimal = Decimal(0)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def refresh(self) -> Decimal:
        """Read the on-chain balance. Raises ChainCallFailed if the RPC read fails."""
        raw = self.chain.balance_of(self.wallet)
        balance = from_base_units(raw)
        with self._lock:
            self._balance = balance
        logger.debug("Balance refreshed: $%.2f (%s)", balance, self.wallet)
        return balance

    @property
    def last(self) -> Decimal:
        with self._lock:
            return self._balance
