"""
Pre-trade readiness gate: is the maker wallet funded and authorized to trade?

Checked before every execution attempt. Nothing is cached across opportunities
except the wallet kind, which cannot change for a given address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from client.chain import (
    ChainCallFailed,
    ChainClient,
    EXCHANGE_ADDRESS,
    MAX_UINT256,
    from_base_units,
)

logger = logging.getLogger(__name__)
# Approval transactions cost gas; kept apart from trade flow (own file handler)
remediation_logger = logging.getLogger("executor.remediation")


class WalletKind(Enum):
    EOA = "eoa"              # key-held, can send its own approval transactions
    CONTRACT = "contract"    # Safe / proxy, approvals go through its owners


class ReadinessFailure(Enum):
    INSUFFICIENT_BALANCE = "insufficient_balance"
    ALLOWANCE_MISSING = "allowance_missing"
    APPROVAL_MISSING = "approval_missing"


class Remediation(Enum):
    NONE = "none"
    AUTOMATIC = "automatic"   # the bot can fix it by sending a transaction
    MANUAL = "manual"         # the wallet's controller must fix it outside the bot


@dataclass(frozen=True)
class ReadinessResult:
    ok: bool
    failure: ReadinessFailure | None = None
    remediation: Remediation = Remediation.NONE
    available: Decimal = Decimal(0)
    required: Decimal = Decimal(0)
    detail: str = ""
    remediated: bool = False   # passed only after approval transactions were sent

    @property
    def reason(self) -> str:
        if self.ok:
            return "ready"
        parts = [self.failure.value if self.failure else "unknown"]
        if self.remediation is not Remediation.NONE:
            parts.append(f"remediation={self.remediation.value}")
        if self.detail:
            parts.append(self.detail)
        return " ".join(parts)


class ReadinessGate:
    """
    Balance, USDC allowance and CTF operator approval checks for one maker wallet.

    Contract wallets fail with MANUAL remediation when an authorization is missing.
    EOA wallets approve themselves (max allowance, operator approval), then re-verify.
    Chain read errors propagate as ChainCallFailed.
    """

    def __init__(
        self,
        chain: ChainClient,
        wallet: str,
        spender: str = EXCHANGE_ADDRESS,
        operator: str = EXCHANGE_ADDRESS,
        min_allowance_units: int = 1_000_000,
        wallet_kind: WalletKind | None = None,
    ) -> None:
        self._chain = chain
        self._wallet = wallet
        self._spender = spender
        self._operator = operator
        self._min_allowance_units = min_allowance_units
        self._wallet_kind = wallet_kind

    @property
    def wallet_kind(self) -> WalletKind:
        """Checked once: code at the address means a contract-controlled wallet."""
        if self._wallet_kind is None:
            self._wallet_kind = (
                WalletKind.CONTRACT if self._chain.has_code(self._wallet) else WalletKind.EOA
            )
            logger.info("Wallet %s detected as %s", self._wallet, self._wallet_kind.value)
        return self._wallet_kind

    def check(self, required_usd: Decimal) -> ReadinessResult:
        available = from_base_units(self._chain.balance_of(self._wallet))
        if available < required_usd:
            return ReadinessResult(
                ok=False,
                failure=ReadinessFailure.INSUFFICIENT_BALANCE,
                available=available,
                required=required_usd,
                detail=f"available ${available:.2f} < required ${required_usd:.2f}",
            )

        missing = self._missing_authorization()
        if missing is None:
            return ReadinessResult(ok=True, available=available, required=required_usd)

        if self.wallet_kind is WalletKind.CONTRACT:
            logger.warning(
                "Readiness: %s on contract wallet %s. Approve the exchange from the wallet owners",
                missing.value, self._wallet,
            )
            return ReadinessResult(
                ok=False,
                failure=missing,
                remediation=Remediation.MANUAL,
                available=available,
                required=required_usd,
                detail="contract wallet must be approved by its controller",
            )

        return self._remediate(missing, available, required_usd)

    def _missing_authorization(self) -> ReadinessFailure | None:
        allowance = self._chain.allowance(self._wallet, self._spender)
        if allowance < self._min_allowance_units:
            return ReadinessFailure.ALLOWANCE_MISSING
        if not self._chain.is_approved_for_all(self._wallet, self._operator):
            return ReadinessFailure.APPROVAL_MISSING
        return None

    def _remediate(
        self,
        missing: ReadinessFailure,
        available: Decimal,
        required_usd: Decimal,
    ) -> ReadinessResult:
        """Send the missing approvals from the EOA and re-verify."""
        remediation_logger.warning(
            "Auto-remediation for %s: %s detected, sending approval transactions",
            self._wallet, missing.value,
        )
        try:
            if self._chain.allowance(self._wallet, self._spender) < self._min_allowance_units:
                tx = self._chain.approve(self._spender, MAX_UINT256)
                remediation_logger.warning("USDC approve(%s, max) sent: %s", self._spender, tx)
            if not self._chain.is_approved_for_all(self._wallet, self._operator):
                tx = self._chain.set_approval_for_all(self._operator, True)
                remediation_logger.warning("CTF setApprovalForAll(%s) sent: %s", self._operator, tx)
            still_missing = self._missing_authorization()
        except ChainCallFailed as e:
            remediation_logger.error("Auto-remediation failed for %s: %s", self._wallet, e)
            return ReadinessResult(
                ok=False,
                failure=missing,
                remediation=Remediation.AUTOMATIC,
                available=available,
                required=required_usd,
                detail=f"approval transaction failed: {e}",
            )

        if still_missing is not None:
            remediation_logger.error(
                "Auto-remediation did not take effect for %s: %s", self._wallet, still_missing.value,
            )
            return ReadinessResult(
                ok=False,
                failure=still_missing,
                remediation=Remediation.AUTOMATIC,
                available=available,
                required=required_usd,
                detail="still missing after approval transactions",
            )

        remediation_logger.info("Auto-remediation complete for %s", self._wallet)
        return ReadinessResult(
            ok=True, available=available, required=required_usd, remediated=True,
        )
