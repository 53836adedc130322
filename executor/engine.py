"""
Execution coordinator. Drives one cross-market opportunity through
sizing -> readiness gate -> sign + submit leg 1 -> sign + submit leg 2.

The two legs are not atomic. If one leg is accepted and the other fails, the
position is left unhedged: no rollback, no retry. Both outcomes are reported.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from enum import Enum

from client.chain import ChainCallFailed
from client.orders import OrderGateway, OrderNetworkError, OrderRejected
from executor.balance import BalanceState
from executor.readiness import ReadinessGate
from executor.signer import OrderSigner, SigningFailure
from executor.sizing import SizingPolicy, compute_position_size, units_for
from scanner.models import (
    ArbitrageOpportunity,
    ExecutionResult,
    ExecutionStatus,
    LegResult,
    LegStatus,
    Side,
)

logger = logging.getLogger(__name__)


class ExecutionStage(Enum):
    IDLE = "idle"
    SIZING = "sizing"
    GATING = "gating"
    ABORTED = "aborted"
    LEG_1 = "leg_1"
    LEG_2 = "leg_2"
    DONE = "done"


class ExecutionCoordinator:
    """
    One instance per process. execute() is called synchronously from the
    snapshot loop, so executions never overlap.
    """

    def __init__(
        self,
        balance: BalanceState,
        policy: SizingPolicy,
        gate: ReadinessGate,
        signer: OrderSigner,
        gateway: OrderGateway,
        min_order_usd: Decimal = Decimal("1"),
        max_snapshot_age_sec: float = 0.0,
    ) -> None:
        self._balance = balance
        self._policy = policy
        self._gate = gate
        self._signer = signer
        self._gateway = gateway
        self._min_order_usd = min_order_usd
        self._max_snapshot_age_sec = max_snapshot_age_sec
        self._stage = ExecutionStage.IDLE

    @property
    def stage(self) -> ExecutionStage:
        return self._stage

    @property
    def balance(self) -> BalanceState:
        return self._balance

    def _enter(self, stage: ExecutionStage) -> None:
        logger.debug("Execution stage %s -> %s", self._stage.value, stage.value)
        self._stage = stage

    def execute(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        """
        Never raises for expected failures: stale quotes and sub-minimum sizes
        are SKIPPED, chain/readiness failures are ABORTED (no leg submitted),
        anything past the gate is ATTEMPTED with per-leg outcomes.
        """
        start_time = time.time()
        self._enter(ExecutionStage.IDLE)

        if self._max_snapshot_age_sec > 0 and opportunity.age_sec > self._max_snapshot_age_sec:
            logger.info(
                "Skipping %s: quotes %.2fs old (max %.2fs)",
                opportunity.label, opportunity.age_sec, self._max_snapshot_age_sec,
            )
            return self._finish(opportunity, ExecutionStatus.SKIPPED, start_time, reason="stale quotes")

        # -- Sizing --
        self._enter(ExecutionStage.SIZING)
        try:
            balance = self._balance.refresh()
        except ChainCallFailed as e:
            logger.warning("Aborting %s: balance read failed: %s", opportunity.label, e)
            return self._abort(opportunity, start_time, f"balance read failed: {e}")

        size = compute_position_size(
            self._policy, balance, opportunity.expected_profit, opportunity.total_cost,
        )
        spend, units = size.spend, size.units

        # The gate asks for 2x spend; keep that within the observed balance
        if spend * 2 > balance:
            spend = balance / 2
            units = units_for(spend, opportunity.total_cost)
            logger.info("Spend clamped to half of balance $%.2f: $%.2f", balance, spend)

        if units <= 0 or spend < self._min_order_usd:
            logger.info(
                "Skipping %s: size below minimum (spend=$%.2f units=%s min=$%.2f)",
                opportunity.label, spend, units, self._min_order_usd,
            )
            return self._finish(
                opportunity, ExecutionStatus.SKIPPED, start_time,
                units=units, spend=spend, reason="below minimum order size",
            )

        # -- Readiness gate --
        self._enter(ExecutionStage.GATING)
        try:
            readiness = self._gate.check(spend * 2)
        except ChainCallFailed as e:
            logger.warning("Aborting %s: readiness check failed: %s", opportunity.label, e)
            return self._abort(opportunity, start_time, f"readiness check failed: {e}", units, spend)

        if not readiness.ok:
            logger.warning("Aborting %s: not ready (%s)", opportunity.label, readiness.reason)
            return self._abort(opportunity, start_time, readiness.reason, units, spend)

        # -- Legs: both always attempted --
        self._enter(ExecutionStage.LEG_1)
        leg_a = self._submit_leg(opportunity.token_a, opportunity.price_a, units)
        self._enter(ExecutionStage.LEG_2)
        leg_b = self._submit_leg(opportunity.token_b, opportunity.price_b, units)

        result = self._finish(
            opportunity, ExecutionStatus.ATTEMPTED, start_time,
            units=units, spend=spend, legs=(leg_a, leg_b),
        )
        self._log_result(result)
        return result

    def _submit_leg(self, token_id: str, price: Decimal, units: Decimal) -> LegResult:
        """Sign and submit one BUY. Failures are returned as the leg's status."""
        try:
            signed = self._signer.sign(token_id, Side.BUY, price, units)
        except SigningFailure as e:
            logger.error("Leg %s signing failed: %s", token_id[:16], e)
            return LegResult(token_id, Side.BUY, price, units, LegStatus.SIGNING_FAILED, error=str(e))
        except Exception as e:
            logger.exception("Leg %s signing failed unexpectedly", token_id[:16])
            return LegResult(token_id, Side.BUY, price, units, LegStatus.SIGNING_FAILED, error=str(e))

        try:
            ack = self._gateway.submit(signed.to_payload())
        except OrderRejected as e:
            logger.error("Leg %s rejected: %s", token_id[:16], e.reason)
            return LegResult(token_id, Side.BUY, price, units, LegStatus.REJECTED, error=e.reason)
        except OrderNetworkError as e:
            logger.error("Leg %s network error: %s", token_id[:16], e)
            return LegResult(token_id, Side.BUY, price, units, LegStatus.NETWORK_ERROR, error=str(e))
        except Exception as e:
            logger.exception("Leg %s submission failed unexpectedly", token_id[:16])
            return LegResult(token_id, Side.BUY, price, units, LegStatus.FAILED, error=str(e))

        status = LegStatus.SIMULATED if ack.simulated else LegStatus.ACCEPTED
        logger.info("Leg %s %s: BUY %s @ %s (order %s)", token_id[:16], status.value, units, price, ack.order_id)
        return LegResult(token_id, Side.BUY, price, units, status, order_id=ack.order_id)

    def _abort(
        self,
        opportunity: ArbitrageOpportunity,
        start_time: float,
        reason: str,
        units: Decimal = Decimal(0),
        spend: Decimal = Decimal(0),
    ) -> ExecutionResult:
        self._enter(ExecutionStage.ABORTED)
        return self._finish(
            opportunity, ExecutionStatus.ABORTED, start_time,
            units=units, spend=spend, reason=reason,
        )

    def _finish(
        self,
        opportunity: ArbitrageOpportunity,
        status: ExecutionStatus,
        start_time: float,
        units: Decimal = Decimal(0),
        spend: Decimal = Decimal(0),
        legs: tuple[LegResult, ...] = (),
        reason: str = "",
    ) -> ExecutionResult:
        if status is ExecutionStatus.ATTEMPTED:
            self._enter(ExecutionStage.DONE)
        return ExecutionResult(
            opportunity=opportunity,
            status=status,
            units=units,
            spend=spend,
            legs=legs,
            reason=reason,
            execution_time_ms=(time.time() - start_time) * 1000,
        )

    @staticmethod
    def _log_result(result: ExecutionResult) -> None:
        opp = result.opportunity
        logger.info(
            "Executed %s: %s units @ %s + %s = %s (edge %s), legs ok %d/2, %.0fms",
            opp.label, result.units, opp.price_a, opp.price_b, opp.total_cost,
            opp.expected_profit, result.legs_ok, result.execution_time_ms,
        )
        if result.unhedged:
            failed = next(leg for leg in result.legs if not leg.status.ok)
            logger.warning(
                "UNHEDGED position on %s: leg %s %s (%s). No compensating order is placed",
                opp.label, failed.token_id[:16], failed.status.value, failed.error,
            )
