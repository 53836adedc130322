"""
Tests for monitor/stats.py -- session counters.
"""

from decimal import Decimal

from monitor.stats import SessionStats
from scanner.models import (
    ArbitrageOpportunity,
    ExecutionResult,
    ExecutionStatus,
    LegResult,
    LegStatus,
    Side,
)

OPP = ArbitrageOpportunity(
    token_a="a", token_b="b", price_a=Decimal("0.45"), price_b=Decimal("0.50"),
    total_cost=Decimal("0.95"), expected_profit=Decimal("0.05"),
    market_a_id="ma", market_b_id="mb",
)


def _leg(status, token="a", price="0.45"):
    return LegResult(token, Side.BUY, Decimal(price), Decimal("10"), status)


def _result(status, *legs):
    return ExecutionResult(OPP, status, legs=tuple(legs))


class TestSessionStats:
    def test_snapshots(self):
        stats = SessionStats()
        stats.record_snapshot(2)
        stats.record_snapshot(0)
        stats.record_snapshot_failure()
        assert stats.snapshots == 2
        assert stats.opportunities == 2
        assert stats.snapshots_failed == 1

    def test_skipped_and_aborted(self):
        stats = SessionStats()
        stats.record_execution(_result(ExecutionStatus.SKIPPED))
        stats.record_execution(_result(ExecutionStatus.ABORTED))
        assert (stats.skipped, stats.aborted, stats.attempted) == (1, 1, 0)

    def test_accepted_legs_count_spend(self):
        stats = SessionStats()
        stats.record_execution(_result(
            ExecutionStatus.ATTEMPTED,
            _leg(LegStatus.ACCEPTED), _leg(LegStatus.ACCEPTED, "b", "0.50"),
        ))
        assert stats.attempted == 1
        assert stats.legs_accepted == 2
        assert stats.spend_submitted == Decimal("9.50")
        assert stats.unhedged_legs == 0

    def test_one_leg_failure_is_unhedged(self):
        stats = SessionStats()
        stats.record_execution(_result(
            ExecutionStatus.ATTEMPTED,
            _leg(LegStatus.ACCEPTED), _leg(LegStatus.NETWORK_ERROR, "b"),
        ))
        assert stats.legs_failed == 1
        assert stats.unhedged_legs == 1

    def test_simulated_and_rejected(self):
        stats = SessionStats()
        stats.record_execution(_result(
            ExecutionStatus.ATTEMPTED, _leg(LegStatus.SIMULATED), _leg(LegStatus.REJECTED, "b"),
        ))
        assert stats.legs_simulated == 1
        assert stats.legs_rejected == 1
        assert stats.spend_submitted == Decimal(0)

    def test_summary_is_serializable(self):
        stats = SessionStats()
        stats.windows = 3
        summary = stats.summary()
        assert summary["windows"] == 3
        assert summary["spend_submitted"] == "0"
        assert isinstance(summary["uptime_sec"], float)
