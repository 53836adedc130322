"""
Session counters for the monitoring loop. In-memory only, logged at window
rollover and on shutdown.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal

from scanner.models import ExecutionResult, ExecutionStatus, LegStatus

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    snapshots: int = 0
    snapshots_failed: int = 0
    opportunities: int = 0
    skipped: int = 0
    aborted: int = 0
    attempted: int = 0
    legs_accepted: int = 0
    legs_simulated: int = 0
    legs_rejected: int = 0
    legs_failed: int = 0      # network or signing failures
    unhedged_legs: int = 0    # attempts where exactly one leg went through
    execution_errors: int = 0  # executions that raised instead of returning a result
    spend_submitted: Decimal = Decimal(0)
    windows: int = 0
    started_at: float = field(default_factory=time.time)

    def record_snapshot(self, n_opportunities: int) -> None:
        self.snapshots += 1
        self.opportunities += n_opportunities

    def record_snapshot_failure(self) -> None:
        self.snapshots_failed += 1

    def record_execution(self, result: ExecutionResult) -> None:
        if result.status is ExecutionStatus.SKIPPED:
            self.skipped += 1
            return
        if result.status is ExecutionStatus.ABORTED:
            self.aborted += 1
            return

        self.attempted += 1
        for leg in result.legs:
            if leg.status is LegStatus.ACCEPTED:
                self.legs_accepted += 1
                self.spend_submitted += leg.price * leg.size
            elif leg.status is LegStatus.SIMULATED:
                self.legs_simulated += 1
            elif leg.status is LegStatus.REJECTED:
                self.legs_rejected += 1
            else:
                self.legs_failed += 1
        if result.unhedged:
            self.unhedged_legs += 1

    def summary(self) -> dict:
        return {
            "uptime_sec": round(time.time() - self.started_at, 1),
            "windows": self.windows,
            "snapshots": self.snapshots,
            "snapshots_failed": self.snapshots_failed,
            "opportunities": self.opportunities,
            "skipped": self.skipped,
            "aborted": self.aborted,
            "attempted": self.attempted,
            "legs_accepted": self.legs_accepted,
            "legs_simulated": self.legs_simulated,
            "legs_rejected": self.legs_rejected,
            "legs_failed": self.legs_failed,
            "unhedged_legs": self.unhedged_legs,
            "execution_errors": self.execution_errors,
            "spend_submitted": str(self.spend_submitted),
        }

    def log_summary(self, header: str = "Session") -> None:
        logger.info(
            "%s: %d snapshots (%d failed), %d opportunities, %d attempted, %d skipped, %d aborted",
            header, self.snapshots, self.snapshots_failed, self.opportunities,
            self.attempted, self.skipped, self.aborted,
        )
        logger.info(
            "%s legs: %d accepted, %d simulated, %d rejected, %d failed, $%.2f submitted",
            header, self.legs_accepted, self.legs_simulated, self.legs_rejected,
            self.legs_failed, self.spend_submitted,
        )
        if self.unhedged_legs:
            logger.warning("%s: %d unhedged one-leg fills", header, self.unhedged_legs)
        if self.execution_errors:
            logger.warning("%s: %d executions failed unexpectedly", header, self.execution_errors)
