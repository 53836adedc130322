#!/usr/bin/env python3
"""
Cross-market up/down arbitrage bot.

Per 15-minute window:
  1. Discover the live up/down markets for both assets (Gamma)
  2. Stream snapshots of the four outcome quotes (REST poll or WebSocket cache)
  3. Detect complementary pairs priced under $1.00
  4. Size + readiness gate + sign + submit both legs
  5. Roll over to the next window

Usage:
  python run.py                 # read-only (default): orders are signed and logged, never sent
  python run.py --live          # submit orders
  python run.py --once          # one snapshot, then exit
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
import time
from decimal import Decimal

from client.auth import build_public_clob_client, resolve_api_creds
from client.chain import Web3ChainClient
from client.gamma import MarketNotFound, current_window_start, discover_pair, time_remaining
from client.orders import OrderGateway
from client.ws import MarketFeed
from config import Config, detector_config, load_config, sizing_policy
from executor.balance import BalanceState
from executor.engine import ExecutionCoordinator
from executor.readiness import ReadinessGate
from executor.signer import OrderSigner
from monitor.logger import setup_logging
from monitor.stats import SessionStats
from scanner.cross_market import CrossMarketDetector
from scanner.models import MarketPair
from scanner.quote_cache import QuoteCache
from scanner.snapshot import (
    CacheSnapshotSource,
    RestSnapshotSource,
    SnapshotSource,
    iter_snapshots,
)

logger = logging.getLogger(__name__)


_BANNER = r"""
 _   _       ______                           _         _
| | | |_ __ |  _  \_____      ___ __     __ _| |__ ___ (_)
| | | | '_ \| | | / _ \ \ /\ / / '_ \   / _` | '__| _ \| |
| |_| | |_) | |/ / (_) \ V  V /| | | | | (_| | | | (_) | |
 \___/| .__/|___/ \___/ \_/\_/ |_| |_|  \__,_|_|  \___/|_|
      |_|                      Cross-market arbitrage
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cross-market up/down arbitrage bot")
    parser.add_argument("--live", action="store_true", help="Submit orders (disables read-only mode)")
    parser.add_argument("--read-only", action="store_true", help="Force read-only mode: sign and log, never send")
    parser.add_argument("--once", action="store_true", help="Process a single snapshot and exit")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    return parser.parse_args(argv)


def apply_cli_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    """--read-only wins over --live."""
    if args.read_only:
        return cfg.model_copy(update={"read_only": True})
    if args.live:
        return cfg.model_copy(update={"read_only": False})
    return cfg


def _mode_label(cfg: Config) -> str:
    if not cfg.has_wallet:
        return "DETECT-ONLY (no wallet configured)"
    if cfg.read_only:
        return "READ-ONLY (orders signed and logged, never sent)"
    return "LIVE TRADING"


def build_coordinator(cfg: Config) -> ExecutionCoordinator:
    """Wire chain client, balance, gate, signer and gateway for the configured wallet."""
    chain = Web3ChainClient(
        cfg.polygon_rpc_url,
        private_key=cfg.private_key,
        chain_id=cfg.chain_id,
        timeout_sec=cfg.rpc_timeout_sec,
    )
    signer = OrderSigner(
        cfg.private_key,
        maker=cfg.proxy_wallet,
        chain_id=cfg.chain_id,
        expiration_sec=cfg.order_expiration_sec,
        fee_rate_bps=cfg.fee_rate_bps,
    )
    creds = None if cfg.read_only else resolve_api_creds(cfg)
    gateway = OrderGateway(
        cfg.clob_host,
        creds,
        address=signer.address,
        read_only=cfg.read_only,
        timeout=cfg.order_timeout_sec,
    )
    return ExecutionCoordinator(
        balance=BalanceState(chain=chain, wallet=signer.maker),
        policy=sizing_policy(cfg),
        gate=ReadinessGate(chain, signer.maker, min_allowance_units=cfg.min_allowance_units),
        signer=signer,
        gateway=gateway,
        min_order_usd=Decimal(str(cfg.min_order_usd)),
        max_snapshot_age_sec=cfg.max_snapshot_age_sec,
    )


def window_deadline(pair: MarketPair, window_sec: int) -> float:
    """Earliest market end, or the window boundary when ends are unknown."""
    ends = [m.end_ts for m in (pair.market_a, pair.market_b) if m.end_ts > 0]
    return min(ends) if ends else float(pair.window_start + window_sec)


def run_window(
    pair: MarketPair,
    source: SnapshotSource,
    detector: CrossMarketDetector,
    coordinator: ExecutionCoordinator | None,
    stats: SessionStats,
    interval_sec: float,
    cancel: threading.Event,
    deadline: float | None = None,
    max_snapshots: int = 0,
) -> int:
    """
    Consume the snapshot stream for one window. Each snapshot is fully processed
    (detect + execute every opportunity) before the next one is fetched.
    Returns the number of snapshots processed.
    """
    def _on_skip(error):
        stats.record_snapshot_failure()

    processed = 0
    for snapshot in iter_snapshots(source, pair, interval_sec, cancel, deadline, on_skip=_on_skip):
        opportunities = detector.detect(snapshot)
        stats.record_snapshot(len(opportunities))
        processed += 1

        for opp in opportunities:
            logger.info(
                "Opportunity %s: %s + %s = %s (edge %s)",
                opp.label, opp.price_a, opp.price_b, opp.total_cost, opp.expected_profit,
            )
            if coordinator is None:
                continue
            try:
                result = coordinator.execute(opp)
            except Exception as e:
                logger.exception("Execution of %s failed unexpectedly: %s", opp.label, e)
                stats.execution_errors += 1
                continue
            stats.record_execution(result)

        if max_snapshots and processed >= max_snapshots:
            break
    return processed


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    cfg = apply_cli_overrides(load_config(), args)

    if not cfg.read_only and not cfg.has_wallet:
        print("PRIVATE_KEY and PROXY_WALLET required for live trading.", file=sys.stderr)
        sys.exit(1)

    log_file_path = setup_logging(cfg.log_level, json_log_file=args.json_log)
    logger.info(_BANNER.strip("\n"))
    logger.info("  Mode: %s", _mode_label(cfg))
    logger.info("  Pair: %s / %s, feed=%s, sizing=%s", cfg.asset_a.upper(), cfg.asset_b.upper(),
                cfg.price_feed, cfg.trade_mode.value)
    logger.info("  Log file: %s", log_file_path)

    detector = CrossMarketDetector(detector_config(cfg))
    coordinator = build_coordinator(cfg) if cfg.has_wallet else None
    clob = build_public_clob_client(cfg)
    stats = SessionStats()

    # Graceful shutdown: signals only set the event, the loop exits at the next wait
    cancel = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Signal %d received, shutting down", signum)
        cancel.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    while not cancel.is_set():
        try:
            pair = discover_pair(cfg.gamma_host, cfg.asset_a, cfg.asset_b, window_sec=cfg.market_window_sec)
        except MarketNotFound as e:
            logger.warning("%s. Retrying in %.0fs", e, cfg.discovery_retry_sec)
            if cancel.wait(cfg.discovery_retry_sec):
                break
            continue

        stats.windows += 1
        deadline = window_deadline(pair, cfg.market_window_sec)
        logger.info(
            "Window %d: %s vs %s, %.0fs remaining",
            pair.window_start, pair.market_a.slug, pair.market_b.slug, time_remaining(deadline),
        )

        feed = None
        if cfg.price_feed == "ws":
            cache = QuoteCache(max_age_sec=cfg.ws_max_quote_age_sec)
            feed = MarketFeed(
                url=cfg.ws_market_url,
                token_ids=pair.token_ids,
                cache=cache,
                reconnect_delay_sec=cfg.ws_reconnect_delay_sec,
            )
            feed.start()
            source: SnapshotSource = CacheSnapshotSource(cache)
        else:
            source = RestSnapshotSource(clob)

        try:
            run_window(
                pair, source, detector, coordinator, stats,
                interval_sec=cfg.check_interval_sec,
                cancel=cancel,
                deadline=deadline,
                max_snapshots=1 if args.once else 0,
            )
        finally:
            # In-flight HTTP calls of an execution are not awaited here
            if feed is not None:
                logger.info(
                    "WS feed at window end: healthy=%s, %d tokens cached",
                    feed.is_healthy(), feed.cache.size,
                )
                feed.stop()

        stats.log_summary(header=f"After window {pair.window_start}")
        if coordinator is not None:
            logger.info("Last observed balance: $%.2f", coordinator.balance.last)
        if args.once:
            break

        # Markets for the next window are listed shortly after the boundary
        next_window = current_window_start(window_sec=cfg.market_window_sec)
        if next_window == pair.window_start:
            cancel.wait(max(0.0, pair.window_start + cfg.market_window_sec - time.time()))

    stats.log_summary(header="Session")
    logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
