"""
Market WebSocket feed. Reconnects forever with a fixed delay.
Runs in a daemon thread with its own asyncio loop and writes into a QuoteCache.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass

import websockets
from websockets.asyncio.client import connect

from scanner.quote_cache import QuoteCache

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SEC = 2.0


@dataclass
class MarketFeed:
    """
    Subscribes to the market channel for a fixed token list and keeps
    QuoteCache current from 'book', 'price_change' and 'best_bid_ask' events.
    """
    url: str
    token_ids: list[str]
    cache: QuoteCache
    reconnect_delay_sec: float = RECONNECT_DELAY_SEC
    _running: bool = False
    _loop: asyncio.AbstractEventLoop | None = None
    _thread: threading.Thread | None = None
    _task: asyncio.Task | None = None
    # Health tracking
    _last_message_time: float = 0.0
    _connects: int = 0
    _messages: int = 0

    # -- Thread facade --

    def start(self) -> None:
        """Start the feed in a background thread. No-op if already running."""
        if self._thread and self._thread.is_alive():
            return
        self._running = True
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_thread, daemon=True, name="ws-feed")
        self._thread.start()
        logger.info("WebSocket feed started (%d tokens)", len(self.token_ids))

    def stop(self, timeout: float = 5.0) -> None:
        if not self._running:
            return
        self._running = False
        if self._loop and self._task:
            self._loop.call_soon_threadsafe(self._task.cancel)
        if self._thread:
            self._thread.join(timeout=timeout)
        logger.info(
            "WebSocket feed stopped (%d connects, %d messages)", self._connects, self._messages,
        )

    def is_healthy(self, max_silence_sec: float = 30.0) -> bool:
        if not self._running or self._last_message_time == 0.0:
            return False
        return time.time() - self._last_message_time <= max_silence_sec

    def _run_thread(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._task = self._loop.create_task(self.run())
        try:
            self._loop.run_until_complete(self._task)
        except asyncio.CancelledError:
            pass
        finally:
            self._loop.close()

    # -- Async loop --

    async def run(self) -> None:
        """Connect, subscribe, consume. Any disconnect waits a fixed delay and retries."""
        self._running = True
        while self._running:
            try:
                async with connect(self.url) as ws:
                    self._connects += 1
                    logger.info("WebSocket connected to %s", self.url)
                    await ws.send(json.dumps({"assets_ids": self.token_ids, "type": "market"}))
                    async for raw_msg in ws:
                        if not self._running:
                            break
                        self.handle_message(raw_msg)
            except (
                websockets.ConnectionClosed, websockets.InvalidHandshake,
                ConnectionError, OSError, asyncio.TimeoutError,
            ) as e:
                if not self._running:
                    break
                logger.warning(
                    "WebSocket disconnected, reconnecting in %.1fs: %s", self.reconnect_delay_sec, e,
                )
                await asyncio.sleep(self.reconnect_delay_sec)
            except Exception:
                if not self._running:
                    break
                logger.exception(
                    "WebSocket feed error, reconnecting in %.1fs", self.reconnect_delay_sec,
                )
                await asyncio.sleep(self.reconnect_delay_sec)
            else:
                if self._running:
                    logger.warning(
                        "WebSocket closed by server, reconnecting in %.1fs", self.reconnect_delay_sec,
                    )
                    await asyncio.sleep(self.reconnect_delay_sec)

    # -- Message handling --

    def handle_message(self, raw_msg: str | bytes) -> int:
        """Parse one frame and apply its events to the cache. Returns events applied."""
        try:
            data = json.loads(raw_msg)
        except json.JSONDecodeError:
            # Server sends plain-text "PONG" and similar
            logger.debug("Non-JSON WebSocket message: %s", str(raw_msg)[:200])
            return 0

        self._last_message_time = time.time()
        self._messages += 1
        events = data if isinstance(data, list) else [data]
        applied = 0
        for event in events:
            if not isinstance(event, dict):
                continue
            try:
                applied += self._apply_event(event)
            except (TypeError, AttributeError, ValueError) as e:
                logger.warning(
                    "Dropping malformed %s event for %s: %s",
                    event.get("event_type", "?"), str(event.get("asset_id", ""))[:16], e,
                )
        return applied

    def _apply_event(self, event: dict) -> int:
        event_type = event.get("event_type", "")
        asset_id = event.get("asset_id", "")

        if event_type == "book":
            self.cache.apply_book(
                asset_id, event.get("bids") or event.get("buys") or [],
                event.get("asks") or event.get("sells") or [],
            )
            return 1

        if event_type == "price_change":
            # Current format: price_changes[] each with its own asset_id.
            # Older format: top-level asset_id with changes[].
            count = 0
            for change in event.get("price_changes") or []:
                if not isinstance(change, dict):
                    continue
                self.cache.apply_change(
                    change.get("asset_id", asset_id),
                    change.get("price"), change.get("size"), change.get("side", ""),
                )
                count += 1
            for change in event.get("changes") or []:
                if not isinstance(change, dict):
                    continue
                self.cache.apply_change(
                    asset_id, change.get("price"), change.get("size"), change.get("side", ""),
                )
                count += 1
            return count

        if event_type == "best_bid_ask":
            self.cache.apply_best(asset_id, event.get("best_bid"), event.get("best_ask"))
            return 1

        return 0
