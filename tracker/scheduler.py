"""
Monitor scheduler - owns the tracked wallets, the watermarks, the feed and
the recurring poll timer.

Every round (initial start or timer tick) is collect-then-commit: all
wallets are polled in parallel without holding the lock, then results are
applied in one critical section. `start` and `stop` bump a generation
counter, so a round that was superseded while it was polling drops its
results instead of writing stale data into the feed.
"""
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum

import config
from tracker.feed_store import FeedStore, WatermarkTracker
from tracker.models import TransactionEvent
from tracker.wallet_poller import WalletPoller
from utils import get_logger, now_utc, short_addr

log = get_logger("scheduler")


class MonitorState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class ConfigurationError(ValueError):
    """Empty or malformed wallet set."""


class RecurringTimer:
    """Cancellable fixed-period timer running `callback` on a daemon thread."""

    def __init__(self, interval: float, callback, name: str = "monitor-tick"):
        self.interval = interval
        self.callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def start(self):
        self._thread.start()

    def cancel(self):
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def _run(self):
        while not self._stop.wait(timeout=self.interval):
            try:
                self.callback()
            except Exception as e:
                log.error(f"Scheduled tick failed: {e}", exc_info=True)


class MonitorScheduler:

    def __init__(self, poller: WalletPoller, feed: FeedStore = None,
                 watermarks: WatermarkTracker = None,
                 interval: float = config.POLL_INTERVAL_SECONDS,
                 workers: int = config.POLL_WORKERS):
        self.poller = poller
        self.feed = feed if feed is not None else FeedStore()
        self.watermarks = watermarks if watermarks is not None else WatermarkTracker()
        self.interval = interval
        self.workers = workers

        self._lock = threading.RLock()
        self._state = MonitorState.STOPPED
        self._wallets: frozenset[str] = frozenset()
        self._generation = 0
        self._timer: RecurringTimer | None = None
        self._ticks = 0
        self._last_tick_at = None

    # ─── Public API ──────────────────────────────────────────────────────

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def tracked_wallets(self) -> frozenset[str]:
        return self._wallets

    def watermark(self, wallet: str) -> int:
        with self._lock:
            return self.watermarks.get(wallet)

    def start(self, wallets) -> dict:
        """Replace the wallet set, rebuild the feed from scratch, arm the timer."""
        tracked = self._validate(wallets)

        with self._lock:
            self._cancel_timer()
            self._generation += 1
            generation = self._generation
            self._state = MonitorState.STARTING
            self._wallets = tracked
        log.info(f"Starting monitor for {len(tracked)} wallet(s)")

        results = self._poll_all(tracked)

        with self._lock:
            if generation != self._generation:
                log.info("Start superseded by a newer start/stop; discarding initial snapshot")
                return {"status": "superseded", "trackedWallets": sorted(tracked)}

            self.feed.replace([ev for events in results.values() for ev in events])
            self.watermarks.reset({
                wallet: max((ev.timestamp for ev in events), default=0)
                for wallet, events in results.items()
            })
            self._state = MonitorState.RUNNING
            self._timer = RecurringTimer(self.interval, self.tick)
            self._timer.start()

        log.info(f"Monitoring started: {len(self.feed)} buys in feed, "
                 f"polling every {self.interval}s")
        return {"status": "started", "trackedWallets": sorted(tracked)}

    def tick(self) -> int:
        """Poll every tracked wallet once and merge what's newer than its watermark.

        Returns the number of events merged into the feed.
        """
        with self._lock:
            if self._state is not MonitorState.RUNNING:
                return 0
            generation = self._generation
            wallets = self._wallets

        results = self._poll_all(wallets)

        with self._lock:
            if generation != self._generation or self._state is not MonitorState.RUNNING:
                log.info("Tick superseded by a newer start/stop; discarding results")
                return 0

            fresh: list[TransactionEvent] = []
            for wallet, events in results.items():
                new_events = self.watermarks.filter_new(wallet, events)
                if new_events:
                    self.watermarks.advance(wallet, new_events)
                    fresh.extend(new_events)
            self.feed.merge(fresh)
            self._ticks += 1
            self._last_tick_at = now_utc()

        if fresh:
            log.info(f"Tick #{self._ticks}: {len(fresh)} new buy(s), feed size {len(self.feed)}")
        else:
            log.debug(f"Tick #{self._ticks}: no new buys")
        return len(fresh)

    def stop(self):
        """Cancel the timer. Feed and watermarks stay readable until the next start."""
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            self._state = MonitorState.STOPPED
        log.info("Monitoring stopped")

    def read_feed(self) -> list[TransactionEvent]:
        with self._lock:
            return self.feed.snapshot()

    def status(self) -> dict:
        with self._lock:
            return {
                "state": self._state.value,
                "trackedWallets": sorted(self._wallets),
                "feedSize": len(self.feed),
                "ticks": self._ticks,
                "lastTickAt": self._last_tick_at.isoformat() if self._last_tick_at else None,
            }

    # ─── Internals ───────────────────────────────────────────────────────

    @staticmethod
    def _validate(wallets) -> frozenset[str]:
        if wallets is None or isinstance(wallets, (str, bytes)):
            raise ConfigurationError("wallets must be a collection of addresses")
        try:
            items = list(wallets)
        except TypeError as e:
            raise ConfigurationError("wallets must be a collection of addresses") from e

        cleaned = set()
        for w in items:
            if not isinstance(w, str) or not w.strip():
                raise ConfigurationError(f"invalid wallet address: {w!r}")
            cleaned.add(w.strip())
        if not cleaned:
            raise ConfigurationError("at least one wallet address is required")
        return frozenset(cleaned)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _poll_all(self, wallets) -> dict[str, list[TransactionEvent]]:
        """Poll wallets in parallel. A wallet that blows up contributes nothing."""
        results: dict[str, list[TransactionEvent]] = {}
        if not wallets:
            return results

        with ThreadPoolExecutor(max_workers=max(1, min(self.workers, len(wallets)))) as executor:
            futures = {executor.submit(self.poller.poll, w): w for w in wallets}
            for future in as_completed(futures):
                wallet = futures[future]
                try:
                    results[wallet] = future.result()
                except Exception as e:
                    log.warning(f"Wallet {short_addr(wallet)} poll failed: {e}")
                    results[wallet] = []
        return results
