"""Tests for MonitorScheduler.

Covers the start/tick/stop state machine, watermark monotonicity, feed
bounds, per-wallet failure isolation, and discarding of superseded rounds.
"""

import threading
import time

import pytest

from factories import GatedTransactionSource, buy_tx
from tracker.feed_store import FeedStore, WatermarkTracker
from tracker.scheduler import ConfigurationError, MonitorScheduler, MonitorState, RecurringTimer
from tracker.wallet_poller import WalletPoller

W = "WalletW"
A = "WalletA"
B = "WalletB"


def timestamps(events):
    return [ev.timestamp for ev in events]


class TestStart:

    def test_initial_snapshot(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, 100), buy_tx(W, 200)])

        result = scheduler.start([W])

        assert result == {"status": "started", "trackedWallets": [W]}
        assert scheduler.state is MonitorState.RUNNING
        assert scheduler.watermark(W) == 200
        assert timestamps(scheduler.read_feed()) == [200, 100]

    def test_wallet_without_buys_gets_zero_watermark(self, scheduler, tx_source):
        tx_source.set(A, [buy_tx(A, 100)])
        scheduler.start([A, B])
        assert scheduler.watermark(B) == 0
        assert scheduler.watermarks.snapshot() == {A: 100, B: 0}

    def test_initial_round_truncated_to_capacity(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, ts) for ts in range(1, 102)])

        scheduler.start([W])

        feed = scheduler.read_feed()
        assert len(feed) == 100
        assert feed[0].timestamp == 101
        assert feed[-1].timestamp == 2

    def test_addresses_are_deduplicated_and_stripped(self, scheduler):
        result = scheduler.start([" WalletA ", "WalletA", "WalletB"])
        assert result["trackedWallets"] == ["WalletA", "WalletB"]

    @pytest.mark.parametrize("wallets", [[], None, "WalletA", ["WalletA", ""], ["WalletA", 42]])
    def test_malformed_wallet_set_rejected(self, scheduler, wallets):
        with pytest.raises(ConfigurationError):
            scheduler.start(wallets)
        assert scheduler.state is MonitorState.STOPPED
        assert scheduler._timer is None

    def test_restart_replaces_everything(self, scheduler, tx_source):
        tx_source.set(A, [buy_tx(A, 100)])
        tx_source.set(B, [buy_tx(B, 50)])
        scheduler.start([A])

        scheduler.start([B])

        assert scheduler.tracked_wallets == frozenset({B})
        assert [ev.wallet for ev in scheduler.read_feed()] == [B]
        assert scheduler.watermark(A) == 0

        tx_source.calls.clear()
        scheduler.tick()
        assert tx_source.calls == [B]

    def test_restart_cancels_previous_timer(self, scheduler):
        scheduler.start([A])
        old_timer = scheduler._timer
        scheduler.start([B])
        assert old_timer.cancelled
        assert not scheduler._timer.cancelled

    def test_injected_empty_stores_are_kept(self, poller, tx_source):
        feed = FeedStore(capacity=5)
        watermarks = WatermarkTracker()
        sched = MonitorScheduler(poller, feed=feed, watermarks=watermarks, interval=3600)
        assert sched.feed is feed
        assert sched.watermarks is watermarks

        tx_source.set(W, [buy_tx(W, ts) for ts in range(1, 11)])
        try:
            sched.start([W])
        finally:
            sched.stop()

        assert timestamps(sched.read_feed()) == [10, 9, 8, 7, 6]
        assert watermarks.get(W) == 10


class TestTick:

    def test_only_events_past_watermark_merged(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, 100), buy_tx(W, 200)])
        scheduler.start([W])

        tx_source.set(W, [buy_tx(W, 50), buy_tx(W, 150), buy_tx(W, 250)])
        merged = scheduler.tick()

        assert merged == 1
        assert timestamps(scheduler.read_feed()) == [250, 200, 100]
        assert scheduler.watermark(W) == 250

    def test_watermark_never_decreases(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, 500)])
        scheduler.start([W])
        history = [scheduler.watermark(W)]

        for batch in ([400], [500, 600], [], [10]):
            tx_source.set(W, [buy_tx(W, ts) for ts in batch])
            before = scheduler.watermark(W)
            feed_before = {ev.signature for ev in scheduler.read_feed()}
            scheduler.tick()
            added = [ev for ev in scheduler.read_feed() if ev.signature not in feed_before]
            assert all(ev.timestamp > before for ev in added)
            history.append(scheduler.watermark(W))

        assert history == sorted(history)
        assert history[-1] == 600

    def test_same_transactions_not_merged_twice(self, scheduler, tx_source):
        txs = [buy_tx(W, 100), buy_tx(W, 200)]
        tx_source.set(W, txs)
        scheduler.start([W])

        assert scheduler.tick() == 0
        assert scheduler.tick() == 0
        assert len(scheduler.read_feed()) == 2

    def test_one_wallet_failing_does_not_block_others(self, scheduler, tx_source):
        tx_source.set(A, [buy_tx(A, 100)])
        tx_source.set(B, [buy_tx(B, 100)])
        scheduler.start([A, B])

        tx_source.fail(A)
        tx_source.set(B, [buy_tx(B, 100), buy_tx(B, 300)])
        scheduler.tick()

        feed = scheduler.read_feed()
        assert (feed[0].wallet, feed[0].timestamp) == (B, 300)
        assert scheduler.watermark(A) == 100
        assert scheduler.watermark(B) == 300
        assert scheduler.state is MonitorState.RUNNING

    def test_poller_crash_isolated(self, tx_source, token_cache):
        class ExplodingPoller(WalletPoller):
            def poll(self, wallet):
                if wallet == A:
                    raise RuntimeError("boom")
                return super().poll(wallet)

        sched = MonitorScheduler(ExplodingPoller(tx_source, token_cache), interval=3600)
        tx_source.set(B, [buy_tx(B, 10)])
        try:
            sched.start([A, B])
            assert timestamps(sched.read_feed()) == [10]
        finally:
            sched.stop()

    def test_feed_stays_bounded_across_ticks(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, ts) for ts in range(1, 81)])
        scheduler.start([W])
        tx_source.set(W, [buy_tx(W, ts) for ts in range(81, 161)])
        scheduler.tick()

        feed = scheduler.read_feed()
        assert len(feed) == 100
        assert timestamps(feed) == sorted(timestamps(feed), reverse=True)
        assert feed[-1].timestamp == 61

    def test_tick_is_noop_unless_running(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, 100)])
        assert scheduler.tick() == 0
        assert tx_source.calls == []


class TestStop:

    def test_stop_keeps_feed_and_cancels_timer(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, 100)])
        scheduler.start([W])
        timer = scheduler._timer

        scheduler.stop()

        assert scheduler.state is MonitorState.STOPPED
        assert timer.cancelled
        assert timestamps(scheduler.read_feed()) == [100]
        assert scheduler.watermark(W) == 100

    def test_no_merges_after_stop(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, 100)])
        scheduler.start([W])
        scheduler.stop()

        tx_source.set(W, [buy_tx(W, 200)])
        assert scheduler.tick() == 0
        assert timestamps(scheduler.read_feed()) == [100]

    def test_status(self, scheduler, tx_source):
        tx_source.set(W, [buy_tx(W, 100)])
        scheduler.start([W])
        scheduler.tick()

        status = scheduler.status()
        assert status["state"] == "running"
        assert status["trackedWallets"] == [W]
        assert status["feedSize"] == 1
        assert status["ticks"] == 1
        assert status["lastTickAt"] is not None


class TestReaders:

    @pytest.mark.parametrize("read", [
        lambda sched: sched.read_feed(),
        lambda sched: sched.watermark(W),
    ])
    def test_reads_wait_for_commit_in_progress(self, scheduler, tx_source, read):
        tx_source.set(W, [buy_tx(W, 100)])
        scheduler.start([W])

        holding = threading.Event()
        release = threading.Event()

        def committer():
            with scheduler._lock:
                holding.set()
                release.wait(timeout=5)

        done = threading.Event()
        results = []

        def reader():
            results.append(read(scheduler))
            done.set()

        c = threading.Thread(target=committer)
        c.start()
        assert holding.wait(timeout=2)
        r = threading.Thread(target=reader)
        r.start()

        assert not done.wait(timeout=0.2)
        release.set()
        assert done.wait(timeout=2)
        c.join(timeout=2)
        r.join(timeout=2)
        assert len(results) == 1

    def test_feed_and_watermark_agree_after_restart(self, scheduler, tx_source):
        tx_source.set(A, [buy_tx(A, 100)])
        tx_source.set(B, [buy_tx(B, 300)])
        scheduler.start([A])
        scheduler.start([B])

        feed = scheduler.read_feed()
        assert [ev.wallet for ev in feed] == [B]
        assert scheduler.watermark(B) == max(ev.timestamp for ev in feed)
        assert scheduler.watermark(A) == 0


class TestSupersededRounds:

    def test_restart_during_initial_poll_discards_old_results(self, token_cache):
        source = GatedTransactionSource()
        source.gated.add(A)
        source.set(A, [buy_tx(A, 999)])
        source.set(B, [buy_tx(B, 100)])
        sched = MonitorScheduler(WalletPoller(source, token_cache), interval=3600)
        outcome = {}

        slow = threading.Thread(target=lambda: outcome.update(sched.start([A])))
        slow.start()
        try:
            assert source.entered.wait(timeout=5)
            sched.start([B])
        finally:
            source.release()
            slow.join(timeout=5)

        try:
            assert outcome["status"] == "superseded"
            assert [ev.wallet for ev in sched.read_feed()] == [B]
            assert sched.tracked_wallets == frozenset({B})
            assert sched.state is MonitorState.RUNNING
            assert sched.watermark(A) == 0
        finally:
            sched.stop()

    def test_stop_during_tick_discards_results(self, token_cache):
        source = GatedTransactionSource()
        source.set(W, [buy_tx(W, 100)])
        sched = MonitorScheduler(WalletPoller(source, token_cache), interval=3600)
        sched.start([W])

        source.gated.add(W)
        source.set(W, [buy_tx(W, 200)])
        merged = {}
        ticking = threading.Thread(target=lambda: merged.update(n=sched.tick()))
        ticking.start()
        try:
            assert source.entered.wait(timeout=5)
            sched.stop()
        finally:
            source.release()
            ticking.join(timeout=5)

        assert merged["n"] == 0
        assert timestamps(sched.read_feed()) == [100]
        assert sched.watermark(W) == 100


class TestRecurringTimer:

    def test_fires_until_cancelled(self):
        fired = threading.Event()
        count = []

        def callback():
            count.append(1)
            if len(count) >= 2:
                fired.set()

        timer = RecurringTimer(0.01, callback)
        timer.start()
        try:
            assert fired.wait(timeout=5)
        finally:
            timer.cancel()
        assert timer.cancelled

    def test_callback_errors_do_not_kill_timer(self):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) >= 3:
                fired.set()
            raise RuntimeError("tick failed")

        timer = RecurringTimer(0.01, callback)
        timer.start()
        try:
            assert fired.wait(timeout=5)
        finally:
            timer.cancel()

    def test_scheduler_timer_drives_ticks(self, poller, tx_source):
        sched = MonitorScheduler(poller, interval=0.02)
        tx_source.set(W, [buy_tx(W, 100)])
        try:
            sched.start([W])
            tx_source.set(W, [buy_tx(W, 100), buy_tx(W, 200)])

            deadline = time.time() + 5
            while time.time() < deadline and sched.watermark(W) < 200:
                time.sleep(0.01)

            assert timestamps(sched.read_feed()) == [200, 100]
        finally:
            sched.stop()
