#!/usr/bin/env python3
"""
Wallet Buy Monitor - polls tracked Solana wallets and keeps a feed of their
latest token buys (SOL spent, token received).

Setup:
  export HELIUS_API_KEY="..."      # transaction history
  export BIRDEYE_API_KEY="..."     # token symbol/name (optional)

Usage:
  python3 monitor.py --wallet <addr> --once             # single snapshot, print feed
  python3 monitor.py --wallet <a> --wallet <b>          # daemon, poll every 60s
  python3 monitor.py --wallets-file wallets.json --interval 30
  python3 monitor.py --serve                            # HTTP API on $PORT
"""
import argparse
import logging
import os
import signal
import sys
import threading

from dotenv import load_dotenv

# Load .env from project root before config reads the environment
load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))

import config
from api_client import BirdeyeClient, HeliusClient
from tracker.scheduler import ConfigurationError, MonitorScheduler
from tracker.token_cache import TokenMetadataCache
from tracker.wallet_poller import WalletPoller
from utils import get_logger, load_json, save_json, setup_logging, short_addr

log = get_logger("monitor")


def build_scheduler(interval: float = config.POLL_INTERVAL_SECONDS) -> MonitorScheduler:
    """Wire the Helius/Birdeye clients into a ready-to-start scheduler."""
    token_cache = TokenMetadataCache(BirdeyeClient())
    poller = WalletPoller(HeliusClient(), token_cache)
    return MonitorScheduler(poller, interval=interval)


def load_wallets(args) -> list[str]:
    wallets = list(args.wallet or [])
    if args.wallets_file:
        if not os.path.exists(args.wallets_file):
            raise ConfigurationError(f"{args.wallets_file} not found")
        try:
            data = load_json(args.wallets_file)
        except ValueError as e:
            raise ConfigurationError(f"{args.wallets_file} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise ConfigurationError(f"{args.wallets_file} must contain a JSON list of addresses")
        wallets.extend(data)
    return wallets or list(config.WATCH_WALLETS)


def positive_int(value: str) -> int:
    """argparse type: whole seconds, at least 1."""
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def print_feed(events):
    if not events:
        print("No buys found.")
        return
    print(f"\n{len(events)} buy(s), newest first:")
    print("-" * 80)
    for ev in events:
        print(f"  {ev.time}  {short_addr(ev.wallet):14s} "
              f"{ev.sol_spent:>10.4f} SOL -> {ev.token_amount:,.2f} {ev.token_symbol} "
              f"({ev.token_name})")


def run_daemon(scheduler: MonitorScheduler, wallets: list[str]):
    """Start monitoring and block until SIGINT/SIGTERM."""
    stopped = threading.Event()

    def _shutdown(sig, frame):
        log.info("Shutdown signal received. Stopping monitor...")
        stopped.set()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    result = scheduler.start(wallets)
    log.info(f"Tracking {len(result['trackedWallets'])} wallet(s), "
             f"interval {scheduler.interval}s")
    print_feed(scheduler.read_feed())

    last_size = None
    while not stopped.wait(timeout=scheduler.interval):
        status = scheduler.status()
        if status["feedSize"] != last_size:
            log.info(f"Feed size: {status['feedSize']} (ticks: {status['ticks']})")
            last_size = status["feedSize"]

    scheduler.stop()
    log.info("Wallet monitor stopped")


def serve():
    import uvicorn
    from server import app
    uvicorn.run(app, host=config.SERVER_HOST, port=config.SERVER_PORT)


# ─── CLI ─────────────────────────────────────────────────────────────────

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Wallet Buy Monitor - track token buys of Solana wallets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--wallet", action="append", help="Wallet address to track (repeatable)")
    parser.add_argument("--wallets-file", type=str, help="JSON file with a list of wallet addresses")
    parser.add_argument("--once", action="store_true", help="Take one snapshot, print it and exit")
    parser.add_argument("--output", type=str, help="With --once: save the feed as JSON here")
    parser.add_argument("--interval", type=positive_int, default=config.POLL_INTERVAL_SECONDS,
                        help=f"Seconds between polls (default: {config.POLL_INTERVAL_SECONDS})")
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API instead of the daemon")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else None)

    if args.serve:
        serve()
        return 0

    try:
        wallets = load_wallets(args)
        scheduler = build_scheduler(interval=args.interval)
        if args.once:
            scheduler.start(wallets)
            scheduler.stop()
            events = scheduler.read_feed()
            print_feed(events)
            if args.output:
                save_json(args.output, [ev.to_dict() for ev in events])
                print(f"\nFeed saved to: {args.output}")
            return 0
        run_daemon(scheduler, wallets)
    except ConfigurationError as e:
        log.error(f"Invalid wallet list: {e}")
        print("Give at least one address with --wallet, --wallets-file or WATCH_WALLETS.")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
