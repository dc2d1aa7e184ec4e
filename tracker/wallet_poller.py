"""
Per-wallet polling: fetch recent history, keep the buys, newest first.
"""
from api_client import FetchError
from tracker import classifier
from tracker.models import TransactionEvent, TransactionSource
from tracker.token_cache import TokenMetadataCache
from utils import get_logger, short_addr

log = get_logger("wallet_poller")


class WalletPoller:

    def __init__(self, source: TransactionSource, token_cache: TokenMetadataCache):
        self.source = source
        self.token_cache = token_cache

    def poll(self, wallet: str) -> list[TransactionEvent]:
        """Classified buys for `wallet`, sorted by timestamp descending.

        Never raises for source failures: one wallet failing must not
        hold up the rest of the round.
        """
        try:
            txs = self.source.fetch_recent(wallet)
        except FetchError as e:
            log.warning(f"Fetch failed for {short_addr(wallet)}: {e}")
            return []

        events = []
        for tx in txs:
            try:
                event = classifier.classify(tx, wallet, self.token_cache)
            except (AttributeError, TypeError, ValueError) as e:
                sig = getattr(tx, "signature", "?")
                log.warning(f"Skipping malformed tx {short_addr(sig)} for {short_addr(wallet)}: {e}")
                continue
            if event is not None:
                events.append(event)

        events.sort(key=lambda ev: ev.timestamp, reverse=True)
        log.debug(f"{short_addr(wallet)}: {len(events)} buys in {len(txs)} txs")
        return events
