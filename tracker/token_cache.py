"""
Token metadata cache.

Process-lifetime memo of mint -> TokenMetadata. Failed lookups are cached
as NOT_FOUND so a bad mint costs one external call, not one per poll.
"""
import threading
from collections import OrderedDict

import config
from api_client import FetchError
from tracker.models import TokenMetadata, TokenMetadataSource
from utils import get_logger, short_addr

log = get_logger("token_cache")

NOT_FOUND = object()


class TokenMetadataCache:

    def __init__(self, source: TokenMetadataSource, max_entries: int = config.TOKEN_CACHE_MAX):
        self.source = source
        self.max_entries = max_entries
        self._entries: OrderedDict = OrderedDict()
        self._lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0}

    def lookup(self, token_address: str) -> TokenMetadata | None:
        if not token_address or token_address == config.SOL_MINT:
            return None

        with self._lock:
            if token_address in self._entries:
                self.stats["hits"] += 1
                cached = self._entries[token_address]
                log.debug(f"Cache hit for {short_addr(token_address)}")
                return None if cached is NOT_FOUND else cached
            self.stats["misses"] += 1

        # Fetch outside the lock; concurrent misses may both fetch, last write wins
        try:
            result = self.source.fetch(token_address)
        except FetchError as e:
            log.warning(f"Token metadata failed for {short_addr(token_address)}: {e}")
            result = None

        with self._lock:
            self._entries[token_address] = NOT_FOUND if result is None else result
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return result

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, token_address: str) -> bool:
        with self._lock:
            return token_address in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
