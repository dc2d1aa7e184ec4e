"""
Wallet Buy Monitor - API Clients with Rate Limiting

Per-host throttle shared across instances, urllib3 retries on 5xx,
exponential backoff with jitter on 429.
"""
import random
import threading
import time
import urllib.parse
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

import config
from tracker.models import RawTransaction, TokenMetadata
from utils import get_logger, safe_int, short_addr

log = get_logger("api_client")


class FetchError(Exception):
    """Transport failure or non-success status from an external source."""

    def __init__(self, source: str, message: str, status: int | None = None):
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.status = status


class APIClient:
    """Base API client with rate limiting and retry logic.

    Per-host rate limiting via class-level registry. All APIClient instances
    sharing the same host share ONE throttle state.
    """

    # host -> {"lock", "last_request", "delay", "base_delay", "consecutive_429s"}
    _host_registry = {}
    _registry_lock = threading.Lock()

    @classmethod
    def _get_host_throttle(cls, host: str) -> dict:
        """Get or create the shared throttle state for a host."""
        with cls._registry_lock:
            if host not in cls._host_registry:
                rate = config.HOST_RATE_LIMITS.get(host, config.HOST_RATE_LIMITS["_default"])
                base_delay = 60.0 / rate
                cls._host_registry[host] = {
                    "lock": threading.Lock(),
                    "last_request": 0.0,
                    "delay": base_delay,
                    "base_delay": base_delay,
                    "consecutive_429s": 0,
                }
            return cls._host_registry[host]

    def __init__(self, base_url: str, delay: float, name: str = "api",
                 session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.name = name
        self._request_count = 0

        self._host = urllib.parse.urlparse(self.base_url).hostname or "unknown"
        throttle = self._get_host_throttle(self._host)
        # If caller-provided delay is more conservative than config, respect it
        if delay > throttle["base_delay"]:
            with throttle["lock"]:
                throttle["delay"] = delay
                throttle["base_delay"] = delay

        self.session = session or self._build_session()

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        # 429s are handled here with smarter backoff, not by urllib3
        retry = Retry(
            total=config.MAX_RETRIES,
            backoff_factor=config.BACKOFF_BASE,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers.update({
            "Accept": "application/json",
            "User-Agent": "WalletBuyMonitor/1.0",
        })
        return session

    def _rate_limit(self):
        throttle = self._host_registry[self._host]
        with throttle["lock"]:
            elapsed = time.time() - throttle["last_request"]
            if elapsed < throttle["delay"]:
                time.sleep(throttle["delay"] - elapsed)
            throttle["last_request"] = time.time()

    def _backoff_429(self, attempt: int):
        """Exponential backoff with jitter for 429 rate limit errors."""
        throttle = self._host_registry[self._host]
        base_wait = throttle["delay"] * (2 ** attempt)
        jitter = random.uniform(0, base_wait * 0.3)
        wait = min(base_wait + jitter, 60)
        log.warning(f"[{self.name}] 429 rate limited (attempt {attempt+1}), "
                    f"backing off {wait:.1f}s...")
        time.sleep(wait)
        # Repeated 429s slow down ALL clients for this host
        with throttle["lock"]:
            throttle["consecutive_429s"] += 1
            if throttle["consecutive_429s"] >= 3:
                throttle["delay"] = min(throttle["delay"] * 1.5, throttle["base_delay"] * 4)
                log.warning(f"[{self.name}] Adaptive: {self._host} delay increased to {throttle['delay']:.1f}s")

    def _reset_backoff(self):
        throttle = self._host_registry[self._host]
        with throttle["lock"]:
            if throttle["consecutive_429s"] > 0:
                throttle["consecutive_429s"] = 0
                throttle["delay"] = throttle["base_delay"]

    def get(self, endpoint: str, params: dict = None, headers: dict = None) -> dict | list:
        """GET and decode JSON. Raises FetchError on any failure."""
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        for attempt in range(config.MAX_429_RETRIES + 1):
            self._rate_limit()
            self._request_count += 1
            try:
                resp = self.session.get(url, params=params, headers=headers,
                                        timeout=config.REQUEST_TIMEOUT)
            except requests.exceptions.RequestException as e:
                # Exception text embeds the full URL, api-key query included
                log.debug(f"[{self.name}] {e.__class__.__name__} on {endpoint}")
                raise FetchError(self.name, f"request failed: {e.__class__.__name__} on {endpoint}") from e

            if resp.status_code == 429:
                if attempt < config.MAX_429_RETRIES:
                    self._backoff_429(attempt)
                    continue
                raise FetchError(self.name, f"429 after {config.MAX_429_RETRIES} retries", status=429)
            if not resp.ok:
                raise FetchError(self.name, f"HTTP {resp.status_code}", status=resp.status_code)

            try:
                data = resp.json()
            except ValueError as e:
                raise FetchError(self.name, "invalid JSON body", status=resp.status_code) from e
            self._reset_backoff()
            return data

        raise FetchError(self.name, "retries exhausted")

    @property
    def request_count(self):
        return self._request_count


class HeliusClient(APIClient):
    """Helius enhanced transactions API. Source of raw wallet history."""

    def __init__(self, api_key: str = None, session: requests.Session | None = None):
        super().__init__(f"{config.HELIUS_API_URL}/v0", config.HELIUS_DELAY, "helius", session)
        self.api_key = config.HELIUS_API_KEY if api_key is None else api_key
        if not self.api_key:
            log.warning("HELIUS_API_KEY not set. Wallet polling will return no transactions.")

    def fetch_recent(self, wallet: str) -> list[RawTransaction]:
        """Most recent page of parsed transactions for a wallet (source default page size)."""
        if not self.api_key:
            raise FetchError(self.name, "HELIUS_API_KEY not configured")
        data = self.get(f"/addresses/{wallet}/transactions", params={"api-key": self.api_key})
        if not isinstance(data, list):
            raise FetchError(self.name, f"unexpected payload for {short_addr(wallet)}")
        return [RawTransaction.from_helius(tx) for tx in data if isinstance(tx, dict)]


class BirdeyeClient(APIClient):
    """Birdeye public API. Source of token symbol/name/decimals."""

    def __init__(self, api_key: str = None, session: requests.Session | None = None):
        super().__init__(config.BIRDEYE_BASE, config.BIRDEYE_DELAY, "birdeye", session)
        self.api_key = config.BIRDEYE_API_KEY if api_key is None else api_key
        if not self.api_key:
            log.warning("BIRDEYE_API_KEY not set. Tokens will show as Unknown.")

    def fetch(self, token_address: str) -> TokenMetadata | None:
        data = self.get(f"/public/token/{token_address}", headers={"x-api-key": self.api_key})
        if not isinstance(data, dict) or not data.get("success"):
            return None
        info = data.get("data") or {}
        if not info:
            return None
        decimals = info.get("decimals")
        return TokenMetadata(
            symbol=info.get("symbol") or config.DEFAULT_SYMBOL,
            name=info.get("name") or config.DEFAULT_NAME,
            decimals=safe_int(decimals) if decimals is not None else None,
        )
