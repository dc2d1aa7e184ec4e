"""
Wallet Buy Monitor - Central Configuration
"""
import os

# ─── Helius API (Solana Enhanced Transactions) ────────────────────────────
# Free tier: ~100k credits/day
# Sign up: https://www.helius.dev/
HELIUS_API_KEY = os.environ.get("HELIUS_API_KEY", "")
HELIUS_API_URL = os.environ.get("HELIUS_API_URL", "https://api.helius.xyz")
HELIUS_RATE_LIMIT = 10  # req/sec on free tier
HELIUS_DELAY = 1.0 / HELIUS_RATE_LIMIT

# ─── Birdeye API (token metadata) ────────────────────────────────────────
BIRDEYE_API_KEY = os.environ.get("BIRDEYE_API_KEY", "")
BIRDEYE_BASE = os.environ.get("BIRDEYE_BASE", "https://public-api.birdeye.so")
BIRDEYE_DELAY = 0.5

REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 3
BACKOFF_BASE = 2  # exponential backoff base
MAX_429_RETRIES = 3

# Per-host rate limits (req/min), shared across all APIClient instances
HOST_RATE_LIMITS = {
    "api.helius.xyz": 600,
    "public-api.birdeye.so": 120,
    "_default": 60,
}

# ─── Chain Constants ─────────────────────────────────────────────────────

# Wrapped SOL mint; the indexer reports native SOL legs under this address
SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000

# ─── Monitoring ──────────────────────────────────────────────────────────

POLL_INTERVAL_SECONDS = int(os.environ.get("POLL_INTERVAL_SECONDS", "60"))
POLL_WORKERS = int(os.environ.get("POLL_WORKERS", "5"))  # parallel wallet fetches per round
FEED_CAPACITY = 100
TOKEN_CACHE_MAX = 10_000  # mints kept in memory before oldest are evicted

# Comma-separated; used by the CLI and the HTTP server when no wallets are given
WATCH_WALLETS = [
    w for w in os.environ.get("WATCH_WALLETS", "").replace(" ", "").split(",") if w
]

DEFAULT_SYMBOL = "Unknown"
DEFAULT_NAME = "Unknown Token"

# ─── HTTP Control Surface ────────────────────────────────────────────────

SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("PORT", "8000"))

# ─── Logging ─────────────────────────────────────────────────────────────

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
