"""
Wallet Buy Monitor - Shared Utilities
"""
import json
import logging
import os
from datetime import datetime, timezone

import config


def setup_logging(level=None):
    """Configure logging for the monitor."""
    if level is None:
        level = getattr(logging, config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def load_json(filepath: str) -> dict | list:
    """Load JSON from file, return empty dict if not found."""
    if not os.path.exists(filepath):
        return {}
    with open(filepath, "r") as f:
        return json.load(f)


def save_json(filepath: str, data: dict | list):
    """Save data to JSON file, creating directories if needed."""
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(filepath, "w") as f:
        json.dump(data, f, indent=2, default=str)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def iso_from_epoch(ts: int) -> str:
    """Epoch seconds -> '2024-01-01T00:00:00.000Z'."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def short_addr(address: str) -> str:
    return f"{address[:10]}..." if len(address) > 10 else address


def safe_float(value, default=0.0) -> float:
    """Safely convert to float."""
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def safe_int(value, default=0) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default
