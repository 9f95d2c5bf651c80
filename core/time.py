# PATH: core/time.py
"""
Time utilities for TRACE.

The fullnode reports ledger time in microseconds, Hermes in seconds and the
cache works in milliseconds. Conversions live here.
"""

import time
from typing import Optional


def now_seconds() -> int:
    """Get current Unix timestamp in whole seconds."""
    return int(time.time())


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def monotonic_ms() -> int:
    """Monotonic clock in milliseconds, for expiry and latency."""
    return int(time.monotonic() * 1000)


def usecs_to_seconds(usecs: int) -> int:
    """Convert a ledger timestamp (microseconds) to whole seconds."""
    return usecs // 1_000_000


def is_fresh(
    timestamp: float,
    max_age_seconds: float,
    current_time: Optional[float] = None,
) -> bool:
    """
    Check if a timestamp is fresh (within max_age).

    Args:
        timestamp: Unix timestamp to check
        max_age_seconds: Maximum allowed age
        current_time: Current time (defaults to now)

    Returns:
        True if timestamp is fresh
    """
    current = time.time() if current_time is None else current_time
    age = current - timestamp
    return age <= max_age_seconds


def time_bucket(timestamp_ms: int, bucket_ms: int) -> int:
    """Index of the fixed window containing timestamp_ms."""
    if bucket_ms <= 0:
        raise ValueError(f"bucket_ms must be positive, got {bucket_ms}")
    return timestamp_ms // bucket_ms
