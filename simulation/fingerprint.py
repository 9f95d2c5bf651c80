"""
simulation/fingerprint.py - Deterministic cache keys for simulations.

FINGERPRINT CONTRACT:
  sha256 over canonical JSON (sorted keys, no whitespace) of:
    network, sender, function, type_arguments, arguments,
    max_gas_amount, gas_unit_price, ledger_bucket

  ledger_bucket = floor(now_ms / bucket_ms)

  The bucket is time-windowed so the key can be computed before any
  network call. Intents that differ only in caller identity share a key.
"""

import hashlib
import json
from typing import Optional

from core.constants import DEFAULT_FINGERPRINT_BUCKET_MS
from core.models import TransactionIntent
from core.time import now_ms, time_bucket
from core.validators import normalize_address


def fingerprint_payload(intent: TransactionIntent, network: str, bucket: int) -> dict:
    """The exact structure that gets hashed."""
    return {
        "network": network,
        "sender": normalize_address(intent.sender),
        "function": intent.function,
        "type_arguments": list(intent.type_arguments),
        "arguments": [[a.type_tag, a.value] for a in intent.arguments],
        "max_gas_amount": intent.max_gas_amount,
        "gas_unit_price": intent.gas_unit_price,
        "ledger_bucket": bucket,
    }


def compute_fingerprint(
    intent: TransactionIntent,
    network: str = "",
    bucket_ms: int = DEFAULT_FINGERPRINT_BUCKET_MS,
    timestamp_ms: Optional[int] = None,
) -> str:
    """
    Compute the simulation fingerprint.

    Args:
        intent: Validated intent
        network: Network name or node URL, keeps caches of different chains apart
        bucket_ms: Width of the ledger time bucket
        timestamp_ms: Wall clock override (defaults to now)

    Returns:
        64-char hex digest
    """
    ts = now_ms() if timestamp_ms is None else timestamp_ms
    payload = fingerprint_payload(intent, network, time_bucket(ts, bucket_ms))
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
