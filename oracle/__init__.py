"""oracle - Asset registry and Pyth Hermes price client."""

from oracle.pyth import PythOracleClient, parse_price_update
from oracle.registry import AssetRegistry, normalize_feed_id

__all__ = [
    "AssetRegistry",
    "PythOracleClient",
    "normalize_feed_id",
    "parse_price_update",
]
