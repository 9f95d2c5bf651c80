# PATH: core/constants.py
"""
Constants for TRACE.

Contains enums, defaults, and configuration constants shared by the
chain client, oracle client and simulation engine.
"""

from enum import Enum
from typing import Final

# =============================================================================
# DEFAULTS
# =============================================================================

# Timing defaults
DEFAULT_TIMEOUT_MS: Final[int] = 5000
DEFAULT_EXPIRATION_SECONDS: Final[int] = 60

# Gas defaults (Aptos-compatible units)
DEFAULT_MAX_GAS_AMOUNT: Final[int] = 200_000
DEFAULT_GAS_UNIT_PRICE: Final[int] = 100
MAX_GAS_AMOUNT_CAP: Final[int] = 2_000_000

# Cache defaults
DEFAULT_SIMULATION_TTL_MS: Final[int] = 5000
DEFAULT_FINGERPRINT_BUCKET_MS: Final[int] = 5000
DEFAULT_LATEST_QUOTE_TTL_MS: Final[int] = 2000
DEFAULT_HISTORICAL_QUOTE_TTL_MS: Final[int] = 300_000

# Oracle staleness bounds
DEFAULT_LATEST_STALENESS_SECONDS: Final[int] = 10
DEFAULT_HISTORICAL_STALENESS_SECONDS: Final[int] = 60

# Valuation
DEFAULT_REFERENCE_CURRENCY: Final[str] = "USD"

# Endpoints
DEFAULT_HERMES_URL: Final[str] = "https://hermes.pyth.network"
DEFAULT_NETWORK: Final[str] = "movement-mainnet"

# Content type for BCS-encoded signed transactions
SIGNED_TRANSACTION_CONTENT_TYPE: Final[str] = "application/x.aptos.signed_transaction+bcs"

# Node error codes that mean "nothing stored here" rather than a failure
NOT_FOUND_ERROR_CODES: Final[frozenset[str]] = frozenset([
    "account_not_found",
    "resource_not_found",
])

# Resource structs that hold a fungible balance: struct tag -> balance field path
BALANCE_FIELDS: Final[dict[str, str]] = {
    "0x1::coin::CoinStore": "coin.value",
    "0x1::fungible_asset::FungibleStore": "balance",
}

# Where to find the asset key for a balance struct.
# "type_arg" means the first generic type argument of the struct tag,
# anything else is a dotted path into the resource value.
BALANCE_ASSET_SOURCES: Final[dict[str, str]] = {
    "0x1::coin::CoinStore": "type_arg",
    "0x1::fungible_asset::FungibleStore": "metadata.inner",
}


# =============================================================================
# ENUMS
# =============================================================================

class OperationKind(str, Enum):
    """Write-set operation kind."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class DiffKind(str, Enum):
    """Classification of an effect diff entry."""
    BALANCE_CHANGE = "balance-change"
    STATE_CHANGE = "state-change"
    CREATION = "creation"
    DELETION = "deletion"


class SimulationStatus(str, Enum):
    """Outcome of a simulation that the node executed."""
    SUCCESS = "success"
    FAILED = "failed"


class AnnotationStatus(str, Enum):
    """Valuation annotation status."""
    PRICED = "priced"
    NO_QUOTE = "no-quote"
    UNKNOWN_ASSET = "unknown-asset"


class CacheState(str, Enum):
    """Cache entry lifecycle state."""
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class FlowDirection(str, Enum):
    """Direction of an asset flow relative to the account."""
    IN = "in"
    OUT = "out"


class ErrorCode(str, Enum):
    """
    Error codes carried by TraceError subclasses.

    Grouped by failure domain so callers can branch on the prefix.
    """
    # Upstream transport
    INFRA_TIMEOUT = "INFRA_TIMEOUT"
    INFRA_TRANSPORT = "INFRA_TRANSPORT"
    INFRA_HTTP_ERROR = "INFRA_HTTP_ERROR"
    INFRA_BAD_RESPONSE = "INFRA_BAD_RESPONSE"

    # Node executed and rejected
    NODE_REJECTED = "NODE_REJECTED"

    # Oracle
    QUOTE_UNAVAILABLE = "QUOTE_UNAVAILABLE"
    QUOTE_STALE = "QUOTE_STALE"
    ASSET_UNKNOWN = "ASSET_UNKNOWN"

    # Caller bugs
    INTENT_MALFORMED = "INTENT_MALFORMED"

    UNKNOWN = "UNKNOWN"
