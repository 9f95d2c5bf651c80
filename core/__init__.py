"""
core - Core utilities and models for Trace.

This package contains:
- models.py: Data models (intent, envelope, diff, annotations, report)
- constants.py: Enums and defaults
- exceptions.py: Typed exceptions with error codes
- validators.py: Address, type tag and intent validation
- math.py: Integer and Decimal helpers (no float)
- format_money.py: Display formatting for amounts
- time.py: Clocks, freshness and time buckets
- logging.py: Structured JSON logging
"""

from core.constants import (
    AnnotationStatus,
    CacheState,
    DiffKind,
    ErrorCode,
    FlowDirection,
    OperationKind,
    SimulationStatus,
)
from core.exceptions import (
    MalformedIntent,
    QuoteUnavailable,
    SimulationRejected,
    TraceError,
    UpstreamUnavailable,
)
from core.logging import get_logger, setup_logging
from core.models import (
    EffectDiff,
    EffectDiffEntry,
    MoveArgument,
    PriceQuote,
    SimulationOptions,
    SimulationReport,
    TransactionIntent,
    ValuationAnnotation,
)

__all__ = [
    # Constants
    "AnnotationStatus",
    "CacheState",
    "DiffKind",
    "ErrorCode",
    "FlowDirection",
    "OperationKind",
    "SimulationStatus",
    # Exceptions
    "MalformedIntent",
    "QuoteUnavailable",
    "SimulationRejected",
    "TraceError",
    "UpstreamUnavailable",
    # Models
    "EffectDiff",
    "EffectDiffEntry",
    "MoveArgument",
    "PriceQuote",
    "SimulationOptions",
    "SimulationReport",
    "TransactionIntent",
    "ValuationAnnotation",
    # Logging
    "get_logger",
    "setup_logging",
]
