"""
simulation - Simulation pipeline.

- cache.py: Single-flight request cache with TTL
- fingerprint.py: Content hash of an intent
- diff.py: Write-set -> structured effect diff
- events.py: Asset flows from emitted events
- valuation.py: Oracle prices on balance changes
- orchestrator.py: End-to-end simulate / simulate-and-submit
"""

from simulation.cache import RequestCache
from simulation.fingerprint import compute_fingerprint
from simulation.diff import DEFAULT_BALANCE_RULES, BalanceRule, diff_write_set
from simulation.events import extract_asset_flows
from simulation.valuation import ValuationEnricher
from simulation.orchestrator import SimulationOrchestrator, Signer

__all__ = [
    "BalanceRule",
    "DEFAULT_BALANCE_RULES",
    "RequestCache",
    "Signer",
    "SimulationOrchestrator",
    "ValuationEnricher",
    "compute_fingerprint",
    "diff_write_set",
    "extract_asset_flows",
]
