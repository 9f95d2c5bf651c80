"""chains - Fullnode REST client and transaction envelope rendering."""

from chains.aptos import AptosClient, NodeStats, parse_simulation_response
from chains.envelope import build_envelope, render_simulation_body

__all__ = [
    "AptosClient",
    "NodeStats",
    "build_envelope",
    "parse_simulation_response",
    "render_simulation_body",
]
