"""
config/settings.py - Engine settings.

trace.yaml defaults with environment overrides (a .env file is honored):

  TRACE_NETWORK        network preset from networks.yaml
  TRACE_NODE_URL       fullnode /v1 URL (wins over the preset)
  TRACE_NODE_API_KEY   bearer token for the fullnode
  TRACE_HERMES_URL     Pyth Hermes base URL
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from config import get_network_config, load_assets, load_trace_defaults
from core.constants import (
    DEFAULT_EXPIRATION_SECONDS,
    DEFAULT_FINGERPRINT_BUCKET_MS,
    DEFAULT_GAS_UNIT_PRICE,
    DEFAULT_HERMES_URL,
    DEFAULT_HISTORICAL_QUOTE_TTL_MS,
    DEFAULT_HISTORICAL_STALENESS_SECONDS,
    DEFAULT_LATEST_QUOTE_TTL_MS,
    DEFAULT_LATEST_STALENESS_SECONDS,
    DEFAULT_MAX_GAS_AMOUNT,
    DEFAULT_NETWORK,
    DEFAULT_REFERENCE_CURRENCY,
    DEFAULT_SIMULATION_TTL_MS,
    DEFAULT_TIMEOUT_MS,
)
from core.validators import struct_base
from oracle.registry import AssetRegistry
from simulation.diff import DEFAULT_BALANCE_RULES, BalanceRule


@dataclass
class TraceSettings:
    """Resolved engine settings."""

    network: str = DEFAULT_NETWORK
    node_url: str = ""
    node_api_key: Optional[str] = None
    chain_id: Optional[int] = None

    timeout_ms: int = DEFAULT_TIMEOUT_MS

    # Simulation
    cache_ttl_ms: int = DEFAULT_SIMULATION_TTL_MS
    fingerprint_bucket_ms: int = DEFAULT_FINGERPRINT_BUCKET_MS
    expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS
    max_gas_amount: int = DEFAULT_MAX_GAS_AMOUNT
    gas_unit_price: int = DEFAULT_GAS_UNIT_PRICE

    # Oracle
    hermes_url: str = DEFAULT_HERMES_URL
    latest_ttl_ms: int = DEFAULT_LATEST_QUOTE_TTL_MS
    historical_ttl_ms: int = DEFAULT_HISTORICAL_QUOTE_TTL_MS
    latest_staleness_seconds: int = DEFAULT_LATEST_STALENESS_SECONDS
    historical_staleness_seconds: int = DEFAULT_HISTORICAL_STALENESS_SECONDS

    reference_currency: str = DEFAULT_REFERENCE_CURRENCY

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


def load_settings(
    network: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    defaults: Optional[Dict[str, Any]] = None,
) -> TraceSettings:
    """
    Resolve settings: explicit network > environment > trace.yaml.

    Args:
        network: Preset name; overrides TRACE_NETWORK
        env: Environment mapping (default: os.environ after load_dotenv)
        defaults: Parsed trace.yaml (default: config/trace.yaml)

    Raises:
        KeyError: unknown network preset and no TRACE_NODE_URL to fall back on
    """
    if env is None:
        load_dotenv()
        env = os.environ
    data = load_trace_defaults() if defaults is None else defaults

    node = data.get("node") or {}
    sim = data.get("simulation") or {}
    oracle = data.get("oracle") or {}
    valuation = data.get("valuation") or {}

    settings = TraceSettings(
        network=network or env.get("TRACE_NETWORK") or data.get("network", DEFAULT_NETWORK),
        node_api_key=env.get("TRACE_NODE_API_KEY") or node.get("api_key"),
        timeout_ms=int(node.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
        cache_ttl_ms=int(sim.get("cache_ttl_ms", DEFAULT_SIMULATION_TTL_MS)),
        fingerprint_bucket_ms=int(sim.get("fingerprint_bucket_ms", DEFAULT_FINGERPRINT_BUCKET_MS)),
        expiration_seconds=int(sim.get("expiration_seconds", DEFAULT_EXPIRATION_SECONDS)),
        max_gas_amount=int(sim.get("max_gas_amount", DEFAULT_MAX_GAS_AMOUNT)),
        gas_unit_price=int(sim.get("gas_unit_price", DEFAULT_GAS_UNIT_PRICE)),
        hermes_url=env.get("TRACE_HERMES_URL") or oracle.get("hermes_url", DEFAULT_HERMES_URL),
        latest_ttl_ms=int(oracle.get("latest_ttl_ms", DEFAULT_LATEST_QUOTE_TTL_MS)),
        historical_ttl_ms=int(oracle.get("historical_ttl_ms", DEFAULT_HISTORICAL_QUOTE_TTL_MS)),
        latest_staleness_seconds=int(
            oracle.get("latest_staleness_seconds", DEFAULT_LATEST_STALENESS_SECONDS)
        ),
        historical_staleness_seconds=int(
            oracle.get("historical_staleness_seconds", DEFAULT_HISTORICAL_STALENESS_SECONDS)
        ),
        reference_currency=str(valuation.get("reference_currency", DEFAULT_REFERENCE_CURRENCY)).upper(),
    )

    node_url = env.get("TRACE_NODE_URL")
    if node_url:
        settings.node_url = node_url
    else:
        preset = get_network_config(settings.network)
        settings.node_url = preset["node_url"]
        settings.chain_id = preset.get("chain_id")

    return settings


def load_balance_rules(data: Optional[Dict[str, Any]] = None) -> Dict[str, BalanceRule]:
    """Balance rules from assets.yaml, falling back to the built-in ones."""
    data = load_assets() if data is None else data
    rules_data = data.get("balance_rules")
    if not rules_data:
        return dict(DEFAULT_BALANCE_RULES)
    return {
        struct_base(struct): BalanceRule(path=rule["path"], asset_source=rule.get("asset_source", "type_arg"))
        for struct, rule in rules_data.items()
    }


def build_registry(data: Optional[Dict[str, Any]] = None) -> AssetRegistry:
    """Asset registry from assets.yaml."""
    data = load_assets() if data is None else data
    return AssetRegistry.from_config(data.get("assets") or {})
