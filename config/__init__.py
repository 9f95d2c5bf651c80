# PATH: config/__init__.py
"""
Configuration loading utilities for TRACE.
"""

from pathlib import Path
from typing import Any, Dict

import yaml


CONFIG_DIR = Path(__file__).parent


def load_yaml(filename: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory

    Returns:
        Parsed YAML as dict
    """
    filepath = CONFIG_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_networks() -> Dict[str, Any]:
    """Load network presets."""
    return load_yaml("networks.yaml")


def load_assets() -> Dict[str, Any]:
    """Load asset registry and balance rules."""
    return load_yaml("assets.yaml")


def load_trace_defaults() -> Dict[str, Any]:
    """Load engine defaults."""
    return load_yaml("trace.yaml")


def get_network_config(network: str) -> Dict[str, Any]:
    """
    Get configuration for a network preset.

    Args:
        network: Preset name (e.g., 'movement-mainnet')

    Returns:
        Network configuration dict
    """
    networks = load_networks()
    if network not in networks:
        raise KeyError(f"Unknown network: {network}")
    return networks[network]
