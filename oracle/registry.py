"""
oracle/registry.py - Asset registry.

Maps the stable cross-chain symbol of an asset (e.g. "APT") to its
decimals and Pyth feed id, and maps on-chain asset keys (coin types,
fungible-asset metadata addresses) back to that symbol.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.models import AssetInfo
from core.validators import normalize_asset_key


def normalize_feed_id(feed_id: str) -> str:
    """Hermes ids are bare lowercase hex."""
    feed = feed_id.strip().lower()
    return feed[2:] if feed.startswith("0x") else feed


class AssetRegistry:
    """Lookup tables for priced assets."""

    def __init__(self, assets: Iterable[AssetInfo] = ()):
        self._by_symbol: Dict[str, AssetInfo] = {}
        self._by_key: Dict[str, AssetInfo] = {}
        for asset in assets:
            self.register(asset)

    def register(self, asset: AssetInfo) -> None:
        self._by_symbol[asset.symbol.upper()] = asset
        for key in (*asset.coin_types, *asset.fa_metadata):
            normalized = normalize_asset_key(key)
            if normalized:
                self._by_key[normalized] = asset

    def get(self, symbol: str) -> Optional[AssetInfo]:
        return self._by_symbol.get(symbol.upper())

    def resolve(self, asset_key: Optional[str]) -> Optional[AssetInfo]:
        """Resolve a coin type or FA metadata address."""
        if not asset_key:
            return None
        normalized = normalize_asset_key(asset_key)
        return self._by_key.get(normalized) if normalized else None

    @property
    def symbols(self) -> List[str]:
        return sorted(self._by_symbol)

    def __contains__(self, symbol: str) -> bool:
        return symbol.upper() in self._by_symbol

    def __len__(self) -> int:
        return len(self._by_symbol)

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> "AssetRegistry":
        """
        Build from the "assets" section of assets.yaml:

            APT:
              decimals: 8
              pyth_feed_id: "0x03ae..."
              coin_types: ["0x1::aptos_coin::AptosCoin"]
              fa_metadata: ["0xa"]
        """
        assets = []
        for symbol, entry in (data or {}).items():
            entry = entry or {}
            feed = entry.get("pyth_feed_id")
            assets.append(AssetInfo(
                symbol=str(symbol).upper(),
                decimals=int(entry.get("decimals", 0)),
                feed_id=normalize_feed_id(feed) if feed else None,
                coin_types=tuple(entry.get("coin_types") or ()),
                fa_metadata=tuple(entry.get("fa_metadata") or ()),
            ))
        return cls(assets)
