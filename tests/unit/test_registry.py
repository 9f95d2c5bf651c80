"""
tests/unit/test_registry.py - Asset registry tests.
"""

import pytest

from core.models import AssetInfo
from oracle.registry import AssetRegistry, normalize_feed_id
from tests.fakes import APT_FEED


class TestNormalizeFeedId:

    def test_strips_prefix_and_case(self):
        assert normalize_feed_id("0x" + APT_FEED.upper()) == APT_FEED

    def test_bare_id_unchanged(self):
        assert normalize_feed_id(APT_FEED) == APT_FEED


class TestAssetRegistry:

    def test_get_is_case_insensitive(self, registry):
        assert registry.get("apt").symbol == "APT"
        assert "usdc" in registry
        assert registry.get("DOGE") is None

    def test_resolve_coin_type(self, registry):
        assert registry.resolve("0x1::aptos_coin::AptosCoin").symbol == "APT"

    def test_resolve_long_form_address(self, registry):
        assert registry.resolve("0x0000000000000000000000000000000000000000000000000000000000000001::aptos_coin::AptosCoin").symbol == "APT"
        assert registry.resolve("0x" + "0" * 63 + "a").symbol == "APT"

    def test_resolve_unknown(self, registry):
        assert registry.resolve("0xcafe::fake::Fake") is None
        assert registry.resolve(None) is None
        assert registry.resolve("") is None

    def test_symbols_sorted(self, registry):
        assert registry.symbols == ["APT", "USDC"]
        assert len(registry) == 2

    def test_register_overrides(self):
        registry = AssetRegistry()
        registry.register(AssetInfo(symbol="X", decimals=2, coin_types=("0xcafe::x::X",)))
        registry.register(AssetInfo(symbol="Y", decimals=4, coin_types=("0xcafe::x::X",)))
        assert registry.resolve("0xcafe::x::X").symbol == "Y"


class TestFromConfig:

    @pytest.fixture
    def data(self):
        return {
            "apt": {
                "decimals": 8,
                "pyth_feed_id": "0x" + APT_FEED,
                "coin_types": ["0x1::aptos_coin::AptosCoin"],
                "fa_metadata": ["0xa"],
            },
            "NOFEED": {"decimals": 6},
        }

    def test_symbols_uppercased(self, data):
        registry = AssetRegistry.from_config(data)
        assert registry.symbols == ["APT", "NOFEED"]

    def test_feed_normalized(self, data):
        assert AssetRegistry.from_config(data).get("APT").feed_id == APT_FEED

    def test_missing_feed_is_none(self, data):
        asset = AssetRegistry.from_config(data).get("NOFEED")
        assert asset.feed_id is None
        assert asset.coin_types == ()

    def test_empty_config(self):
        assert len(AssetRegistry.from_config({})) == 0
