"""
tests/unit/test_pyth.py - Hermes client tests.
"""

import asyncio
from decimal import Decimal

import pytest

from core.constants import ErrorCode
from core.exceptions import QuoteUnavailable, UpstreamUnavailable
from core.models import AssetInfo
from oracle.pyth import PythOracleClient, parse_price_update
from tests.fakes import APT_FEED, LEDGER_TIMESTAMP

HERMES_URL = "http://hermes.test"


def make_oracle(registry, hermes, now=LEDGER_TIMESTAMP, **kwargs) -> PythOracleClient:
    return PythOracleClient(
        registry,
        base_url=HERMES_URL,
        transport=hermes.transport,
        clock=lambda: now,
        **kwargs,
    )


class TestParsePriceUpdate:

    ASSET = AssetInfo(symbol="APT", decimals=8, feed_id=APT_FEED)

    def test_scales_by_exponent(self):
        body = {"parsed": [{
            "id": APT_FEED,
            "price": {"price": "512345678", "conf": "250000", "expo": -8, "publish_time": 1700000000},
        }]}
        quote = parse_price_update(self.ASSET, body)
        assert quote.price == Decimal("5.12345678")
        assert quote.confidence == Decimal("0.0025")
        assert quote.publish_time == 1700000000
        assert quote.asset_id == "APT"

    def test_feed_id_with_prefix_matches(self):
        body = {"parsed": [{
            "id": "0x" + APT_FEED,
            "price": {"price": "1", "conf": "0", "expo": 0, "publish_time": 1},
        }]}
        assert parse_price_update(self.ASSET, body).price == Decimal(1)

    def test_other_feed_only(self):
        body = {"parsed": [{"id": "ff" * 32, "price": {"price": "1", "conf": "0", "expo": 0, "publish_time": 1}}]}
        with pytest.raises(QuoteUnavailable):
            parse_price_update(self.ASSET, body)

    def test_malformed(self):
        with pytest.raises(QuoteUnavailable):
            parse_price_update(self.ASSET, {"parsed": [{"id": APT_FEED, "price": {"price": "x"}}]})


class TestLatestPrice:

    @pytest.mark.asyncio
    async def test_fresh_quote(self, registry, hermes):
        async with make_oracle(registry, hermes) as oracle:
            quote = await oracle.get_latest_price("APT")
        assert quote.price == Decimal("5")
        assert "/v2/updates/price/latest" in hermes.requests[0]

    @pytest.mark.asyncio
    async def test_stale_quote_refused(self, registry, hermes):
        async with make_oracle(registry, hermes, now=LEDGER_TIMESTAMP + 11) as oracle:
            with pytest.raises(QuoteUnavailable) as exc_info:
                await oracle.get_latest_price("APT")
        assert exc_info.value.code == ErrorCode.QUOTE_STALE

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, registry, hermes):
        async with make_oracle(registry, hermes) as oracle:
            await oracle.get_latest_price("APT")
            await oracle.get_latest_price("apt")
        assert len(hermes.requests) == 1


class TestPriceAt:

    @pytest.mark.asyncio
    async def test_historical_path(self, registry, hermes):
        async with make_oracle(registry, hermes) as oracle:
            quote = await oracle.get_price_at("APT", LEDGER_TIMESTAMP + 30)
        assert quote.price == Decimal("5")
        assert f"/v2/updates/price/{LEDGER_TIMESTAMP + 30}" in hermes.requests[0]

    @pytest.mark.asyncio
    async def test_too_far_from_timestamp(self, registry, hermes):
        async with make_oracle(registry, hermes, historical_staleness_seconds=60) as oracle:
            with pytest.raises(QuoteUnavailable) as exc_info:
                await oracle.get_price_at("APT", LEDGER_TIMESTAMP + 61)
        assert exc_info.value.code == ErrorCode.QUOTE_STALE

    @pytest.mark.asyncio
    async def test_update_after_timestamp_refused(self, registry, hermes):
        hermes.set_price(APT_FEED, 500000000, publish_time=LEDGER_TIMESTAMP + 45)
        async with make_oracle(registry, hermes) as oracle:
            with pytest.raises(QuoteUnavailable) as exc_info:
                await oracle.get_price_at("APT", LEDGER_TIMESTAMP)
        assert exc_info.value.code == ErrorCode.QUOTE_UNAVAILABLE
        assert len(hermes.requests) == 2

    @pytest.mark.asyncio
    async def test_falls_back_to_update_before_timestamp(self, registry, hermes):
        hermes.add_update(APT_FEED, 490000000, publish_time=LEDGER_TIMESTAMP - 20)
        hermes.add_update(APT_FEED, 510000000, publish_time=LEDGER_TIMESTAMP + 3)
        async with make_oracle(registry, hermes, historical_staleness_seconds=60) as oracle:
            quote = await oracle.get_price_at("APT", LEDGER_TIMESTAMP)
        assert quote.price == Decimal("4.9")
        assert quote.publish_time <= LEDGER_TIMESTAMP
        assert quote.age_at(LEDGER_TIMESTAMP) == 20
        assert f"/v2/updates/price/{LEDGER_TIMESTAMP - 60}" in hermes.requests[1]

    @pytest.mark.asyncio
    async def test_update_at_timestamp_needs_one_request(self, registry, hermes):
        hermes.add_update(APT_FEED, 490000000, publish_time=LEDGER_TIMESTAMP - 20)
        hermes.add_update(APT_FEED, 500000000, publish_time=LEDGER_TIMESTAMP)
        async with make_oracle(registry, hermes) as oracle:
            quote = await oracle.get_price_at("APT", LEDGER_TIMESTAMP)
        assert quote.price == Decimal("5")
        assert len(hermes.requests) == 1

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_request(self, registry, hermes):
        async with make_oracle(registry, hermes) as oracle:
            quotes = await asyncio.gather(*(oracle.get_price_at("APT", LEDGER_TIMESTAMP) for _ in range(5)))
        assert len({q.price for q in quotes}) == 1
        assert len(hermes.requests) == 1

    @pytest.mark.asyncio
    async def test_unknown_asset(self, registry, hermes):
        async with make_oracle(registry, hermes) as oracle:
            with pytest.raises(QuoteUnavailable) as exc_info:
                await oracle.get_price_at("DOGE", LEDGER_TIMESTAMP)
        assert exc_info.value.code == ErrorCode.ASSET_UNKNOWN
        assert hermes.requests == []

    @pytest.mark.asyncio
    async def test_no_update_is_quote_unavailable(self, registry, hermes):
        async with make_oracle(registry, hermes) as oracle:
            with pytest.raises(QuoteUnavailable) as exc_info:
                await oracle.get_price_at("USDC", LEDGER_TIMESTAMP)
        assert exc_info.value.code == ErrorCode.QUOTE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_transport_failure_is_upstream(self, registry, hermes):
        hermes.fail = True
        async with make_oracle(registry, hermes) as oracle:
            with pytest.raises(UpstreamUnavailable):
                await oracle.get_price_at("APT", LEDGER_TIMESTAMP)

    @pytest.mark.asyncio
    async def test_server_error_is_upstream(self, registry, hermes):
        hermes.status = 503
        async with make_oracle(registry, hermes) as oracle:
            with pytest.raises(UpstreamUnavailable) as exc_info:
                await oracle.get_price_at("APT", LEDGER_TIMESTAMP)
        assert exc_info.value.code == ErrorCode.INFRA_HTTP_ERROR

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, registry, hermes):
        hermes.fail = True
        async with make_oracle(registry, hermes) as oracle:
            with pytest.raises(UpstreamUnavailable):
                await oracle.get_price_at("APT", LEDGER_TIMESTAMP)
            hermes.fail = False
            quote = await oracle.get_price_at("APT", LEDGER_TIMESTAMP)
        assert quote.price == Decimal("5")
