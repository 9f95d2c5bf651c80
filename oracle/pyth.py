"""
oracle/pyth.py - Pyth Hermes price client.

Provides:
- Latest and at-timestamp price lookups by asset symbol
- Staleness enforcement (never serves a quote outside the bound)
- Short-lived quote cache with in-flight dedup

QUOTE CONTRACT:
  price      = price.price * 10^expo   (Decimal)
  confidence = price.conf  * 10^expo   (Decimal)
  A missing, unknown or stale quote raises QuoteUnavailable. Nothing is
  ever fabricated or defaulted to zero.
"""

from typing import Any, Callable, Dict, Optional

import httpx

from core.constants import (
    DEFAULT_HERMES_URL,
    DEFAULT_HISTORICAL_QUOTE_TTL_MS,
    DEFAULT_HISTORICAL_STALENESS_SECONDS,
    DEFAULT_LATEST_QUOTE_TTL_MS,
    DEFAULT_LATEST_STALENESS_SECONDS,
    ErrorCode,
)
from core.exceptions import QuoteUnavailable, UpstreamUnavailable
from core.logging import get_logger
from core.math import scale_pyth_value
from core.models import AssetInfo, PriceQuote
from core.time import is_fresh, monotonic_ms, now_seconds
from oracle.registry import AssetRegistry, normalize_feed_id
from simulation.cache import RequestCache

logger = get_logger(__name__)


class PythOracleClient:
    """
    Async client for the Hermes price service.

    Usage:
        async with PythOracleClient(registry) as oracle:
            quote = await oracle.get_price_at("APT", 1700000000, timeout=2.0)
    """

    def __init__(
        self,
        registry: AssetRegistry,
        base_url: str = DEFAULT_HERMES_URL,
        timeout_seconds: float = 5.0,
        latest_staleness_seconds: int = DEFAULT_LATEST_STALENESS_SECONDS,
        historical_staleness_seconds: int = DEFAULT_HISTORICAL_STALENESS_SECONDS,
        latest_ttl_ms: int = DEFAULT_LATEST_QUOTE_TTL_MS,
        historical_ttl_ms: int = DEFAULT_HISTORICAL_QUOTE_TTL_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = now_seconds,
    ):
        self.registry = registry
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.latest_staleness_seconds = latest_staleness_seconds
        self.historical_staleness_seconds = historical_staleness_seconds
        self._transport = transport
        self._clock = clock
        self._client: httpx.AsyncClient | None = None
        self._latest_cache: RequestCache[PriceQuote] = RequestCache(latest_ttl_ms, name="quotes.latest")
        self._historical_cache: RequestCache[PriceQuote] = RequestCache(historical_ttl_ms, name="quotes.historical")
        self.request_count = 0

    async def __aenter__(self) -> "PythOracleClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def get_latest_price(self, asset_id: str, timeout: Optional[float] = None) -> PriceQuote:
        """
        Latest quote for an asset.

        Raises:
            QuoteUnavailable: unknown asset, no update, or older than
                latest_staleness_seconds
            UpstreamUnavailable: Hermes unreachable or timed out
        """
        asset = self._asset(asset_id)

        async def fetch() -> PriceQuote:
            quote = await self._fetch_quote(asset, "/v2/updates/price/latest", timeout)
            now = self._clock()
            if not is_fresh(quote.publish_time, self.latest_staleness_seconds, current_time=now):
                age = quote.age_at(now)
                raise QuoteUnavailable(
                    f"Latest {asset.symbol} quote is {age}s old",
                    code=ErrorCode.QUOTE_STALE,
                    details={"asset_id": asset.symbol, "age_seconds": age},
                )
            return quote

        return await self._latest_cache.get_or_compute(f"{asset.symbol}:latest", fetch)

    async def get_price_at(
        self,
        asset_id: str,
        timestamp: int,
        timeout: Optional[float] = None,
    ) -> PriceQuote:
        """
        Quote for an asset at or before a unix timestamp (seconds).

        Hermes serves the first update published at or after the requested
        time. When that update postdates the timestamp, the lookup is retried
        from the start of the staleness window so that only an update
        published in [timestamp - historical_staleness_seconds, timestamp]
        is ever returned.

        Raises:
            QuoteUnavailable: unknown asset, no update in the window before
                timestamp, or the update is older than
                historical_staleness_seconds
            UpstreamUnavailable: Hermes unreachable or timed out
        """
        asset = self._asset(asset_id)
        at = int(timestamp)

        async def fetch() -> PriceQuote:
            quote = await self._fetch_quote(asset, f"/v2/updates/price/{at}", timeout)
            if quote.publish_time > at:
                window_start = at - self.historical_staleness_seconds
                quote = await self._fetch_quote(asset, f"/v2/updates/price/{window_start}", timeout)
            if quote.publish_time > at:
                raise QuoteUnavailable(
                    f"No {asset.symbol} update published at or before {at}",
                    code=ErrorCode.QUOTE_UNAVAILABLE,
                    details={"asset_id": asset.symbol, "timestamp": at, "publish_time": quote.publish_time},
                )
            age = quote.age_at(at)
            if age > self.historical_staleness_seconds:
                raise QuoteUnavailable(
                    f"{asset.symbol} quote is {age}s older than {at}",
                    code=ErrorCode.QUOTE_STALE,
                    details={"asset_id": asset.symbol, "timestamp": at, "age_seconds": age},
                )
            return quote

        return await self._historical_cache.get_or_compute(f"{asset.symbol}:{at}", fetch)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "requests": self.request_count,
            "latest_cache": self._latest_cache.get_stats(),
            "historical_cache": self._historical_cache.get_stats(),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _asset(self, asset_id: str) -> AssetInfo:
        asset = self.registry.get(asset_id)
        if asset is None or not asset.feed_id:
            raise QuoteUnavailable(
                f"No price feed configured for {asset_id}",
                code=ErrorCode.ASSET_UNKNOWN,
                details={"asset_id": asset_id},
            )
        return asset

    async def _fetch_quote(
        self,
        asset: AssetInfo,
        path: str,
        timeout: Optional[float],
    ) -> PriceQuote:
        client = await self._get_client()
        self.request_count += 1
        start = monotonic_ms()
        request_timeout = httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT

        try:
            resp = await client.get(
                path,
                params={"ids[]": asset.feed_id, "parsed": "true"},
                timeout=request_timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(
                f"Hermes request timed out for {asset.symbol}",
                code=ErrorCode.INFRA_TIMEOUT,
                details={"asset_id": asset.symbol, "path": path},
            ) from e
        except httpx.TransportError as e:
            raise UpstreamUnavailable(
                f"Hermes transport failure: {e}",
                code=ErrorCode.INFRA_TRANSPORT,
                details={"asset_id": asset.symbol, "path": path},
            ) from e

        latency_ms = monotonic_ms() - start
        logger.debug(
            "Hermes request",
            extra={"context": {"asset_id": asset.symbol, "path": path, "status": resp.status_code, "latency_ms": latency_ms}},
        )

        if resp.status_code >= 500 or resp.status_code == 429:
            raise UpstreamUnavailable(
                f"Hermes returned HTTP {resp.status_code}",
                code=ErrorCode.INFRA_HTTP_ERROR,
                details={"asset_id": asset.symbol, "status_code": resp.status_code},
            )
        if resp.status_code >= 400:
            raise QuoteUnavailable(
                f"Hermes has no {asset.symbol} update for {path}",
                details={"asset_id": asset.symbol, "status_code": resp.status_code},
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                "Hermes returned a non-JSON body",
                code=ErrorCode.INFRA_BAD_RESPONSE,
                details={"asset_id": asset.symbol},
            ) from e

        return parse_price_update(asset, body)


def parse_price_update(asset: AssetInfo, body: Any) -> PriceQuote:
    """
    Extract the asset's quote from a Hermes price update.

    Raises:
        QuoteUnavailable: the update does not contain the asset's feed
    """
    feed_id = asset.feed_id or ""
    parsed = body.get("parsed") if isinstance(body, dict) else None
    for update in parsed or []:
        if normalize_feed_id(str(update.get("id", ""))) != feed_id:
            continue
        try:
            price = update["price"]
            expo = int(price["expo"])
            return PriceQuote(
                asset_id=asset.symbol,
                price=scale_pyth_value(price["price"], expo),
                confidence=scale_pyth_value(price["conf"], expo),
                publish_time=int(price["publish_time"]),
                feed_id=feed_id,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteUnavailable(
                f"Malformed {asset.symbol} price update: {e}",
                details={"asset_id": asset.symbol},
            ) from e

    raise QuoteUnavailable(
        f"Price update does not include {asset.symbol}",
        details={"asset_id": asset.symbol, "feed_id": feed_id},
    )
