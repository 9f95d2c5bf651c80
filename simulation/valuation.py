"""
simulation/valuation.py - Valuation enricher.

Attaches oracle prices to balance-change diff entries.

VALUATION CONTRACT:
  quantity_delta = raw balance delta / 10^decimals   (sign preserved)
  unit_price     = asset USD price                   (reference "USD")
                 = asset USD price / reference USD price   (otherwise)
  value_delta    = quantity_delta * unit_price

  Oracle failure  -> status NO_QUOTE, unit_price/value_delta None
  Unknown asset   -> status UNKNOWN_ASSET, quantity in raw units
  Enrichment never raises for oracle failures.
"""

import asyncio
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol, Union

from core.constants import DEFAULT_REFERENCE_CURRENCY, AnnotationStatus, DiffKind
from core.exceptions import QuoteUnavailable, UpstreamUnavailable
from core.logging import get_logger
from core.math import normalize_to_decimals
from core.models import AssetInfo, EffectDiffEntry, PriceQuote, ValuationAnnotation
from oracle.registry import AssetRegistry

logger = get_logger(__name__)

QuoteOrError = Union[PriceQuote, QuoteUnavailable, UpstreamUnavailable]


class PriceSource(Protocol):
    async def get_price_at(
        self,
        asset_id: str,
        timestamp: int,
        timeout: Optional[float] = None,
    ) -> PriceQuote:
        ...


class ValuationEnricher:
    """Turns balance deltas into value deltas."""

    def __init__(self, oracle: PriceSource, registry: AssetRegistry):
        self.oracle = oracle
        self.registry = registry

    async def enrich(
        self,
        entries: Iterable[EffectDiffEntry],
        ledger_timestamp: int,
        reference_currency: str = DEFAULT_REFERENCE_CURRENCY,
        timeout: Optional[float] = None,
    ) -> List[ValuationAnnotation]:
        """
        Annotate every balance-change entry.

        Args:
            entries: Diff entries, in report order
            ledger_timestamp: Unix seconds the simulation ran at
            reference_currency: "USD" or a registered asset symbol
            timeout: Per-request oracle timeout in seconds

        Returns:
            One annotation per balance-change entry, in entry order
        """
        reference = reference_currency.upper()
        resolved = []
        for entry in entries:
            if entry.kind != DiffKind.BALANCE_CHANGE or entry.balance_delta is None:
                continue
            resolved.append((entry, entry.balance_delta, self.registry.resolve(entry.asset_key)))
        if not resolved:
            return []

        symbols = {asset.symbol for _, _, asset in resolved if asset is not None}
        if reference != DEFAULT_REFERENCE_CURRENCY and symbols:
            symbols.add(reference)

        quotes = await self._quote_all(sorted(symbols), ledger_timestamp, timeout)

        return [
            self._annotate(entry, raw_delta, asset, quotes, ledger_timestamp, reference)
            for entry, raw_delta, asset in resolved
        ]

    def unpriced(
        self,
        entries: Iterable[EffectDiffEntry],
        reference_currency: str = DEFAULT_REFERENCE_CURRENCY,
        reason: str = "valuation unavailable",
    ) -> List[ValuationAnnotation]:
        """Annotations without any oracle call: every known asset is NO_QUOTE."""
        reference = reference_currency.upper()
        annotations = []
        for entry in entries:
            if entry.kind != DiffKind.BALANCE_CHANGE or entry.balance_delta is None:
                continue
            asset = self.registry.resolve(entry.asset_key)
            if asset is None:
                annotations.append(self._annotate(entry, entry.balance_delta, None, {}, 0, reference))
                continue
            annotations.append(ValuationAnnotation(
                asset_id=asset.symbol,
                address=entry.address,
                type_tag=entry.type_tag,
                raw_delta=entry.balance_delta,
                quantity_delta=normalize_to_decimals(entry.balance_delta, asset.decimals),
                reference_currency=reference,
                status=AnnotationStatus.NO_QUOTE,
                reason=reason,
            ))
        return annotations

    async def _quote_all(
        self,
        symbols: List[str],
        timestamp: int,
        timeout: Optional[float],
    ) -> Dict[str, QuoteOrError]:
        """Price distinct assets concurrently; failures are returned, not raised."""
        results = await asyncio.gather(*(self._quote(s, timestamp, timeout) for s in symbols))
        return dict(zip(symbols, results))

    async def _quote(self, symbol: str, timestamp: int, timeout: Optional[float]) -> QuoteOrError:
        try:
            return await self.oracle.get_price_at(symbol, timestamp, timeout=timeout)
        except (QuoteUnavailable, UpstreamUnavailable) as e:
            logger.warning(
                "No quote for asset",
                extra={"context": {"asset_id": symbol, "timestamp": timestamp, "error": str(e)}},
            )
            return e

    def _annotate(
        self,
        entry: EffectDiffEntry,
        raw_delta: int,
        asset: Optional[AssetInfo],
        quotes: Dict[str, QuoteOrError],
        ledger_timestamp: int,
        reference: str,
    ) -> ValuationAnnotation:
        if asset is None:
            return ValuationAnnotation(
                asset_id=entry.asset_key or "unknown",
                address=entry.address,
                type_tag=entry.type_tag,
                raw_delta=raw_delta,
                quantity_delta=Decimal(raw_delta),
                reference_currency=reference,
                status=AnnotationStatus.UNKNOWN_ASSET,
                reason=f"asset key {entry.asset_key!r} is not in the registry",
            )

        quantity = normalize_to_decimals(raw_delta, asset.decimals)

        def no_quote(reason: str) -> ValuationAnnotation:
            return ValuationAnnotation(
                asset_id=asset.symbol,
                address=entry.address,
                type_tag=entry.type_tag,
                raw_delta=raw_delta,
                quantity_delta=quantity,
                reference_currency=reference,
                status=AnnotationStatus.NO_QUOTE,
                reason=reason,
            )

        if reference == asset.symbol:
            unit_price = Decimal(1)
            staleness = 0
        else:
            quote = quotes.get(asset.symbol)
            if not isinstance(quote, PriceQuote):
                return no_quote(str(quote) if quote is not None else "quote not requested")
            unit_price = quote.price
            staleness = max(quote.age_at(ledger_timestamp), 0)

            if reference != DEFAULT_REFERENCE_CURRENCY:
                ref_quote = quotes.get(reference)
                if not isinstance(ref_quote, PriceQuote):
                    return no_quote(f"reference currency {reference}: {ref_quote}")
                if ref_quote.price <= 0:
                    return no_quote(f"reference currency {reference} has non-positive price")
                unit_price = unit_price / ref_quote.price
                staleness = max(staleness, ref_quote.age_at(ledger_timestamp))

        return ValuationAnnotation(
            asset_id=asset.symbol,
            address=entry.address,
            type_tag=entry.type_tag,
            raw_delta=raw_delta,
            quantity_delta=quantity,
            reference_currency=reference,
            status=AnnotationStatus.PRICED,
            unit_price=unit_price,
            price_staleness_seconds=staleness,
            value_delta=quantity * unit_price,
        )
