"""
Price aggregation with a whole-batch fallback chain.

Adapters are tried in priority order for the entire token batch: the first
adapter that answers supplies every token of the cycle, so venue prices are
never mixed across providers within one snapshot. Venue sub-prices are then
filled from a best-effort venue source; if that source fails, snapshots
degrade to a single-venue view keyed by the answering adapter.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..exceptions import AllSourcesFailedError, SourceUnavailableError
from ..interfaces import PriceSource, SystemTimeProvider, TimeProvider, VenuePriceSource
from ..types import PricePoint, PriceSnapshot, TokenQuote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceRefresh:
    """
    Result of one successful aggregator refresh.

    Attributes:
        snapshots: One snapshot per token the answering source reported
        source: Name of the adapter that supplied the batch
        missing_tokens: Requested tokens the source did not report
        venues_degraded: True when the venue source failed this cycle
        errors: Adapter name -> error message for adapters tried before `source`
        completed_at: Unix timestamp when the refresh finished
    """

    snapshots: Tuple[PriceSnapshot, ...]
    source: str
    missing_tokens: Tuple[str, ...] = ()
    venues_degraded: bool = False
    errors: Mapping[str, str] = field(default_factory=dict)
    completed_at: float = 0.0


def _dedupe(tokens: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for token in tokens:
        if token not in seen:
            seen.add(token)
            ordered.append(token)
    return ordered


class PriceAggregator:
    """Calls price adapters in fallback order and assembles per-token snapshots."""

    def __init__(
        self,
        sources: Sequence[PriceSource],
        token_addresses: Optional[Mapping[str, str]] = None,
        timeout_sec: float = 5.0,
        venue_source: Optional[VenuePriceSource] = None,
        venues: Sequence[str] = (),
        time_provider: Optional[TimeProvider] = None,
        metrics=None,
    ):
        if not sources:
            raise ValueError("PriceAggregator needs at least one price source")
        if timeout_sec <= 0:
            raise ValueError(f"timeout_sec must be > 0, got {timeout_sec}")
        self.sources = list(sources)
        self.token_addresses = dict(token_addresses or {})
        self.timeout_sec = timeout_sec
        self.venue_source = venue_source
        self.allowed_venues = frozenset(venues)
        self.time_provider = time_provider or SystemTimeProvider()
        self.metrics = metrics

    async def _call_source(
        self, source: PriceSource, tokens: List[str]
    ) -> Dict[str, TokenQuote]:
        try:
            return await asyncio.wait_for(
                source.fetch_prices(tokens), timeout=self.timeout_sec
            )
        except asyncio.TimeoutError as e:
            raise SourceUnavailableError(
                f"{source.name} timed out after {self.timeout_sec}s", source=source.name
            ) from e

    async def _fetch_venue_prices(
        self, tokens: List[str]
    ) -> Tuple[Dict[str, Dict[str, Decimal]], bool]:
        """Best-effort venue fetch. Returns (prices, degraded)."""
        wanted = {t: self.token_addresses[t] for t in tokens if t in self.token_addresses}
        if not wanted:
            return {}, False
        try:
            prices = await asyncio.wait_for(
                self.venue_source.fetch_venue_prices(wanted), timeout=self.timeout_sec
            )
            return prices or {}, False
        except asyncio.TimeoutError:
            logger.warning(
                f"VENUE_SOURCE_DEGRADED: {{'source': '{self.venue_source.name}', "
                f"'error': 'timeout'}}"
            )
        except Exception as e:
            logger.warning(
                f"VENUE_SOURCE_DEGRADED: {{'source': '{self.venue_source.name}', "
                f"'error': '{e}'}}"
            )
        if self.metrics:
            self.metrics.record_source_failure(self.venue_source.name)
        return {}, True

    def _venue_points(
        self, venue_prices: Mapping[str, Decimal], observed_at: float
    ) -> Dict[str, PricePoint]:
        points = {}
        for venue, price in sorted(venue_prices.items()):
            if self.allowed_venues and venue not in self.allowed_venues:
                continue
            if price is None or Decimal(price) <= 0:
                continue
            points[venue] = PricePoint(venue, Decimal(price), observed_at)
        return points

    def _build_snapshot(
        self,
        quote: TokenQuote,
        source_name: str,
        venue_prices: Optional[Mapping[str, Decimal]],
    ) -> PriceSnapshot:
        venues = self._venue_points(
            quote.venues or venue_prices or {}, quote.observed_at
        )
        if not venues:
            venues = {source_name: PricePoint(source_name, quote.price, quote.observed_at)}
        return PriceSnapshot(
            token=quote.symbol,
            base_address=self.token_addresses.get(quote.symbol, ""),
            price=quote.price,
            change_24h=quote.change_24h,
            volume_24h=quote.volume_24h,
            venues=venues,
        )

    async def refresh(self, tokens: Iterable[str]) -> PriceRefresh:
        """
        Fetch one consistent snapshot batch.

        Raises:
            AllSourcesFailedError: When every adapter failed, timed out or
                returned an empty batch. No data is fabricated.
        """
        requested = _dedupe(tokens)
        if not requested:
            raise ValueError("refresh() needs at least one token")

        errors: Dict[str, str] = {}
        for source in self.sources:
            try:
                quotes = await self._call_source(source, requested)
            except SourceUnavailableError as e:
                errors[source.name] = str(e)
                logger.warning(
                    f"PRICE_SOURCE_FAILED: {{'source': '{source.name}', 'error': '{e}'}}"
                )
            except Exception as e:
                errors[source.name] = f"{type(e).__name__}: {e}"
                logger.error(
                    f"PRICE_SOURCE_FAILED: {{'source': '{source.name}', "
                    f"'error': 'unexpected {type(e).__name__}'}}",
                    exc_info=True,
                )
            else:
                quotes = {s: q for s, q in (quotes or {}).items() if s in requested}
                if quotes:
                    return await self._assemble(source.name, requested, quotes, errors)
                errors[source.name] = "empty response"
                logger.warning(
                    f"PRICE_SOURCE_FAILED: {{'source': '{source.name}', "
                    f"'error': 'empty response'}}"
                )
            if self.metrics:
                self.metrics.record_source_failure(source.name)

        raise AllSourcesFailedError(
            f"All {len(self.sources)} price sources failed", errors=errors
        )

    async def _assemble(
        self,
        source_name: str,
        requested: List[str],
        quotes: Dict[str, TokenQuote],
        errors: Dict[str, str],
    ) -> PriceRefresh:
        venue_prices: Dict[str, Dict[str, Decimal]] = {}
        degraded = False
        needs_venues = [s for s in requested if s in quotes and not quotes[s].venues]
        if needs_venues and self.venue_source is not None:
            venue_prices, degraded = await self._fetch_venue_prices(needs_venues)

        snapshots = tuple(
            self._build_snapshot(quotes[s], source_name, venue_prices.get(s))
            for s in requested
            if s in quotes
        )
        missing = tuple(s for s in requested if s not in quotes)
        if missing:
            logger.info(f"Source {source_name} did not report: {', '.join(missing)}")

        logger.debug(
            f"PRICE_REFRESH_OK: {{'source': '{source_name}', "
            f"'tokens': {len(snapshots)}, 'venues_degraded': {degraded}}}"
        )
        return PriceRefresh(
            snapshots=snapshots,
            source=source_name,
            missing_tokens=missing,
            venues_degraded=degraded,
            errors=dict(errors),
            completed_at=self.time_provider.current_timestamp(),
        )
