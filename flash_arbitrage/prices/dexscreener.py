"""
DexScreener adapter: per-DEX pair prices.

Serves two roles:
- fallback spot source when the primary provider is down
- best-effort venue source filling each snapshot's venue -> price map

DexScreener reports every pair that trades a token. For each venue the most
liquid pair quoting the token as its base asset is kept.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

import aiohttp

from ..config import PriceSourceConfig
from ..interfaces import TimeProvider
from ..utils import to_decimal
from ..types import TokenQuote
from .base import BasePriceSource

logger = logging.getLogger(__name__)

CHAIN_SLUGS = {
    1: "ethereum",
    10: "optimism",
    56: "bsc",
    137: "polygon",
    8453: "base",
    42161: "arbitrum",
}

# DexScreener accepts at most 30 addresses per tokens request
MAX_ADDRESSES_PER_REQUEST = 30


def venue_name(pair: Mapping[str, Any], aliases: Mapping[str, str]) -> str:
    """Resolve a pair's venue name from its dexId and version label."""
    dex_id = str(pair.get("dexId") or "")
    labels = pair.get("labels") or []
    if labels:
        key = f"{dex_id}:{labels[0]}"
        if key in aliases:
            return aliases[key]
    return aliases.get(dex_id, dex_id)


def _liquidity(pair: Mapping[str, Any]) -> Decimal:
    try:
        return to_decimal((pair.get("liquidity") or {}).get("usd") or 0)
    except ValueError:
        return Decimal("0")


def group_pairs_by_venue(
    pairs: Iterable[Mapping[str, Any]],
    token_address: str,
    chain_slug: str,
    aliases: Mapping[str, str],
) -> Dict[str, Mapping[str, Any]]:
    """Most liquid pair per venue where the token is the base asset."""
    best: Dict[str, Mapping[str, Any]] = {}
    target = token_address.lower()
    for pair in pairs:
        if pair.get("chainId") != chain_slug:
            continue
        base = pair.get("baseToken") or {}
        if str(base.get("address", "")).lower() != target:
            continue
        try:
            price = to_decimal(pair.get("priceUsd"), "priceUsd")
        except ValueError:
            continue
        if price <= 0:
            continue
        venue = venue_name(pair, aliases)
        if not venue:
            continue
        current = best.get(venue)
        if current is None or _liquidity(pair) > _liquidity(current):
            best[venue] = pair
    return best


def build_quote(
    symbol: str, by_venue: Mapping[str, Mapping[str, Any]], observed_at: float
) -> Optional[TokenQuote]:
    """
    Fold per-venue pairs into one quote.

    The reference price and 24h change come from the most liquid pair; the
    24h volume is summed across venues.
    """
    if not by_venue:
        return None
    reference = max(by_venue.values(), key=_liquidity)
    volume = Decimal("0")
    for pair in by_venue.values():
        try:
            volume += to_decimal((pair.get("volume") or {}).get("h24") or 0)
        except ValueError:
            continue
    try:
        change = to_decimal((reference.get("priceChange") or {}).get("h24") or 0)
    except ValueError:
        change = Decimal("0")
    return TokenQuote(
        symbol=symbol,
        price=to_decimal(reference["priceUsd"]),
        change_24h=change,
        volume_24h=volume,
        observed_at=observed_at,
        venues={venue: to_decimal(pair["priceUsd"]) for venue, pair in by_venue.items()},
    )


class DexScreenerPriceSource(BasePriceSource):
    """Per-venue token prices from the DexScreener tokens endpoint."""

    name = "dexscreener"

    def __init__(
        self,
        config: PriceSourceConfig,
        token_addresses: Mapping[str, str],
        chain_id: int = 1,
        session: Optional[aiohttp.ClientSession] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        super().__init__(
            config.dexscreener_base_url,
            timeout_sec=config.timeout_sec,
            session=session,
            time_provider=time_provider,
        )
        self.token_addresses = dict(token_addresses)
        self.aliases = dict(config.venue_aliases)
        self.chain_slug = CHAIN_SLUGS.get(chain_id, "ethereum")

    async def _fetch_pairs(self, addresses: List[str]) -> List[Mapping[str, Any]]:
        pairs: List[Mapping[str, Any]] = []
        for start in range(0, len(addresses), MAX_ADDRESSES_PER_REQUEST):
            chunk = addresses[start : start + MAX_ADDRESSES_PER_REQUEST]
            data = await self._get_json(f"tokens/{','.join(chunk)}")
            if isinstance(data, dict):
                pairs.extend(p for p in data.get("pairs") or [] if isinstance(p, dict))
        return pairs

    async def _fetch_grouped(
        self, tokens: Mapping[str, str]
    ) -> Dict[str, Dict[str, Mapping[str, Any]]]:
        if not tokens:
            return {}
        pairs = await self._fetch_pairs(sorted(set(tokens.values())))
        grouped = {}
        for symbol, address in tokens.items():
            by_venue = group_pairs_by_venue(pairs, address, self.chain_slug, self.aliases)
            if by_venue:
                grouped[symbol] = by_venue
            else:
                logger.debug(f"DexScreener has no {self.chain_slug} pairs for {symbol}")
        return grouped

    async def fetch_prices(self, tokens: Iterable[str]) -> Dict[str, TokenQuote]:
        wanted = {
            symbol: self.token_addresses[symbol]
            for symbol in tokens
            if symbol in self.token_addresses
        }
        grouped = await self._fetch_grouped(wanted)
        now = self.time_provider.current_timestamp()
        quotes = {}
        for symbol, by_venue in grouped.items():
            quote = build_quote(symbol, by_venue, now)
            if quote is not None:
                quotes[symbol] = quote
        return quotes

    async def fetch_venue_prices(
        self, tokens: Mapping[str, str]
    ) -> Dict[str, Dict[str, Decimal]]:
        grouped = await self._fetch_grouped(tokens)
        return {
            symbol: {venue: to_decimal(pair["priceUsd"]) for venue, pair in by_venue.items()}
            for symbol, by_venue in grouped.items()
        }
