"""
CoinGecko spot price adapter.

Primary price source: one /simple/price call per batch returns USD price,
24h change and 24h volume for every requested token. CoinGecko does not
report per-venue prices, so venue sub-prices come from the venue source.
"""

import logging
import os
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

import aiohttp

from ..config import PriceSourceConfig
from ..interfaces import TimeProvider
from ..types import TokenQuote
from ..utils import to_decimal
from .base import BasePriceSource

logger = logging.getLogger(__name__)


def parse_simple_price(
    data: Any, ids_by_symbol: Mapping[str, str], observed_at: float
) -> Dict[str, TokenQuote]:
    """
    Convert a /simple/price response into quotes.

    Tokens missing from the response, or with a missing/non-positive price,
    are left out rather than failing the batch.
    """
    quotes: Dict[str, TokenQuote] = {}
    if not isinstance(data, dict):
        return quotes

    for symbol, coin_id in ids_by_symbol.items():
        entry = data.get(coin_id)
        if not isinstance(entry, dict) or entry.get("usd") is None:
            logger.debug(f"CoinGecko response missing {symbol} ({coin_id})")
            continue
        try:
            price = to_decimal(entry["usd"], f"{coin_id}.usd")
            change = to_decimal(entry.get("usd_24h_change") or 0, "usd_24h_change")
            volume = to_decimal(entry.get("usd_24h_vol") or 0, "usd_24h_vol")
        except ValueError as e:
            logger.warning(f"Skipping malformed CoinGecko entry for {symbol}: {e}")
            continue
        if price <= 0:
            logger.warning(f"Skipping non-positive CoinGecko price for {symbol}: {price}")
            continue
        quotes[symbol] = TokenQuote(
            symbol=symbol,
            price=price,
            change_24h=change,
            volume_24h=volume,
            observed_at=observed_at,
        )
    return quotes


class CoinGeckoPriceSource(BasePriceSource):
    """Batch USD prices from the CoinGecko simple price API."""

    name = "coingecko"

    def __init__(
        self,
        config: PriceSourceConfig,
        session: Optional[aiohttp.ClientSession] = None,
        time_provider: Optional[TimeProvider] = None,
        api_key: Optional[str] = None,
    ):
        api_key = api_key or os.getenv(config.coingecko_api_key_env)
        headers = {"x-cg-demo-api-key": api_key} if api_key else {}
        super().__init__(
            config.coingecko_base_url,
            timeout_sec=config.timeout_sec,
            session=session,
            time_provider=time_provider,
            headers=headers,
        )
        self.coingecko_ids = dict(config.coingecko_ids)

    async def fetch_prices(self, tokens: Iterable[str]) -> Dict[str, TokenQuote]:
        ids_by_symbol = {}
        for symbol in tokens:
            coin_id = self.coingecko_ids.get(symbol)
            if coin_id:
                ids_by_symbol[symbol] = coin_id
            else:
                logger.debug(f"Token not in CoinGecko mapping: {symbol}")

        if not ids_by_symbol:
            return {}

        params = {
            "ids": ",".join(sorted(set(ids_by_symbol.values()))),
            "vs_currencies": "usd",
            "include_24hr_change": "true",
            "include_24hr_vol": "true",
        }
        data = await self._get_json("simple/price", params=params)
        quotes = parse_simple_price(
            data, ids_by_symbol, self.time_provider.current_timestamp()
        )
        logger.debug(f"CoinGecko returned {len(quotes)}/{len(ids_by_symbol)} tokens")
        return quotes
