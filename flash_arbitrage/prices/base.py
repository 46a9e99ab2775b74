"""
Base Price Source Adapter

Provides the abstraction layer between the price aggregator and the external
HTTP price APIs. Each adapter owns one provider and reports any failure of
that provider as SourceUnavailableError, so one provider going down never
takes another one with it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

import aiohttp

from ..exceptions import SourceUnavailableError
from ..interfaces import SystemTimeProvider, TimeProvider
from ..types import TokenQuote

logger = logging.getLogger(__name__)


class BasePriceSource(ABC):
    """Abstract base class for HTTP price adapters."""

    name = "base"

    def __init__(
        self,
        base_url: str,
        timeout_sec: float = 5.0,
        session: Optional[aiohttp.ClientSession] = None,
        time_provider: Optional[TimeProvider] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the adapter.

        Args:
            base_url: REST root of the provider
            timeout_sec: Total HTTP timeout for one request
            session: Shared aiohttp session; one is created lazily if omitted
            time_provider: Clock used to stamp observations
            headers: Extra request headers (API keys)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self.time_provider = time_provider or SystemTimeProvider()
        self.headers = headers or {}
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def _get_json(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """
        GET a JSON document from the provider.

        Raises:
            SourceUnavailableError: On transport errors, timeouts, non-2xx
                statuses or undecodable bodies
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        session = await self._get_session()
        try:
            async with session.get(
                url, params=params, headers=self.headers, timeout=self.timeout
            ) as response:
                if response.status == 429:
                    raise SourceUnavailableError(
                        f"{self.name} rate limited", source=self.name
                    )
                if response.status >= 400:
                    raise SourceUnavailableError(
                        f"{self.name} returned HTTP {response.status}",
                        source=self.name,
                        details={"url": url, "status": response.status},
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise SourceUnavailableError(
                f"{self.name} request timed out", source=self.name
            ) from e
        except aiohttp.ClientError as e:
            raise SourceUnavailableError(
                f"{self.name} request failed: {e}", source=self.name
            ) from e
        except ValueError as e:
            raise SourceUnavailableError(
                f"{self.name} returned invalid JSON: {e}", source=self.name
            ) from e

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @abstractmethod
    async def fetch_prices(self, tokens: Iterable[str]) -> Dict[str, TokenQuote]:
        """Fetch quotes for a batch of token symbols; missing tokens are omitted."""
        pass


class StaticPriceSource:
    """
    In-memory price source returning exactly the quotes it was given.

    Used for offline runs and tests. It never invents prices: tokens it was not
    given are missing from the response, and an empty source answers with an
    empty batch.
    """

    def __init__(
        self,
        name: str,
        prices: Mapping[str, Any],
        venues: Optional[Mapping[str, Mapping[str, Any]]] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.name = name
        self.prices = {symbol: Decimal(str(p)) for symbol, p in prices.items()}
        self.venues = {
            symbol: {venue: Decimal(str(p)) for venue, p in by_venue.items()}
            for symbol, by_venue in (venues or {}).items()
        }
        self.time_provider = time_provider or SystemTimeProvider()

    async def fetch_prices(self, tokens: Iterable[str]) -> Dict[str, TokenQuote]:
        now = self.time_provider.current_timestamp()
        return {
            symbol: TokenQuote(
                symbol=symbol,
                price=self.prices[symbol],
                change_24h=Decimal("0"),
                volume_24h=Decimal("0"),
                observed_at=now,
                venues=self.venues.get(symbol, {}),
            )
            for symbol in tokens
            if symbol in self.prices
        }

    async def fetch_venue_prices(
        self, tokens: Mapping[str, str]
    ) -> Dict[str, Dict[str, Decimal]]:
        return {
            symbol: dict(self.venues[symbol]) for symbol in tokens if symbol in self.venues
        }
