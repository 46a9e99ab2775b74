"""
Gas price and chain head tracking.

The oracle keeps the latest telemetry reading and prices transactions for a
configured strategy. Until the first successful reading, scoring falls back
to a configured gas price so detection can start before the telemetry service
answers.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Mapping, Optional

from .config import DEFAULT_GAS_MULTIPLIERS
from .exceptions import GasOracleError
from .interfaces import GasTelemetry
from .opportunity_math import gwei_to_wei
from .types import GasQuote, GasStrategy

logger = logging.getLogger(__name__)


class GasOracle:
    """Latest-known gas price and block height, refreshed on demand."""

    def __init__(
        self,
        telemetry: Optional[GasTelemetry],
        fallback_gas_price_gwei: Decimal = Decimal("25"),
        timeout_sec: float = 10.0,
        multipliers: Optional[Mapping[GasStrategy, Decimal]] = None,
        custom_gas_price_gwei: Optional[Decimal] = None,
    ):
        if fallback_gas_price_gwei <= 0:
            raise ValueError("fallback_gas_price_gwei must be > 0")
        self.telemetry = telemetry
        self.fallback_gas_price_gwei = Decimal(fallback_gas_price_gwei)
        self.timeout_sec = timeout_sec
        self.multipliers = dict(multipliers or DEFAULT_GAS_MULTIPLIERS)
        self.custom_gas_price_gwei = custom_gas_price_gwei
        self._latest: Optional[GasQuote] = None

    @property
    def has_telemetry(self) -> bool:
        return self.telemetry is not None

    @property
    def latest(self) -> Optional[GasQuote]:
        return self._latest

    @property
    def gas_price_gwei(self) -> Decimal:
        """Latest recommended gas price, or the fallback before the first reading."""
        if self._latest is None:
            return self.fallback_gas_price_gwei
        return self._latest.gas_price_gwei

    @property
    def block_number(self) -> Optional[int]:
        return self._latest.block_number if self._latest else None

    async def refresh(self) -> GasQuote:
        """
        Read gas price and chain head from telemetry.

        On failure the previous reading is kept and GasOracleError is raised.
        """
        if self.telemetry is None:
            raise GasOracleError("No gas telemetry configured", source="gas")
        try:
            quote = await asyncio.wait_for(
                self.telemetry.fetch_gas(), timeout=self.timeout_sec
            )
        except asyncio.TimeoutError as e:
            raise GasOracleError(
                f"Gas telemetry timed out after {self.timeout_sec}s", source="gas"
            ) from e
        except GasOracleError:
            raise
        except Exception as e:
            raise GasOracleError(f"Gas telemetry failed: {e}", source="gas") from e

        if quote.gas_price_wei <= 0:
            raise GasOracleError(
                f"Gas telemetry returned non-positive price {quote.gas_price_wei}",
                source="gas",
            )
        self._latest = quote
        logger.debug(
            f"GAS_REFRESH: {{'gwei': '{quote.gas_price_gwei}', "
            f"'block': {quote.block_number}}}"
        )
        return quote

    def gas_price_gwei_for(self, strategy: GasStrategy) -> Decimal:
        """Gas price for a submission under the given strategy."""
        if strategy is GasStrategy.CUSTOM:
            if self.custom_gas_price_gwei is None:
                raise ValueError("custom gas strategy requires custom_gas_price_gwei")
            return Decimal(self.custom_gas_price_gwei)
        return self.gas_price_gwei * self.multipliers[strategy]

    def gas_price_wei_for(self, strategy: GasStrategy) -> int:
        return gwei_to_wei(self.gas_price_gwei_for(strategy))
