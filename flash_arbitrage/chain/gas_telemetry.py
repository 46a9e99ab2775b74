"""Gas price and chain head read straight from the RPC node."""

import asyncio
from typing import Optional

from web3 import Web3
from web3.exceptions import Web3Exception

from ..exceptions import GasOracleError
from ..interfaces import SystemTimeProvider, TimeProvider
from ..types import GasQuote


class Web3GasTelemetry:
    def __init__(self, web3: Web3, time_provider: Optional[TimeProvider] = None):
        self.web3 = web3
        self.time_provider = time_provider or SystemTimeProvider()

    def _read(self):
        return int(self.web3.eth.gas_price), int(self.web3.eth.block_number)

    async def fetch_gas(self) -> GasQuote:
        try:
            gas_price_wei, block_number = await asyncio.to_thread(self._read)
        except (Web3Exception, ValueError, OSError) as e:
            raise GasOracleError(f"RPC gas read failed: {e}", source="rpc") from e
        return GasQuote(
            gas_price_wei=gas_price_wei,
            block_number=block_number,
            observed_at=self.time_provider.current_timestamp(),
        )
