"""On-chain risk manager behind the RiskAuthority protocol."""

import asyncio
import logging
from decimal import Decimal

from web3 import Web3
from web3.exceptions import Web3Exception

from ..exceptions import RiskAuthorityError
from ..opportunity_math import from_base_units, to_base_units
from ..types import RiskDecision, RiskStatus
from .abis import RISK_MANAGER_ABI

logger = logging.getLogger(__name__)


class Web3RiskAuthority:
    """
    Reads trade approval and daily-loss counters from the risk manager contract.

    isTradeAllowed is evaluated with eth_call, so authorization never costs
    gas. Amounts are sent as 18-decimal fixed point.
    """

    def __init__(self, web3: Web3, contract_address: str, decimals: int = 18):
        self.web3 = web3
        self.decimals = decimals
        self.contract = web3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=RISK_MANAGER_ABI
        )

    def _status_sync(self, actor: str) -> RiskStatus:
        loss, remaining, count, can_trade = self.contract.functions.getUserRiskStatus(
            Web3.to_checksum_address(actor)
        ).call()
        return RiskStatus(
            current_daily_loss=from_base_units(loss, self.decimals),
            remaining_daily_limit=from_base_units(remaining, self.decimals),
            trade_count=int(count),
            can_trade=bool(can_trade),
        )

    def _authorize_sync(
        self,
        actor: str,
        trade_size: Decimal,
        expected_profit: Decimal,
        slippage_bps: int,
    ) -> RiskDecision:
        user = Web3.to_checksum_address(actor)
        allowed = self.contract.functions.isTradeAllowed(
            user,
            to_base_units(trade_size, self.decimals),
            to_base_units(max(expected_profit, Decimal("0")), self.decimals),
            int(slippage_bps),
        ).call({"from": user})
        status = self._status_sync(actor)
        return RiskDecision(
            allowed=bool(allowed) and status.can_trade,
            remaining_daily_allowance=status.remaining_daily_limit,
            current_daily_loss=status.current_daily_loss,
            reason="" if allowed else "isTradeAllowed returned false",
        )

    async def authorize(
        self,
        actor: str,
        trade_size: Decimal,
        expected_profit: Decimal,
        slippage_bps: int,
    ) -> RiskDecision:
        try:
            return await asyncio.to_thread(
                self._authorize_sync, actor, trade_size, expected_profit, slippage_bps
            )
        except (Web3Exception, ValueError, OSError) as e:
            raise RiskAuthorityError(
                f"Risk manager call failed: {e}", actor=actor
            ) from e

    async def status(self, actor: str) -> RiskStatus:
        try:
            return await asyncio.to_thread(self._status_sync, actor)
        except (Web3Exception, ValueError, OSError) as e:
            raise RiskAuthorityError(
                f"getUserRiskStatus failed: {e}", actor=actor
            ) from e
