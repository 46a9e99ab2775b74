"""
Risk gate in front of every execution.

Each authorization is a fresh call to the external risk authority; nothing is
cached across opportunities because the daily-loss state changes out of band.
The gate fails closed: a missing authority, errors, timeouts and malformed
answers all come back as a denied decision.
"""

import asyncio
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Optional

from .exceptions import RiskAuthorityError
from .interfaces import RiskAuthority
from .types import Opportunity, RiskDecision, RiskStatus

logger = logging.getLogger(__name__)


def _denied(reason: str) -> RiskDecision:
    return RiskDecision(
        allowed=False,
        remaining_daily_allowance=Decimal("0"),
        current_daily_loss=Decimal("0"),
        reason=reason,
    )


class RiskGate:
    def __init__(
        self,
        authority: Optional[RiskAuthority],
        slippage_bps: int = 50,
        timeout_sec: float = 10.0,
        metrics=None,
    ):
        self.authority = authority
        self.slippage_bps = slippage_bps
        self.timeout_sec = timeout_sec
        self.metrics = metrics

    async def _ask(self, actor: str, opportunity: Opportunity) -> Any:
        if self.authority is None:
            return _denied("no risk authority configured")
        try:
            return await asyncio.wait_for(
                self.authority.authorize(
                    actor,
                    opportunity.trade_size,
                    opportunity.net_profit,
                    self.slippage_bps,
                ),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            return _denied(f"risk authority timed out after {self.timeout_sec}s")
        except Exception as e:
            logger.error(
                f"RISK_AUTHORITY_ERROR: {{'actor': '{actor}', "
                f"'opportunity_id': '{opportunity.id}', 'error': '{e}'}}"
            )
            return _denied(f"risk authority error: {e}")

    async def authorize(self, actor: str, opportunity: Opportunity) -> RiskDecision:
        """
        Ask the risk authority whether `actor` may execute `opportunity`.

        Never raises for authority failures; those produce allowed=False.
        """
        decision = await self._ask(actor, opportunity)
        if not isinstance(decision, RiskDecision):
            decision = _denied(f"malformed risk decision: {decision!r}")
        elif decision.allowed is not True:
            decision = replace(
                decision,
                allowed=False,
                reason=decision.reason or "denied by risk authority",
            )

        if self.metrics:
            self.metrics.record_risk_decision(
                "allowed" if decision.allowed else "denied"
            )
        logger.info(
            f"RISK_DECISION: {{'actor': '{actor}', 'opportunity_id': '{opportunity.id}', "
            f"'allowed': {decision.allowed}, "
            f"'remaining': '{decision.remaining_daily_allowance}', "
            f"'reason': '{decision.reason}'}}"
        )
        return decision

    async def status(self, actor: str) -> RiskStatus:
        """Pass-through to the authority's running per-actor counters."""
        if self.authority is None:
            raise RiskAuthorityError("No risk authority configured", actor=actor)
        return await asyncio.wait_for(
            self.authority.status(actor), timeout=self.timeout_sec
        )
