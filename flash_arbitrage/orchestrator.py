"""
Risk-gated execution of a single opportunity.

State machine per invocation:

    Pending -> RiskChecked -> Submitted -> Settled
       |            |             |
       v            v             v
    RejectedLocally RejectedByRisk Failed

Exactly one ExecutionResult and exactly one ledger entry are produced per
execute() call, whichever exit is taken, including cancellation. Nothing is
retried; a caller that wants another attempt calls execute() again.
Invocations for the same actor are serialized so they never race for the
same daily-loss budget or nonce.
A submission that outlives its timeout is still waited out before the actor
is released, and a hash it obtains late is recorded on the failed result.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from .config import ExecutionConfig
from .gas_oracle import GasOracle
from .interfaces import SettlementClient, SystemTimeProvider, TimeProvider
from .ledger import TransactionLedger
from .opportunity_math import min_profit_after_slippage, realized_profit_usd
from .risk_gate import RiskGate
from .types import (
    ExecutionRequest,
    ExecutionResult,
    ExecutionState,
    Opportunity,
    OpportunityStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    """Mutable progress of one invocation."""

    state: ExecutionState = ExecutionState.PENDING
    tx_ref: str = ""


def opportunity_status_for(result: ExecutionResult) -> OpportunityStatus:
    """Lifecycle status recorded on the ledger's copy of the opportunity."""
    if result.state is ExecutionState.SETTLED:
        return OpportunityStatus.SETTLED
    if result.state is ExecutionState.FAILED and result.tx_ref:
        return OpportunityStatus.SUBMITTED
    return OpportunityStatus.REJECTED


class ExecutionOrchestrator:
    def __init__(
        self,
        risk_gate: RiskGate,
        settlement: Optional[SettlementClient],
        gas_oracle: GasOracle,
        ledger: TransactionLedger,
        config: Optional[ExecutionConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        metrics=None,
    ):
        self.risk_gate = risk_gate
        self.settlement = settlement
        self.gas_oracle = gas_oracle
        self.ledger = ledger
        self.config = config or ExecutionConfig()
        self.time_provider = time_provider or SystemTimeProvider()
        self.metrics = metrics
        self._actor_locks: Dict[str, asyncio.Lock] = {}
        # callers holding or waiting on each actor's lock
        self._lock_users: Dict[str, int] = {}

    def _acquire_lock(self, actor: str) -> asyncio.Lock:
        lock = self._actor_locks.get(actor)
        if lock is None:
            lock = self._actor_locks[actor] = asyncio.Lock()
        self._lock_users[actor] = self._lock_users.get(actor, 0) + 1
        return lock

    def _release_lock(self, actor: str) -> None:
        users = self._lock_users[actor] - 1
        if users:
            self._lock_users[actor] = users
        else:
            del self._lock_users[actor]
            del self._actor_locks[actor]

    def is_busy(self, actor: str) -> bool:
        """True while an execution for this actor is in flight."""
        lock = self._actor_locks.get(actor)
        return lock is not None and lock.locked()

    async def execute(self, opportunity: Opportunity, actor: str) -> ExecutionResult:
        """Run one opportunity through risk, submission and settlement."""
        lock = self._acquire_lock(actor)
        try:
            async with lock:
                return await self._execute_locked(opportunity, actor)
        finally:
            self._release_lock(actor)

    async def _execute_locked(
        self, opportunity: Opportunity, actor: str
    ) -> ExecutionResult:
        started = self.time_provider.monotonic()
        attempt = _Attempt()
        result: Optional[ExecutionResult] = None
        try:
            result = await self._run(opportunity, actor, attempt)
        except Exception as e:
            logger.error(
                f"EXECUTION_ERROR: {{'opportunity_id': '{opportunity.id}', "
                f"'state': '{attempt.state.value}', 'error': '{e}'}}",
                exc_info=True,
            )
            result = self._failed(opportunity, attempt, f"unexpected error: {e}")
        finally:
            if result is None:
                # cancelled mid-flight
                result = self._failed(opportunity, attempt, "execution cancelled")
            self.ledger.append(
                opportunity.with_status(opportunity_status_for(result)), result
            )
            if self.metrics:
                self.metrics.record_execution(
                    result.state.value,
                    float(result.realized_profit),
                    self.time_provider.monotonic() - started,
                )
        return result

    def _result(
        self, opportunity: Opportunity, state: ExecutionState, **kwargs
    ) -> ExecutionResult:
        result = ExecutionResult(
            opportunity_id=opportunity.id,
            succeeded=state is ExecutionState.SETTLED,
            state=state,
            **kwargs,
        )
        log = logger.info if result.succeeded else logger.warning
        log(
            f"EXECUTION_RESULT: {{'opportunity_id': '{opportunity.id}', "
            f"'state': '{state.value}', 'tx_ref': '{result.tx_ref}', "
            f"'realized_profit': '{result.realized_profit}', 'error': '{result.error}'}}"
        )
        return result

    def _failed(
        self,
        opportunity: Opportunity,
        attempt: _Attempt,
        error: str,
        gas_used: int = 0,
    ) -> ExecutionResult:
        # once a transaction exists, a failed execution still burns gas
        realized = -opportunity.gas_cost_usd if attempt.tx_ref else Decimal("0")
        return self._result(
            opportunity,
            ExecutionState.FAILED,
            tx_ref=attempt.tx_ref,
            actual_gas_used=gas_used,
            realized_profit=realized,
            error=error,
        )

    def _local_rejection(self, opportunity: Opportunity) -> Optional[str]:
        if opportunity.status is not OpportunityStatus.ACTIVE:
            return f"opportunity is {opportunity.status.value}, not active"
        if opportunity.net_profit <= 0:
            return f"net profit {opportunity.net_profit} is not positive"
        if opportunity.trade_size > self.config.max_trade_size:
            return (
                f"trade size {opportunity.trade_size} exceeds "
                f"max_trade_size {self.config.max_trade_size}"
            )
        if self.settlement is None:
            return "no signer configured"
        if not opportunity.base_address:
            return f"no asset address for {opportunity.token}"
        return None

    def build_request(self, opportunity: Opportunity) -> ExecutionRequest:
        """Execution payload: buy venue first, min profit in asset units."""
        min_profit_usd = min_profit_after_slippage(
            opportunity.net_profit, self.config.slippage_bps
        )
        return ExecutionRequest(
            opportunity_id=opportunity.id,
            token=opportunity.token,
            asset=opportunity.base_address,
            amount=opportunity.trade_size,
            venues=(opportunity.buy_venue, opportunity.sell_venue),
            min_profit=min_profit_usd / opportunity.low_price,
            gas_limit=self.config.gas_limit,
            gas_price_wei=self.gas_oracle.gas_price_wei_for(self.config.gas_strategy),
        )

    async def _late_tx_ref(
        self, opportunity: Opportunity, submission: asyncio.Future
    ) -> str:
        """Wait for a submission that outlived its timeout; its tx hash, if any."""
        try:
            receipt = await asyncio.shield(submission)
        except Exception as e:
            logger.warning(
                f"LATE_SUBMISSION_FAILED: {{'opportunity_id': '{opportunity.id}', "
                f"'error': '{e}'}}"
            )
            return ""
        if receipt.tx_ref:
            logger.warning(
                f"LATE_SUBMISSION: {{'opportunity_id': '{opportunity.id}', "
                f"'tx_ref': '{receipt.tx_ref}', 'accepted': {receipt.accepted}}}"
            )
        return receipt.tx_ref or ""

    async def _run(
        self, opportunity: Opportunity, actor: str, attempt: _Attempt
    ) -> ExecutionResult:
        reason = self._local_rejection(opportunity)
        if reason:
            attempt.state = ExecutionState.REJECTED_LOCALLY
            return self._result(opportunity, attempt.state, error=reason)

        decision = await self.risk_gate.authorize(actor, opportunity)
        if not decision.allowed:
            attempt.state = ExecutionState.REJECTED_BY_RISK
            return self._result(opportunity, attempt.state, error=decision.reason)
        attempt.state = ExecutionState.RISK_CHECKED

        request = self.build_request(opportunity)
        # signing and broadcast may run in a worker thread that a timeout
        # cannot stop, so the task is shielded and always waited out
        submission = asyncio.ensure_future(self.settlement.submit(request, actor))
        try:
            receipt = await asyncio.wait_for(
                asyncio.shield(submission),
                timeout=self.config.submit_timeout_sec,
            )
        except asyncio.TimeoutError:
            attempt.tx_ref = await self._late_tx_ref(opportunity, submission)
            error = f"submission timed out after {self.config.submit_timeout_sec}s"
            if attempt.tx_ref:
                error += f"; broadcast completed late as {attempt.tx_ref}"
            return self._failed(opportunity, attempt, error)
        except asyncio.CancelledError:
            attempt.tx_ref = await self._late_tx_ref(opportunity, submission)
            raise
        except Exception as e:
            return self._failed(opportunity, attempt, f"submission failed: {e}")

        attempt.tx_ref = receipt.tx_ref or ""
        if not receipt.accepted:
            return self._failed(opportunity, attempt, "submission not accepted")
        if not attempt.tx_ref:
            return self._failed(opportunity, attempt, "submission returned no tx hash")
        attempt.state = ExecutionState.SUBMITTED
        logger.info(
            f"EXECUTION_SUBMITTED: {{'opportunity_id': '{opportunity.id}', "
            f"'tx_ref': '{attempt.tx_ref}', 'venues': {list(request.venues)}, "
            f"'gas_price_wei': {request.gas_price_wei}}}"
        )

        try:
            confirmation = await asyncio.wait_for(
                self.settlement.await_confirmation(attempt.tx_ref),
                timeout=self.config.confirmation_timeout_sec,
            )
        except asyncio.TimeoutError:
            return self._failed(
                opportunity,
                attempt,
                f"confirmation timed out after {self.config.confirmation_timeout_sec}s",
            )
        except Exception as e:
            return self._failed(opportunity, attempt, f"settlement failed: {e}")

        if not confirmation.succeeded:
            return self._failed(
                opportunity,
                attempt,
                "settlement reverted",
                gas_used=confirmation.gas_used,
            )

        attempt.state = ExecutionState.SETTLED
        realized = realized_profit_usd(
            gas_used=confirmation.gas_used,
            effective_gas_price_wei=(
                confirmation.effective_gas_price_wei or request.gas_price_wei
            ),
            token_price_usd=opportunity.low_price,
            estimated_gross_profit=opportunity.gross_profit,
            reported_profit_units=confirmation.profit,
        )
        return self._result(
            opportunity,
            attempt.state,
            tx_ref=attempt.tx_ref,
            actual_gas_used=confirmation.gas_used,
            realized_profit=realized,
        )
