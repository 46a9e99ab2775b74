"""
Consumer-facing surface of the pipeline.

Read accessors return the scheduler's current immutable state; the only
mutating entry point is submit_execution(). build_service() wires every
component from a MonitorConfig.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .config import MonitorConfig
from .detector import OpportunityDetector
from .exceptions import ConfigurationError, OpportunityNotFoundError
from .gas_oracle import GasOracle
from .interfaces import (
    GasTelemetry,
    PriceSource,
    RiskAuthority,
    SettlementClient,
    SystemTimeProvider,
    TimeProvider,
)
from .ledger import TransactionLedger
from .orchestrator import ExecutionOrchestrator
from .prices import CoinGeckoPriceSource, DexScreenerPriceSource, PriceAggregator
from .risk_gate import RiskGate
from .scheduler import PollingScheduler
from .types import (
    DataStatus,
    EmptyReason,
    ExecutionResult,
    LedgerEntry,
    Opportunity,
    PriceSnapshot,
    RiskStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceStatus:
    """What consumers need to tell fresh data from stale data, and why a list is empty."""

    data_status: DataStatus
    empty_reason: Optional[EmptyReason]
    age_seconds: Optional[float]
    cycle: int
    source: str
    venues_degraded: bool
    last_error: str
    consecutive_failures: int
    total_failures: int
    gas_degraded: bool
    skipped_price_ticks: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data_status": self.data_status.value,
            "empty_reason": self.empty_reason.value if self.empty_reason else None,
            "age_seconds": self.age_seconds,
            "cycle": self.cycle,
            "source": self.source,
            "venues_degraded": self.venues_degraded,
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "gas_degraded": self.gas_degraded,
            "skipped_price_ticks": self.skipped_price_ticks,
        }


class ArbitrageService:
    def __init__(
        self,
        scheduler: PollingScheduler,
        orchestrator: ExecutionOrchestrator,
        ledger: TransactionLedger,
        time_provider: Optional[TimeProvider] = None,
        closeables: Tuple[Any, ...] = (),
        config: Optional[MonitorConfig] = None,
    ):
        self.scheduler = scheduler
        self.config = config
        self.orchestrator = orchestrator
        self._ledger = ledger
        self.time_provider = time_provider or SystemTimeProvider()
        self._closeables = closeables

    # === READ ACCESSORS ===

    def current_snapshot(self) -> Tuple[PriceSnapshot, ...]:
        return self.scheduler.state.snapshots

    def current_opportunities(self) -> Tuple[Opportunity, ...]:
        return self.scheduler.state.opportunities

    def current_gas_price(self) -> Decimal:
        """Gas price in gwei used for scoring."""
        return self.scheduler.gas_oracle.gas_price_gwei

    def current_block_number(self) -> Optional[int]:
        return self.scheduler.gas_oracle.block_number

    def status(self) -> ServiceStatus:
        state = self.scheduler.state
        now = self.time_provider.current_timestamp()
        return ServiceStatus(
            data_status=state.data_status(now, self.scheduler.max_data_age_sec),
            empty_reason=state.empty_reason,
            age_seconds=state.age_seconds(now),
            cycle=state.cycle,
            source=state.source,
            venues_degraded=state.venues_degraded,
            last_error=state.last_error,
            consecutive_failures=state.consecutive_failures,
            total_failures=state.total_failures,
            gas_degraded=state.gas_degraded,
            skipped_price_ticks=state.skipped_price_ticks,
        )

    def ledger(self) -> List[LedgerEntry]:
        """Execution attempts, newest first."""
        return self._ledger.entries()

    def ledger_summary(self) -> Dict[str, Any]:
        return self._ledger.summary()

    # === EXECUTION ===

    async def submit_execution(self, opportunity_id: str, actor: str) -> ExecutionResult:
        """
        Execute one opportunity from the current list on behalf of `actor`.

        Raises:
            OpportunityNotFoundError: The id is not in the current list; no
                ledger entry is written
        """
        opportunities = self.scheduler.state.opportunities
        for opportunity in opportunities:
            if opportunity.id == opportunity_id:
                return await self.orchestrator.execute(opportunity, actor)
        raise OpportunityNotFoundError(opportunity_id, [o.id for o in opportunities])

    async def risk_status(self, actor: str) -> RiskStatus:
        return await self.orchestrator.risk_gate.status(actor)

    # === CONTRACT ADMINISTRATION ===

    def _token_config(self, symbol: str):
        if self.config is None:
            raise ConfigurationError("Token metadata requires a MonitorConfig")
        return self.config.token(symbol)

    def _settlement(self):
        settlement = self.orchestrator.settlement
        if settlement is None:
            raise ConfigurationError("No settlement client configured")
        return settlement

    async def contract_balance(self, symbol: str) -> Decimal:
        token = self._token_config(symbol)
        return await self._settlement().get_balance(token.address, token.decimals)

    async def withdraw_profits(self, symbol: str, amount: Decimal) -> str:
        token = self._token_config(symbol)
        return await self._settlement().withdraw_profits(
            token.address, amount, token.decimals
        )

    async def pause_contract(self) -> str:
        return await self._settlement().pause()

    async def unpause_contract(self) -> str:
        return await self._settlement().unpause()

    # === LIFECYCLE ===

    async def start(self) -> None:
        await self.scheduler.start()

    async def run_once(self) -> ServiceStatus:
        await self.scheduler.run_once()
        return self.status()

    async def close(self) -> None:
        await self.scheduler.stop()
        for resource in self._closeables:
            await resource.close()


def build_price_sources(
    config: MonitorConfig, time_provider: Optional[TimeProvider] = None
) -> Tuple[List[PriceSource], Optional[DexScreenerPriceSource]]:
    """Adapters in fallback order, plus the venue source if one is configured."""
    created: Dict[str, Any] = {}

    def make(kind: str):
        if kind not in created:
            if kind == "coingecko":
                created[kind] = CoinGeckoPriceSource(
                    config.price_sources, time_provider=time_provider
                )
            elif kind == "dexscreener":
                created[kind] = DexScreenerPriceSource(
                    config.price_sources,
                    config.token_addresses,
                    chain_id=config.chain.chain_id,
                    time_provider=time_provider,
                )
            else:
                raise ConfigurationError(f"Unknown price source '{kind}'")
        return created[kind]

    sources = [make(kind) for kind in config.price_sources.order]
    venue_source = None
    if config.price_sources.venue_source:
        venue_source = make(config.price_sources.venue_source)
    return sources, venue_source


def build_service(
    config: MonitorConfig,
    gas_telemetry: Optional[GasTelemetry] = None,
    risk_authority: Optional[RiskAuthority] = None,
    settlement: Optional[SettlementClient] = None,
    price_sources: Optional[List[PriceSource]] = None,
    venue_source=None,
    time_provider: Optional[TimeProvider] = None,
    metrics=None,
) -> ArbitrageService:
    """
    Wire the full pipeline.

    Price sources default to the configured HTTP adapters. Collaborators left
    as None degrade safely: no gas telemetry scores with the fallback price,
    no risk authority denies every execution, no settlement client rejects
    executions locally.
    """
    time_provider = time_provider or SystemTimeProvider()
    closeables: Tuple[Any, ...] = ()
    if price_sources is None:
        price_sources, venue_source = build_price_sources(config, time_provider)
        closeables = tuple({id(s): s for s in [*price_sources, venue_source] if s}.values())

    aggregator = PriceAggregator(
        price_sources,
        token_addresses=config.token_addresses,
        timeout_sec=config.price_sources.timeout_sec,
        venue_source=venue_source,
        venues=config.price_sources.venues,
        time_provider=time_provider,
        metrics=metrics,
    )
    gas_oracle = GasOracle(
        gas_telemetry,
        fallback_gas_price_gwei=config.scheduler.fallback_gas_price_gwei,
        timeout_sec=config.scheduler.gas_cycle_timeout_sec,
        multipliers=config.execution.gas_multipliers,
        custom_gas_price_gwei=config.execution.custom_gas_price_gwei,
    )
    scheduler = PollingScheduler(
        aggregator,
        OpportunityDetector(config.detection),
        gas_oracle,
        config.token_symbols,
        config=config.scheduler,
        time_provider=time_provider,
        metrics=metrics,
    )
    ledger = TransactionLedger(
        journal_path=config.observability.ledger_journal_path,
        time_provider=time_provider,
    )
    orchestrator = ExecutionOrchestrator(
        RiskGate(
            risk_authority,
            slippage_bps=config.execution.slippage_bps,
            timeout_sec=config.execution.risk_timeout_sec,
            metrics=metrics,
        ),
        settlement,
        gas_oracle,
        ledger,
        config=config.execution,
        time_provider=time_provider,
        metrics=metrics,
    )
    return ArbitrageService(
        scheduler,
        orchestrator,
        ledger,
        time_provider=time_provider,
        closeables=closeables,
        config=config,
    )
