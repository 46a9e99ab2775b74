"""
Polling scheduler driving price refresh, detection and gas refresh.

Price and gas run on independent cadences. Each tick is launched as its own
task; a tick that fires while the previous cycle of the same kind is still in
flight is skipped and counted. The scheduler is the single writer of
PipelineState and replaces it wholesale on every change, so readers always see
one consistent cycle.

On a failed price cycle the last good snapshot and opportunity list are kept
and the state is flagged degraded. The scheduler keeps ticking at the normal
cadence; there is no backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, Sequence, Set, Tuple

from .config import SchedulerConfig
from .detector import OpportunityDetector
from .gas_oracle import GasOracle
from .interfaces import SystemTimeProvider, TimeProvider
from .prices.aggregator import PriceAggregator
from .types import (
    DataStatus,
    EmptyReason,
    GasQuote,
    Opportunity,
    PriceSnapshot,
)

logger = logging.getLogger(__name__)

# snapshots older than this many price intervals are reported stale
STALE_AFTER_INTERVALS = 3


@dataclass(frozen=True)
class PipelineState:
    """
    Immutable view of everything the scheduler has produced so far.

    Attributes:
        snapshots: Last successful snapshot batch
        opportunities: Ranked list derived from exactly `snapshots`
        cycle: Number of successful price cycles
        source: Adapter that supplied `snapshots`
        venues_degraded: Venue source failed during the last good cycle
        last_success_at: Completion time of the last good price cycle
        degraded: The most recent price cycle failed
        last_error: Error of the most recent failed price cycle
        consecutive_failures: Failed price cycles since the last success
        total_failures: Failed price cycles since start
        gas_quote: Latest gas reading
        gas_degraded: The most recent gas refresh failed
        gas_failures: Failed gas refreshes since start
        skipped_price_ticks: Price ticks skipped due to overlap
        skipped_gas_ticks: Gas ticks skipped due to overlap
    """

    snapshots: Tuple[PriceSnapshot, ...] = ()
    opportunities: Tuple[Opportunity, ...] = ()
    cycle: int = 0
    source: str = ""
    venues_degraded: bool = False
    last_success_at: Optional[float] = None
    degraded: bool = False
    last_error: str = ""
    consecutive_failures: int = 0
    total_failures: int = 0
    gas_quote: Optional[GasQuote] = None
    gas_degraded: bool = False
    gas_failures: int = 0
    skipped_price_ticks: int = 0
    skipped_gas_ticks: int = 0

    def age_seconds(self, now: float) -> Optional[float]:
        if self.last_success_at is None:
            return None
        return max(0.0, now - self.last_success_at)

    def data_status(self, now: float, max_age_sec: Optional[float] = None) -> DataStatus:
        if self.last_success_at is None:
            return DataStatus.NO_DATA
        if self.degraded:
            return DataStatus.STALE
        if max_age_sec is not None and self.age_seconds(now) > max_age_sec:
            return DataStatus.STALE
        return DataStatus.FRESH

    @property
    def empty_reason(self) -> Optional[EmptyReason]:
        """Why the opportunity list is empty, or None when it is not."""
        if self.opportunities:
            return None
        if self.degraded:
            return EmptyReason.ALL_SOURCES_DOWN
        if self.last_success_at is None:
            return EmptyReason.NO_DATA_YET
        return EmptyReason.BELOW_THRESHOLDS


class PollingScheduler:
    def __init__(
        self,
        aggregator: PriceAggregator,
        detector: OpportunityDetector,
        gas_oracle: GasOracle,
        tokens: Sequence[str],
        config: Optional[SchedulerConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        metrics=None,
    ):
        self.config = config or SchedulerConfig()
        if self.config.price_interval_sec <= 0 or self.config.gas_interval_sec <= 0:
            raise ValueError("Scheduler intervals must be > 0")
        if not tokens:
            raise ValueError("Scheduler needs at least one token")
        self.aggregator = aggregator
        self.detector = detector
        self.gas_oracle = gas_oracle
        self.tokens = tuple(tokens)
        self.time_provider = time_provider or SystemTimeProvider()
        self.metrics = metrics

        self._state = PipelineState()
        self._price_in_flight = False
        self._gas_in_flight = False
        self._loops: Set[asyncio.Task] = set()
        self._ticks: Set[asyncio.Task] = set()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def running(self) -> bool:
        return bool(self._loops)

    @property
    def max_data_age_sec(self) -> float:
        return self.config.price_interval_sec * STALE_AFTER_INTERVALS

    def data_status(self) -> DataStatus:
        return self._state.data_status(
            self.time_provider.current_timestamp(), self.max_data_age_sec
        )

    def _update(self, **changes) -> PipelineState:
        self._state = replace(self._state, **changes)
        return self._state

    async def refresh_prices_once(self) -> bool:
        """
        Run one price cycle: aggregate, detect, publish.

        Returns False when the cycle was skipped or failed.
        """
        if self._price_in_flight:
            self._update(skipped_price_ticks=self._state.skipped_price_ticks + 1)
            logger.debug("Price refresh still in flight, skipping tick")
            if self.metrics:
                self.metrics.record_skipped_tick("price")
            return False

        self._price_in_flight = True
        started = self.time_provider.monotonic()
        try:
            refresh = await asyncio.wait_for(
                self.aggregator.refresh(self.tokens),
                timeout=self.config.price_cycle_timeout_sec,
            )
        except asyncio.TimeoutError:
            self._record_price_failure(
                f"price cycle timed out after {self.config.price_cycle_timeout_sec}s"
            )
            return False
        except Exception as e:
            self._record_price_failure(str(e))
            return False
        finally:
            self._price_in_flight = False

        cycle = self._state.cycle + 1
        gas_gwei = self.gas_oracle.gas_price_gwei
        opportunities = self.detector.detect(refresh.snapshots, gas_gwei, cycle=cycle)
        self._update(
            snapshots=refresh.snapshots,
            opportunities=tuple(opportunities),
            cycle=cycle,
            source=refresh.source,
            venues_degraded=refresh.venues_degraded,
            last_success_at=refresh.completed_at
            or self.time_provider.current_timestamp(),
            degraded=False,
            last_error="",
            consecutive_failures=0,
        )

        logger.info(
            f"PRICE_CYCLE: {{'cycle': {cycle}, 'source': '{refresh.source}', "
            f"'tokens': {len(refresh.snapshots)}, 'opportunities': {len(opportunities)}, "
            f"'gas_gwei': '{gas_gwei}', 'venues_degraded': {refresh.venues_degraded}}}"
        )
        if self.metrics:
            self.metrics.record_price_refresh(
                "success", self.time_provider.monotonic() - started
            )
            self.metrics.update_opportunity_count(len(opportunities))
            self.metrics.update_data_age(0.0)
        return True

    def _record_price_failure(self, error: str) -> None:
        state = self._update(
            degraded=True,
            last_error=error,
            consecutive_failures=self._state.consecutive_failures + 1,
            total_failures=self._state.total_failures + 1,
        )
        logger.warning(
            f"PRICE_CYCLE_FAILED: {{'consecutive': {state.consecutive_failures}, "
            f"'total': {state.total_failures}, 'error': '{error}', "
            f"'serving_cycle': {state.cycle}}}"
        )
        if self.metrics:
            self.metrics.record_price_refresh("failure")
            age = state.age_seconds(self.time_provider.current_timestamp())
            if age is not None:
                self.metrics.update_data_age(age)

    async def refresh_gas_once(self) -> bool:
        """Run one gas refresh. Returns False when skipped or failed."""
        if self._gas_in_flight:
            self._update(skipped_gas_ticks=self._state.skipped_gas_ticks + 1)
            logger.debug("Gas refresh still in flight, skipping tick")
            if self.metrics:
                self.metrics.record_skipped_tick("gas")
            return False

        self._gas_in_flight = True
        try:
            quote = await asyncio.wait_for(
                self.gas_oracle.refresh(), timeout=self.config.gas_cycle_timeout_sec
            )
        except Exception as e:
            # asyncio.TimeoutError included
            error = str(e) or type(e).__name__
            state = self._update(
                gas_degraded=True, gas_failures=self._state.gas_failures + 1
            )
            logger.warning(
                f"GAS_REFRESH_FAILED: {{'total': {state.gas_failures}, "
                f"'error': '{error}'}}"
            )
            if self.metrics:
                self.metrics.record_gas_refresh("failure")
            return False
        finally:
            self._gas_in_flight = False

        self._update(gas_quote=quote, gas_degraded=False)
        if self.metrics:
            self.metrics.record_gas_refresh("success", float(quote.gas_price_gwei))
        return True

    def _spawn(self, coro: Awaitable) -> None:
        task = asyncio.ensure_future(coro)
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _run_periodic(
        self, name: str, interval: float, tick: Callable[[], Awaitable[bool]]
    ) -> None:
        logger.info(f"Starting {name} loop every {interval}s")
        while True:
            self._spawn(tick())
            await asyncio.sleep(interval)

    async def start(self) -> None:
        """Start both periodic loops. Returns immediately."""
        if self.running:
            return
        loops = [("price", self.config.price_interval_sec, self.refresh_prices_once)]
        if self.gas_oracle.has_telemetry:
            loops.append(("gas", self.config.gas_interval_sec, self.refresh_gas_once))
        else:
            logger.warning(
                f"No gas telemetry; scoring with fallback "
                f"{self.gas_oracle.fallback_gas_price_gwei} gwei"
            )
        for name, interval, tick in loops:
            task = asyncio.create_task(self._run_periodic(name, interval, tick))
            self._loops.add(task)

    async def stop(self) -> None:
        """Cancel the loops and any tick still in flight."""
        tasks = list(self._loops) + list(self._ticks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loops.clear()
        self._ticks.clear()
        logger.info("Scheduler stopped")

    async def run_once(self) -> PipelineState:
        """Gas first, then prices, so the single cycle scores with a real reading."""
        if self.gas_oracle.has_telemetry:
            await self.refresh_gas_once()
        await self.refresh_prices_once()
        return self._state
