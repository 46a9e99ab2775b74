"""
Shared fixtures: in-memory collaborators and snapshot builders.

Every external collaborator of the pipeline (price APIs, gas telemetry, risk
authority, settlement contract) has a fake here so tests never touch the
network.
"""

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from flash_arbitrage.config import DetectionConfig, ExecutionConfig, SchedulerConfig
from flash_arbitrage.exceptions import SourceUnavailableError
from flash_arbitrage.interfaces import DeterministicTimeProvider
from flash_arbitrage.types import (
    Confirmation,
    GasQuote,
    PricePoint,
    PriceSnapshot,
    RiskDecision,
    RiskStatus,
    SubmissionReceipt,
    TokenQuote,
)

ETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
ACTOR = "0x00000000000000000000000000000000000000A1"


class FakePriceSource:
    """Returns canned quotes, raises, hangs, or returns nothing."""

    def __init__(
        self,
        name: str,
        prices: Optional[Dict[str, object]] = None,
        venues: Optional[Dict[str, Dict[str, object]]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        observed_at: float = 1700000000.0,
    ):
        self.name = name
        self.prices = {k: Decimal(str(v)) for k, v in (prices or {}).items()}
        self.venues = venues or {}
        self.error = error
        self.delay = delay
        self.observed_at = observed_at
        self.calls: List[List[str]] = []

    async def fetch_prices(self, tokens):
        self.calls.append(list(tokens))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {
            symbol: TokenQuote(
                symbol=symbol,
                price=self.prices[symbol],
                change_24h=Decimal("1.5"),
                volume_24h=Decimal("1000000"),
                observed_at=self.observed_at,
                venues={
                    v: Decimal(str(p)) for v, p in self.venues.get(symbol, {}).items()
                },
            )
            for symbol in tokens
            if symbol in self.prices
        }


class FakeVenueSource:
    def __init__(self, venues=None, error: Optional[Exception] = None):
        self.name = "venues"
        self.venues = venues or {}
        self.error = error
        self.calls = []

    async def fetch_venue_prices(self, tokens):
        self.calls.append(dict(tokens))
        if self.error is not None:
            raise self.error
        return {
            symbol: {v: Decimal(str(p)) for v, p in by_venue.items()}
            for symbol, by_venue in self.venues.items()
            if symbol in tokens
        }


class FakeGasTelemetry:
    def __init__(self, gas_price_wei: int = 25_000_000_000, block_number: int = 19_000_000):
        self.gas_price_wei = gas_price_wei
        self.block_number = block_number
        self.error: Optional[Exception] = None
        self.calls = 0

    async def fetch_gas(self) -> GasQuote:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return GasQuote(self.gas_price_wei, self.block_number, 1700000000.0)


class FakeRiskAuthority:
    def __init__(self, allowed: bool = True, error: Optional[Exception] = None):
        self.allowed = allowed
        self.error = error
        self.calls = []

    async def authorize(self, actor, trade_size, expected_profit, slippage_bps):
        self.calls.append((actor, trade_size, expected_profit, slippage_bps))
        if self.error is not None:
            raise self.error
        return RiskDecision(
            allowed=self.allowed,
            remaining_daily_allowance=Decimal("900"),
            current_daily_loss=Decimal("100"),
            reason="" if self.allowed else "daily loss limit reached",
        )

    async def status(self, actor):
        return RiskStatus(Decimal("100"), Decimal("900"), 3, self.allowed)


class FakeSettlement:
    """Records submissions; outcome is configured per instance."""

    def __init__(
        self,
        tx_ref: str = "0xabc123",
        accepted: bool = True,
        succeeded: bool = True,
        gas_used: int = 300_000,
        effective_gas_price_wei: int = 25_000_000_000,
        profit: Optional[Decimal] = None,
        submit_error: Optional[Exception] = None,
        confirm_error: Optional[Exception] = None,
        confirm_delay: float = 0.0,
    ):
        self.tx_ref = tx_ref
        self.accepted = accepted
        self.succeeded = succeeded
        self.gas_used = gas_used
        self.effective_gas_price_wei = effective_gas_price_wei
        self.profit = profit
        self.submit_error = submit_error
        self.confirm_error = confirm_error
        self.confirm_delay = confirm_delay
        self.submitted = []
        self.confirmed = []

    async def submit(self, request, actor):
        self.submitted.append((request, actor))
        if self.submit_error is not None:
            raise self.submit_error
        return SubmissionReceipt(tx_ref=self.tx_ref, accepted=self.accepted)

    async def await_confirmation(self, tx_ref):
        self.confirmed.append(tx_ref)
        if self.confirm_delay:
            await asyncio.sleep(self.confirm_delay)
        if self.confirm_error is not None:
            raise self.confirm_error
        return Confirmation(
            tx_ref=tx_ref,
            succeeded=self.succeeded,
            gas_used=self.gas_used,
            effective_gas_price_wei=self.effective_gas_price_wei,
            block_number=19_000_001,
            profit=self.profit,
        )


class ForbiddenSettlement:
    """Fails the test if the settlement layer is reached at all."""

    async def submit(self, request, actor):
        pytest.fail("settlement.submit must not be called")

    async def await_confirmation(self, tx_ref):
        pytest.fail("settlement.await_confirmation must not be called")


def make_snapshot(
    token: str,
    venues: Dict[str, object],
    price: Optional[object] = None,
    observed_at: float = 1700000000.0,
    base_address: str = ETH_ADDRESS,
) -> PriceSnapshot:
    points = {v: PricePoint(v, Decimal(str(p)), observed_at) for v, p in venues.items()}
    reference = Decimal(str(price)) if price is not None else min(
        p.price for p in points.values()
    ) if points else Decimal("1")
    return PriceSnapshot(
        token=token,
        base_address=base_address,
        price=reference,
        change_24h=Decimal("0"),
        volume_24h=Decimal("0"),
        venues=points,
    )


@pytest.fixture
def time_provider():
    return DeterministicTimeProvider(start_time=1700000000.0)


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def scenario_detection_config():
    """Thresholds under which the two-venue ETH example is profitable."""
    return DetectionConfig(
        min_spread_pct=Decimal("0.05"),
        trade_size=Decimal("10"),
        gas_units_estimate=150_000,
        min_net_profit_usd=Decimal("0"),
        max_opportunities=10,
    )


@pytest.fixture
def eth_snapshot():
    return make_snapshot(
        "ETH", {"Uniswap V3": "3245.67", "SushiSwap": "3247.89"}, price="3246.50"
    )


@pytest.fixture
def execution_config():
    return ExecutionConfig(
        submit_timeout_sec=1.0,
        confirmation_timeout_sec=1.0,
        risk_timeout_sec=1.0,
    )


@pytest.fixture
def scheduler_config():
    return SchedulerConfig(
        price_interval_sec=0.05,
        gas_interval_sec=0.05,
        price_cycle_timeout_sec=1.0,
        gas_cycle_timeout_sec=1.0,
        fallback_gas_price_gwei=Decimal("25"),
    )


@pytest.fixture
def fakes():
    """Namespace of fake collaborator classes."""

    class Fakes:
        PriceSource = FakePriceSource
        VenueSource = FakeVenueSource
        GasTelemetry = FakeGasTelemetry
        RiskAuthority = FakeRiskAuthority
        Settlement = FakeSettlement
        ForbiddenSettlement = ForbiddenSettlement
        Unavailable = SourceUnavailableError
        actor = ACTOR

    return Fakes
