"""
Dependency injection interfaces for the pipeline's external collaborators.

Price feeds, gas telemetry, the risk authority and the settlement contract are
all consumed through these protocols so each can be replaced by a test double.
A time provider is injected the same way to keep timestamps reproducible.
"""

import time
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Protocol, runtime_checkable

from .types import (
    Confirmation,
    ExecutionRequest,
    GasQuote,
    RiskDecision,
    RiskStatus,
    SubmissionReceipt,
    TokenQuote,
)


@runtime_checkable
class TimeProvider(Protocol):
    """Protocol for time-related operations."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        ...

    def monotonic(self) -> float:
        """Monotonic clock for measuring durations."""
        ...


class SystemTimeProvider:
    """Production time provider using system time."""

    def current_timestamp(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()


class DeterministicTimeProvider:
    """Deterministic time provider for testing."""

    def __init__(self, start_time: float = 1700000000.0):
        self._current_time = start_time

    def current_timestamp(self) -> float:
        return self._current_time

    def monotonic(self) -> float:
        return self._current_time

    def advance_time(self, seconds: float) -> None:
        """Manually advance time by specified seconds."""
        self._current_time += seconds

    def set_time(self, timestamp: float) -> None:
        self._current_time = timestamp


@runtime_checkable
class PriceSource(Protocol):
    """One external price API behind a uniform batch contract."""

    name: str

    async def fetch_prices(self, tokens: Iterable[str]) -> Dict[str, TokenQuote]:
        """
        Fetch quotes for a batch of token symbols.

        Missing tokens are simply absent from the result. Raises
        SourceUnavailableError when the source cannot answer at all.
        """
        ...


@runtime_checkable
class VenuePriceSource(Protocol):
    """Best-effort source of per-venue prices for a batch of tokens."""

    name: str

    async def fetch_venue_prices(
        self, tokens: Mapping[str, str]
    ) -> Dict[str, Dict[str, Decimal]]:
        """Map of symbol -> {venue: price}, given symbol -> token address."""
        ...


@runtime_checkable
class GasTelemetry(Protocol):
    """Gas/network telemetry service."""

    async def fetch_gas(self) -> GasQuote:
        ...


@runtime_checkable
class RiskAuthority(Protocol):
    """External component approving trades against per-actor daily limits."""

    async def authorize(
        self,
        actor: str,
        trade_size: Decimal,
        expected_profit: Decimal,
        slippage_bps: int,
    ) -> RiskDecision:
        ...

    async def status(self, actor: str) -> RiskStatus:
        ...


@runtime_checkable
class SettlementClient(Protocol):
    """Signed-transaction interface toward the settlement contract."""

    async def submit(self, request: ExecutionRequest, actor: str) -> SubmissionReceipt:
        ...

    async def await_confirmation(self, tx_ref: str) -> Confirmation:
        ...
