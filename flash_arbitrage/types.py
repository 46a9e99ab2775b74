"""
Core data types for the price monitoring and execution pipeline.

All pipeline values are frozen dataclasses. Snapshots and opportunity lists
are replaced wholesale every refresh cycle, never mutated in place.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .exceptions import ValidationError
from .opportunity_math import wei_to_gwei


class OpportunityStatus(Enum):
    ACTIVE = "active"
    SUBMITTED = "submitted"
    SETTLED = "settled"
    REJECTED = "rejected"


class ExecutionState(Enum):
    """States of a single ExecutionOrchestrator invocation."""

    PENDING = "pending"
    RISK_CHECKED = "risk_checked"
    SUBMITTED = "submitted"
    SETTLED = "settled"
    REJECTED_LOCALLY = "rejected_locally"
    REJECTED_BY_RISK = "rejected_by_risk"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionState.SETTLED,
            ExecutionState.REJECTED_LOCALLY,
            ExecutionState.REJECTED_BY_RISK,
            ExecutionState.FAILED,
        )


class DataStatus(Enum):
    """Freshness of the data served to consumers."""

    NO_DATA = "no_data"
    FRESH = "fresh"
    STALE = "stale"


class EmptyReason(Enum):
    """Why the opportunity list is empty."""

    NO_DATA_YET = "no_data_yet"
    ALL_SOURCES_DOWN = "all_sources_down"
    BELOW_THRESHOLDS = "below_thresholds"


class GasStrategy(Enum):
    SLOW = "slow"
    STANDARD = "standard"
    FAST = "fast"
    CUSTOM = "custom"


@dataclass(frozen=True)
class PricePoint:
    """A single venue's price for a token at one moment."""

    venue: str
    price: Decimal
    observed_at: float

    def __post_init__(self):
        if not self.venue:
            raise ValidationError("PricePoint venue must be non-empty")
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, "price", Decimal(str(self.price)))
        if self.price <= 0:
            raise ValidationError(
                f"PricePoint price must be positive, got {self.price}",
                {"venue": self.venue},
            )


@dataclass(frozen=True)
class TokenQuote:
    """
    One token's entry in a price adapter response.

    Attributes:
        symbol: Token symbol (e.g., "ETH")
        price: Reference USD price reported by the source
        change_24h: 24h price change in percent
        volume_24h: 24h traded volume in USD
        venues: Optional venue -> price map when the source reports per-DEX prices
        observed_at: Unix timestamp of the observation
    """

    symbol: str
    price: Decimal
    change_24h: Decimal
    volume_24h: Decimal
    observed_at: float
    venues: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "venues", MappingProxyType(dict(self.venues)))


@dataclass(frozen=True)
class PriceSnapshot:
    """Per-token view of one refresh cycle: reference price plus venue prices."""

    token: str
    base_address: str
    price: Decimal
    change_24h: Decimal
    volume_24h: Decimal
    venues: Mapping[str, PricePoint]

    def __post_init__(self):
        for venue, point in self.venues.items():
            if venue != point.venue:
                raise ValidationError(
                    f"Venue key {venue!r} does not match PricePoint venue {point.venue!r}"
                )
        object.__setattr__(self, "venues", MappingProxyType(dict(self.venues)))

    @property
    def observed_at(self) -> float:
        """Latest observation time across venues."""
        if not self.venues:
            return 0.0
        return max(point.observed_at for point in self.venues.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "base_address": self.base_address,
            "price": str(self.price),
            "change_24h": str(self.change_24h),
            "volume_24h": str(self.volume_24h),
            "venues": {
                venue: {"price": str(p.price), "observed_at": p.observed_at}
                for venue, p in self.venues.items()
            },
        }


@dataclass(frozen=True)
class Opportunity:
    """
    A scored cross-venue arbitrage candidate.

    Invariants:
        net_profit == gross_profit - gas_cost_usd
        spread_pct == |price_a - price_b| / min(price_a, price_b) * 100
    """

    id: str
    token: str
    venue_a: str
    venue_b: str
    price_a: Decimal
    price_b: Decimal
    spread_pct: Decimal
    gross_profit: Decimal
    gas_cost_usd: Decimal
    net_profit: Decimal
    trade_size: Decimal
    discovered_at: float
    status: OpportunityStatus = OpportunityStatus.ACTIVE
    base_address: str = ""

    @property
    def buy_venue(self) -> str:
        """Venue quoting the lower price."""
        return self.venue_a if self.price_a <= self.price_b else self.venue_b

    @property
    def sell_venue(self) -> str:
        """Venue quoting the higher price."""
        return self.venue_b if self.price_a <= self.price_b else self.venue_a

    @property
    def low_price(self) -> Decimal:
        return min(self.price_a, self.price_b)

    def with_status(self, status: OpportunityStatus) -> "Opportunity":
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "token": self.token,
            "venue_a": self.venue_a,
            "venue_b": self.venue_b,
            "price_a": str(self.price_a),
            "price_b": str(self.price_b),
            "spread_pct": str(self.spread_pct),
            "gross_profit": str(self.gross_profit),
            "gas_cost_usd": str(self.gas_cost_usd),
            "net_profit": str(self.net_profit),
            "trade_size": str(self.trade_size),
            "discovered_at": self.discovered_at,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class RiskDecision:
    """Fresh answer from the risk authority for one opportunity."""

    allowed: bool
    remaining_daily_allowance: Decimal
    current_daily_loss: Decimal
    reason: str = ""


@dataclass(frozen=True)
class RiskStatus:
    """Running per-actor state reported by the risk authority."""

    current_daily_loss: Decimal
    remaining_daily_limit: Decimal
    trade_count: int
    can_trade: bool


@dataclass(frozen=True)
class GasQuote:
    """Recommended gas price and chain head from the telemetry service."""

    gas_price_wei: int
    block_number: int
    observed_at: float

    @property
    def gas_price_gwei(self) -> Decimal:
        return wei_to_gwei(self.gas_price_wei)


@dataclass(frozen=True)
class ExecutionRequest:
    """
    Payload sent to the settlement contract.

    Attributes:
        opportunity_id: Originating opportunity
        token: Token symbol being arbitraged
        asset: Token contract address (flash-loan asset)
        amount: Notional amount in asset units
        venues: Ordered venue list (buy venue first)
        min_profit: Minimum acceptable profit after slippage, in asset units
        gas_limit: Fixed gas limit for the transaction
        gas_price_wei: Gas price chosen by the configured strategy
    """

    opportunity_id: str
    token: str
    asset: str
    amount: Decimal
    venues: Tuple[str, ...]
    min_profit: Decimal
    gas_limit: int
    gas_price_wei: int


@dataclass(frozen=True)
class SubmissionReceipt:
    tx_ref: str
    accepted: bool


@dataclass(frozen=True)
class Confirmation:
    """
    Settlement outcome observed on chain.

    profit is the settlement-reported profit in asset units, None when the
    contract did not emit it.
    """

    tx_ref: str
    succeeded: bool
    gas_used: int
    effective_gas_price_wei: int = 0
    block_number: Optional[int] = None
    profit: Optional[Decimal] = None


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of exactly one execute() call. Empty tx_ref: never reached settlement."""

    opportunity_id: str
    succeeded: bool
    state: ExecutionState
    tx_ref: str = ""
    actual_gas_used: int = 0
    realized_profit: Decimal = Decimal("0")
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunity_id": self.opportunity_id,
            "tx_ref": self.tx_ref,
            "succeeded": self.succeeded,
            "state": self.state.value,
            "actual_gas_used": self.actual_gas_used,
            "realized_profit": str(self.realized_profit),
            "error": self.error,
        }


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable record of one execution attempt."""

    sequence: int
    recorded_at: float
    opportunity: Opportunity
    result: ExecutionResult

    @property
    def status(self) -> ExecutionState:
        return self.result.state

    @property
    def tx_ref(self) -> str:
        return self.result.tx_ref

    @property
    def realized_profit(self) -> Decimal:
        return self.result.realized_profit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "recorded_at": self.recorded_at,
            "opportunity": self.opportunity.to_dict(),
            "result": self.result.to_dict(),
        }
