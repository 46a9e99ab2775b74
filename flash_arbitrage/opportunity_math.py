"""
Single source of truth for opportunity math calculations.

All profit calculations use Decimal for precision. The detector, the
orchestrator and the ledger summary all go through these helpers so the
numbers logged at detection time match the numbers recorded at settlement.

Conversion policy:
- Internal: Decimal with 50 digits precision
- Gas prices are carried in gwei (Decimal) or wei (int); use the helpers to convert
- Percent and basis-point scaling goes through HUNDRED and BPS_DENOMINATOR
"""

from decimal import Decimal, getcontext
from typing import Optional

getcontext().prec = 50

HUNDRED = Decimal("100")
BPS_DENOMINATOR = Decimal("10000")
WEI_PER_GWEI = Decimal(10) ** 9


# ============================================================================
# Conversion helpers
# ============================================================================


def gwei_to_wei(gwei: Decimal) -> int:
    """Convert gwei to integer wei, truncating sub-wei dust."""
    return int(Decimal(gwei) * WEI_PER_GWEI)


def wei_to_gwei(wei: int) -> Decimal:
    return Decimal(wei) / WEI_PER_GWEI


def to_base_units(amount: Decimal, decimals: int = 18) -> int:
    """Convert a token amount to integer base units (e.g. ether -> wei)."""
    return int(Decimal(amount) * (Decimal(10) ** decimals))


def from_base_units(amount: int, decimals: int = 18) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)


# ============================================================================
# Core computations
# ============================================================================


def spread_pct(price_a: Decimal, price_b: Decimal) -> Decimal:
    """
    Relative spread between two venue prices.

    spread_pct = |price_a - price_b| / min(price_a, price_b) * 100
    """
    low = min(price_a, price_b)
    if low <= 0:
        raise ValueError(f"Prices must be positive, got {price_a} and {price_b}")
    return abs(price_a - price_b) / low * HUNDRED


def gross_profit(spread: Decimal, trade_size: Decimal, low_price: Decimal) -> Decimal:
    """Gross profit in USD for buying trade_size units at the low price."""
    return spread / HUNDRED * trade_size * low_price


def gas_cost_usd(
    gas_price_gwei: Decimal, gas_units: int, token_price_usd: Decimal
) -> Decimal:
    """
    Estimated gas cost in USD.

    The gas token is priced with the arbitraged token's own USD price. This is
    a modeling simplification kept from the dashboard calculator: it is exact
    only when the traded token is the chain's gas asset.
    """
    return Decimal(gas_price_gwei) * Decimal(gas_units) * token_price_usd / WEI_PER_GWEI


def min_profit_after_slippage(net_profit: Decimal, slippage_bps: int) -> Decimal:
    """Net profit scaled down by the configured slippage tolerance."""
    return net_profit * (BPS_DENOMINATOR - Decimal(slippage_bps)) / BPS_DENOMINATOR


def realized_profit_usd(
    gas_used: int,
    effective_gas_price_wei: int,
    token_price_usd: Decimal,
    estimated_gross_profit: Decimal,
    reported_profit_units: Optional[Decimal] = None,
) -> Decimal:
    """
    Profit realized by a settled execution, net of the gas actually burned.

    Args:
        gas_used: Gas units consumed by the transaction
        effective_gas_price_wei: Price paid per gas unit
        token_price_usd: Token USD price used for both profit and gas conversion
        estimated_gross_profit: Detector's gross profit, used when the
            settlement did not report a profit
        reported_profit_units: Settlement-reported profit in asset units

    Returns:
        Realized profit in USD
    """
    actual_gas_usd = gas_cost_usd(
        wei_to_gwei(effective_gas_price_wei), gas_used, token_price_usd
    )
    if reported_profit_units is not None:
        gross = Decimal(reported_profit_units) * token_price_usd
    else:
        gross = estimated_gross_profit
    return gross - actual_gas_usd
