"""
Unit tests for flash_arbitrage/opportunity_math.py
"""

import unittest
from decimal import Decimal

from flash_arbitrage.opportunity_math import (
    from_base_units,
    gas_cost_usd,
    gross_profit,
    gwei_to_wei,
    min_profit_after_slippage,
    realized_profit_usd,
    spread_pct,
    to_base_units,
    wei_to_gwei,
)


class TestConversionHelpers(unittest.TestCase):
    def test_gwei_wei(self):
        self.assertEqual(gwei_to_wei(Decimal("25")), 25_000_000_000)
        self.assertEqual(gwei_to_wei(Decimal("0.5")), 500_000_000)
        self.assertEqual(wei_to_gwei(30_000_000_000), Decimal("30"))

    def test_base_units(self):
        self.assertEqual(to_base_units(Decimal("1.5"), 6), 1_500_000)
        self.assertEqual(to_base_units(Decimal("10"), 18), 10 * 10**18)
        self.assertEqual(from_base_units(2_500_000, 6), Decimal("2.5"))


class TestCoreComputations(unittest.TestCase):
    def test_spread_is_relative_to_lower_price(self):
        self.assertEqual(spread_pct(Decimal("100"), Decimal("101")), Decimal("1"))
        self.assertEqual(spread_pct(Decimal("101"), Decimal("100")), Decimal("1"))

    def test_spread_of_equal_prices_is_zero(self):
        self.assertEqual(spread_pct(Decimal("5"), Decimal("5")), Decimal("0"))

    def test_spread_rejects_non_positive_prices(self):
        with self.assertRaises(ValueError):
            spread_pct(Decimal("0"), Decimal("1"))

    def test_gross_profit(self):
        # 1% of 10 units at $100
        self.assertEqual(
            gross_profit(Decimal("1"), Decimal("10"), Decimal("100")), Decimal("10")
        )

    def test_gas_cost_usd(self):
        # 25 gwei * 150k gas = 0.00375 ETH
        cost = gas_cost_usd(Decimal("25"), 150_000, Decimal("3245.67"))
        self.assertEqual(cost, Decimal("0.00375") * Decimal("3245.67"))

    def test_min_profit_after_slippage(self):
        self.assertEqual(
            min_profit_after_slippage(Decimal("100"), 50), Decimal("99.5")
        )
        self.assertEqual(min_profit_after_slippage(Decimal("100"), 0), Decimal("100"))


class TestRealizedProfit(unittest.TestCase):
    def test_uses_estimate_when_profit_not_reported(self):
        realized = realized_profit_usd(
            gas_used=100_000,
            effective_gas_price_wei=10_000_000_000,
            token_price_usd=Decimal("2000"),
            estimated_gross_profit=Decimal("50"),
        )
        # 10 gwei * 100k gas = 0.001 ETH = $2
        self.assertEqual(realized, Decimal("48"))

    def test_prefers_reported_profit(self):
        realized = realized_profit_usd(
            gas_used=100_000,
            effective_gas_price_wei=10_000_000_000,
            token_price_usd=Decimal("2000"),
            estimated_gross_profit=Decimal("50"),
            reported_profit_units=Decimal("0.01"),
        )
        self.assertEqual(realized, Decimal("18"))

    def test_can_be_negative(self):
        realized = realized_profit_usd(
            gas_used=500_000,
            effective_gas_price_wei=100_000_000_000,
            token_price_usd=Decimal("2000"),
            estimated_gross_profit=Decimal("10"),
        )
        self.assertLess(realized, 0)


if __name__ == "__main__":
    unittest.main()
