"""
Unit tests for OpportunityDetector scoring, filtering and ranking.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from flash_arbitrage.config import DetectionConfig
from flash_arbitrage.detector import OpportunityDetector, opportunity_id
from flash_arbitrage.types import OpportunityStatus, PricePoint, PriceSnapshot

from conftest import make_snapshot


class TestTwoVenueScoring:
    def test_eth_two_venue_example(self, scenario_detection_config):
        """$2.22 spread on 10 ETH at 25 gwei clears gas."""
        snapshot = make_snapshot(
            "ETH", {"Uniswap V3": "3245.67", "SushiSwap": "3247.89"}, price="3245.67"
        )
        detector = OpportunityDetector(scenario_detection_config)

        [opp] = detector.detect([snapshot], Decimal("25"), cycle=1)

        assert opp.token == "ETH"
        assert opp.spread_pct == pytest.approx(Decimal("0.0684"), abs=Decimal("0.0001"))
        assert opp.gross_profit == pytest.approx(Decimal("22.2"), abs=Decimal("0.001"))
        assert opp.gas_cost_usd == pytest.approx(Decimal("12.17"), abs=Decimal("0.01"))
        assert opp.net_profit == opp.gross_profit - opp.gas_cost_usd
        assert opp.net_profit > 0
        assert opp.buy_venue == "Uniswap V3"
        assert opp.sell_venue == "SushiSwap"
        assert opp.status is OpportunityStatus.ACTIVE

    def test_venues_paired_in_lexicographic_order(self, scenario_detection_config, eth_snapshot):
        detector = OpportunityDetector(scenario_detection_config)
        [opp] = detector.detect([eth_snapshot], Decimal("25"), cycle=7)

        assert (opp.venue_a, opp.venue_b) == ("SushiSwap", "Uniswap V3")
        assert opp.id == "ETH-SushiSwap-Uniswap V3-7"
        assert opp.id == opportunity_id("ETH", "SushiSwap", "Uniswap V3", 7)

    def test_ids_differ_across_cycles(self, scenario_detection_config, eth_snapshot):
        detector = OpportunityDetector(scenario_detection_config)
        [first] = detector.detect([eth_snapshot], Decimal("25"), cycle=1)
        [second] = detector.detect([eth_snapshot], Decimal("25"), cycle=2)
        assert first.id != second.id

    def test_carries_asset_address_and_latest_observation(self, scenario_detection_config):
        snapshot = PriceSnapshot(
            token="ETH",
            base_address="0xabc",
            price=Decimal("100"),
            change_24h=Decimal("0"),
            volume_24h=Decimal("0"),
            venues={
                "A": PricePoint("A", Decimal("100"), 10.0),
                "B": PricePoint("B", Decimal("101"), 12.5),
            },
        )
        [opp] = OpportunityDetector(scenario_detection_config).detect(
            [snapshot], Decimal("1")
        )
        assert opp.base_address == "0xabc"
        assert opp.discovered_at == 12.5


class TestFiltering:
    def test_single_venue_yields_nothing(self, scenario_detection_config):
        snapshot = make_snapshot("ETH", {"coingecko": "3245.67"})
        detector = OpportunityDetector(scenario_detection_config)
        assert detector.detect([snapshot], Decimal("25")) == []

    def test_equal_prices_yield_nothing(self, scenario_detection_config):
        snapshot = make_snapshot("ETH", {"A": "100", "B": "100"})
        detector = OpportunityDetector(scenario_detection_config)
        assert detector.detect([snapshot], Decimal("1")) == []

    def test_spread_below_minimum_is_dropped(self):
        config = DetectionConfig(
            min_spread_pct=Decimal("0.1"),
            trade_size=Decimal("10"),
            gas_units_estimate=1,
            min_net_profit_usd=Decimal("-1000"),
        )
        snapshot = make_snapshot("ETH", {"A": "3245.67", "B": "3247.89"})
        assert OpportunityDetector(config).detect([snapshot], Decimal("1")) == []

    def test_gas_heavy_spread_is_dropped(self, scenario_detection_config):
        """Positive spread but gas exceeds gross."""
        detector = OpportunityDetector(scenario_detection_config)
        snapshot = make_snapshot(
            "ETH", {"Uniswap V3": "3245.67", "SushiSwap": "3247.89"}, price="3245.67"
        )
        assert detector.detect([snapshot], Decimal("100")) == []

    def test_net_profit_floor_is_inclusive(self):
        config = DetectionConfig(
            min_spread_pct=Decimal("0"),
            trade_size=Decimal("1"),
            gas_units_estimate=1_000_000,
            min_net_profit_usd=Decimal("0"),
        )
        # gross = 1% of 1 unit at $100 = $1; gas = 1 gwei * 1M gas at $1000 = $1
        snapshot = make_snapshot("TKN", {"A": "100", "B": "101"}, price="1000")
        [opp] = OpportunityDetector(config).detect([snapshot], Decimal("1"))
        assert opp.net_profit == 0


class TestRanking:
    def test_sorted_by_net_profit_descending(self, scenario_detection_config):
        snapshots = [
            make_snapshot("LINK", {"A": "14.00", "B": "14.20"}, price="1"),
            make_snapshot("ETH", {"A": "3000", "B": "3030"}, price="1"),
            make_snapshot("WBTC", {"A": "60000", "B": "60300"}, price="1"),
        ]
        found = OpportunityDetector(scenario_detection_config).detect(
            snapshots, Decimal("1")
        )
        profits = [o.net_profit for o in found]
        assert profits == sorted(profits, reverse=True)
        assert found[0].token == "WBTC"

    def test_ties_keep_discovery_order(self, scenario_detection_config):
        snapshots = [
            make_snapshot("AAA", {"A": "100", "B": "101"}, price="1"),
            make_snapshot("BBB", {"A": "100", "B": "101"}, price="1"),
        ]
        found = OpportunityDetector(scenario_detection_config).detect(
            snapshots, Decimal("1")
        )
        assert [o.token for o in found] == ["AAA", "BBB"]

    def test_truncated_to_max_opportunities(self):
        config = DetectionConfig(
            min_spread_pct=Decimal("0"),
            trade_size=Decimal("1"),
            gas_units_estimate=1,
            min_net_profit_usd=Decimal("0"),
            max_opportunities=2,
        )
        snapshot = make_snapshot(
            "ETH", {"A": "100", "B": "101", "C": "102", "D": "103"}, price="1"
        )
        found = OpportunityDetector(config).detect([snapshot], Decimal("1"))
        assert len(found) == 2
        assert found[0].venue_a == "A" and found[0].venue_b == "D"

    def test_deterministic(self, scenario_detection_config, eth_snapshot):
        detector = OpportunityDetector(scenario_detection_config)
        assert detector.detect([eth_snapshot], Decimal("25"), 3) == detector.detect(
            [eth_snapshot], Decimal("25"), 3
        )


prices = st.decimals(min_value=1, max_value=100000, places=2)


class TestScoringProperties:
    @settings(max_examples=50, deadline=None)
    @given(
        venue_prices=st.lists(prices, min_size=2, max_size=5),
        gas_gwei=st.decimals(min_value=1, max_value=200, places=1),
    )
    def test_invariants_hold_for_every_opportunity(self, venue_prices, gas_gwei):
        config = DetectionConfig(
            min_spread_pct=Decimal("0"),
            trade_size=Decimal("1"),
            gas_units_estimate=21_000,
            min_net_profit_usd=Decimal("-1000000000"),
            max_opportunities=100,
        )
        snapshot = make_snapshot(
            "TKN",
            {f"venue{i}": p for i, p in enumerate(venue_prices)},
            price="1",
        )
        found = OpportunityDetector(config).detect([snapshot], gas_gwei)

        for opp in found:
            assert opp.net_profit == opp.gross_profit - opp.gas_cost_usd
            assert opp.spread_pct >= 0
            assert opp.venue_a < opp.venue_b
        profits = [o.net_profit for o in found]
        assert profits == sorted(profits, reverse=True)

    @settings(max_examples=50, deadline=None)
    @given(low=prices, bump=st.decimals(min_value="0.01", max_value=1000, places=2))
    def test_spread_matches_definition(self, low, bump):
        config = DetectionConfig(
            min_spread_pct=Decimal("0"),
            trade_size=Decimal("1"),
            gas_units_estimate=1,
            min_net_profit_usd=Decimal("-1000000000"),
        )
        high = low + bump
        snapshot = make_snapshot("TKN", {"A": high, "B": low}, price="1")
        [opp] = OpportunityDetector(config).detect([snapshot], Decimal("1"))
        assert opp.spread_pct == (high - low) / low * 100
        assert opp.buy_venue == "B"
