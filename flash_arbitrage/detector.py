"""
Cross-venue opportunity detection.

Pure scoring over one price snapshot batch: no I/O and no clock, so equal
inputs always produce the same ordered output.
"""

import logging
from itertools import combinations
from decimal import Decimal
from typing import List, Sequence

from .config import DetectionConfig
from .opportunity_math import gas_cost_usd, gross_profit, spread_pct
from .types import Opportunity, OpportunityStatus, PriceSnapshot

logger = logging.getLogger(__name__)


def opportunity_id(token: str, venue_a: str, venue_b: str, cycle: int) -> str:
    """Stable within one cycle for a (token, venue pair), distinct across cycles."""
    return f"{token}-{venue_a}-{venue_b}-{cycle}"


class OpportunityDetector:
    """
    Enumerate venue pairs per token, score them net of gas, filter and rank.

    Venues are paired in lexicographic order, so venue_a < venue_b. The ranked
    list is sorted by net profit descending; equal net profits keep discovery
    order (token order of the input, then venue-pair order).
    """

    def __init__(self, config: DetectionConfig):
        self.config = config

    def _score_pair(
        self,
        snapshot: PriceSnapshot,
        venue_a: str,
        venue_b: str,
        gas_price_gwei: Decimal,
        cycle: int,
    ):
        point_a = snapshot.venues[venue_a]
        point_b = snapshot.venues[venue_b]
        if point_a.price <= 0 or point_b.price <= 0:
            return None

        spread = spread_pct(point_a.price, point_b.price)
        if spread < self.config.min_spread_pct:
            return None

        low = min(point_a.price, point_b.price)
        gross = gross_profit(spread, self.config.trade_size, low)
        gas_usd = gas_cost_usd(
            gas_price_gwei, self.config.gas_units_estimate, snapshot.price
        )
        net = gross - gas_usd
        if net < self.config.min_net_profit_usd:
            return None

        return Opportunity(
            id=opportunity_id(snapshot.token, venue_a, venue_b, cycle),
            token=snapshot.token,
            venue_a=venue_a,
            venue_b=venue_b,
            price_a=point_a.price,
            price_b=point_b.price,
            spread_pct=spread,
            gross_profit=gross,
            gas_cost_usd=gas_usd,
            net_profit=net,
            trade_size=self.config.trade_size,
            discovered_at=max(point_a.observed_at, point_b.observed_at),
            status=OpportunityStatus.ACTIVE,
            base_address=snapshot.base_address,
        )

    def detect(
        self,
        snapshots: Sequence[PriceSnapshot],
        gas_price_gwei: Decimal,
        cycle: int = 0,
    ) -> List[Opportunity]:
        """
        Score every venue pair of every snapshot.

        Args:
            snapshots: One consistent refresh batch
            gas_price_gwei: Latest known gas price
            cycle: Refresh cycle number, folded into opportunity ids

        Returns:
            At most max_opportunities opportunities, best net profit first
        """
        gas_price_gwei = Decimal(gas_price_gwei)
        found: List[Opportunity] = []
        for snapshot in snapshots:
            venues = sorted(snapshot.venues)
            if len(venues) < 2:
                continue
            for venue_a, venue_b in combinations(venues, 2):
                opportunity = self._score_pair(
                    snapshot, venue_a, venue_b, gas_price_gwei, cycle
                )
                if opportunity is not None:
                    found.append(opportunity)

        # sorted() is stable: ties keep discovery order
        ranked = sorted(found, key=lambda o: o.net_profit, reverse=True)
        return ranked[: self.config.max_opportunities]
