"""
Tests for ArbitrageService: read accessors, status reporting, execution
submission and the admin pass-throughs.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from flash_arbitrage.config import build_config
from flash_arbitrage.exceptions import ConfigurationError, OpportunityNotFoundError
from flash_arbitrage.prices import CoinGeckoPriceSource, DexScreenerPriceSource
from flash_arbitrage.service import build_price_sources, build_service
from flash_arbitrage.types import (
    DataStatus,
    EmptyReason,
    ExecutionState,
    OpportunityStatus,
)

ETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDC_ADDRESS = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ETH_VENUES = {"ETH": {"Uniswap V3": "3245.67", "SushiSwap": "3247.89"}}
OPPORTUNITY_ID = "ETH-SushiSwap-Uniswap V3-1"


@pytest.fixture
def config():
    return build_config(
        {
            "tokens": {
                "ETH": {"address": ETH_ADDRESS, "decimals": 18},
                "USDC": {"address": USDC_ADDRESS, "decimals": 6},
            },
            "detection": {
                "min_spread_pct": "0.05",
                "trade_size": 10,
                "gas_units_estimate": 150000,
            },
            "execution": {
                "risk_timeout_sec": 1,
                "submit_timeout_sec": 1,
                "confirmation_timeout_sec": 1,
            },
            "scheduler": {"price_interval_sec": 0.05, "gas_interval_sec": 0.05},
        }
    )


@pytest.fixture
def make_service(config, fakes, time_provider):
    def make(source=None, **collaborators):
        source = source or fakes.PriceSource(
            "primary", prices={"ETH": "3245.67"}, venues=ETH_VENUES
        )
        collaborators.setdefault("gas_telemetry", fakes.GasTelemetry())
        return build_service(
            config,
            price_sources=[source],
            time_provider=time_provider,
            **collaborators,
        )

    return make


class TestReadAccessors:
    @pytest.mark.asyncio
    async def test_status_before_first_cycle(self, make_service):
        status = make_service().status()
        assert status.data_status is DataStatus.NO_DATA
        assert status.empty_reason is EmptyReason.NO_DATA_YET
        assert status.age_seconds is None
        assert status.cycle == 0

    @pytest.mark.asyncio
    async def test_run_once_publishes_everything(self, make_service):
        service = make_service()

        status = await service.run_once()

        assert status.data_status is DataStatus.FRESH
        assert status.empty_reason is None
        assert status.cycle == 1
        assert status.source == "primary"
        assert [s.token for s in service.current_snapshot()] == ["ETH"]
        assert [o.id for o in service.current_opportunities()] == [OPPORTUNITY_ID]
        assert service.current_gas_price() == Decimal("25")
        assert service.current_block_number() == 19_000_000

        as_dict = status.to_dict()
        assert as_dict["data_status"] == "fresh"
        assert as_dict["empty_reason"] is None

    @pytest.mark.asyncio
    async def test_all_sources_down(self, make_service, fakes):
        service = make_service(fakes.PriceSource("primary", error=fakes.Unavailable("down")))

        status = await service.run_once()

        assert status.data_status is DataStatus.NO_DATA
        assert status.empty_reason is EmptyReason.ALL_SOURCES_DOWN
        assert status.consecutive_failures == 1
        assert service.current_opportunities() == ()
        assert status.to_dict()["empty_reason"] == "all_sources_down"

    @pytest.mark.asyncio
    async def test_below_thresholds(self, make_service, fakes):
        service = make_service(gas_telemetry=fakes.GasTelemetry(gas_price_wei=100_000_000_000))
        status = await service.run_once()
        assert status.data_status is DataStatus.FRESH
        assert status.empty_reason is EmptyReason.BELOW_THRESHOLDS


class TestSubmitExecution:
    @pytest.mark.asyncio
    async def test_unknown_id_writes_no_ledger_entry(self, make_service, fakes):
        service = make_service(
            risk_authority=fakes.RiskAuthority(), settlement=fakes.ForbiddenSettlement()
        )
        await service.run_once()

        with pytest.raises(OpportunityNotFoundError) as exc_info:
            await service.submit_execution("ETH-nope-nope-1", fakes.actor)

        assert exc_info.value.details["known_ids"] == [OPPORTUNITY_ID]
        assert service.ledger() == []

    @pytest.mark.asyncio
    async def test_settled_execution(self, make_service, fakes):
        settlement = fakes.Settlement()
        service = make_service(risk_authority=fakes.RiskAuthority(), settlement=settlement)
        await service.run_once()

        result = await service.submit_execution(OPPORTUNITY_ID, fakes.actor)

        assert result.succeeded
        assert result.state is ExecutionState.SETTLED
        request, actor = settlement.submitted[0]
        assert actor == fakes.actor
        assert request.asset == ETH_ADDRESS
        assert request.venues == ("Uniswap V3", "SushiSwap")

        entries = service.ledger()
        assert len(entries) == 1
        assert entries[0].opportunity.status is OpportunityStatus.SETTLED
        assert service.ledger_summary()["by_state"]["settled"] == 1

    @pytest.mark.asyncio
    async def test_missing_risk_authority_denies(self, make_service, fakes):
        service = make_service(settlement=fakes.ForbiddenSettlement())
        await service.run_once()

        result = await service.submit_execution(OPPORTUNITY_ID, fakes.actor)

        assert result.state is ExecutionState.REJECTED_BY_RISK
        assert "no risk authority" in result.error

    @pytest.mark.asyncio
    async def test_missing_settlement_rejects_locally(self, make_service, fakes):
        risk = fakes.RiskAuthority()
        service = make_service(risk_authority=risk)
        await service.run_once()

        result = await service.submit_execution(OPPORTUNITY_ID, fakes.actor)

        assert result.state is ExecutionState.REJECTED_LOCALLY
        assert result.error == "no signer configured"
        assert risk.calls == []
        assert len(service.ledger()) == 1

    @pytest.mark.asyncio
    async def test_risk_status(self, make_service, fakes):
        service = make_service(risk_authority=fakes.RiskAuthority())
        status = await service.risk_status(fakes.actor)
        assert status.remaining_daily_limit == Decimal("900")
        assert status.trade_count == 3


class TestContractAdministration:
    @pytest.mark.asyncio
    async def test_requires_settlement_client(self, make_service):
        service = make_service()
        with pytest.raises(ConfigurationError):
            await service.pause_contract()
        with pytest.raises(ConfigurationError):
            await service.contract_balance("USDC")

    @pytest.mark.asyncio
    async def test_balance_and_withdraw_use_token_metadata(self, make_service):
        settlement = AsyncMock()
        settlement.get_balance.return_value = Decimal("12.5")
        settlement.withdraw_profits.return_value = "0xfeed"
        settlement.unpause.return_value = "0xbeef"
        service = make_service(settlement=settlement)

        assert await service.contract_balance("USDC") == Decimal("12.5")
        settlement.get_balance.assert_awaited_once_with(USDC_ADDRESS, 6)

        assert await service.withdraw_profits("USDC", Decimal("5")) == "0xfeed"
        settlement.withdraw_profits.assert_awaited_once_with(USDC_ADDRESS, Decimal("5"), 6)

        assert await service.unpause_contract() == "0xbeef"

    @pytest.mark.asyncio
    async def test_unknown_token(self, make_service):
        service = make_service(settlement=AsyncMock())
        with pytest.raises(ConfigurationError, match="Unknown token"):
            await service.contract_balance("DOGE")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_close(self, make_service):
        service = make_service()
        await service.start()
        assert service.scheduler.running
        await service.close()
        assert not service.scheduler.running

    @pytest.mark.asyncio
    async def test_default_sources_are_built_once(self, config):
        sources, venue_source = build_price_sources(config)
        try:
            assert [type(s) for s in sources] == [
                CoinGeckoPriceSource,
                DexScreenerPriceSource,
            ]
            assert venue_source is sources[1]
        finally:
            for source in sources:
                await source.close()

    @pytest.mark.asyncio
    async def test_build_service_owns_default_sources(self, config):
        service = build_service(config)
        assert len(service._closeables) == 2
        await service.close()
