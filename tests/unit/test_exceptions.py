"""Tests for the exceptions module."""

import pytest

from flash_arbitrage.exceptions import (
    AllSourcesFailedError,
    ConfigurationError,
    FlashArbitrageError,
    GasOracleError,
    OpportunityNotFoundError,
    RiskAuthorityError,
    SettlementError,
    SourceUnavailableError,
    SubmissionError,
    ValidationError,
)


def test_base_exception():
    """Test the base exception class."""
    error = FlashArbitrageError("Test error")
    assert str(error) == "Test error"
    assert error.details == {}

    error_with_details = FlashArbitrageError("Test error", {"key": "value"})
    assert error_with_details.details == {"key": "value"}


def test_configuration_error_is_not_a_value_error():
    error = ConfigurationError("bad interval", {"field": "scheduler.price_interval_sec"})
    assert isinstance(error, FlashArbitrageError)
    assert not isinstance(error, ValueError)
    assert error.details["field"] == "scheduler.price_interval_sec"


def test_source_errors():
    """Test source failure hierarchy."""
    error = SourceUnavailableError("rate limited", source="coingecko")
    assert error.source == "coingecko"

    all_failed = AllSourcesFailedError(
        "All 2 price sources failed",
        errors={"coingecko": "rate limited", "dexscreener": "timeout"},
    )
    assert isinstance(all_failed, SourceUnavailableError)
    assert all_failed.source is None
    assert all_failed.errors["dexscreener"] == "timeout"

    gas = GasOracleError("rpc down", source="rpc")
    assert isinstance(gas, SourceUnavailableError)


def test_execution_errors_carry_context():
    assert RiskAuthorityError("boom", actor="0xabc").actor == "0xabc"
    assert SubmissionError("nonce", opportunity_id="ETH-a-b-1").opportunity_id == "ETH-a-b-1"
    assert SettlementError("timeout", tx_ref="0xdead").tx_ref == "0xdead"


def test_opportunity_not_found():
    error = OpportunityNotFoundError("ETH-a-b-9", ["ETH-a-b-1"])
    assert error.opportunity_id == "ETH-a-b-9"
    assert error.details == {"known_ids": ["ETH-a-b-1"]}
    assert "ETH-a-b-9" in str(error)


@pytest.mark.parametrize(
    "exc_class",
    [
        ConfigurationError,
        ValidationError,
        SourceUnavailableError,
        AllSourcesFailedError,
        GasOracleError,
        RiskAuthorityError,
        SubmissionError,
        SettlementError,
    ],
)
def test_all_catchable_as_base(exc_class):
    with pytest.raises(FlashArbitrageError):
        raise exc_class("error")
