"""Web3 clients for the settlement contract, risk manager and gas telemetry."""

from .gas_telemetry import Web3GasTelemetry
from .risk_authority import Web3RiskAuthority
from .settlement import Web3SettlementClient

__all__ = ["Web3GasTelemetry", "Web3RiskAuthority", "Web3SettlementClient"]
