"""
Flash Arbitrage Monitor.

Detects cross-venue price discrepancies for a fixed token set, scores them net
of gas, and submits risk-gated executions to an external settlement contract,
recording every attempt in an append-only ledger.
"""

PROJECT_NAME = "Flash-Arbitrage-Monitor"

from flash_arbitrage.version import __version__ as VERSION

from flash_arbitrage.config import MonitorConfig, build_config, load_config
from flash_arbitrage.detector import OpportunityDetector
from flash_arbitrage.exceptions import (
    AllSourcesFailedError,
    ConfigurationError,
    FlashArbitrageError,
    OpportunityNotFoundError,
    SourceUnavailableError,
)
from flash_arbitrage.gas_oracle import GasOracle
from flash_arbitrage.ledger import TransactionLedger
from flash_arbitrage.orchestrator import ExecutionOrchestrator
from flash_arbitrage.prices import PriceAggregator, PriceRefresh
from flash_arbitrage.risk_gate import RiskGate
from flash_arbitrage.scheduler import PipelineState, PollingScheduler
from flash_arbitrage.service import ArbitrageService, ServiceStatus, build_service

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "AllSourcesFailedError",
    "ArbitrageService",
    "ConfigurationError",
    "ExecutionOrchestrator",
    "FlashArbitrageError",
    "GasOracle",
    "MonitorConfig",
    "OpportunityDetector",
    "OpportunityNotFoundError",
    "PipelineState",
    "PollingScheduler",
    "PriceAggregator",
    "PriceRefresh",
    "RiskGate",
    "ServiceStatus",
    "SourceUnavailableError",
    "TransactionLedger",
    "build_config",
    "build_service",
    "load_config",
]
