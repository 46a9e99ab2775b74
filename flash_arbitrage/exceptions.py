"""
Exception hierarchy for the flash arbitrage pipeline.

Each failure category in the pipeline has its own type so the aggregator,
risk gate and orchestrator can turn them into degraded or rejected values
instead of crashing a refresh cycle.
"""

from typing import Any, Dict, List, Optional


class FlashArbitrageError(Exception):
    """Base exception for all flash arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(FlashArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class ValidationError(FlashArbitrageError):
    """Raised when validation of data fails."""

    pass


class SourceUnavailableError(FlashArbitrageError):
    """Raised when a price or gas source fails or times out."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source


class AllSourcesFailedError(SourceUnavailableError):
    """Raised when every price adapter in the fallback chain failed."""

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, source=None, details=details)
        self.errors = errors or {}


class GasOracleError(SourceUnavailableError):
    """Raised when the gas/network telemetry service cannot be read."""

    pass


class RiskAuthorityError(FlashArbitrageError):
    """Raised when the risk authority cannot be reached or answers garbage."""

    def __init__(
        self,
        message: str,
        actor: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.actor = actor


class SubmissionError(FlashArbitrageError):
    """Raised when a transaction could not be signed or broadcast."""

    def __init__(
        self,
        message: str,
        opportunity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.opportunity_id = opportunity_id


class SettlementError(FlashArbitrageError):
    """Raised when a broadcast transaction could not be confirmed."""

    def __init__(
        self,
        message: str,
        tx_ref: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.tx_ref = tx_ref


class OpportunityNotFoundError(FlashArbitrageError):
    """Raised when an execution is requested for an unknown opportunity id."""

    def __init__(
        self,
        opportunity_id: str,
        known_ids: Optional[List[str]] = None,
    ):
        super().__init__(
            f"Opportunity {opportunity_id!r} is not in the current opportunity list",
            {"known_ids": known_ids or []},
        )
        self.opportunity_id = opportunity_id
