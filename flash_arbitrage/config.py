"""
Configuration loading and normalization for the flash arbitrage monitor.

Provides a single, versioned, read-only configuration object built from a YAML
file. Every field has a documented valid range and is checked once at load
time; secrets are never stored in YAML, only the names of the environment
variables that hold them.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .types import GasStrategy
from .utils import to_decimal

CONFIG_VERSION = 1
SUPPORTED_CONFIG_VERSIONS = (1,)

DEFAULT_TOKENS = {
    "ETH": {"address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "decimals": 18},
    "USDC": {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "decimals": 6},
    "USDT": {"address": "0xdAC17F958D2ee523a2206206994597C13D831ec7", "decimals": 6},
    "DAI": {"address": "0x6B175474E89094C44Da98b954EedeAC495271d0F", "decimals": 18},
    "WBTC": {"address": "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", "decimals": 8},
    "LINK": {"address": "0x514910771AF9Ca656af840dff83E8264EcF986CA", "decimals": 18},
}

DEFAULT_COINGECKO_IDS = {
    "ETH": "ethereum",
    "WETH": "weth",
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "WBTC": "wrapped-bitcoin",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "AAVE": "aave",
}

DEFAULT_VENUE_ROUTERS = {
    "Uniswap V2": "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D",
    "Uniswap V3": "0xE592427A0AEce92De3Edee1F18E0157C05861564",
    "SushiSwap": "0xd9e1cE17f2641f24aE83637ab66a2cca9C378B9F",
    "1inch": "0x1111111254fb6c44bAC0beD2854e76F90643097d",
}

# DexScreener dexId[:label] -> venue display name
DEFAULT_VENUE_ALIASES = {
    "uniswap:v2": "Uniswap V2",
    "uniswap:v3": "Uniswap V3",
    "sushiswap": "SushiSwap",
    "sushiswap:v2": "SushiSwap",
}

DEFAULT_GAS_MULTIPLIERS = {
    GasStrategy.SLOW: Decimal("0.6"),
    GasStrategy.STANDARD: Decimal("1.0"),
    GasStrategy.FAST: Decimal("1.4"),
}

KNOWN_SOURCE_KINDS = ("coingecko", "dexscreener")
# only sources that report per-DEX prices
VENUE_SOURCE_KINDS = ("dexscreener",)


@dataclass(frozen=True)
class TokenConfig:
    """Token tracked by the monitor."""

    symbol: str
    address: str
    decimals: int = 18


@dataclass(frozen=True)
class PriceSourceConfig:
    """
    Price acquisition settings.

    Attributes:
        order: Adapter names in fallback priority order (primary first)
        venue_source: Name of the best-effort per-venue source, or None
        timeout_sec: Per-adapter call timeout, (0, 30]
        coingecko_base_url: CoinGecko REST root
        coingecko_api_key_env: Env var holding an optional CoinGecko API key
        coingecko_ids: Symbol -> CoinGecko id
        dexscreener_base_url: DexScreener REST root
        venue_aliases: DexScreener "dexId[:label]" -> venue name
        venues: Venue allow-list; empty means every venue the source reports
    """

    order: Tuple[str, ...] = ("coingecko", "dexscreener")
    venue_source: Optional[str] = "dexscreener"
    timeout_sec: float = 5.0
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key_env: str = "COINGECKO_API_KEY"
    coingecko_ids: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_COINGECKO_IDS))
    )
    dexscreener_base_url: str = "https://api.dexscreener.com/latest/dex"
    venue_aliases: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_VENUE_ALIASES))
    )
    venues: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DetectionConfig:
    """
    Opportunity scoring parameters.

    Attributes:
        min_spread_pct: Minimum venue spread in percent, >= 0
        trade_size: Notional trade size in token units, > 0
        gas_units_estimate: Gas units for one flash-loan execution, > 0
        min_net_profit_usd: Inclusive floor on net profit
        max_opportunities: Ranked list length cap, >= 1
    """

    min_spread_pct: Decimal = Decimal("0.1")
    trade_size: Decimal = Decimal("10")
    gas_units_estimate: int = 350_000
    min_net_profit_usd: Decimal = Decimal("0")
    max_opportunities: int = 10


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Execution and settlement parameters.

    Attributes:
        gas_limit: Fixed gas limit per settlement transaction, > 0
        gas_strategy: slow / standard / fast / custom
        custom_gas_price_gwei: Required (> 0) when gas_strategy is custom
        slippage_bps: Slippage tolerance passed to the risk authority, [0, 10000]
        max_trade_size: Local cap on trade size in token units, > 0
        risk_timeout_sec: Risk authority call timeout, > 0
        submit_timeout_sec: Signing + broadcast timeout, > 0
        confirmation_timeout_sec: Receipt wait timeout, > 0
    """

    gas_limit: int = 500_000
    gas_strategy: GasStrategy = GasStrategy.STANDARD
    custom_gas_price_gwei: Optional[Decimal] = None
    slippage_bps: int = 50
    max_trade_size: Decimal = Decimal("10")
    risk_timeout_sec: float = 10.0
    submit_timeout_sec: float = 30.0
    confirmation_timeout_sec: float = 120.0
    gas_multipliers: Mapping[GasStrategy, Decimal] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_GAS_MULTIPLIERS))
    )


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Polling cadences.

    Attributes:
        price_interval_sec: Price refresh cadence, > 0
        gas_interval_sec: Gas refresh cadence, > 0
        price_cycle_timeout_sec: Abandon a price cycle after this long, > 0
        gas_cycle_timeout_sec: Abandon a gas refresh after this long, > 0
        fallback_gas_price_gwei: Gas price used for scoring until the first reading, > 0
    """

    price_interval_sec: float = 3.0
    gas_interval_sec: float = 5.0
    price_cycle_timeout_sec: float = 15.0
    gas_cycle_timeout_sec: float = 10.0
    fallback_gas_price_gwei: Decimal = Decimal("25")


@dataclass(frozen=True)
class ChainConfig:
    """On-chain endpoints. Secrets are referenced by env var name only."""

    chain_id: int = 1
    rpc_url_env: str = "RPC_URL"
    private_key_env: str = "PRIVATE_KEY"
    settlement_address: str = ""
    risk_manager_address: str = ""
    venue_routers: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_VENUE_ROUTERS))
    )

    @property
    def rpc_url(self) -> Optional[str]:
        return os.getenv(self.rpc_url_env)

    @property
    def private_key(self) -> Optional[str]:
        return os.getenv(self.private_key_env)


@dataclass(frozen=True)
class ObservabilityConfig:
    metrics_enabled: bool = False
    metrics_port: int = 8000
    ledger_journal_path: Optional[str] = None


@dataclass(frozen=True)
class MonitorConfig:
    """Immutable runtime configuration object."""

    config_version: int = CONFIG_VERSION
    tokens: Tuple[TokenConfig, ...] = field(
        default_factory=lambda: tuple(
            TokenConfig(symbol, info["address"], info["decimals"])
            for symbol, info in DEFAULT_TOKENS.items()
        )
    )
    price_sources: PriceSourceConfig = field(default_factory=PriceSourceConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def token_symbols(self) -> Tuple[str, ...]:
        return tuple(token.symbol for token in self.tokens)

    @property
    def token_addresses(self) -> Dict[str, str]:
        return {token.symbol: token.address for token in self.tokens}

    def token(self, symbol: str) -> TokenConfig:
        for token in self.tokens:
            if token.symbol == symbol:
                return token
        raise ConfigurationError(f"Unknown token: {symbol}")


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError("Config file must contain a YAML dictionary")

    return config_dict


def _section(config_dict: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config_dict.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    return section


def _decimal(section: Dict[str, Any], key: str, default: Decimal, path: str) -> Decimal:
    if key not in section or section[key] is None:
        return default
    try:
        return to_decimal(section[key], f"{path}.{key}")
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _positive(value, path: str):
    if value <= 0:
        raise ConfigurationError(f"{path} must be > 0, got {value}")
    return value


def _normalize_tokens(raw: Any) -> Tuple[TokenConfig, ...]:
    if raw is None:
        raw = DEFAULT_TOKENS
    if not isinstance(raw, dict) or not raw:
        raise ConfigurationError("tokens must be a non-empty mapping of symbol -> info")

    tokens = []
    for symbol, info in raw.items():
        if isinstance(info, str):
            info = {"address": info}
        if not isinstance(info, dict):
            raise ConfigurationError(f"Token '{symbol}' config must be a dict")
        if not info.get("address"):
            raise ConfigurationError(f"Token '{symbol}' missing 'address'")
        decimals = int(info.get("decimals", 18))
        if not 0 <= decimals <= 36:
            raise ConfigurationError(f"Token '{symbol}' decimals out of range: {decimals}")
        tokens.append(TokenConfig(str(symbol), str(info["address"]), decimals))
    return tuple(tokens)


def _normalize_price_sources(section: Dict[str, Any]) -> PriceSourceConfig:
    defaults = PriceSourceConfig()
    order = tuple(section.get("order", defaults.order))
    if not order:
        raise ConfigurationError("price_sources.order must name at least one source")
    for name in order:
        if name not in KNOWN_SOURCE_KINDS:
            raise ConfigurationError(
                f"price_sources.order has unknown source '{name}' "
                f"(expected one of {', '.join(KNOWN_SOURCE_KINDS)})"
            )
    if len(set(order)) != len(order):
        raise ConfigurationError("price_sources.order contains duplicates")

    venue_source = section.get("venue_source", defaults.venue_source)
    if venue_source is not None and venue_source not in VENUE_SOURCE_KINDS:
        raise ConfigurationError(f"Unknown price_sources.venue_source '{venue_source}'")

    timeout = float(section.get("timeout_sec", defaults.timeout_sec))
    if not 0 < timeout <= 30:
        raise ConfigurationError(
            f"price_sources.timeout_sec must be in (0, 30], got {timeout}"
        )

    coingecko_ids = dict(DEFAULT_COINGECKO_IDS)
    coingecko_ids.update(section.get("coingecko_ids") or {})
    venue_aliases = dict(DEFAULT_VENUE_ALIASES)
    venue_aliases.update(section.get("venue_aliases") or {})

    return PriceSourceConfig(
        order=order,
        venue_source=venue_source,
        timeout_sec=timeout,
        coingecko_base_url=section.get(
            "coingecko_base_url", defaults.coingecko_base_url
        ),
        coingecko_api_key_env=section.get(
            "coingecko_api_key_env", defaults.coingecko_api_key_env
        ),
        coingecko_ids=MappingProxyType(coingecko_ids),
        dexscreener_base_url=section.get(
            "dexscreener_base_url", defaults.dexscreener_base_url
        ),
        venue_aliases=MappingProxyType(venue_aliases),
        venues=tuple(section.get("venues") or ()),
    )


def _normalize_detection(section: Dict[str, Any]) -> DetectionConfig:
    defaults = DetectionConfig()
    path = "detection"
    min_spread = _decimal(section, "min_spread_pct", defaults.min_spread_pct, path)
    if min_spread < 0:
        raise ConfigurationError(f"detection.min_spread_pct must be >= 0, got {min_spread}")

    max_opps = int(section.get("max_opportunities", defaults.max_opportunities))
    if max_opps < 1:
        raise ConfigurationError(
            f"detection.max_opportunities must be >= 1, got {max_opps}"
        )

    return DetectionConfig(
        min_spread_pct=min_spread,
        trade_size=_positive(
            _decimal(section, "trade_size", defaults.trade_size, path),
            "detection.trade_size",
        ),
        gas_units_estimate=_positive(
            int(section.get("gas_units_estimate", defaults.gas_units_estimate)),
            "detection.gas_units_estimate",
        ),
        min_net_profit_usd=_decimal(
            section, "min_net_profit_usd", defaults.min_net_profit_usd, path
        ),
        max_opportunities=max_opps,
    )


def _normalize_execution(section: Dict[str, Any]) -> ExecutionConfig:
    defaults = ExecutionConfig()
    path = "execution"

    strategy_raw = section.get("gas_strategy", defaults.gas_strategy.value)
    try:
        strategy = GasStrategy(strategy_raw)
    except ValueError as e:
        raise ConfigurationError(
            f"execution.gas_strategy must be one of "
            f"{', '.join(s.value for s in GasStrategy)}, got {strategy_raw!r}"
        ) from e

    custom = section.get("custom_gas_price_gwei")
    custom_gwei = None
    if custom is not None:
        custom_gwei = _positive(
            _decimal(section, "custom_gas_price_gwei", Decimal("0"), path),
            "execution.custom_gas_price_gwei",
        )
    if strategy is GasStrategy.CUSTOM and custom_gwei is None:
        raise ConfigurationError(
            "execution.custom_gas_price_gwei is required when gas_strategy is custom"
        )

    slippage_bps = int(section.get("slippage_bps", defaults.slippage_bps))
    if not 0 <= slippage_bps <= 10000:
        raise ConfigurationError(
            f"execution.slippage_bps must be in [0, 10000], got {slippage_bps}"
        )

    multipliers = dict(DEFAULT_GAS_MULTIPLIERS)
    for name, value in (section.get("gas_multipliers") or {}).items():
        try:
            key = GasStrategy(name)
        except ValueError as e:
            raise ConfigurationError(f"Unknown gas multiplier strategy '{name}'") from e
        multipliers[key] = _positive(
            to_decimal(value, f"execution.gas_multipliers.{name}"),
            f"execution.gas_multipliers.{name}",
        )

    return ExecutionConfig(
        gas_limit=_positive(
            int(section.get("gas_limit", defaults.gas_limit)), "execution.gas_limit"
        ),
        gas_strategy=strategy,
        custom_gas_price_gwei=custom_gwei,
        slippage_bps=slippage_bps,
        max_trade_size=_positive(
            _decimal(section, "max_trade_size", defaults.max_trade_size, path),
            "execution.max_trade_size",
        ),
        risk_timeout_sec=_positive(
            float(section.get("risk_timeout_sec", defaults.risk_timeout_sec)),
            "execution.risk_timeout_sec",
        ),
        submit_timeout_sec=_positive(
            float(section.get("submit_timeout_sec", defaults.submit_timeout_sec)),
            "execution.submit_timeout_sec",
        ),
        confirmation_timeout_sec=_positive(
            float(
                section.get(
                    "confirmation_timeout_sec", defaults.confirmation_timeout_sec
                )
            ),
            "execution.confirmation_timeout_sec",
        ),
        gas_multipliers=MappingProxyType(multipliers),
    )


def _normalize_scheduler(section: Dict[str, Any]) -> SchedulerConfig:
    defaults = SchedulerConfig()
    values = {}
    for key in (
        "price_interval_sec",
        "gas_interval_sec",
        "price_cycle_timeout_sec",
        "gas_cycle_timeout_sec",
    ):
        values[key] = _positive(
            float(section.get(key, getattr(defaults, key))), f"scheduler.{key}"
        )
    values["fallback_gas_price_gwei"] = _positive(
        _decimal(
            section,
            "fallback_gas_price_gwei",
            defaults.fallback_gas_price_gwei,
            "scheduler",
        ),
        "scheduler.fallback_gas_price_gwei",
    )
    return SchedulerConfig(**values)


def _normalize_chain(section: Dict[str, Any]) -> ChainConfig:
    defaults = ChainConfig()
    routers = dict(DEFAULT_VENUE_ROUTERS)
    routers.update(section.get("venue_routers") or {})
    return ChainConfig(
        chain_id=int(section.get("chain_id", defaults.chain_id)),
        rpc_url_env=section.get("rpc_url_env", defaults.rpc_url_env),
        private_key_env=section.get("private_key_env", defaults.private_key_env),
        settlement_address=section.get("settlement_address", ""),
        risk_manager_address=section.get("risk_manager_address", ""),
        venue_routers=MappingProxyType(routers),
    )


def _normalize_observability(section: Dict[str, Any]) -> ObservabilityConfig:
    defaults = ObservabilityConfig()
    port = int(section.get("metrics_port", defaults.metrics_port))
    if not 0 < port < 65536:
        raise ConfigurationError(f"observability.metrics_port out of range: {port}")
    return ObservabilityConfig(
        metrics_enabled=bool(section.get("metrics_enabled", defaults.metrics_enabled)),
        metrics_port=port,
        ledger_journal_path=section.get("ledger_journal_path"),
    )


def build_config(config_dict: Optional[Dict[str, Any]] = None) -> MonitorConfig:
    """
    Normalize and validate a raw configuration mapping.

    Raises:
        ConfigurationError: On unsupported version or any out-of-range field
    """
    config_dict = config_dict or {}
    version = int(config_dict.get("config_version", CONFIG_VERSION))
    if version not in SUPPORTED_CONFIG_VERSIONS:
        raise ConfigurationError(
            f"Unsupported config_version {version} "
            f"(supported: {', '.join(str(v) for v in SUPPORTED_CONFIG_VERSIONS)})"
        )

    try:
        return MonitorConfig(
            config_version=version,
            tokens=_normalize_tokens(config_dict.get("tokens")),
            price_sources=_normalize_price_sources(
                _section(config_dict, "price_sources")
            ),
            detection=_normalize_detection(_section(config_dict, "detection")),
            execution=_normalize_execution(_section(config_dict, "execution")),
            scheduler=_normalize_scheduler(_section(config_dict, "scheduler")),
            chain=_normalize_chain(_section(config_dict, "chain")),
            observability=_normalize_observability(
                _section(config_dict, "observability")
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}") from e


def load_config(
    config_path: Union[str, Path], env_file: Optional[str] = None
) -> MonitorConfig:
    """
    Load environment secrets and the YAML configuration.

    Args:
        config_path: Path to config YAML file
        env_file: Optional .env file; defaults to python-dotenv's search

    Returns:
        Validated MonitorConfig instance
    """
    load_dotenv(env_file)
    return build_config(load_yaml_config(config_path))
