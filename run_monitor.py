#!/usr/bin/env python3
"""
Flash Arbitrage Monitor - watch cross-venue spreads and score them net of gas

Usage:
    # Continuous monitoring
    python run_monitor.py --config configs/monitor.yaml

    # One refresh cycle, print the table and exit
    python run_monitor.py --config configs/monitor.yaml --once

    # Expose Prometheus metrics
    python run_monitor.py --config configs/monitor.yaml --metrics-port 8000

Chain access is optional: without RPC_URL the monitor scores with the
fallback gas price, and without PRIVATE_KEY executions are rejected locally.
"""

import argparse
import asyncio
import logging
import sys

from eth_account import Account
from tabulate import tabulate
from web3 import Web3

from flash_arbitrage import logging_config
from flash_arbitrage.chain import Web3GasTelemetry, Web3RiskAuthority, Web3SettlementClient
from flash_arbitrage.config import DEFAULT_TOKENS, MonitorConfig, load_config
from flash_arbitrage.exceptions import ConfigurationError
from flash_arbitrage.metrics import PipelineMetrics
from flash_arbitrage.service import ArbitrageService, build_service
from flash_arbitrage.utils import format_duration
from flash_arbitrage.version import get_version

logger = logging.getLogger("run_monitor")


def build_chain_clients(config: MonitorConfig):
    """Web3-backed gas telemetry, risk authority and settlement, where configured."""
    rpc_url = config.chain.rpc_url
    if not rpc_url:
        logger.warning(
            f"{config.chain.rpc_url_env} not set; running without chain access"
        )
        return None, None, None

    # bounds every RPC call, including broadcasts running in worker threads
    web3 = Web3(
        Web3.HTTPProvider(
            rpc_url, request_kwargs={"timeout": config.execution.submit_timeout_sec}
        )
    )
    gas_telemetry = Web3GasTelemetry(web3)

    risk_authority = None
    if config.chain.risk_manager_address:
        risk_authority = Web3RiskAuthority(web3, config.chain.risk_manager_address)

    settlement = None
    private_key = config.chain.private_key
    if private_key and config.chain.settlement_address:
        account = Account.from_key(private_key)
        logger.info(f"Loaded signer: {account.address}")
        quote_token = next(
            (t for t in config.tokens if t.symbol == "USDC"), None
        )
        settlement = Web3SettlementClient(
            web3,
            config.chain.settlement_address,
            account,
            venue_routers=config.chain.venue_routers,
            quote_asset=quote_token.address if quote_token else DEFAULT_TOKENS["USDC"]["address"],
            token_decimals={t.symbol: t.decimals for t in config.tokens},
            chain_id=config.chain.chain_id,
            receipt_timeout_sec=config.execution.confirmation_timeout_sec,
        )
    return gas_telemetry, risk_authority, settlement


def print_cycle(service: ArbitrageService) -> None:
    status = service.status()
    block = service.current_block_number()
    age = f" ({format_duration(status.age_seconds)} old)" if status.age_seconds is not None else ""
    print(
        f"\n=== cycle {status.cycle} | {status.data_status.value}{age} | "
        f"source: {status.source or 'n/a'} | gas: {service.current_gas_price():.2f} gwei"
        f"{f' | block {block}' if block else ''} ==="
    )
    if status.venues_degraded:
        print("Venue prices unavailable, showing single-venue view")

    opportunities = service.current_opportunities()
    if not opportunities:
        reason = status.empty_reason.value if status.empty_reason else "n/a"
        print(f"No opportunities ({reason})")
        if status.last_error:
            print(f"Last error: {status.last_error}")
        return

    rows = [
        [
            o.token,
            o.buy_venue,
            o.sell_venue,
            f"{o.spread_pct:.4f}%",
            f"${o.gross_profit:.2f}",
            f"${o.gas_cost_usd:.2f}",
            f"${o.net_profit:.2f}",
            o.id,
        ]
        for o in opportunities
    ]
    print(
        tabulate(
            rows,
            headers=["Token", "Buy", "Sell", "Spread", "Gross", "Gas", "Net", "ID"],
            tablefmt="grid",
        )
    )


async def main():
    parser = argparse.ArgumentParser(
        description="Monitor cross-venue arbitrage opportunities"
    )
    parser.add_argument(
        "--config", default="configs/monitor.yaml", help="Path to monitor YAML config"
    )
    parser.add_argument("--env-file", help=".env file with RPC_URL / PRIVATE_KEY")
    parser.add_argument(
        "--once", action="store_true", help="Run a single refresh cycle and exit"
    )
    parser.add_argument(
        "--metrics-port", type=int, help="Serve Prometheus metrics on this port"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args()

    logging_config.setup(level=getattr(logging, args.log_level))
    logger.info(f"Flash Arbitrage Monitor v{get_version()}")

    try:
        config = load_config(args.config, env_file=args.env_file)
    except ConfigurationError as e:
        logger.error(f"Failed to load config: {e}")
        return 1

    metrics = None
    metrics_port = args.metrics_port or (
        config.observability.metrics_port if config.observability.metrics_enabled else None
    )
    if metrics_port:
        metrics = PipelineMetrics()
        await metrics.start_server(port=metrics_port)

    gas_telemetry, risk_authority, settlement = build_chain_clients(config)
    service = build_service(
        config,
        gas_telemetry=gas_telemetry,
        risk_authority=risk_authority,
        settlement=settlement,
        metrics=metrics,
    )

    try:
        if args.once:
            await service.run_once()
            print_cycle(service)
            return 0

        await service.start()
        while True:
            await asyncio.sleep(config.scheduler.price_interval_sec)
            print_cycle(service)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        await service.close()
        if metrics:
            await metrics.stop_server()
        summary = service.ledger_summary()
        if summary["total_entries"]:
            logger.info(f"LEDGER_SUMMARY: {summary}")

    return 0


def cli():
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
