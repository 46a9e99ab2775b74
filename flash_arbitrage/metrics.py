"""
Prometheus metrics for the monitoring pipeline.

Counts refresh outcomes, source failures, skipped ticks and execution
outcomes, and optionally serves them over HTTP with aiohttp.
"""

import logging
import threading
from typing import Optional

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


class PipelineMetrics:
    """Prometheus collectors for price, gas and execution activity."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY
        self._initialize_metrics()

        self._runner = None
        self._site = None
        self._lock = threading.RLock()

    def _initialize_metrics(self):
        # === REFRESH METRICS ===
        self.price_refreshes_total = Counter(
            "flash_arbitrage_price_refreshes_total",
            "Price refresh cycles by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.source_failures_total = Counter(
            "flash_arbitrage_source_failures_total",
            "Price source failures (errors, timeouts, empty batches)",
            ["source"],
            registry=self.registry,
        )

        self.gas_refreshes_total = Counter(
            "flash_arbitrage_gas_refreshes_total",
            "Gas telemetry refreshes by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.skipped_ticks_total = Counter(
            "flash_arbitrage_skipped_ticks_total",
            "Scheduler ticks skipped because the previous cycle was still running",
            ["task"],
            registry=self.registry,
        )

        self.refresh_duration_seconds = Histogram(
            "flash_arbitrage_refresh_duration_seconds",
            "Duration of price refresh cycles",
            buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0],
            registry=self.registry,
        )

        # === STATE METRICS ===
        self.active_opportunities = Gauge(
            "flash_arbitrage_active_opportunities",
            "Opportunities in the current ranked list",
            registry=self.registry,
        )

        self.data_age_seconds = Gauge(
            "flash_arbitrage_data_age_seconds",
            "Age of the snapshot currently served to consumers",
            registry=self.registry,
        )

        self.gas_price_gwei = Gauge(
            "flash_arbitrage_gas_price_gwei",
            "Latest recommended gas price",
            registry=self.registry,
        )

        # === EXECUTION METRICS ===
        self.risk_decisions_total = Counter(
            "flash_arbitrage_risk_decisions_total",
            "Risk gate decisions",
            ["outcome"],
            registry=self.registry,
        )

        self.executions_total = Counter(
            "flash_arbitrage_executions_total",
            "Execution attempts by terminal state",
            ["state"],
            registry=self.registry,
        )

        self.realized_profit_usd = Histogram(
            "flash_arbitrage_realized_profit_usd",
            "Realized profit per execution attempt",
            buckets=[-100, -50, -20, -10, -5, 0, 5, 10, 20, 50, 100, 500],
            registry=self.registry,
        )

        self.execution_duration_seconds = Histogram(
            "flash_arbitrage_execution_duration_seconds",
            "Wall time of one execute() call",
            buckets=[0.1, 0.5, 1, 5, 15, 30, 60, 120],
            registry=self.registry,
        )

    # === METRIC RECORDING METHODS ===

    def record_price_refresh(self, outcome: str, duration_seconds: float = 0.0):
        with self._lock:
            self.price_refreshes_total.labels(outcome=outcome).inc()
            if duration_seconds > 0:
                self.refresh_duration_seconds.observe(duration_seconds)

    def record_source_failure(self, source: str):
        with self._lock:
            self.source_failures_total.labels(source=source).inc()

    def record_gas_refresh(self, outcome: str, gas_price_gwei: Optional[float] = None):
        with self._lock:
            self.gas_refreshes_total.labels(outcome=outcome).inc()
            if gas_price_gwei is not None:
                self.gas_price_gwei.set(gas_price_gwei)

    def record_skipped_tick(self, task: str):
        with self._lock:
            self.skipped_ticks_total.labels(task=task).inc()

    def update_opportunity_count(self, count: int):
        with self._lock:
            self.active_opportunities.set(count)

    def update_data_age(self, seconds: float):
        with self._lock:
            self.data_age_seconds.set(seconds)

    def record_risk_decision(self, outcome: str):
        with self._lock:
            self.risk_decisions_total.labels(outcome=outcome).inc()

    def record_execution(
        self, state: str, realized_profit: float, duration_seconds: float = 0.0
    ):
        with self._lock:
            self.executions_total.labels(state=state).inc()
            self.realized_profit_usd.observe(realized_profit)
            if duration_seconds > 0:
                self.execution_duration_seconds.observe(duration_seconds)

    # === SERVER MANAGEMENT ===

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ) -> bool:
        """Start the Prometheus metrics HTTP server."""
        try:
            app = web.Application()
            app.router.add_get(path, self._metrics_handler)
            app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(app)
            await self._runner.setup()
            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"Metrics server started on http://{host}:{port}{path}")
            return True
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self):
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        output = generate_latest(self.registry)
        # aiohttp rejects a charset inside content_type
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        return web.json_response({"status": "healthy", "service": "flash_arbitrage"})
