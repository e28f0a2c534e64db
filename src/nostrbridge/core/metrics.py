"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are shared process-wide.
[BaseService.run_forever()][nostrbridge.core.base_service.BaseService.run_forever]
records cycle counts, durations and failure streaks; the poller adds sync
counters through ``set_gauge()`` / ``inc_counter()``; the relay client
records per-relay outcomes in ``RELAY_OPERATIONS``.

Metrics:
    SERVICE_INFO:           Static metadata set once at startup.
    SERVICE_GAUGE:          Point-in-time values (checkpoint, pending records).
    SERVICE_COUNTER:        Cumulative totals (processed, skipped, failed).
    CYCLE_DURATION_SECONDS: Histogram of poll cycle durations.
    RELAY_OPERATIONS:       Per-relay publish/query outcomes.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True. Set ``host`` to
    ``"0.0.0.0"`` in containers to allow external scraping.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

SERVICE_INFO = Info(
    "nostrbridge_service",
    "Service information and metadata",
)

CYCLE_DURATION_SECONDS = Histogram(
    "nostrbridge_cycle_duration_seconds",
    "Duration of service cycle in seconds",
    ["service"],
    buckets=(0.5, 1, 5, 10, 30, 60, 120, 300),
)

# Automatic labels (BaseService.run_forever):
#   gauge:   consecutive_failures, last_cycle_timestamp
#   counter: cycles_success, cycles_failed, errors_{type}
SERVICE_GAUGE = Gauge(
    "nostrbridge_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "nostrbridge_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)

RELAY_OPERATIONS = Counter(
    "nostrbridge_relay_operations",
    "Relay operations by outcome",
    ["operation", "outcome"],
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus ``/metrics`` endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... service runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Bind the aiohttp server; no-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled or self._runner is not None:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        await site.start()
        self._runner = runner

    async def stop(self) -> None:
        """Stop the server. Safe to call when it never started."""
        if self._runner is not None:
            runner, self._runner = self._runner, None
            await runner.cleanup()

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Create and start a [MetricsServer][nostrbridge.core.metrics.MetricsServer].

    The caller must ``stop()`` it during shutdown to release the port.
    """
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
