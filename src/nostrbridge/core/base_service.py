"""
Abstract base class for long-running nostrbridge services.

``BaseService[ConfigT]`` provides the standard lifecycle: structured logging
via [Logger][nostrbridge.core.logger.Logger], graceful shutdown via
``asyncio.Event``, interval-based cycling with
[run_forever()][nostrbridge.core.base_service.BaseService.run_forever],
consecutive failure limits, and Prometheus metrics.

Services persist state through the injected
[ContentStore][nostrbridge.core.store.ContentStore], never in memory, so a
restart resumes from the stored checkpoint.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from nostrbridge.models.constants import ServiceName

from .logger import Logger
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
)
from .store import ContentStore
from .yaml import load_yaml


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class BaseServiceConfig(BaseModel):
    """Base configuration shared by all services that run in a loop."""

    interval: float = Field(
        default=300.0,
        ge=60.0,
        description="Seconds between run cycles",
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=0,
        description="Stop after this many consecutive errors (0 = unlimited)",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus metrics configuration",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Abstract base class for all nostrbridge services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][nostrbridge.core.base_service.BaseService.run].

    Attributes:
        SERVICE_NAME: Identifier used in logging and metrics.
        CONFIG_CLASS: Pydantic model used by the factory methods.
        _store: Content store shared with the sync engine.
        _config: Typed service configuration.
        _logger: Logger named after the service.

    Note:
        The lifecycle is ``async with store:`` then ``async with service:``
        then [run_forever()][nostrbridge.core.base_service.BaseService.run_forever]
        (or a single [run()][nostrbridge.core.base_service.BaseService.run]
        with ``--once``).
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(
        self,
        store: ContentStore,
        config: ConfigT | None = None,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._store = store
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = logger or Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigT:
        """The typed service configuration (read-only)."""
        return self._config

    @property
    def store(self) -> ContentStore:
        return self._store

    @abstractmethod
    async def run(self) -> None:
        """Execute one bounded cycle of the service's work."""
        ...

    def request_shutdown(self) -> None:
        """Request a graceful shutdown; safe to call from signal handlers."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Whether the service is still active (shutdown not yet requested)."""
        return not self._shutdown_event.is_set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep up to *timeout* seconds; return True if shutdown was requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def run_forever(self) -> None:
        """Call [run()][nostrbridge.core.base_service.BaseService.run] every ``interval`` seconds.

        Exits on shutdown request or after ``max_consecutive_failures``
        failed cycles in a row (``0`` disables the limit). Each failure is
        logged and counted; the streak resets on success. ``CancelledError``,
        ``KeyboardInterrupt`` and ``SystemExit`` propagate immediately.

        Metrics recorded: ``cycles_success``, ``cycles_failed``,
        ``errors_{ExceptionType}``, ``consecutive_failures``,
        ``last_cycle_timestamp`` and ``CYCLE_DURATION_SECONDS``.
        """
        interval = self._config.interval
        max_consecutive_failures = self._config.max_consecutive_failures
        metrics_enabled = self._config.metrics.enabled

        if metrics_enabled:
            SERVICE_INFO.info({"service": self.SERVICE_NAME})

        self._logger.info(
            "run_forever_started",
            interval=interval,
            max_consecutive_failures=max_consecutive_failures,
        )

        consecutive_failures = 0

        while self.is_running:
            cycle_start = time.monotonic()

            try:
                await self.run()

                if metrics_enabled:
                    CYCLE_DURATION_SECONDS.labels(service=self.SERVICE_NAME).observe(
                        time.monotonic() - cycle_start
                    )
                self.inc_counter("cycles_success")
                self.set_gauge("last_cycle_timestamp", time.time())
                self.set_gauge("consecutive_failures", 0)
                consecutive_failures = 0
                self._logger.info("cycle_completed", next_cycle_s=interval)

            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise

            except Exception as e:  # Intentionally broad: top-level error boundary for run_forever
                consecutive_failures += 1
                self.inc_counter("cycles_failed")
                self.inc_counter(f"errors_{type(e).__name__}")
                self.set_gauge("consecutive_failures", consecutive_failures)
                self._logger.error(
                    "run_cycle_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    consecutive_failures=consecutive_failures,
                )

                if 0 < max_consecutive_failures <= consecutive_failures:
                    self._logger.critical(
                        "max_consecutive_failures_reached",
                        failures=consecutive_failures,
                        limit=max_consecutive_failures,
                    )
                    break

            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str, store: ContentStore, **kwargs: Any) -> Self:
        """Create a service from a YAML configuration file."""
        return cls.from_dict(load_yaml(config_path), store=store, **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], store: ContentStore, **kwargs: Any) -> Self:
        """Create a service, parsing *data* into ``CONFIG_CLASS``."""
        config = cast("ConfigT", cls.CONFIG_CLASS(**data))
        return cls(store=store, config=config, **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge for this service; no-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named counter for this service; no-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
