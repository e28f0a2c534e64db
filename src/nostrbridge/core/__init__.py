"""Core layer: storage, configuration, logging, metrics, and errors.

Depends only on ``nostrbridge.models``; ``nostrbridge.utils`` and
``nostrbridge.services`` build on it.

Attributes:
    ContentStore: Async persistence boundary for records and bridge state,
        with [MemoryStore][nostrbridge.core.store.MemoryStore] and
        [PostgresStore][nostrbridge.core.pg_store.PostgresStore].
    Pool: asyncpg connection pool with retry/backoff.
    BaseService: Lifecycle base class (run / run_forever / shutdown,
        YAML factories, Prometheus metrics).
    Logger: Structured key=value / JSON logger.
    MetricsServer: Prometheus ``/metrics`` endpoint.
    load_yaml: Safe YAML loading.
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .exceptions import (
    ConfigurationError,
    ConnectError,
    ConnectionPoolError,
    DatabaseError,
    MappingError,
    NostrBridgeError,
    ProtocolError,
    QueryError,
    ReceiveError,
    SendError,
    TransportError,
    ValidationError,
)
from .logger import Logger, StructuredFormatter, configure_logging, format_kv_pairs
from .metrics import (
    CYCLE_DURATION_SECONDS,
    RELAY_OPERATIONS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)
from .pg_store import PostgresStore
from .pool import DatabaseConfig, Pool, PoolConfig, PoolLimitsConfig, PoolRetryConfig
from .store import ContentStore, MemoryStore
from .yaml import load_yaml


__all__ = [
    "CYCLE_DURATION_SECONDS",
    "RELAY_OPERATIONS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "ConfigT",
    "ConfigurationError",
    "ConnectError",
    "ConnectionPoolError",
    "ContentStore",
    "DatabaseConfig",
    "DatabaseError",
    "Logger",
    "MappingError",
    "MemoryStore",
    "MetricsConfig",
    "MetricsServer",
    "NostrBridgeError",
    "Pool",
    "PoolConfig",
    "PoolLimitsConfig",
    "PoolRetryConfig",
    "PostgresStore",
    "ProtocolError",
    "QueryError",
    "ReceiveError",
    "SendError",
    "StructuredFormatter",
    "TransportError",
    "ValidationError",
    "configure_logging",
    "format_kv_pairs",
    "load_yaml",
    "start_metrics_server",
]
