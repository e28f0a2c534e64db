"""
Async PostgreSQL connection pool built on asyncpg.

Used by [PostgresStore][nostrbridge.core.pg_store.PostgresStore] to persist
content records and bridge state. Connection attempts retry with backoff;
query methods retry on transient connection errors (``InterfaceError``,
``ConnectionDoesNotExistError``) and raise
[ConnectionPoolError][nostrbridge.core.exceptions.ConnectionPoolError] once
attempts are exhausted. Query-level errors (syntax, constraints) are wrapped
in [QueryError][nostrbridge.core.exceptions.QueryError] without retry.

Examples:
    ```python
    pool = Pool.from_yaml("config/database.yaml")

    async with pool:
        row = await pool.fetchrow("SELECT * FROM content_record WHERE id = $1", 7)
        await pool.execute("DELETE FROM bridge_state WHERE key = $1", "checkpoint")
    ```
"""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import AbstractAsyncContextManager
from typing import Any, Literal, cast

import asyncpg
from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator, model_validator

from .exceptions import ConnectionPoolError, QueryError
from .logger import Logger
from .yaml import load_yaml


_PASSWORD_ENV = "NOSTRBRIDGE_DB_PASSWORD"  # pragma: allowlist secret


def _json_encode(value: Any) -> str:
    """Encode a value for a JSON/JSONB column, passing pre-serialized strings through."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


async def _init_connection(conn: asyncpg.Connection[asyncpg.Record]) -> None:
    """Register JSONB codecs so state values round-trip as Python objects."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=_json_encode,
            decoder=json.loads,
            schema="pg_catalog",
        )


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """PostgreSQL connection parameters.

    The password is read from the environment variable named by
    ``password_env`` and never from configuration files.
    """

    host: str = Field(default="localhost", min_length=1, description="Database hostname")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    database: str = Field(default="nostrbridge", min_length=1, description="Database name")
    user: str = Field(default="nostrbridge", min_length=1, description="Database user")
    password_env: str = Field(
        default=_PASSWORD_ENV,
        min_length=1,
        description="Environment variable name for database password",
    )
    password: SecretStr = Field(description="Database password (loaded from password_env)")

    @model_validator(mode="before")
    @classmethod
    def resolve_password(cls, data: Any) -> Any:
        """Resolve the database password from the environment variable."""
        if isinstance(data, dict) and "password" not in data:
            env_var = data.get("password_env", _PASSWORD_ENV)
            value = os.getenv(env_var)
            if not value:
                raise ValueError(f"{env_var} environment variable not set")
            data = {**data, "password": SecretStr(value)}
        return data


class PoolLimitsConfig(BaseModel):
    """Connection pool size limits."""

    min_size: int = Field(default=1, ge=1, le=50, description="Minimum connections")
    max_size: int = Field(default=5, ge=1, le=100, description="Maximum connections")
    acquire_timeout: float = Field(default=10.0, ge=0.1, description="Connection timeout")

    @field_validator("max_size")
    @classmethod
    def validate_max_size(cls, v: int, info: ValidationInfo) -> int:
        """Ensure max_size >= min_size."""
        min_size = info.data.get("min_size", 1)
        if v < min_size:
            raise ValueError(f"max_size ({v}) must be >= min_size ({min_size})")
        return v


class PoolRetryConfig(BaseModel):
    """Exponential backoff for connection attempts and transient query errors."""

    max_attempts: int = Field(default=3, ge=1, le=10, description="Max retry attempts")
    initial_delay: float = Field(default=1.0, ge=0.0, description="Initial retry delay")
    max_delay: float = Field(default=10.0, ge=0.0, description="Maximum retry delay")

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        """Ensure max_delay >= initial_delay."""
        initial_delay = info.data.get("initial_delay", 1.0)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v

    def delay(self, attempt: int) -> float:
        """Backoff before retry number *attempt* (zero-based)."""
        return float(min(self.initial_delay * (2**attempt), self.max_delay))


class PoolConfig(BaseModel):
    """Aggregate configuration for the connection pool."""

    database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig.model_validate({}))
    limits: PoolLimitsConfig = Field(default_factory=PoolLimitsConfig)
    retry: PoolRetryConfig = Field(default_factory=PoolRetryConfig)
    application_name: str = Field(default="nostrbridge", description="Application name")


# ---------------------------------------------------------------------------
# Pool Class
# ---------------------------------------------------------------------------


class Pool:
    """Async PostgreSQL connection pool manager.

    Created disconnected; call [connect()][nostrbridge.core.pool.Pool.connect]
    or use ``async with``.
    """

    def __init__(self, config: PoolConfig | None = None, *, logger: Logger | None = None) -> None:
        self._config = config or PoolConfig()
        self._pool: asyncpg.Pool[asyncpg.Record] | None = None
        self._lock = asyncio.Lock()
        self._logger = logger or Logger("pool")

    @classmethod
    def from_yaml(cls, config_path: str) -> Pool:
        """Create a Pool from a YAML configuration file."""
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> Pool:
        """Create a Pool from a configuration dictionary."""
        return cls(config=PoolConfig(**config_dict))

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Create the asyncpg pool, retrying with backoff.

        Raises:
            ConnectionPoolError: If every attempt fails.
        """
        async with self._lock:
            if self._pool is not None:
                return
            db = self._config.database
            retry = self._config.retry
            self._logger.info("connection_starting", host=db.host, database=db.database)

            for attempt in range(retry.max_attempts):
                try:
                    self._pool = await asyncpg.create_pool(
                        host=db.host,
                        port=db.port,
                        database=db.database,
                        user=db.user,
                        password=db.password.get_secret_value(),
                        min_size=self._config.limits.min_size,
                        max_size=self._config.limits.max_size,
                        timeout=self._config.limits.acquire_timeout,
                        init=_init_connection,
                        server_settings={"application_name": self._config.application_name},
                    )
                    self._logger.info("connection_established")
                    return
                except (asyncpg.PostgresError, OSError) as e:
                    if attempt + 1 >= retry.max_attempts:
                        self._logger.error("connection_failed", attempts=attempt + 1, error=str(e))
                        raise ConnectionPoolError(
                            f"Failed to connect after {attempt + 1} attempts: {e}"
                        ) from e
                    delay = retry.delay(attempt)
                    self._logger.warning(
                        "connection_retry", attempt=attempt + 1, delay=delay, error=str(e)
                    )
                    await asyncio.sleep(delay)

    async def close(self) -> None:
        """Close the pool. Idempotent."""
        async with self._lock:
            if self._pool is not None:
                try:
                    await self._pool.close()
                    self._logger.info("connection_closed")
                finally:
                    self._pool = None

    # -------------------------------------------------------------------------
    # Connection Acquisition
    # -------------------------------------------------------------------------

    def acquire(self) -> AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection from the pool.

        Raises:
            ConnectionPoolError: If the pool has not been connected yet.
        """
        if self._pool is None:
            raise ConnectionPoolError("Pool not connected. Call connect() first.")
        return cast(
            "AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]",
            self._pool.acquire(),
        )

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def _run(
        self,
        operation: Literal["fetch", "fetchrow", "fetchval", "execute"],
        query: str,
        args: tuple[Any, ...],
    ) -> Any:
        retry = self._config.retry
        for attempt in range(retry.max_attempts):
            try:
                async with self.acquire() as conn:
                    return await getattr(conn, operation)(query, *args)
            except (asyncpg.InterfaceError, asyncpg.ConnectionDoesNotExistError) as e:
                if attempt + 1 >= retry.max_attempts:
                    self._logger.error(
                        "query_failed", operation=operation, attempts=attempt + 1, error=str(e)
                    )
                    raise ConnectionPoolError(
                        f"{operation} failed after {attempt + 1} attempts: {e}"
                    ) from e
                delay = retry.delay(attempt)
                self._logger.warning(
                    "query_retry", operation=operation, attempt=attempt + 1, delay_s=delay
                )
                await asyncio.sleep(delay)
            except asyncpg.PostgresError as e:
                raise QueryError(f"{operation} failed: {e}") from e
        raise ConnectionPoolError(f"{operation} failed: no attempts configured")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Execute a query and return all rows."""
        return cast("list[asyncpg.Record]", await self._run("fetch", query, args))

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        """Execute a query and return the first row, or None."""
        return cast("asyncpg.Record | None", await self._run("fetchrow", query, args))

    async def fetchval(self, query: str, *args: Any) -> Any:
        """Execute a query and return the first column of the first row."""
        return await self._run("fetchval", query, args)

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a statement and return its status tag (e.g. ``UPDATE 1``)."""
        return cast("str", await self._run("execute", query, args))

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Pool:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        db = self._config.database
        return f"Pool(host={db.host}, database={db.database}, connected={self.is_connected})"
