"""
Unit tests for core.pool module.

Tests:
- DatabaseConfig password resolution from the environment
- PoolLimitsConfig / PoolRetryConfig validation and backoff
- Pool connect() retries and query error mapping
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest
from pydantic import ValidationError as PydanticValidationError

from nostrbridge.core.exceptions import ConnectionPoolError, QueryError
from nostrbridge.core.pool import (
    DatabaseConfig,
    Pool,
    PoolConfig,
    PoolLimitsConfig,
    PoolRetryConfig,
)


def _pool_with_connection(conn: MagicMock, **retry: Any) -> Pool:
    pool = Pool(PoolConfig(retry=PoolRetryConfig(**retry)))
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=None)
    asyncpg_pool = MagicMock()
    asyncpg_pool.acquire = MagicMock(return_value=acquire)
    asyncpg_pool.close = AsyncMock()
    pool._pool = asyncpg_pool
    return pool


# =============================================================================
# Configuration
# =============================================================================


class TestDatabaseConfig:
    """DatabaseConfig password handling."""

    def test_password_from_env(self, db_password: str) -> None:
        """The password is read from the default environment variable."""
        config = DatabaseConfig()
        assert config.password.get_secret_value() == db_password
        assert config.database == "nostrbridge"

    def test_custom_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """password_env names the variable to read."""
        monkeypatch.setenv("OTHER_PASSWORD", "s3cret")
        config = DatabaseConfig(password_env="OTHER_PASSWORD")
        assert config.password.get_secret_value() == "s3cret"

    def test_missing_password(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A missing variable is a validation error."""
        monkeypatch.delenv("NOSTRBRIDGE_DB_PASSWORD", raising=False)
        with pytest.raises(PydanticValidationError, match="NOSTRBRIDGE_DB_PASSWORD"):
            DatabaseConfig()

    def test_password_hidden(self, db_password: str) -> None:
        """The password does not appear in the repr."""
        assert db_password not in repr(DatabaseConfig())


class TestLimitsAndRetry:
    """Pool limits and retry configuration."""

    def test_max_below_min(self) -> None:
        """max_size must not be below min_size."""
        with pytest.raises(PydanticValidationError, match="max_size"):
            PoolLimitsConfig(min_size=5, max_size=2)

    def test_max_delay_below_initial(self) -> None:
        """max_delay must not be below initial_delay."""
        with pytest.raises(PydanticValidationError, match="max_delay"):
            PoolRetryConfig(initial_delay=5.0, max_delay=1.0)

    def test_backoff_capped(self) -> None:
        """Delays double per attempt up to max_delay."""
        retry = PoolRetryConfig(initial_delay=1.0, max_delay=5.0)
        assert [retry.delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_from_dict(self, db_password: str) -> None:
        """Pool.from_dict() builds nested configuration."""
        pool = Pool.from_dict({"database": {"host": "db"}, "limits": {"max_size": 3}})
        assert pool.config.database.host == "db"
        assert pool.config.limits.max_size == 3
        assert pool.is_connected is False


# =============================================================================
# Connection lifecycle
# =============================================================================


class TestConnect:
    """Pool.connect() and close()."""

    async def test_connect_and_close(self, db_password: str) -> None:
        """connect() creates the pool once; close() releases it."""
        asyncpg_pool = MagicMock()
        asyncpg_pool.close = AsyncMock()
        with patch(
            "asyncpg.create_pool", new_callable=AsyncMock, return_value=asyncpg_pool
        ) as create:
            pool = Pool()
            await pool.connect()
            await pool.connect()
            assert create.await_count == 1
            assert pool.is_connected is True
            assert create.await_args.kwargs["password"] == db_password
        await pool.close()
        await pool.close()
        asyncpg_pool.close.assert_awaited_once()
        assert pool.is_connected is False

    async def test_retries_then_fails(self, db_password: str) -> None:
        """Exhausted retries raise ConnectionPoolError."""
        config = PoolConfig(retry=PoolRetryConfig(max_attempts=3, initial_delay=0.0, max_delay=0.0))
        with (
            patch("asyncpg.create_pool", new_callable=AsyncMock, side_effect=OSError("refused")),
            patch("nostrbridge.core.pool.asyncio.sleep", new_callable=AsyncMock) as sleep,
        ):
            pool = Pool(config)
            with pytest.raises(ConnectionPoolError, match="3 attempts"):
                await pool.connect()
        assert sleep.await_count == 2

    async def test_acquire_requires_connect(self, db_password: str) -> None:
        """Queries before connect() raise ConnectionPoolError."""
        with pytest.raises(ConnectionPoolError, match="not connected"):
            await Pool().fetch("SELECT 1")


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    """Pool query methods."""

    async def test_fetchrow(self, db_password: str) -> None:
        """Queries run on an acquired connection."""
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value={"id": 1})
        pool = _pool_with_connection(conn)
        assert await pool.fetchrow("SELECT $1", 1) == {"id": 1}
        conn.fetchrow.assert_awaited_once_with("SELECT $1", 1)

    async def test_execute_status(self, db_password: str) -> None:
        """execute() returns the status tag."""
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="UPDATE 2")
        assert await _pool_with_connection(conn).execute("UPDATE x") == "UPDATE 2"

    async def test_postgres_error_mapped(self, db_password: str) -> None:
        """Server errors become QueryError without retry."""
        conn = MagicMock()
        conn.fetch = AsyncMock(side_effect=asyncpg.PostgresError("syntax error"))
        with pytest.raises(QueryError):
            await _pool_with_connection(conn).fetch("SELEC")
        assert conn.fetch.await_count == 1

    async def test_interface_error_retried(self, db_password: str) -> None:
        """Connection-level errors are retried."""
        conn = MagicMock()
        conn.fetchval = AsyncMock(side_effect=[asyncpg.InterfaceError("reset"), 42])
        pool = _pool_with_connection(conn, max_attempts=2, initial_delay=0.0, max_delay=0.0)
        with patch("nostrbridge.core.pool.asyncio.sleep", new_callable=AsyncMock):
            assert await pool.fetchval("SELECT 42") == 42
        assert conn.fetchval.await_count == 2
