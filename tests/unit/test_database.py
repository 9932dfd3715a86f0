"""Unit tests for pool access and migration tracking."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetauth import database


class _AsyncContext:
    def __init__(self, value=None):
        self._value = value

    async def __aenter__(self):
        return self._value

    async def __aexit__(self, *args):
        return False


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=1)
    conn.transaction = MagicMock(side_effect=lambda: _AsyncContext())
    return conn


@pytest.fixture
def pool(conn):
    pool = MagicMock()
    pool.acquire = MagicMock(side_effect=lambda: _AsyncContext(conn))
    return pool


@pytest.fixture
def migrations_dir(tmp_path):
    (tmp_path / "001_first.sql").write_text("CREATE TABLE a (id INT);")
    (tmp_path / "002_second.sql").write_text("CREATE TABLE b (id INT);")
    return tmp_path


class TestGetPool:

    async def test_raises_when_not_initialized(self):
        with patch.object(database, "_pool", None):
            with pytest.raises(RuntimeError):
                await database.get_pool()


class TestRunMigrations:

    async def test_applies_pending_in_order(self, pool, conn, migrations_dir):
        with patch.object(database, "_pool", pool):
            applied = await database.run_migrations(migrations_dir)

        assert applied == ["001_first.sql", "002_second.sql"]
        executed = [c.args[0] for c in conn.execute.call_args_list]
        assert "CREATE TABLE a (id INT);" in executed
        assert "CREATE TABLE b (id INT);" in executed
        assert executed.index("CREATE TABLE a (id INT);") < executed.index("CREATE TABLE b (id INT);")

    async def test_skips_already_applied(self, pool, conn, migrations_dir):
        conn.fetch.return_value = [{"name": "001_first.sql"}]

        with patch.object(database, "_pool", pool):
            applied = await database.run_migrations(migrations_dir)

        assert applied == ["002_second.sql"]
        executed = [c.args[0] for c in conn.execute.call_args_list]
        assert "CREATE TABLE a (id INT);" not in executed

    async def test_records_each_migration(self, pool, conn, migrations_dir):
        with patch.object(database, "_pool", pool):
            await database.run_migrations(migrations_dir)

        inserts = [
            c.args for c in conn.execute.call_args_list
            if c.args[0].startswith("INSERT INTO schema_migrations")
        ]
        assert [args[1] for args in inserts] == ["001_first.sql", "002_second.sql"]

    async def test_failure_stops_and_propagates(self, pool, conn, migrations_dir):
        async def execute(query, *args):
            if query.startswith("CREATE TABLE b"):
                raise RuntimeError("syntax error")

        conn.execute.side_effect = execute

        with patch.object(database, "_pool", pool):
            with pytest.raises(RuntimeError):
                await database.run_migrations(migrations_dir)

    async def test_missing_directory(self, pool, tmp_path):
        with patch.object(database, "_pool", pool):
            assert await database.run_migrations(tmp_path / "nope") == []


class TestHealthCheck:

    async def test_healthy(self, pool):
        with patch.object(database, "_pool", pool):
            assert await database.health_check() is True

    async def test_unhealthy_without_pool(self):
        with patch.object(database, "_pool", None):
            assert await database.health_check() is False
