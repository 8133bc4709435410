# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests for the shared connection lifecycle manager."""

import asyncio
import pytest
from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.connection_manager import (
    DBConnectionManager,
    create_pool_connection,
)
from awslabs.postgres_session_mcp_server.connection.psycopg_pool_connection import (
    PsycopgPoolConnection,
)
from tests.fixtures import FakeConnection
from unittest.mock import AsyncMock


class TestGetConnection:
    """Lazy creation tests."""

    def test_nothing_created_until_requested(self, env):
        """No connection exists before the first request."""
        created = []
        manager = DBConnectionManager(env, connection_factory=lambda e: created.append(e))
        assert manager.is_connected is False
        assert created == []

    @pytest.mark.asyncio
    async def test_concurrent_requests_create_one_connection(self, env):
        """Concurrent callers all receive the same single connection."""
        created = []

        def factory(_env):
            connection = FakeConnection()
            created.append(connection)
            return connection

        manager = DBConnectionManager(env, connection_factory=factory)
        results = await asyncio.gather(*(manager.get_connection() for _ in range(10)))

        assert len(created) == 1
        assert all(result is created[0] for result in results)
        assert manager.is_connected is True

    @pytest.mark.asyncio
    async def test_recreated_after_close(self, env):
        """A request after a release builds a fresh connection."""
        created = []

        def factory(_env):
            connection = FakeConnection()
            created.append(connection)
            return connection

        manager = DBConnectionManager(env, connection_factory=factory)
        first = await manager.get_connection()
        await manager.close_connections()
        second = await manager.get_connection()

        assert first is not second
        assert len(created) == 2
        assert first.close_calls == 1


class TestCloseConnections:
    """Release tests."""

    @pytest.mark.asyncio
    async def test_close_without_connection_is_noop(self, connections, fake_connection):
        """Closing before anything is open does not raise."""
        await connections.close_connections()
        assert fake_connection.close_calls == 0

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, connections, fake_connection):
        """The connection is closed once however often release is called."""
        await connections.get_connection()
        await connections.close_connections()
        await connections.close_connections()
        assert fake_connection.close_calls == 1
        assert connections.is_connected is False

    @pytest.mark.asyncio
    async def test_close_error_propagates(self, env):
        """Errors from the underlying close reach the caller."""
        connection = FakeConnection()
        connection.close = AsyncMock(side_effect=RuntimeError('close failed'))
        manager = DBConnectionManager(env, connection_factory=lambda _env: connection)
        await manager.get_connection()

        with pytest.raises(RuntimeError, match='close failed'):
            await manager.close_connections()
        assert manager.is_connected is False


class TestStatsAndFactory:
    """Statistics and default factory tests."""

    @pytest.mark.asyncio
    async def test_stats_for_non_pool_connection(self, connections):
        """Non-pool connections report zero statistics."""
        await connections.get_connection()
        stats = await connections.get_stats()
        assert stats == {'size': 0, 'min_size': 0, 'max_size': 0, 'idle': 0}

    def test_default_factory_builds_pool_connection(self):
        """The default factory maps the environment onto a pool connection."""
        env = Env(
            db_host='db.local',
            db_port=6543,
            database='app',
            allow_write_query=True,
            pool_min_size=2,
            pool_max_size=8,
        )
        connection = create_pool_connection(env)

        assert isinstance(connection, PsycopgPoolConnection)
        assert connection.readonly_query is False
        assert connection.host == 'db.local'
        assert connection.port == 6543
        assert connection.database == 'app'
        assert (connection.min_size, connection.max_size) == (2, 8)
        assert connection.pool is None
