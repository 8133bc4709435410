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
"""Shared fixtures for postgres session MCP Server tests."""

import pytest
from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.connection_manager import (
    DBConnectionManager,
)
from tests.fixtures import FakeConnection, MockContext


@pytest.fixture
def env():
    """Provide a write-disabled environment pointing at a dummy database."""
    return Env(database_url='postgresql://test_user@localhost/testdb', idle_timeout_seconds=60)


@pytest.fixture
def write_env():
    """Provide an environment that allows write queries."""
    return Env(
        database_url='postgresql://test_user@localhost/testdb',
        allow_write_query=True,
        idle_timeout_seconds=60,
    )


@pytest.fixture
def fake_connection():
    """Provide a fake database connection."""
    return FakeConnection()


@pytest.fixture
def connections(env, fake_connection):
    """Provide a connection manager that hands out the fake connection."""
    return DBConnectionManager(env, connection_factory=lambda _env: fake_connection)


@pytest.fixture
def ctx():
    """Provide a mock MCP context."""
    return MockContext()
