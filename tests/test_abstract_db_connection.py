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
"""Tests for the abstract database connection interface."""

import pytest
from awslabs.postgres_session_mcp_server.connection.abstract_db_connection import (
    AbstractDBConnection,
)


class _Concrete(AbstractDBConnection):
    """Concrete subclass to allow instantiation."""

    async def execute_query(self, sql: str, parameters=None, readonly=None):
        """Minimal implementation."""
        return {'columnMetadata': [], 'records': []}

    async def close(self) -> None:
        """Minimal implementation."""
        return None

    async def check_connection_health(self) -> bool:
        """Minimal implementation."""
        return True


def test_readonly_property():
    """readonly_query reflects the constructor argument."""
    assert _Concrete(readonly=True).readonly_query is True
    assert _Concrete(readonly=False).readonly_query is False


def test_cannot_instantiate_abstract_class():
    """The abstract base cannot be instantiated directly."""
    with pytest.raises(TypeError):
        AbstractDBConnection(readonly=True)  # type: ignore[abstract]


@pytest.mark.asyncio
async def test_base_methods_are_noops():
    """Calling the abstract bodies directly returns None."""
    conn = _Concrete(readonly=False)
    assert await AbstractDBConnection.execute_query(conn, 'SELECT 1', None) is None
    assert await AbstractDBConnection.close(conn) is None
    assert await AbstractDBConnection.check_connection_health(conn) is None
