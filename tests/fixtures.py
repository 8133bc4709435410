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
"""Test doubles shared by the postgres session MCP Server tests."""

from awslabs.postgres_session_mcp_server.connection.abstract_db_connection import (
    AbstractDBConnection,
)


class FakeConnection(AbstractDBConnection):
    """In-memory connection that records every statement it receives."""

    def __init__(self, response=None, readonly=True, error=None):
        """Initialize with a canned response or an error to raise."""
        super().__init__(readonly)
        self.response = response or {'columnMetadata': [], 'records': []}
        self.error = error
        self.queries = []
        self.close_calls = 0

    async def execute_query(self, sql, parameters=None, readonly=None):
        """Record the statement and return the canned response."""
        self.queries.append({'sql': sql, 'parameters': parameters, 'readonly': readonly})
        if self.error:
            raise self.error
        return self.response

    async def close(self) -> None:
        """Count close calls."""
        self.close_calls += 1

    async def check_connection_health(self) -> bool:
        """Always healthy."""
        return True


class MockContext:
    """Mock MCP context for testing."""

    def __init__(self):
        """Initialize with no recorded errors."""
        self.errors = []

    async def error(self, message):
        """Record the error message."""
        self.errors.append(message)
