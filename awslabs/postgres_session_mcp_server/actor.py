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
"""Session actors for postgres session MCP Server.

A session actor owns one protocol server for the whole life of a session. The host
(see host.py) creates it lazily, runs init() once before any message is served, and
calls alarm() when the session has been idle long enough to be evicted.
"""

from abc import ABC, abstractmethod
from awslabs.postgres_session_mcp_server import __version__
from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.connection_manager import (
    DBConnectionManager,
)
from awslabs.postgres_session_mcp_server.tools import ToolTable, register_all_tools
from awslabs.postgres_session_mcp_server.transport import EventStreamBinding, StatelessBinding
from loguru import logger
from mcp.server.fastmcp import FastMCP
from types import MappingProxyType
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from awslabs.postgres_session_mcp_server.host import ActorNamespace


SERVER_NAME = 'PostgreSQL Database MCP Server'


class SessionActor(ABC):
    """Base class for an address-keyed unit of execution holding one protocol server."""

    def __init__(self, address: str, env: Env, connections: DBConnectionManager):
        """Create the actor and its protocol server; nothing is registered yet.

        Args:
            address: Opaque address assigned by the host
            env: Process environment and capability context
            connections: Process-wide connection manager
        """
        self.address = address
        self.env = env
        self.connections = connections
        self.server = self.create_server()
        self.tools: ToolTable = MappingProxyType({})

    @abstractmethod
    def create_server(self) -> FastMCP:
        """Create the protocol server owned by this actor."""
        pass

    @property
    def protocol_server(self) -> Any:
        """The low-level MCP server driven by the transports."""
        return self.server._mcp_server

    async def run_session(self, read_stream, write_stream) -> None:
        """Serve one protocol session over a pair of message streams."""
        await self.protocol_server.run(
            read_stream,
            write_stream,
            self.protocol_server.create_initialization_options(),
        )

    async def init(self) -> None:
        """Run once, before the first message is served."""

    async def cleanup(self) -> None:
        """Release resources before the actor is reclaimed. Must not raise."""

    async def alarm(self) -> None:
        """Handle the host's eviction alarm."""
        await self.cleanup()

    @classmethod
    def serve_sse(cls, path: str, namespace: 'ActorNamespace') -> EventStreamBinding:
        """Return the event-stream transport binding mounted at path."""
        return EventStreamBinding(namespace, path)

    @classmethod
    def serve(cls, path: str, namespace: 'ActorNamespace') -> StatelessBinding:
        """Return the stateless request/response transport binding mounted at path."""
        return StatelessBinding(namespace, path)


class PostgresMCP(SessionActor):
    """Session actor exposing the PostgreSQL database tools."""

    def create_server(self) -> FastMCP:
        """Create the FastMCP server with the fixed name and version."""
        server = FastMCP(
            SERVER_NAME,
            instructions=(
                'You are an expert PostgreSQL assistant. Use list_tables and get_table_schema '
                'to discover the schema, query_database for reads and execute_database for writes.'
            ),
        )
        server._mcp_server.version = __version__
        return server

    async def init(self) -> None:
        """Register all tools for this session."""
        self.tools = await register_all_tools(self.server, self.env, self.connections)

    async def cleanup(self) -> None:
        """Close database connections when the actor is shutting down."""
        try:
            await self.connections.close_connections()
            logger.success('Database connections closed successfully')
        except Exception as e:
            logger.error(f'Error during database cleanup: {e}')
