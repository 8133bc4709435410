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
"""Tool registry for postgres session MCP Server.

Tools are registered once per session actor, when the actor initializes. The resulting
table is frozen: nothing is added or removed while the actor is serving.
"""

from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.connection_manager import (
    DBConnectionManager,
)
from awslabs.postgres_session_mcp_server.tools.database_tools import DatabaseTools
from dataclasses import dataclass
from loguru import logger
from mcp.server.fastmcp import FastMCP
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence


class ToolRegistrationError(ValueError):
    """Raised when tool collections declare conflicting tool names."""


class ToolCollection(Protocol):
    """A named set of tools that can add itself to a server."""

    name: str
    tool_names: Sequence[str]

    def register(self, server: FastMCP, env: Env) -> None:
        """Add the collection's tools to the server."""
        ...


@dataclass(frozen=True)
class RegisteredTool:
    """A tool as advertised to clients."""

    name: str
    description: Optional[str]
    input_schema: Dict[str, Any]


ToolTable = Mapping[str, RegisteredTool]


def build_tool_collections(connections: DBConnectionManager) -> list[ToolCollection]:
    """Return every tool collection known to the server."""
    return [
        DatabaseTools(connections),
        # Future tool collections go here, e.g. OtherTools(connections)
    ]


async def register_all_tools(
    server: FastMCP,
    env: Env,
    connections: DBConnectionManager,
    props: Optional[Mapping[str, Any]] = None,
) -> ToolTable:
    """Register all tools on a server that is not serving yet.

    Args:
        server: The session's protocol server
        env: Process environment and capability context
        connections: Shared connection manager handed to the tool collections
        props: Caller identity and permissions; reserved for per-caller tool filtering
            and currently unused

    Returns:
        Read-only mapping of tool name to the registered tool

    Raises:
        ToolRegistrationError: if a collection declares a name that is already taken
    """
    registered: set[str] = {tool.name for tool in await server.list_tools()}

    for collection in build_tool_collections(connections):
        conflicts = registered.intersection(collection.tool_names)
        if conflicts or len(set(collection.tool_names)) != len(collection.tool_names):
            raise ToolRegistrationError(
                f'Tool collection {collection.name} declares duplicate tool names: '
                f'{sorted(conflicts) or list(collection.tool_names)}'
            )

        # props would filter collection.tool_names per caller here
        collection.register(server, env)
        registered.update(collection.tool_names)

    table = MappingProxyType(
        {
            tool.name: RegisteredTool(
                name=tool.name,
                description=tool.description,
                input_schema=dict(tool.inputSchema),
            )
            for tool in await server.list_tools()
        }
    )
    logger.info(f'Registered {len(table)} tools: {", ".join(sorted(table))}')
    return table


__all__ = [
    'DatabaseTools',
    'RegisteredTool',
    'ToolCollection',
    'ToolRegistrationError',
    'ToolTable',
    'build_tool_collections',
    'register_all_tools',
]
