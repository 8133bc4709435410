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
"""Process-wide database connection lifecycle for postgres session MCP Server."""

import asyncio
from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.abstract_db_connection import (
    AbstractDBConnection,
)
from awslabs.postgres_session_mcp_server.connection.psycopg_pool_connection import (
    PsycopgPoolConnection,
)
from loguru import logger
from typing import Callable, Dict, Optional


class DBConnectionManager:
    """Owns the single shared database connection used by every session actor.

    The connection is created on first demand and reused across actors. Any actor may
    release it through close_connections(); the next get_connection() builds a new one.
    Release is best-effort with respect to other actors still using the connection.
    """

    def __init__(
        self,
        env: Env,
        connection_factory: Optional[Callable[[Env], AbstractDBConnection]] = None,
    ):
        """Initialize the manager without opening any connection.

        Args:
            env: Process environment describing the database
            connection_factory: Builds the connection from the environment; defaults to a
                psycopg pool
        """
        self.env = env
        self._connection_factory = connection_factory or create_pool_connection
        self._connection: Optional[AbstractDBConnection] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """Whether a shared connection currently exists."""
        return self._connection is not None

    async def get_connection(self) -> AbstractDBConnection:
        """Return the shared connection, creating it if needed."""
        async with self._lock:
            if self._connection is None:
                logger.info(f'Creating shared database connection, database:{self.env.database}')
                self._connection = self._connection_factory(self.env)
            return self._connection

    async def close_connections(self) -> None:
        """Release the shared connection.

        Safe to call repeatedly; closing when nothing is open is a no-op.
        """
        async with self._lock:
            connection, self._connection = self._connection, None

        if connection is None:
            logger.debug('close_connections called with no open connection')
            return

        await connection.close()
        logger.info('Shared database connection closed')

    async def get_stats(self) -> Dict[str, int]:
        """Get pool statistics of the shared connection, if it is a pool."""
        connection = self._connection
        if isinstance(connection, PsycopgPoolConnection):
            return await connection.get_pool_stats()
        return {'size': 0, 'min_size': 0, 'max_size': 0, 'idle': 0}


def create_pool_connection(env: Env) -> AbstractDBConnection:
    """Create the default psycopg pool connection from the environment."""
    return PsycopgPoolConnection(
        readonly=env.readonly_query,
        conninfo=env.database_url,
        host=env.db_host,
        port=env.db_port,
        database=env.database,
        secret_arn=env.secret_arn,
        region=env.region,
        min_size=env.pool_min_size,
        max_size=env.pool_max_size,
    )
