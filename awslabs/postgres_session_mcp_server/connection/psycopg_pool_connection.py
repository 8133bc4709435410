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
"""Psycopg pool connector for postgres session MCP Server.

The pool is opened lazily on the first query and shared by every session actor in the
process. Connection parameters come either from a libpq connection string or from a
host/port/database triple whose credentials live in AWS Secrets Manager.
"""

import boto3
import json
from aiorwlock import RWLock
from awslabs.postgres_session_mcp_server import __user_agent__
from awslabs.postgres_session_mcp_server.connection.abstract_db_connection import (
    AbstractDBConnection,
)
from botocore.config import Config
from datetime import datetime, timedelta
from loguru import logger
from psycopg_pool import AsyncConnectionPool
from typing import Any, Dict, List, Optional, Tuple


class PsycopgPoolConnection(AbstractDBConnection):
    """Class that wraps a psycopg async connection pool."""

    def __init__(
        self,
        readonly: bool,
        conninfo: Optional[str] = None,
        host: Optional[str] = None,
        port: int = 5432,
        database: str = 'postgres',
        secret_arn: Optional[str] = None,
        region: Optional[str] = None,
        pool_expiry_min: int = 30,
        min_size: int = 1,
        max_size: int = 5,
        is_test: bool = False,
    ):
        """Initialize a new DB connection pool wrapper; no connection is opened here.

        Args:
            readonly: Whether queries run in read-only transactions
            conninfo: libpq connection string; takes precedence over host/port/database
            host: Database host
            port: Database port
            database: Database name
            secret_arn: ARN of the Secrets Manager secret containing credentials
            region: AWS region for Secrets Manager
            pool_expiry_min: Pool expiry time in minutes
            min_size: Minimum number of connections in the pool
            max_size: Maximum number of connections in the pool
            is_test: Whether this is a test connection
        """
        super().__init__(readonly)
        if not conninfo and not host:
            raise ValueError('Either conninfo or host must be provided')
        if secret_arn and not region:
            raise ValueError('region must be set when secret_arn is used')

        self.conninfo = conninfo
        self.host = host
        self.port = port
        self.database = database
        self.secret_arn = secret_arn
        self.region = region
        self.pool_expiry_min = pool_expiry_min
        self.min_size = min_size
        self.max_size = max_size
        self.is_test = is_test
        self.pool: Optional['AsyncConnectionPool[Any]'] = None
        self.rw_lock = RWLock()
        self.created_time = datetime.now()

    async def initialize_pool(self):
        """Initialize the connection pool."""
        async with self.rw_lock.reader_lock:
            if self.pool is not None:
                return

        async with self.rw_lock.writer_lock:
            if self.pool is not None:
                return

            logger.info(
                f'initialize_pool:\n'
                f'endpoint:{self.host}\n'
                f'port:{self.port}\n'
                f'db:{self.database}\n'
                f'min_size:{self.min_size} max_size:{self.max_size}'
            )

            self.created_time = datetime.now()
            self.pool = AsyncConnectionPool(
                self._build_conninfo(),
                min_size=self.min_size,
                max_size=self.max_size,
                open=False,
            )

            # wait up to 30 seconds to fill the pool with connections
            await self.pool.open(True, 30)
            logger.info('Connection pool initialized successfully')

    def _build_conninfo(self) -> str:
        """Build the libpq connection string for the pool."""
        if self.conninfo:
            return self.conninfo

        conninfo = f'host={self.host} port={self.port} dbname={self.database}'
        if self.secret_arn:
            logger.info(f'Retrieving credentials from Secrets Manager: {self.secret_arn}')
            user, password = self._get_credentials_from_secret(
                self.secret_arn, str(self.region), self.is_test
            )
            conninfo += f' user={user} password={password}'
        return conninfo

    async def _get_connection(self):
        """Get a database connection from the pool."""
        await self.check_expiry()

        async with self.rw_lock.reader_lock:
            if self.pool is None:
                raise ValueError('Failed to initialize connection pool')
            return self.pool.connection(timeout=15.0)

    async def check_expiry(self):
        """Check and handle pool expiry."""
        async with self.rw_lock.reader_lock:
            if self.pool and datetime.now() - self.created_time < timedelta(
                minutes=self.pool_expiry_min
            ):
                return

        await self.close()
        await self.initialize_pool()

    async def execute_query(
        self,
        sql: str,
        parameters: Optional[List[Dict[str, Any]]] = None,
        readonly: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Execute a SQL query using an async pooled connection."""
        if readonly is None:
            readonly = self.readonly_query

        try:
            async with await self._get_connection() as conn:
                async with conn.transaction():
                    if readonly:
                        await conn.execute('SET TRANSACTION READ ONLY')

                    async with conn.cursor() as cursor:
                        if parameters:
                            await cursor.execute(sql, self._convert_parameters(parameters))
                        else:
                            await cursor.execute(sql)

                        # statements without a result set (INSERT, UPDATE, DDL) have no description
                        if not cursor.description:
                            return {'columnMetadata': [], 'records': []}

                        columns = [desc[0] for desc in cursor.description]
                        rows = await cursor.fetchall()
                        return {
                            'columnMetadata': [{'name': col} for col in columns],
                            'records': [[self._to_cell(value) for value in row] for row in rows],
                        }

        except Exception as e:
            logger.error(f'Database connection error: {str(e)}')
            raise e

    @staticmethod
    def _to_cell(value: Any) -> Dict[str, Any]:
        """Encode a single column value in the typed cell format used by the tools."""
        if value is None:
            return {'isNull': True}
        if isinstance(value, str):
            return {'stringValue': value}
        if isinstance(value, bool):
            return {'booleanValue': value}
        if isinstance(value, int):
            return {'longValue': value}
        if isinstance(value, float):
            return {'doubleValue': value}
        if isinstance(value, bytes):
            return {'blobValue': value}
        return {'stringValue': str(value)}

    def _convert_parameters(self, parameters: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Transform structured parameter format to psycopg's native parameter format."""
        result = {}
        for param in parameters:
            name = param.get('name')
            value = param.get('value', {})

            if 'stringValue' in value:
                result[name] = value['stringValue']
            elif 'longValue' in value:
                result[name] = value['longValue']
            elif 'doubleValue' in value:
                result[name] = value['doubleValue']
            elif 'booleanValue' in value:
                result[name] = value['booleanValue']
            elif 'blobValue' in value:
                result[name] = value['blobValue']
            elif value.get('isNull'):
                result[name] = None

        return result

    def _get_credentials_from_secret(
        self, secret_arn: str, region: str, is_test: bool = False
    ) -> Tuple[str, str]:
        """Get database credentials from AWS Secrets Manager."""
        if is_test:
            return 'test_user', 'test_password'

        try:
            client = boto3.client(
                'secretsmanager',
                region_name=region,
                config=Config(user_agent_extra=__user_agent__),
            )
            response = client.get_secret_value(SecretId=secret_arn)

            if 'SecretString' not in response:
                raise ValueError('Secret does not contain a SecretString')

            secret = json.loads(response['SecretString'])
            username = secret.get('username') or secret.get('user') or secret.get('Username')
            password = secret.get('password') or secret.get('Password')

            if not username:
                raise ValueError(
                    f'Secret does not contain username. Available keys: {", ".join(secret.keys())}'
                )
            if not password:
                raise ValueError(
                    f'Secret does not contain password. Available keys: {", ".join(secret.keys())}'
                )

            logger.info(f'Successfully extracted credentials for user: {username}')
            return username, password
        except Exception as e:
            logger.error(f'Error retrieving secret: {str(e)}')
            raise ValueError(f'Failed to retrieve credentials from Secrets Manager: {str(e)}')

    async def close(self) -> None:
        """Close all connections in the pool."""
        async with self.rw_lock.writer_lock:
            if self.pool is not None:
                logger.info('Closing connection pool')
                await self.pool.close()
                self.pool = None
                logger.info('Connection pool closed successfully')

    async def check_connection_health(self) -> bool:
        """Check if the connection is healthy."""
        try:
            result = await self.execute_query('SELECT 1')
            return len(result.get('records', [])) > 0
        except Exception as e:
            logger.error(f'Connection health check failed: {str(e)}')
            return False

    async def get_pool_stats(self) -> Dict[str, int]:
        """Get current connection pool statistics."""
        async with self.rw_lock.reader_lock:
            if self.pool is None:
                return {'size': 0, 'min_size': self.min_size, 'max_size': self.max_size, 'idle': 0}

            stats = self.pool.get_stats()
            return {
                'size': stats.get('pool_size', 0),
                'min_size': self.min_size,
                'max_size': self.max_size,
                'idle': stats.get('pool_available', 0),
            }
