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
"""Database tool collection for postgres session MCP Server."""

from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.connection_manager import (
    DBConnectionManager,
)
from awslabs.postgres_session_mcp_server.mutable_sql_detector import (
    check_sql_injection_risk,
    detect_mutating_keywords,
)
from loguru import logger
from mcp.server.fastmcp import Context, FastMCP
from pydantic import Field
from typing import Annotated, Any, Dict, List, Optional


unexpected_error_key = 'run_query unexpected error'
write_query_prohibited_key = 'Your MCP tool only allows readonly query. If you want to write, change the MCP configuration per README.md'
readonly_tool_mutation_key = 'query_database only accepts read-only statements. Use execute_database for writes'
query_injection_risk_key = 'Your query contains risky injection patterns'

LIST_TABLES_SQL = """
    SELECT
        table_schema,
        table_name,
        column_name,
        data_type,
        is_nullable,
        column_default
    FROM
        information_schema.columns
    WHERE
        table_schema NOT IN ('pg_catalog', 'information_schema')
    ORDER BY table_schema, table_name, ordinal_position
"""

TABLE_SCHEMA_SQL = """
    SELECT
        a.attname AS column_name,
        pg_catalog.format_type(a.atttypid, a.atttypmod) AS data_type,
        col_description(a.attrelid, a.attnum) AS column_comment
    FROM
        pg_attribute a
    WHERE
        a.attrelid = to_regclass(%(table_name)s)
        AND a.attnum > 0
        AND NOT a.attisdropped
    ORDER BY a.attnum
"""


def extract_cell(cell: dict):
    """Extracts the scalar or array value from a single cell."""
    if cell.get('isNull'):
        return None
    for key in (
        'stringValue',
        'longValue',
        'doubleValue',
        'booleanValue',
        'blobValue',
        'arrayValue',
    ):
        if key in cell:
            return cell[key]
    return None


def parse_execute_response(response: dict) -> list[dict]:
    """Convert a typed-cell query response to a list of rows."""
    columns = [col['name'] for col in response.get('columnMetadata', [])]
    return [
        {col: extract_cell(cell) for col, cell in zip(columns, row)}
        for row in response.get('records', [])
    ]


class DatabaseTools:
    """Tools that read and write the PostgreSQL database through the shared connection."""

    name = 'database'
    tool_names = ('list_tables', 'get_table_schema', 'query_database', 'execute_database')

    def __init__(self, connections: DBConnectionManager):
        """Initialize the collection.

        Args:
            connections: Process-wide connection manager shared by all session actors
        """
        self.connections = connections
        self.env: Optional[Env] = None

    @property
    def readonly_query(self) -> bool:
        """Whether write statements are refused."""
        return self.env is None or self.env.readonly_query

    def register(self, server: FastMCP, env: Env) -> None:
        """Add every database tool to the server."""
        self.env = env

        server.add_tool(
            self.list_tables,
            name='list_tables',
            description='List all tables in the database with their columns and types',
        )
        server.add_tool(
            self.get_table_schema,
            name='get_table_schema',
            description='Fetch table columns and comments from Postgres',
        )
        server.add_tool(
            self.query_database,
            name='query_database',
            description='Run a read-only SQL query (SELECT, WITH, EXPLAIN) against PostgreSQL',
        )
        server.add_tool(
            self.execute_database,
            name='execute_database',
            description='Run a SQL statement that modifies data or schema (INSERT, UPDATE, DELETE, DDL)',
        )
        logger.debug(f'Registered database tools: {", ".join(self.tool_names)}')

    async def run_query(
        self,
        sql: str,
        ctx: Context,
        readonly: bool,
        query_parameters: Optional[List[Dict[str, Any]]] = None,
    ) -> list[dict]:
        """Screen and run a SQL statement on the shared connection.

        Returns:
            List of dictionary that contains query response rows, or a single
            {'error': ...} row when the statement is refused or fails
        """
        issues = check_sql_injection_risk(sql)
        if issues:
            logger.info(
                f'query is rejected because it contains risky SQL pattern, SQL query: {sql}, reasons: {issues}'
            )
            await ctx.error(
                str({'message': 'Query parameter contains suspicious pattern', 'details': issues})
            )
            return [{'error': query_injection_risk_key}]

        try:
            db_connection = await self.connections.get_connection()
            logger.info(f'run_query: readonly:{readonly}, SQL:{sql}')

            response = await db_connection.execute_query(
                sql, query_parameters, readonly=readonly
            )

            logger.success(f'run_query successfully executed query:{sql}')
            return parse_execute_response(response)
        except Exception as e:
            logger.exception(unexpected_error_key)
            error_details = f'{type(e).__name__}: {str(e)}'
            await ctx.error(str({'message': error_details}))
            return [{'error': unexpected_error_key}]

    async def list_tables(self, ctx: Context) -> list[dict]:
        """List user tables and their columns.

        Args:
            ctx: MCP context for logging and state management

        Returns:
            One entry per table with its schema name and column descriptions
        """
        rows = await self.run_query(LIST_TABLES_SQL, ctx, readonly=True)
        if len(rows) == 1 and 'error' in rows[0]:
            return rows

        tables: Dict[tuple, dict] = {}
        for row in rows:
            key = (row['table_schema'], row['table_name'])
            table = tables.setdefault(
                key, {'schema': key[0], 'table': key[1], 'columns': []}
            )
            table['columns'].append(
                {
                    'name': row['column_name'],
                    'type': row['data_type'],
                    'nullable': row['is_nullable'] == 'YES',
                    'default': row['column_default'],
                }
            )
        return list(tables.values())

    async def get_table_schema(
        self,
        table_name: Annotated[str, Field(description='name of the table')],
        ctx: Context,
    ) -> list[dict]:
        """Get a table's schema information given the table name.

        Args:
            table_name: name of the table, optionally schema-qualified
            ctx: MCP context for logging and state management

        Returns:
            List of dictionary that contains query response rows
        """
        logger.info(f'Entered get_table_schema: table_name:{table_name}')

        params = [{'name': 'table_name', 'value': {'stringValue': table_name}}]
        return await self.run_query(
            TABLE_SCHEMA_SQL, ctx, readonly=True, query_parameters=params
        )

    async def query_database(
        self,
        sql: Annotated[str, Field(description='The read-only SQL query to run')],
        ctx: Context,
    ) -> list[dict]:
        """Run a read-only SQL query.

        Args:
            sql: The sql statement to run
            ctx: MCP context for logging and state management

        Returns:
            List of dictionary that contains query response rows
        """
        matches = detect_mutating_keywords(sql)
        if matches:
            logger.info(
                f'query_database rejected a mutating statement. detected keywords: {matches}, SQL query: {sql}'
            )
            await ctx.error(readonly_tool_mutation_key)
            return [{'error': readonly_tool_mutation_key}]

        return await self.run_query(sql, ctx, readonly=True)

    async def execute_database(
        self,
        sql: Annotated[str, Field(description='The SQL statement to execute')],
        ctx: Context,
    ) -> list[dict]:
        """Run a SQL statement that may modify the database.

        Args:
            sql: The sql statement to run
            ctx: MCP context for logging and state management

        Returns:
            List of dictionary that contains response rows, empty for statements
            without a result set
        """
        if self.readonly_query:
            logger.info(
                f'execute_database is rejected because current setting only allows readonly query. SQL query: {sql}'
            )
            await ctx.error(write_query_prohibited_key)
            return [{'error': write_query_prohibited_key}]

        return await self.run_query(sql, ctx, readonly=False)
