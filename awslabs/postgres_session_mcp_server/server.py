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
"""awslabs postgres session MCP Server implementation."""

import argparse
import sys
import uvicorn
from awslabs.postgres_session_mcp_server.config import FASTMCP_LOG_LEVEL, HOST, PORT, Env
from awslabs.postgres_session_mcp_server.router import create_app
from loguru import logger
from pydantic import ValidationError


logger.remove()
logger.add(sys.stderr, level=FASTMCP_LOG_LEVEL)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='An AWS Labs Model Context Protocol (MCP) server for postgres with per-session actors'
    )
    parser.add_argument('--database_url', help='libpq connection string of the database')
    parser.add_argument('--hostname', help='Database hostname')
    parser.add_argument('--port', type=int, help='Database port (default: 5432)')
    parser.add_argument('--database', help='Database name (default: postgres)')
    parser.add_argument(
        '--secret_arn', help='ARN of the Secrets Manager secret for database credentials'
    )
    parser.add_argument('--region', help='AWS region of the secret')
    parser.add_argument(
        '--allow_write_query',
        action='store_true',
        default=None,
        help='Allow execute_database to run mutating SQL statements',
    )
    parser.add_argument('--base_path', help='URL prefix in front of /sse and /mcp')
    parser.add_argument(
        '--idle_timeout', type=float, help='Seconds of inactivity before a session is evicted'
    )
    parser.add_argument('--host', default=HOST, help=f'HTTP bind address (default: {HOST})')
    parser.add_argument(
        '--http_port', type=int, default=PORT, help=f'HTTP port (default: {PORT})'
    )
    return parser.parse_args(argv)


def build_env(args: argparse.Namespace) -> Env:
    """Merge command line arguments over the environment variables."""
    return Env.from_environ(
        database_url=args.database_url,
        db_host=args.hostname,
        db_port=args.port,
        database=args.database,
        secret_arn=args.secret_arn,
        region=args.region,
        allow_write_query=args.allow_write_query,
        base_path=args.base_path,
        idle_timeout_seconds=args.idle_timeout,
    )


def main(argv=None):
    """Main entry point for the MCP server application.

    Serves the event-stream and stateless MCP transports over HTTP.
    """
    args = parse_args(argv)

    try:
        env = build_env(args)
    except (ValidationError, ValueError) as e:
        logger.error(f'Invalid configuration: {e}')
        sys.exit(1)

    if not env.database_url and not env.db_host:
        logger.error(
            'Either --database_url (DATABASE_URL) or --hostname (PG_HOST) must be provided'
        )
        sys.exit(1)

    logger.info(
        f'MCP configuration:\n'
        f'db_host:{env.db_host}\n'
        f'db_port:{env.db_port}\n'
        f'database:{env.database}\n'
        f'secret_arn:{env.secret_arn}\n'
        f'region:{env.region}\n'
        f'allow_write_query:{env.allow_write_query}\n'
        f'base_path:{env.base_path}\n'
        f'idle_timeout_seconds:{env.idle_timeout_seconds}\n'
        f'http:{args.host}:{args.http_port}'
    )

    app = create_app(env)
    logger.info('Postgres session MCP server starting')
    uvicorn.run(app, host=args.host, port=args.http_port, log_level=FASTMCP_LOG_LEVEL.lower())


if __name__ == '__main__':
    main()
