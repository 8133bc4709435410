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

"""Process configuration for the postgres session MCP Server."""

import os
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


TRUTHY_VALUES = frozenset(['true', 'yes', '1'])
ALLOW_WRITE_QUERY_KEY = 'PG_ALLOW_WRITE_QUERY'
DEFAULT_IDLE_TIMEOUT_SECONDS = 300.0


def get_env_bool(env_key: str, default: bool) -> bool:
    """Get a boolean value from an environment variable, with a default."""
    return os.getenv(env_key, str(default)).casefold() in TRUTHY_VALUES


def get_env_float(env_key: str, default: float) -> float:
    """Get a positive float from an environment variable, with a default."""
    raw = os.getenv(env_key)
    if raw is None or raw == '':
        return default

    value = float(raw)
    if value <= 0:
        raise ValueError(f'{env_key} must be a positive number, got {raw}')
    return value


def normalize_base_path(base_path: Optional[str]) -> str:
    """Normalize a mount prefix to either '' or '/prefix' without a trailing slash."""
    if not base_path:
        return ''
    base_path = '/' + base_path.strip('/')
    return '' if base_path == '/' else base_path


class Env(BaseModel):
    """Environment and capability context shared by the router, actors and tools.

    The model is frozen: the core never mutates it after startup.
    """

    model_config = ConfigDict(frozen=True)

    database_url: Optional[str] = Field(default=None, description='libpq connection string')
    db_host: Optional[str] = Field(default=None, description='database hostname')
    db_port: int = Field(default=5432, description='database port')
    database: str = Field(default='postgres', description='database name')
    secret_arn: Optional[str] = Field(
        default=None, description='Secrets Manager secret holding username and password'
    )
    region: Optional[str] = Field(default=None, description='AWS region of the secret')
    allow_write_query: bool = Field(default=False, description='allow mutating SQL')
    base_path: str = Field(default='', description='prefix in front of /sse and /mcp')
    idle_timeout_seconds: float = Field(
        default=DEFAULT_IDLE_TIMEOUT_SECONDS,
        gt=0,
        description='idle time before a session actor receives its eviction alarm',
    )
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=5, ge=1)

    @property
    def readonly_query(self) -> bool:
        """Whether SQL tools only accept read-only statements."""
        return not self.allow_write_query

    @classmethod
    def from_environ(cls, **overrides) -> 'Env':
        """Build the context from environment variables, applying non-None overrides."""
        values = {
            'database_url': os.getenv('DATABASE_URL') or None,
            'db_host': os.getenv('PG_HOST') or None,
            'db_port': int(os.getenv('PG_PORT', 5432)),
            'database': os.getenv('PG_DATABASE', 'postgres'),
            'secret_arn': os.getenv('PG_SECRET_ARN') or None,
            'region': os.getenv('AWS_REGION') or None,
            'allow_write_query': get_env_bool(ALLOW_WRITE_QUERY_KEY, False),
            'base_path': normalize_base_path(os.getenv('MCP_BASE_PATH', '')),
            'idle_timeout_seconds': get_env_float(
                'MCP_IDLE_TIMEOUT', DEFAULT_IDLE_TIMEOUT_SECONDS
            ),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        if 'base_path' in overrides:
            values['base_path'] = normalize_base_path(values['base_path'])
        return cls(**values)


FASTMCP_LOG_LEVEL = os.getenv('FASTMCP_LOG_LEVEL', 'WARNING')
HOST = os.getenv('MCP_HOST', '127.0.0.1')
PORT = int(os.getenv('MCP_PORT', 8000))
