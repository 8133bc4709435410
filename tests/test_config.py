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
"""Tests for the process configuration."""

import pytest
from awslabs.postgres_session_mcp_server.config import (
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    Env,
    get_env_bool,
    get_env_float,
    normalize_base_path,
)
from pydantic import ValidationError


ENV_KEYS = (
    'DATABASE_URL',
    'PG_HOST',
    'PG_PORT',
    'PG_DATABASE',
    'PG_SECRET_ARN',
    'AWS_REGION',
    'PG_ALLOW_WRITE_QUERY',
    'MCP_BASE_PATH',
    'MCP_IDLE_TIMEOUT',
)


@pytest.fixture
def clean_environ(monkeypatch):
    """Remove every configuration variable from the environment."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestHelpers:
    """Environment helper tests."""

    @pytest.mark.parametrize('raw', ['true', 'TRUE', 'yes', '1'])
    def test_get_env_bool_truthy(self, monkeypatch, raw):
        """Truthy spellings are accepted case-insensitively."""
        monkeypatch.setenv('SOME_FLAG', raw)
        assert get_env_bool('SOME_FLAG', False) is True

    @pytest.mark.parametrize('raw', ['false', '0', 'no', 'maybe'])
    def test_get_env_bool_falsy(self, monkeypatch, raw):
        """Anything else is false."""
        monkeypatch.setenv('SOME_FLAG', raw)
        assert get_env_bool('SOME_FLAG', True) is False

    def test_get_env_bool_default(self, monkeypatch):
        """The default applies when the variable is unset."""
        monkeypatch.delenv('SOME_FLAG', raising=False)
        assert get_env_bool('SOME_FLAG', True) is True

    def test_get_env_float(self, monkeypatch):
        """Positive numbers are parsed; unset or empty falls back to the default."""
        monkeypatch.setenv('SOME_NUMBER', '2.5')
        assert get_env_float('SOME_NUMBER', 1.0) == 2.5
        monkeypatch.setenv('SOME_NUMBER', '')
        assert get_env_float('SOME_NUMBER', 1.0) == 1.0

    @pytest.mark.parametrize('raw', ['0', '-3'])
    def test_get_env_float_rejects_non_positive(self, monkeypatch, raw):
        """Zero and negative values are rejected."""
        monkeypatch.setenv('SOME_NUMBER', raw)
        with pytest.raises(ValueError, match='positive'):
            get_env_float('SOME_NUMBER', 1.0)

    @pytest.mark.parametrize(
        'raw,expected',
        [
            (None, ''),
            ('', ''),
            ('/', ''),
            ('api', '/api'),
            ('/api/', '/api'),
            ('//tenants/a//', '/tenants/a'),
        ],
    )
    def test_normalize_base_path(self, raw, expected):
        """Prefixes gain a leading slash and lose trailing ones."""
        assert normalize_base_path(raw) == expected


class TestEnv:
    """Env model tests."""

    def test_defaults(self, clean_environ):
        """An empty environment yields the documented defaults."""
        env = Env.from_environ()

        assert env.database_url is None
        assert env.db_host is None
        assert env.db_port == 5432
        assert env.database == 'postgres'
        assert env.allow_write_query is False
        assert env.readonly_query is True
        assert env.base_path == ''
        assert env.idle_timeout_seconds == DEFAULT_IDLE_TIMEOUT_SECONDS

    def test_reads_environment(self, clean_environ):
        """Every variable maps onto its field."""
        clean_environ.setenv('PG_HOST', 'db.local')
        clean_environ.setenv('PG_PORT', '6543')
        clean_environ.setenv('PG_DATABASE', 'app')
        clean_environ.setenv('PG_SECRET_ARN', 'arn:secret')
        clean_environ.setenv('AWS_REGION', 'eu-west-1')
        clean_environ.setenv('PG_ALLOW_WRITE_QUERY', 'true')
        clean_environ.setenv('MCP_BASE_PATH', 'tenant/')
        clean_environ.setenv('MCP_IDLE_TIMEOUT', '30')

        env = Env.from_environ()

        assert env.db_host == 'db.local'
        assert env.db_port == 6543
        assert env.database == 'app'
        assert env.secret_arn == 'arn:secret'
        assert env.region == 'eu-west-1'
        assert env.readonly_query is False
        assert env.base_path == '/tenant'
        assert env.idle_timeout_seconds == 30.0

    def test_overrides_win_unless_none(self, clean_environ):
        """Explicit values override the environment; None keeps it."""
        clean_environ.setenv('PG_DATABASE', 'from_env')
        clean_environ.setenv('PG_HOST', 'env-host')

        env = Env.from_environ(database='from_flag', db_host=None, base_path='x/')

        assert env.database == 'from_flag'
        assert env.db_host == 'env-host'
        assert env.base_path == '/x'

    def test_is_frozen(self, clean_environ):
        """The environment cannot be mutated after startup."""
        env = Env.from_environ()
        with pytest.raises(ValidationError):
            env.database = 'other'  # type: ignore[misc]

    def test_idle_timeout_must_be_positive(self):
        """A zero idle timeout is invalid."""
        with pytest.raises(ValidationError):
            Env(idle_timeout_seconds=0)
