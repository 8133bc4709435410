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
"""Top-level request router for postgres session MCP Server."""

from awslabs.postgres_session_mcp_server.actor import PostgresMCP, SessionActor
from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.connection_manager import (
    DBConnectionManager,
)
from awslabs.postgres_session_mcp_server.host import ActorNamespace
from loguru import logger
from starlette.responses import PlainTextResponse
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketClose
from typing import Optional, Type


class TransportRouter:
    """ASGI application dispatching requests to the event-stream or stateless transport.

    <base>/sse and <base>/sse/message go to the event-stream binding, <base>/mcp to the
    stateless binding, and every other path is answered with 404 Not found. Non-HTTP
    connections are closed.
    """

    def __init__(
        self,
        env: Env,
        connections: Optional[DBConnectionManager] = None,
        actor_class: Type[SessionActor] = PostgresMCP,
    ):
        """Build the namespace and both transport bindings.

        Args:
            env: Process environment and capability context
            connections: Process-wide connection manager; built from env when omitted
            actor_class: Session actor class served by both transports
        """
        self.env = env
        self.connections = connections or DBConnectionManager(env)
        self.namespace = ActorNamespace(actor_class, env, self.connections)

        base = env.base_path
        self.sse_path = f'{base}/sse'
        self.sse_message_path = f'{base}/sse/message'
        self.mcp_path = f'{base}/mcp'
        self.event_stream = actor_class.serve_sse(self.sse_path, self.namespace)
        self.stateless = actor_class.serve(self.mcp_path, self.namespace)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Route one ASGI connection."""
        if scope['type'] == 'lifespan':
            await self._lifespan(receive, send)
            return

        if scope['type'] != 'http':
            await WebSocketClose()(scope, receive, send)
            return

        path = scope['path']
        if path in (self.sse_path, self.sse_message_path):
            await self.event_stream(scope, receive, send)
        elif path == self.mcp_path:
            await self.stateless(scope, receive, send)
        else:
            response = PlainTextResponse('Not found', status_code=404)
            await response(scope, receive, send)

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message['type'] == 'lifespan.startup':
                logger.info('Postgres session MCP server started')
                await send({'type': 'lifespan.startup.complete'})
            elif message['type'] == 'lifespan.shutdown':
                await self.namespace.shutdown()
                try:
                    await self.connections.close_connections()
                except Exception as e:
                    logger.error(f'Error closing database connections on shutdown: {e}')
                logger.info('Postgres session MCP server stopped')
                await send({'type': 'lifespan.shutdown.complete'})
                return


def create_app(env: Optional[Env] = None) -> TransportRouter:
    """Create the ASGI application from the environment."""
    return TransportRouter(env or Env.from_environ())
