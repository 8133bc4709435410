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
"""Transport bindings that connect HTTP requests to session actors."""

from loguru import logger
from mcp.server.sse import SseServerTransport
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import PlainTextResponse
from starlette.types import Message, Receive, Scope, Send
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from awslabs.postgres_session_mcp_server.host import ActorNamespace


SESSION_HEADER = 'mcp-session-id'


class EventStreamBinding:
    """Server-sent events transport.

    GET <path> opens a stream served by a new session actor for as long as the client
    stays connected. POST <path>/message delivers a client message to the stream named by
    its session_id query parameter.
    """

    def __init__(self, namespace: 'ActorNamespace', path: str):
        """Bind the transport to a namespace at path."""
        self.namespace = namespace
        self.path = path
        self.message_path = f'{path}/message'
        self.sse = SseServerTransport(self.message_path)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Serve one request addressed to the event-stream endpoints."""
        if scope['path'] == self.message_path:
            await self.sse.handle_post_message(scope, receive, send)
            return

        if scope['method'] != 'GET':
            response = PlainTextResponse('Method not allowed', status_code=405)
            await response(scope, receive, send)
            return

        address = self.namespace.new_address()
        logger.info(f'Opening event stream for session actor {address}')
        async with self.namespace.activate(address) as slot:
            async with self.sse.connect_sse(scope, receive, send) as (read_stream, write_stream):
                await slot.actor.run_session(read_stream, write_stream)
        logger.info(f'Event stream for session actor {address} closed')


class StatelessBinding:
    """Stateless streamable HTTP transport.

    Every request is a complete exchange. The actor address is taken from the
    mcp-session-id request header, or generated for a new session, and is echoed back in
    the same response header so clients stay pinned to their actor.
    """

    def __init__(self, namespace: 'ActorNamespace', path: str):
        """Bind the transport to a namespace at path."""
        self.namespace = namespace
        self.path = path

    def address_for(self, scope: Scope) -> str:
        """Return the actor address requested by the client, or a new one."""
        return Headers(scope=scope).get(SESSION_HEADER) or self.namespace.new_address()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Serve one request addressed to the stateless endpoint."""
        address = self.address_for(scope)

        async def send_with_session(message: Message) -> None:
            if message['type'] == 'http.response.start':
                MutableHeaders(scope=message)[SESSION_HEADER] = address
            await send(message)

        async with self.namespace.activate(address) as slot:
            async with slot.inbox:
                manager = await slot.session_manager()
                await manager.handle_request(scope, receive, send_with_session)
