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
"""In-process host for session actors.

ActorNamespace keeps one ActorSlot per address. A slot holds the actor, serializes its
inbox, guarantees a single init(), keeps the actor's long-lived task context (the
streamable HTTP session manager) running, and raises the eviction alarm once the actor
has been idle for the configured timeout.
"""

import asyncio
from awslabs.postgres_session_mcp_server.actor import SessionActor
from awslabs.postgres_session_mcp_server.config import Env
from awslabs.postgres_session_mcp_server.connection.connection_manager import (
    DBConnectionManager,
)
from contextlib import asynccontextmanager
from enum import Enum
from loguru import logger
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from typing import AsyncIterator, Dict, Optional, Type
from uuid import uuid4


class ActorState(str, Enum):
    """Lifecycle states of a session actor."""

    UNINITIALIZED = 'uninitialized'
    INITIALIZED = 'initialized'
    FAILED = 'failed'
    CLEANING_UP = 'cleaning_up'
    TERMINATED = 'terminated'


class ActorSlot:
    """Host-side bookkeeping for one live session actor."""

    def __init__(self, namespace: 'ActorNamespace', actor: SessionActor):
        """Wrap a freshly constructed actor."""
        self.namespace = namespace
        self.actor = actor
        self.state = ActorState.UNINITIALIZED
        self.inbox = asyncio.Lock()
        self.in_flight = 0
        self._init_lock = asyncio.Lock()
        self._alarm_task: Optional[asyncio.Task] = None
        self._runner: Optional[asyncio.Task] = None
        self._session_manager: Optional[StreamableHTTPSessionManager] = None
        self._stopped = asyncio.Event()

    @property
    def address(self) -> str:
        """Address of the actor held by this slot."""
        return self.actor.address

    @property
    def closing(self) -> bool:
        """Whether the actor is being, or has been, evicted."""
        return self.state in (ActorState.FAILED, ActorState.CLEANING_UP, ActorState.TERMINATED)

    async def ensure_initialized(self) -> bool:
        """Run the actor's init hook if it has not run yet.

        Returns:
            True when the actor is initialized, False when the slot failed or closed while
            the caller was waiting and can no longer serve messages
        """
        async with self._init_lock:
            if self.state is not ActorState.UNINITIALIZED:
                return self.state is ActorState.INITIALIZED
            logger.info(f'Initializing session actor {self.address}')
            try:
                await self.actor.init()
            except Exception:
                self.state = ActorState.FAILED
                raise
            self.state = ActorState.INITIALIZED
            logger.success(f'Session actor {self.address} initialized')
            return True

    def enter(self) -> None:
        """Mark the start of a message; the idle alarm is disarmed."""
        self.in_flight += 1
        self._cancel_alarm()

    def leave(self) -> None:
        """Mark the end of a message; re-arm the idle alarm once nothing is in flight."""
        self.in_flight -= 1
        if self.in_flight == 0 and self.state is ActorState.INITIALIZED:
            self._arm_alarm()

    def _arm_alarm(self) -> None:
        self._cancel_alarm()
        self._alarm_task = asyncio.create_task(
            self._alarm_after(self.namespace.idle_timeout_seconds),
            name=f'session-actor-alarm-{self.address}',
        )

    def _cancel_alarm(self) -> None:
        task, self._alarm_task = self._alarm_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _alarm_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        logger.info(f'Session actor {self.address} idle for {delay}s, raising eviction alarm')
        await self.terminate(alarm=True)

    async def session_manager(self) -> StreamableHTTPSessionManager:
        """Return the actor's streamable HTTP session manager, starting it on first use.

        The manager's task group lives in a dedicated task for the whole life of the
        actor. Callers hold the inbox lock, so the manager is created once.
        """
        if self._session_manager is None:
            manager = StreamableHTTPSessionManager(
                app=self.actor.protocol_server,
                json_response=True,
                stateless=True,
            )
            ready = asyncio.get_running_loop().create_future()
            self._runner = asyncio.create_task(
                self._run_context(manager, ready), name=f'session-actor-{self.address}'
            )
            await ready
            self._session_manager = manager
        return self._session_manager

    async def _run_context(self, manager: StreamableHTTPSessionManager, ready) -> None:
        try:
            async with manager.run():
                ready.set_result(None)
                await self._stopped.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.error(f'Session manager of actor {self.address} stopped with error: {e}')

    async def terminate(self, alarm: bool = False) -> None:
        """Run the actor's eviction hook and release the slot.

        Args:
            alarm: True when triggered by the idle alarm, False for forced teardown
        """
        if self.closing:
            return

        was_initialized = self.state is ActorState.INITIALIZED
        self.state = ActorState.CLEANING_UP
        self._cancel_alarm()
        try:
            if was_initialized:
                hook = self.actor.alarm if alarm else self.actor.cleanup
                await hook()
        except Exception as e:
            logger.error(f'Eviction hook of session actor {self.address} failed: {e}')
        finally:
            self._stopped.set()
            if self._runner is not None:
                await self._runner
            self.state = ActorState.TERMINATED
            self.namespace.discard(self)
            logger.info(f'Session actor {self.address} terminated')


class ActorNamespace:
    """Keyed registry of session actors for one actor class."""

    def __init__(
        self,
        actor_class: Type[SessionActor],
        env: Env,
        connections: DBConnectionManager,
        idle_timeout_seconds: Optional[float] = None,
    ):
        """Initialize an empty namespace.

        Args:
            actor_class: Class instantiated for every new address
            env: Process environment handed to every actor
            connections: Process-wide connection manager handed to every actor
            idle_timeout_seconds: Idle time before the eviction alarm; defaults to the env value
        """
        self.actor_class = actor_class
        self.env = env
        self.connections = connections
        if idle_timeout_seconds is None:
            idle_timeout_seconds = env.idle_timeout_seconds
        self.idle_timeout_seconds = idle_timeout_seconds
        self._slots: Dict[str, ActorSlot] = {}

    def __len__(self) -> int:
        """Number of live actors."""
        return len(self._slots)

    def __contains__(self, address: str) -> bool:
        """Whether an actor is live at address."""
        return address in self._slots

    @staticmethod
    def new_address() -> str:
        """Generate a fresh actor address."""
        return uuid4().hex

    def get(self, address: str) -> Optional[ActorSlot]:
        """Return the live slot at address, if any."""
        return self._slots.get(address)

    def _slot_for(self, address: str) -> ActorSlot:
        slot = self._slots.get(address)
        if slot is None or slot.closing:
            logger.info(f'Creating session actor {address}')
            slot = ActorSlot(self, self.actor_class(address, self.env, self.connections))
            self._slots[address] = slot
        return slot

    def discard(self, slot: ActorSlot) -> None:
        """Forget a slot if it is still the one registered at its address."""
        if self._slots.get(slot.address) is slot:
            del self._slots[slot.address]

    @asynccontextmanager
    async def activate(self, address: str) -> AsyncIterator[ActorSlot]:
        """Resolve or create the actor at address and hold it active for one message.

        The actor's init hook has completed when the slot is yielded. If init raises, the
        slot is dropped and the error propagates. Callers that were waiting on a slot which
        failed or closed meanwhile move on to a fresh actor at the same address.
        """
        while True:
            slot = self._slot_for(address)
            slot.enter()
            try:
                ready = await slot.ensure_initialized()
            except Exception:
                logger.error(f'Session actor {address} failed to initialize')
                self.discard(slot)
                slot.leave()
                raise
            if ready:
                break
            slot.leave()

        try:
            yield slot
        finally:
            slot.leave()

    async def evict(self, address: str) -> None:
        """Evict the actor at address through its alarm hook."""
        slot = self._slots.get(address)
        if slot is not None:
            await slot.terminate(alarm=True)

    async def shutdown(self) -> None:
        """Tear down every live actor through its cleanup hook."""
        slots = list(self._slots.values())
        logger.info(f'Shutting down {len(slots)} session actors')
        for slot in slots:
            await slot.terminate(alarm=False)
