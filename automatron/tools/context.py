"""Tool context: discovered tools plus the connection used to reach them."""

import asyncio
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Protocol

from automatron.tools.base import ToolDefinition, ToolImplementation
from automatron.utils.logging import get_logger

logger = get_logger(__name__)

ReleaseCallback = Callable[[], Awaitable[None]]


class ToolContext:
    """Tools available to one agent run.

    ``definitions`` are sent to the model; ``implementations`` stay here and are
    only called by the executor. ``release()`` closes whatever connection backs
    the tools and is safe to call more than once; only the first call has an
    effect. Use it as an async context manager to release on every exit path.
    """

    def __init__(
        self,
        definitions: dict[str, ToolDefinition],
        implementations: dict[str, ToolImplementation],
        release_callback: ReleaseCallback | None = None,
    ):
        self.definitions = definitions
        self.implementations = implementations
        self._release_callback = release_callback
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        """Release the underlying connection."""
        if self._released:
            return
        self._released = True
        if self._release_callback is not None:
            await self._release_callback()

    async def __aenter__(self) -> "ToolContext":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release()


class ToolContextProvider(Protocol):
    """Interface for tool discovery.

    Implementations:
    - McpToolContextProvider: remote MCP server, one connection per acquire
    - RegistryToolContextProvider: in-process tools, nothing to release
    - PooledToolContextProvider: shares another provider's context between runs
    """

    async def acquire(self) -> ToolContext:
        """Discover tools and open the connection backing them.

        Raises:
            ToolDiscoveryError: If the tools cannot be discovered
        """
        ...


class PooledToolContextProvider:
    """Shares one underlying tool context between concurrent runs.

    Each acquire() takes a lease; the underlying context is acquired on the
    first lease and released when the last lease is released. The underlying
    context is owned by a dedicated task so that connections bound to the
    task that opened them (anyio-based transports) are also closed by it.
    """

    def __init__(self, provider: ToolContextProvider):
        self._provider = provider
        self._lock = asyncio.Lock()
        self._shared: ToolContext | None = None
        self._owner: asyncio.Task[None] | None = None
        self._closing: asyncio.Event | None = None
        self._leases = 0

    @property
    def lease_count(self) -> int:
        """Number of outstanding leases."""
        return self._leases

    async def acquire(self) -> ToolContext:
        async with self._lock:
            if self._shared is None:
                loop = asyncio.get_running_loop()
                ready: asyncio.Future[ToolContext] = loop.create_future()
                closing = asyncio.Event()
                owner = asyncio.create_task(self._hold(ready, closing))
                try:
                    shared = await ready
                except BaseException:
                    owner.cancel()
                    raise
                self._shared, self._owner, self._closing = shared, owner, closing
                logger.info(f"Opened shared tool context with {len(shared.definitions)} tools")

            self._leases += 1
            shared = self._shared

        return ToolContext(
            definitions=shared.definitions,
            implementations=shared.implementations,
            release_callback=self._release_lease,
        )

    async def _hold(self, ready: "asyncio.Future[ToolContext]", closing: asyncio.Event) -> None:
        try:
            context = await self._provider.acquire()
        except Exception as e:
            ready.set_exception(e)
            return

        ready.set_result(context)
        try:
            await closing.wait()
        finally:
            await context.release()

    async def _release_lease(self) -> None:
        async with self._lock:
            self._leases -= 1
            if self._leases > 0:
                return
            owner, closing = self._owner, self._closing
            self._shared, self._owner, self._closing = None, None, None

        logger.info("Last lease released, closing shared tool context")
        if closing is not None:
            closing.set()
        if owner is not None:
            await owner
