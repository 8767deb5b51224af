import asyncio
import logging
import traceback
from collections import deque
from typing import Callable

from location_agent.http import MAX_REQUEST_SIZE, ConnectionHandler
from location_agent.models import ListenerState, transition

logger = logging.getLogger(__name__)

HOST = "127.0.0.1"
PORT = 8080

StateListener = Callable[[ListenerState], None]


async def start_tcp_server(client_connected_cb, host: str, port: int):
    return await asyncio.start_server(
        client_connected_cb, host, port, limit=MAX_REQUEST_SIZE
    )


class LocationServer:
    """
    TCP listener serving the location endpoint.

    Every accepted connection is handed to the connection handler in its own
    task. State changes are reported to the registered state listeners.

    Args:
        handler (ConnectionHandler): Answers a single connection.
        host (str, optional): Address to bind. Defaults to "127.0.0.1".
        port (int, optional): Port to bind. Defaults to 8080.
        server_factory (optional): Coroutine function `(callback, host, port)`
            returning an `asyncio.Server` like object.
    """

    def __init__(
        self,
        handler: ConnectionHandler,
        host: str = HOST,
        port: int = PORT,
        server_factory=start_tcp_server,
    ):
        self.handler = handler
        self.host = host
        self.port = port
        self._server_factory = server_factory

        self._state = ListenerState.SETUP
        self._failure: Exception | None = None
        self._listeners: list[StateListener] = []
        self._pending: deque[ListenerState] = deque()
        self._notifying = False
        self._server = None
        self._serve_task: asyncio.Task | None = None

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def failure(self) -> Exception | None:
        return self._failure

    @property
    def bound_port(self) -> int | None:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def add_state_listener(self, callback: StateListener):
        self._listeners.append(callback)

    def _set_state(self, state: ListenerState):
        self._state = transition(self._state, state)

        match state:
            case ListenerState.SETUP:
                logger.info("Server is setting up...")
            case ListenerState.READY:
                logger.info(f"Server is running and ready on port {self.bound_port}")
            case ListenerState.FAILED:
                logger.error(f"Server failed with error: {self._failure}")
            case ListenerState.CANCELLED:
                logger.info("Server stopped")

        self._pending.append(state)
        if self._notifying:
            return

        # Changes made by a listener are delivered after the current one.
        self._notifying = True
        try:
            while self._pending:
                pending = self._pending.popleft()
                for callback in list(self._listeners):
                    callback(pending)
        finally:
            self._notifying = False
            self._pending.clear()

    def _fail(self, error: Exception):
        self._failure = error
        self._close()
        self._set_state(ListenerState.FAILED)

    def _on_accept(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        return self.handler(reader, writer)

    async def start(self):
        if self._server is not None:
            return

        if self._state is not ListenerState.SETUP:
            self._set_state(ListenerState.SETUP)
        self._failure = None

        try:
            self._server = await self._server_factory(
                self._on_accept, self.host, self.port
            )
        except OSError as e:
            self._fail(e)
            return

        self._set_state(ListenerState.READY)
        self._serve_task = asyncio.create_task(self._serve(self._server))

    async def _serve(self, server):
        try:
            await server.serve_forever()
        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.debug(f"Accept loop failed: {traceback.format_exc()}")
            if server is self._server:
                self._fail(e)

    def _close(self):
        if self._server is not None:
            self._server.close()
            self._server = None
        if self._serve_task is not None:
            self._serve_task.cancel()
            self._serve_task = None

    def stop(self):
        """Stop accepting connections. Connections already accepted run to completion."""
        if self._state is ListenerState.CANCELLED:
            return

        self._close()
        self._set_state(ListenerState.CANCELLED)
