import asyncio

import pytest

from location_agent.http import ConnectionHandler
from location_agent.location import LocationService
from location_agent.models import ListenerState, ListenerStateError, transition
from location_agent.server import LocationServer


def test_transition_table():
    assert transition(ListenerState.SETUP, ListenerState.READY) is ListenerState.READY
    assert transition(ListenerState.READY, ListenerState.FAILED) is ListenerState.FAILED
    assert transition(ListenerState.FAILED, ListenerState.SETUP) is ListenerState.SETUP
    assert (
        transition(ListenerState.CANCELLED, ListenerState.SETUP) is ListenerState.SETUP
    )

    with pytest.raises(ListenerStateError):
        transition(ListenerState.CANCELLED, ListenerState.READY)
    with pytest.raises(ListenerStateError):
        transition(ListenerState.READY, ListenerState.SETUP)


async def refuse_bind(client_connected_cb, host, port):
    raise OSError(98, "Address already in use")


def make_server(**kwargs) -> LocationServer:
    return LocationServer(ConnectionHandler(LocationService()), **kwargs)


@pytest.mark.asyncio
async def test_start_and_stop():
    server = make_server(port=0)
    states = []
    server.add_state_listener(states.append)

    assert server.state is ListenerState.SETUP

    await server.start()
    assert server.state is ListenerState.READY
    assert server.bound_port

    await server.start()
    assert states == [ListenerState.READY]

    server.stop()
    assert server.state is ListenerState.CANCELLED
    assert server.bound_port is None
    assert states == [ListenerState.READY, ListenerState.CANCELLED]


@pytest.mark.asyncio
async def test_restart_after_stop():
    server = make_server(port=0)
    states = []
    server.add_state_listener(states.append)

    await server.start()
    server.stop()
    await server.start()

    assert server.state is ListenerState.READY
    assert states == [
        ListenerState.READY,
        ListenerState.CANCELLED,
        ListenerState.SETUP,
        ListenerState.READY,
    ]
    server.stop()


@pytest.mark.asyncio
async def test_bind_failure():
    server = make_server(server_factory=refuse_bind)
    states = []
    server.add_state_listener(states.append)

    await server.start()

    assert server.state is ListenerState.FAILED
    assert isinstance(server.failure, OSError)
    assert states == [ListenerState.FAILED]


@pytest.mark.asyncio
async def test_port_in_use():
    first = make_server(port=0)
    await first.start()

    second = make_server(port=first.bound_port)
    await second.start()

    assert second.state is ListenerState.FAILED
    first.stop()


@pytest.mark.asyncio
async def test_stop_keeps_accepted_connections():
    service = LocationService()
    started = asyncio.Event()
    release = asyncio.Event()

    class SlowHandler(ConnectionHandler):
        async def __call__(self, reader, writer):
            started.set()
            await release.wait()
            return await super().__call__(reader, writer)

    server = LocationServer(SlowHandler(service), port=0)
    await server.start()
    port = server.bound_port

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(b"GET /location HTTP/1.1\r\n\r\n")
    await writer.drain()
    await started.wait()

    server.stop()
    release.set()

    data = await reader.read()
    assert data.startswith(b"HTTP/1.1 200 OK\r\n")

    writer.close()
    await writer.wait_closed()

    with pytest.raises(OSError):
        await asyncio.open_connection("127.0.0.1", port)


class BrokenServer:
    def __init__(self):
        self.sockets = []
        self.closed = False

    async def serve_forever(self):
        raise OSError(24, "Too many open files")

    def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_accept_loop_failure():
    broken = BrokenServer()

    async def factory(client_connected_cb, host, port):
        return broken

    server = make_server(server_factory=factory)
    await server.start()
    await asyncio.sleep(0.01)

    assert server.state is ListenerState.FAILED
    assert broken.closed
