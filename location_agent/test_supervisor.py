import asyncio

import pytest

from location_agent.http import ConnectionHandler
from location_agent.location import LocationService
from location_agent.models import ListenerState
from location_agent.server import LocationServer
from location_agent.supervisor import RESTART_DELAY, RestartSupervisor

DELAY = 0.05


class FakeServer:
    def __init__(self):
        self.listeners = []
        self.starts = 0
        self.stops = 0

    def add_state_listener(self, callback):
        self.listeners.append(callback)

    def emit(self, state: ListenerState):
        for callback in self.listeners:
            callback(state)

    async def start(self):
        self.starts += 1

    def stop(self):
        self.stops += 1


def test_default_delay():
    supervisor = RestartSupervisor(FakeServer())

    assert supervisor.delay == RESTART_DELAY == 5.0


@pytest.mark.asyncio
async def test_single_restart_after_delay():
    server = FakeServer()
    supervisor = RestartSupervisor(server, delay=DELAY)

    server.emit(ListenerState.FAILED)

    assert server.stops == 1
    assert server.starts == 0

    await asyncio.sleep(DELAY / 2)
    assert server.starts == 0

    await asyncio.sleep(DELAY * 3)
    assert server.starts == 1
    assert supervisor.restarts == 1


@pytest.mark.asyncio
async def test_other_states_are_ignored():
    server = FakeServer()
    RestartSupervisor(server, delay=DELAY)

    server.emit(ListenerState.SETUP)
    server.emit(ListenerState.READY)
    server.emit(ListenerState.CANCELLED)
    await asyncio.sleep(DELAY * 2)

    assert server.stops == 0
    assert server.starts == 0


@pytest.mark.asyncio
async def test_repeated_failures_restart_at_fixed_interval():
    loop = asyncio.get_running_loop()
    attempts = []

    async def refuse_bind(client_connected_cb, host, port):
        attempts.append(loop.time())
        raise OSError(98, "Address already in use")

    server = LocationServer(
        ConnectionHandler(LocationService()), server_factory=refuse_bind
    )
    supervisor = RestartSupervisor(server, delay=DELAY)

    await server.start()
    await asyncio.sleep(DELAY * 4.5)
    server.stop()

    assert len(attempts) >= 3
    assert supervisor.restarts == len(attempts) - 1

    gaps = [b - a for a, b in zip(attempts, attempts[1:])]
    assert all(gap >= DELAY * 0.9 for gap in gaps)
    assert max(gaps) - min(gaps) < DELAY


@pytest.mark.asyncio
async def test_recovers_when_port_frees_up():
    attempts = 0

    async def flaky_bind(client_connected_cb, host, port):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise OSError(98, "Address already in use")
        return await asyncio.start_server(client_connected_cb, host, 0)

    server = LocationServer(
        ConnectionHandler(LocationService()), server_factory=flaky_bind
    )
    RestartSupervisor(server, delay=DELAY)

    await server.start()
    assert server.state is ListenerState.CANCELLED

    await asyncio.sleep(DELAY * 3)

    assert server.state is ListenerState.READY
    assert attempts == 2
    server.stop()


@pytest.mark.asyncio
async def test_later_listeners_see_states_in_order():
    async def refuse_bind(client_connected_cb, host, port):
        raise OSError(98, "Address already in use")

    server = LocationServer(
        ConnectionHandler(LocationService()), server_factory=refuse_bind
    )
    RestartSupervisor(server, delay=DELAY)
    seen = []
    server.add_state_listener(seen.append)

    await server.start()

    assert seen == [ListenerState.FAILED, ListenerState.CANCELLED]
    assert seen[-1] is server.state
