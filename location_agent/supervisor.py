import asyncio
import logging

from location_agent.models import ListenerState

logger = logging.getLogger(__name__)

RESTART_DELAY = 5.0


class RestartSupervisor:
    """
    Restarts a failed listener after a fixed delay.

    There is no retry limit and the delay does not grow between attempts.
    """

    def __init__(self, server, delay: float = RESTART_DELAY):
        self.server = server
        self.delay = delay
        self.restarts = 0
        self._tasks: set[asyncio.Task] = set()

        server.add_state_listener(self.on_state)

    def on_state(self, state: ListenerState):
        if state is not ListenerState.FAILED:
            return

        self.server.stop()

        logger.info(f"Restarting server in {self.delay} seconds")
        loop = asyncio.get_running_loop()
        loop.call_later(self.delay, self._restart)

    def _restart(self):
        self.restarts += 1
        logger.info(f"Restarting server (attempt {self.restarts})")

        task = asyncio.create_task(self.server.start())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
