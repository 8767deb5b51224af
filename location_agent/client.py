import asyncio
import logging
from dataclasses import dataclass

import httpx

from location_agent.http import LOCATION_PATH
from location_agent.server import PORT

logger = logging.getLogger(__name__)

BASE_URL = f"http://localhost:{PORT}"
MAX_RETRY_ATTEMPTS = 30
RETRY_DELAY = 2.0


@dataclass
class ToolResult:
    text: str
    is_error: bool = False


class LocationClient:
    """
    Client side of the location endpoint, as used by a supervising process.

    Args:
        base_url (str, optional): Root URL of the agent. Defaults to "http://localhost:8080".
        transport (httpx.AsyncBaseTransport, optional): Custom transport, mostly for tests.
    """

    def __init__(self, base_url: str = BASE_URL, transport=None, timeout: float = 5.0):
        self._client = httpx.AsyncClient(
            base_url=base_url, transport=transport, timeout=timeout
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def wait_ready(
        self, attempts: int = MAX_RETRY_ATTEMPTS, interval: float = RETRY_DELAY
    ) -> int:
        """
        Poll the agent until it answers with a 2xx status.

        Returns:
            int: The attempt on which the agent answered.

        Raises:
            ConnectionError: If the agent did not answer within `attempts` tries.
        """
        logger.info(f"Waiting for location agent at {self._client.base_url}...")

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.get(LOCATION_PATH)
                if response.is_success:
                    logger.info(f"Location agent is ready (after {attempt} attempts)")
                    return attempt
            except httpx.TransportError as e:
                logger.debug(f"HTTP Error: {e}")

            if attempt < attempts:
                logger.info(
                    f"Attempt {attempt}/{attempts} failed. Retrying in {interval} seconds..."
                )
                await asyncio.sleep(interval)

        raise ConnectionError(
            f"Location agent is not ready after {attempts} attempts"
        )

    async def current_location(self) -> ToolResult:
        try:
            response = await self._client.get(LOCATION_PATH)
        except httpx.TransportError as e:
            logger.error(f"HTTP Error: {e}")
            return ToolResult(
                text=f"Error: Failed to connect to location service. {e}",
                is_error=True,
            )

        if not response.is_success:
            return ToolResult(
                text=f"Error: Failed to get location. Status: {response.status_code}",
                is_error=True,
            )

        return ToolResult(text=response.text)
