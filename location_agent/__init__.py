import asyncio
import configparser
import logging

from gps import client as gpsd
from location_agent.http import ConnectionHandler
from location_agent.location import LocationService
from location_agent.server import LocationServer
from location_agent.source import GpsdSource
from location_agent.supervisor import RestartSupervisor

STATUS_INTERVAL = 60.0


class LocationAgent:
    def __init__(self, config: configparser.ConfigParser):
        self.config = config
        self.logger = logging.getLogger(__name__)

        source = GpsdSource(
            host=config.get("gpsd", "host", fallback=gpsd.DEFAULT_HOST),
            port=config.getint("gpsd", "port", fallback=gpsd.DEFAULT_PORT),
        )
        self.status_interval = config.getfloat(
            "agent", "status_interval", fallback=STATUS_INTERVAL
        )

        self.location_service = LocationService(source)
        self.server = LocationServer(ConnectionHandler(self.location_service))
        self.supervisor = RestartSupervisor(self.server)

        self.logger.info("LocationAgent initialized")
        self.logger.info(f"GPS source: {source.host}:{source.port}")

    async def start(self):
        self.location_service.start()
        await self.server.start()

    def stop(self):
        self.server.stop()
        self.location_service.stop()

    def status(self) -> str:
        fix = self.location_service.current
        if fix is None:
            return "Waiting for location data..."
        return f"Location: {fix.latitude}, {fix.longitude}"

    async def report_status(self):
        while True:
            await asyncio.sleep(self.status_interval)
            self.logger.info(self.status())
