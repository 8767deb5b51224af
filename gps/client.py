import asyncio
import json
import logging

from gps.schemas import TPV, Device, Devices, Error, Sky, Version, Watch

WATCH = "?WATCH={}\r\n"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 2947

logger = logging.getLogger(__name__)


class GpsdError(Exception):
    def __init__(self, error: Error):
        super().__init__(f"gpsd error: {error.message}")
        self.error = error


class Client:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        watch_config: Watch = Watch(),
    ):
        self.__reader = reader
        self.__writer = writer

        self._version = None
        self._devices = None
        self._watch = None

        self.watch_config = watch_config

    async def __read(self) -> dict:
        line = await self.__reader.readline()
        if not line:
            raise ConnectionError("Connection closed by server")
        try:
            return json.loads(line)
        except json.JSONDecodeError as e:
            raise ConnectionError(f"Malformed report from gpsd: {e}")

    async def close(self):
        self.__writer.close()
        await self.__writer.wait_closed()

    @staticmethod
    def __class_factory(data: dict) -> object | None:
        class_type = str(data.get("class", "")).upper()

        match class_type:
            case "TPV":
                return TPV.from_json(data)
            case "SKY":
                return Sky.from_json(data)
            case "VERSION":
                return Version.from_json(data)
            case "DEVICES":
                return Devices.from_json(data)
            case "DEVICE":
                return Device.from_json(data)
            case "WATCH":
                return Watch.from_json(data)
            case "ERROR":
                raise GpsdError(Error.from_json(data))
            case _:
                return None

    async def recv(self):
        """
        Receive the next report gpsd sends.

        Report classes this client does not model are skipped.

        Raises:
            ConnectionError: If gpsd closed the connection.
            GpsdError: If gpsd reported an error.
        """
        while True:
            data = await self.__read()
            result = self.__class_factory(data)
            if result is None:
                logger.debug(f"Skipping gpsd report: {data.get('class')}")
                continue
            if isinstance(result, Version):
                self._version = result
            elif isinstance(result, Devices):
                self._devices = result
            elif isinstance(result, Watch):
                self._watch = result
            return result

    async def watch(self):
        self.__writer.write(WATCH.format(self.watch_config.to_json()).encode())
        await self.__writer.drain()

    @property
    def version(self) -> Version | None:
        return self._version

    @property
    def devices(self) -> Devices | None:
        return self._devices

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self.recv()


async def open(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> Client:
    reader, writer = await asyncio.open_connection(host, port)
    client = Client(reader, writer)
    await client.watch()
    return client
