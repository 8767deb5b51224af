import asyncio
import logging
import traceback

from gps import client as gpsd
from gps.client import GpsdError
from gps.schemas import TPV, Sky
from location_agent.models import Fix, utc_timestamp

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 1.0

UNKNOWN_ACCURACY = -1.0


def fix_from_tpv(report: TPV) -> Fix | None:
    if not report.has_fix:
        return None

    altitude = report.altitude
    accuracy = report.horizontal_error

    return Fix(
        latitude=float(report.lat),
        longitude=float(report.lon),
        altitude=float(altitude) if altitude is not None else 0.0,
        horizontalAccuracy=float(accuracy) if accuracy is not None else UNKNOWN_ACCURACY,
        timestamp=_normalize_time(report.time),
    )


def _normalize_time(value: str | None) -> str:
    if not value:
        return utc_timestamp()
    # gpsd reports "2024-01-01T00:00:00.000Z"
    if value.endswith(".000Z"):
        return value[:-5] + "Z"
    return value


class GpsdSource:
    """Feeds fixes from a gpsd daemon into a location service."""

    def __init__(
        self,
        host: str = gpsd.DEFAULT_HOST,
        port: int = gpsd.DEFAULT_PORT,
        reconnect_delay: float = RECONNECT_DELAY,
    ):
        self.host = host
        self.port = port
        self.reconnect_delay = reconnect_delay
        self._has_fix = None
        self.sky: Sky | None = None

    async def run(self, service):
        while True:
            try:
                logger.info(f"Connecting to gpsd at {self.host}:{self.port}")

                async with await gpsd.open(self.host, self.port) as c:
                    logger.info("GPS connected")
                    async for result in c:
                        if isinstance(result, TPV):
                            self.feed(service, result)
                        elif isinstance(result, Sky):
                            self.sky = result

            except asyncio.CancelledError:
                logger.info("GPS handler cancelled")
                raise
            except GpsdError as e:
                service.on_error(e)
            except (ConnectionError, OSError) as e:
                logger.debug(f"GPS connection error: {e}")
                service.on_error(ConnectionError(f"gpsd is not running: {e}"))
            except Exception as e:
                logger.critical(f"Unknown error: {traceback.format_exc()}")
                service.on_error(e)

            logger.info("Reconnecting to GPS...")
            await asyncio.sleep(self.reconnect_delay)

    @property
    def satellites(self) -> str:
        if self.sky is None or self.sky.nSat is None:
            return "no satellites reported"
        return f"{self.sky.uSat or 0}/{self.sky.nSat} satellites used"

    def feed(self, service, report: TPV):
        fix = fix_from_tpv(report)

        if fix is None:
            if self._has_fix is not False:
                logger.warning(f"GPS has no fix (mode {report.mode}, {self.satellites})")
            self._has_fix = False
            return

        if self._has_fix is not True:
            logger.info(f"GPS fix acquired (mode {report.mode}): {fix}")
        self._has_fix = True

        service.on_fix(fix)
