import asyncio
import json
import logging
import traceback
from urllib.parse import urlsplit

from location_agent.location import LocationService
from location_agent.models import ConnectionState, Fix

logger = logging.getLogger(__name__)

LOCATION_PATH = "/location"
MAX_REQUEST_SIZE = 65536

NOT_AVAILABLE = "Location data is not yet available. Please try again in a moment."
NOT_FOUND = "Not Found"

REASONS = {
    200: "OK",
    404: "Not Found",
}


class RequestTooLarge(Exception):
    pass


def build_response(status: int, body: str, content_type: str = "text/plain") -> bytes:
    """
    Build a complete HTTP/1.1 response which closes the connection.

    Args:
        status (int): The HTTP status code.
        body (str): The response body.
        content_type (str, optional): The body media type. Defaults to "text/plain".

    Returns:
        bytes: The response, header lines terminated by CRLF.
    """
    payload = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status} {REASONS[status]}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + payload


def parse_request_line(data: bytes) -> tuple[str, str] | None:
    line, _, _ = data.partition(b"\r\n")
    try:
        method, target, version = line.decode("ascii").split(" ")
        path = urlsplit(target).path
    except (UnicodeDecodeError, ValueError):
        return None
    if not version.startswith("HTTP/"):
        return None
    return method, path


def location_response(fix: Fix | None) -> bytes:
    if fix is None:
        return build_response(200, NOT_AVAILABLE)
    return build_response(200, json.dumps(fix.as_dict()), "application/json")


async def read_request(reader: asyncio.StreamReader, limit: int) -> bytes:
    data = bytearray()
    while b"\r\n\r\n" not in data and len(data) <= limit:
        chunk = await reader.read(limit + 1 - len(data))
        if not chunk:
            break
        data += chunk
    if len(data) > limit:
        raise RequestTooLarge(f"Request exceeds {limit} bytes")
    return bytes(data)


class ConnectionHandler:
    """
    Answers one HTTP request per connection with the current location.

    Args:
        location (LocationService): The service holding the latest fix.
        path (str, optional): The location route. Defaults to "/location".
        max_request_size (int, optional): Largest request head accepted.
    """

    def __init__(
        self,
        location: LocationService,
        path: str = LOCATION_PATH,
        max_request_size: int = MAX_REQUEST_SIZE,
    ):
        self.location = location
        self.path = path
        self.max_request_size = max_request_size

    def current_fix(self) -> Fix | None:
        fixes = []
        callback = fixes.append
        if self.location.get_current(callback):
            return fixes[0]

        # Answer now instead of holding the connection open until a first fix.
        self.location.discard(callback)
        return fixes[0] if fixes else None

    def respond(self, request: bytes) -> bytes:
        parsed = parse_request_line(request)
        if parsed is None:
            logger.debug("Malformed request")
            return build_response(404, NOT_FOUND)

        method, path = parsed
        if method != "GET" or path != self.path:
            logger.debug(f"No route for {method} {path}")
            return build_response(404, NOT_FOUND)

        fix = self.current_fix()
        if fix is None:
            logger.debug("Sending location not available message")
        else:
            logger.debug(f"Sending location: {fix.latitude}, {fix.longitude}")
        return location_response(fix)

    def safe_respond(self, request: bytes) -> bytes:
        try:
            return self.respond(request)
        except Exception:
            logger.critical(f"Unknown error: {traceback.format_exc()}")
            return build_response(404, NOT_FOUND)

    async def __call__(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> ConnectionState:
        peer = writer.get_extra_info("peername")
        state = ConnectionState.ACCEPTED

        try:
            state = ConnectionState.READING
            try:
                request = await read_request(reader, self.max_request_size)
                response = self.safe_respond(request)
            except RequestTooLarge as e:
                logger.warning(f"Rejecting request from {peer}: {e}")
                response = build_response(404, NOT_FOUND)

            state = ConnectionState.RESPONDING
            writer.write(response)
            await writer.drain()

        except (ConnectionError, OSError) as e:
            if state is ConnectionState.READING:
                logger.error(f"Error receiving data from {peer}: {e}")
            else:
                logger.error(f"Error sending response to {peer}: {e}")
        finally:
            state = ConnectionState.CLOSED
            writer.close()

        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Connection to {peer} closed with error: {e}")

        return state
