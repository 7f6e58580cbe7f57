"""Liveness endpoint for the deployment platform's health checks.

Served with the websockets server's ``process_request`` hook, which answers
plain HTTP requests before any WebSocket handshake takes place.
"""

from http import HTTPStatus

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection
from websockets.http11 import Request, Response

from manager_digest.config import get_settings

logger = structlog.get_logger(__name__)

HEALTH_PATHS = frozenset({"/", "/health", "/healthz"})
STATUS_TEXT = "Bot Status: Active\n"


def process_request(connection: ServerConnection, request: Request) -> Response:
    """Answer every request over plain HTTP; no WebSocket sessions are served."""
    path = request.path.split("?", 1)[0]
    if path in HEALTH_PATHS:
        return connection.respond(HTTPStatus.OK, STATUS_TEXT)
    return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")


async def _reject(websocket: ServerConnection) -> None:
    await websocket.close(1008, "health endpoint only")


class HealthServer:
    """Serves the static liveness response."""

    def __init__(self, host: str | None = None, port: int | None = None):
        settings = get_settings()
        self._host = host or settings.health_host
        self._port = settings.port if port is None else port
        self._server: Server | None = None
        self._logger = logger.bind(component="health_server")

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        if self._server is not None:
            self._logger.warning("health_server_already_running")
            return
        self._server = await websockets.serve(
            _reject,
            self._host,
            self._port,
            process_request=process_request,
        )
        self._logger.info("health_server_listening", host=self._host, port=self._port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._logger.info("health_server_stopped")
