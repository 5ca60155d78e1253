"""
skyplace Server - HTTP read boundary.

Serves the command log and its derived view. Never writes to the log.

Architecture invariants:
- /data always returns the complete log (no filtering, no pagination, no auth)
- Every response is built from one CommandLog.snapshot() taken for that request
- /view replays the snapshot through the reducer per request; nothing is cached
- Before ingestion completes, readers simply see an empty or partial log
"""

import orjson
from aiohttp import web
from typing import Any, Callable, Dict, Optional

from skyplace.core.commandLog import CommandLog
from skyplace.core.config import PlaceConfig
from skyplace.core.reducer import buildCanvasView
from sdk.logging import getLogger


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode('utf-8')


class PlaceServer:
    """
    skyplace HTTP server.

    Routes:
        GET /data    full command log as [{actor, x, y, colour, timestamp}]
        GET /view    derived view {width, height, canvas, history, stats, lastUpdate}
        GET /health  ingestion status
    """

    def __init__(self, config: PlaceConfig, commandLog: CommandLog,
                 statusCallback: Optional[Callable[[], Dict[str, Any]]] = None):
        self.config = config
        self.commandLog = commandLog
        self.statusCallback = statusCallback
        self.log = getLogger()

        self.app = web.Application()
        self._setupRoutes()

        self._runner = None
        self._site = None

    def _setupRoutes(self):
        """Setup aiohttp routes"""
        self.app.router.add_get('/data', self.handleData)
        self.app.router.add_get('/view', self.handleView)
        self.app.router.add_get('/health', self.handleHealth)

    async def start(self):
        """Start Server"""
        self.log.info("[Server] Starting...")

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        host = self.config.server.host
        port = self.config.server.port

        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        self.log.info(f"[Server] Listening on {host}:{port}")

    async def stop(self):
        """Stop Server"""
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self.log.info("[Server] Stopped")

    # =========================================================================
    # HTTP Handlers
    # =========================================================================

    async def handleData(self, request: web.Request) -> web.Response:
        """Complete command log"""
        return web.json_response(self.commandLog.toRecords(), dumps=_dumps)

    async def handleView(self, request: web.Request) -> web.Response:
        """Canvas, history and per-actor stats replayed from the current log"""
        canvas = self.config.canvas
        view = buildCanvasView(
            self.commandLog.snapshot(),
            width=canvas.width,
            height=canvas.height,
            historyLimit=canvas.historyLimit,
            background=canvas.background
        )
        return web.json_response(view.toDict(), dumps=_dumps)

    async def handleHealth(self, request: web.Request) -> web.Response:
        """Health check endpoint"""
        status: Dict[str, Any] = {'status': 'ok', 'logSize': len(self.commandLog)}
        if self.statusCallback is not None:
            status.update(self.statusCallback())
        return web.json_response(status, dumps=_dumps)
