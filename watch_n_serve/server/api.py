"""
Development server serving static files with automatic browser reloads.

One listener handles both plain HTTP file requests (with keep-alive) and
the WebSocket upgrade on the reserved reload path.
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import unquote, urlsplit

from aiohttp import WSMsgType, web

from .config import ServerConfig
from .constants import ServerConstants
from .injection import build_reload_script, instrument_html
from .watcher import ChangeWatcher
from ..websocket.broadcaster import PushBroadcaster


logger = logging.getLogger(__name__)


class DevServer:
    """
    Static file server with live reload.

    Serves files from the configured root. When watching is enabled, HTML
    responses carry a reload script, and every settled burst of changes
    under the root sends "updated" to each connected push client.

    Usage:
        server = DevServer(ServerConfig(root="site"))
        await server.serve()  # runs until the process ends
    """

    def __init__(self, config: ServerConfig, abort_event: Optional[asyncio.Event] = None):
        """
        Initialize the server.

        Args:
            config: Server configuration
            abort_event: Optional event that stops the change watcher once set
        """
        self.config = config
        self.root = Path(config.root).resolve()
        self.broadcaster = PushBroadcaster()
        self.reload_script = build_reload_script(config.host, config.port)
        self.watcher: Optional[ChangeWatcher] = None
        if config.watch:
            self.watcher = ChangeWatcher(
                [self.root],
                minimum_delay=config.minimum_delay,
                abort_event=abort_event,
            )
        self.app = self._build_app()
        self.runner: Optional[web.AppRunner] = None
        self._running = False

    def _build_app(self) -> web.Application:
        app = web.Application()
        if self.watcher:
            app.router.add_get(ServerConstants.RELOAD_EVENT_PATH, self._handle_push_client)
        app.router.add_get("/{path:.*}", self.handle_file)
        return app

    def resolve_path(self, url_path: str) -> Path:
        """
        Map a request target to a file under the root.

        Args:
            url_path: Raw request target, optionally with a query string

        Returns:
            Absolute path of the file to serve

        Raises:
            FileNotFoundError: If the path escapes the root
        """
        path = unquote(urlsplit(url_path).path)
        if path.endswith("/"):
            path += ServerConstants.INDEX_FILE

        resolved = (self.root / path.lstrip("/")).resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise FileNotFoundError(f"Path outside of root: {url_path}")
        return resolved

    async def load(self, url_path: str) -> Tuple[Path, bytes, bool]:
        """
        Read the file behind a request target.

        Args:
            url_path: Raw request target

        Returns:
            Tuple of (resolved path, response body, whether the reload
            script was inserted)

        Raises:
            OSError: If the file cannot be read
            UnicodeDecodeError: If an HTML file is not valid UTF-8
        """
        path = self.resolve_path(url_path)
        content = await asyncio.to_thread(path.read_bytes)

        instrumented = False
        if self.watcher and path.name.endswith(ServerConstants.INSTRUMENTED_SUFFIX):
            content = instrument_html(content, self.reload_script)
            instrumented = True

        return path, content, instrumented

    async def handle_file(self, request: web.Request) -> web.Response:
        """
        Answer a request with a file under the root, or a 404.

        Args:
            request: Incoming HTTP request

        Returns:
            200 response with the (possibly instrumented) file, or an empty 404
        """
        try:
            path, content, instrumented = await self.load(request.raw_path)
        except (OSError, ValueError) as e:
            logger.debug(f"Failed to load {request.raw_path}: {e}")
            logger.info(f"  Serve: {request.method} {request.path} => (not found)")
            return web.Response(status=404, body=b"")

        suffix = " (with auto-reload)" if instrumented else ""
        logger.info(f"  Serve: {request.method} {request.path} => {path}{suffix}")
        return self._file_response(path, content)

    def _file_response(self, path: Path, content: bytes) -> web.Response:
        content_type, _ = mimetypes.guess_type(path.name)
        if content_type is None:
            return web.Response(body=content, content_type=ServerConstants.DEFAULT_CONTENT_TYPE)
        if content_type.startswith("text/"):
            return web.Response(body=content, content_type=content_type, charset="utf-8")
        return web.Response(body=content, content_type=content_type)

    async def _handle_push_client(self, request: web.Request) -> web.WebSocketResponse:
        """
        Handle an upgraded reload connection.

        The client only receives pushed messages; it stays registered until
        the connection closes. Anything the client sends is ignored.

        Args:
            request: Upgrade request on the reload path
        """
        websocket = web.WebSocketResponse()
        await websocket.prepare(request)
        await self.broadcaster.register(websocket)
        try:
            async for msg in websocket:
                if msg.type == WSMsgType.ERROR:
                    logger.debug(f"Push client error: {websocket.exception()}")
                    break
        finally:
            await self.broadcaster.unregister(websocket)
        return websocket

    async def _on_changed(self) -> None:
        await self.broadcaster.broadcast(ServerConstants.RELOAD_MESSAGE)

    async def start(self) -> None:
        """
        Start watching (if enabled), then start listening.

        If the listener cannot be bound, the watcher is stopped again and the
        error propagates with nothing left running.
        """
        if self._running:
            logger.warning("Server is already running")
            return

        if self.watcher:
            self.watcher.start()
            self.watcher.add_listener(self._on_changed)

        runner = web.AppRunner(self.app, access_log=None)
        try:
            await runner.setup()
            site = web.TCPSite(runner, self.config.host, self.config.port)
            await site.start()
        except Exception:
            if self.watcher:
                self.watcher.remove_listener(self._on_changed)
                await self.watcher.aclose()
            await runner.cleanup()
            raise

        self.runner = runner
        self._running = True
        logger.info(f"Serve: listening on: http://{self.config.host}:{self.bound_port}/")

    async def serve(self) -> None:
        """Start the server and handle connections until cancelled."""
        await self.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop watching, disconnect clients and close the listener."""
        if not self._running:
            return

        logger.info("Stopping server")
        self._running = False

        if self.watcher:
            self.watcher.remove_listener(self._on_changed)
            await self.watcher.aclose()

        await self.broadcaster.close_all()

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Server stopped")

    @property
    def bound_port(self) -> int:
        """Port the listener is bound to (differs from config when port is 0)."""
        if self.runner is None or not self.runner.addresses:
            return self.config.port
        return self.runner.addresses[0][1]

    def get_client_count(self) -> int:
        """
        Get the number of connected push clients.

        Returns:
            Number of connected clients
        """
        return self.broadcaster.get_client_count()

    def is_running(self) -> bool:
        """
        Check if the server is running.

        Returns:
            True if running, False otherwise
        """
        return self._running
