"""Message broadcasting utility for push clients."""

import asyncio
import logging
from typing import Any, Dict

from aiohttp import web

from ..server.constants import BroadcastConstants


logger = logging.getLogger(__name__)


class PushBroadcaster:
    """
    Manages broadcasting messages to connected push clients.

    Uses a per-client queue and worker task pattern to ensure:
    1. Non-blocking broadcast (a slow client never delays the others)
    2. Strict message ordering per client
    3. Backpressure handling (stalled clients don't consume infinite memory)

    A client leaves the set only through unregister(), which the server
    calls when the connection closes. Send failures never remove a client.
    """

    def __init__(self, queue_size: int = BroadcastConstants.CLIENT_QUEUE_SIZE):
        """
        Initialize the broadcaster.

        Args:
            queue_size: Maximum pending messages per client
        """
        self.queue_size = queue_size
        # Map websocket -> (queue, worker_task)
        self.clients: Dict[web.WebSocketResponse, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def register(self, websocket: web.WebSocketResponse) -> None:
        """
        Register a new client and start its sender worker.

        Registering a client twice has no effect.

        Args:
            websocket: Connection to register
        """
        async with self._lock:
            if websocket in self.clients:
                return

            queue = asyncio.Queue(maxsize=self.queue_size)
            task = asyncio.create_task(self._client_sender_loop(websocket, queue))

            self.clients[websocket] = {
                'queue': queue,
                'task': task
            }
            logger.info(f"Client connected. Total clients: {len(self.clients)}")

    async def unregister(self, websocket: web.WebSocketResponse) -> None:
        """
        Unregister a client and stop its worker.

        Args:
            websocket: Connection to unregister
        """
        async with self._lock:
            if websocket not in self.clients:
                return
            client_data = self.clients.pop(websocket)

        task = client_data['task']
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        logger.info(f"Client disconnected. Total clients: {len(self.clients)}")

    async def broadcast(self, message: str) -> None:
        """
        Broadcast a text message to all connected clients.

        This method is non-blocking. It pushes the message to each client's
        queue; actual sending happens in the background workers.

        Args:
            message: Text frame payload
        """
        # Snapshot queues so registrations during the loop are harmless
        async with self._lock:
            if not self.clients:
                return
            queues = [data['queue'] for data in self.clients.values()]

        for q in queues:
            try:
                q.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Client queue full, dropping message")

    async def _client_sender_loop(self, websocket: web.WebSocketResponse, queue: asyncio.Queue) -> None:
        """
        Background task to send messages to a specific client sequentially.
        """
        while True:
            message = await queue.get()
            try:
                await websocket.send_str(message)
            except Exception as e:
                # Client is presumably gone; its close handler unregisters it
                logger.debug(f"Failed to send to client: {e}")
            finally:
                queue.task_done()

    def get_client_count(self) -> int:
        """
        Get the number of connected clients.

        Returns:
            Number of connected clients
        """
        return len(self.clients)

    async def close_all(self) -> None:
        """Close all client connections."""
        async with self._lock:
            sockets = list(self.clients.keys())

        for ws in sockets:
            await self.unregister(ws)
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing client: {e}")

        logger.info("All clients disconnected")
