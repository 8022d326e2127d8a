import asyncio
from typing import Any, Dict

from fastapi import WebSocket

from event_keys import CONNECTED
from logging_config import get_logger
from schemas.events import ServerEvent

logger = get_logger(__name__)


class ConnectionManager:
    """
    Tracks live WebSocket connections by connection id and delivers
    outbound events to them.

    Each connection gets a FIFO outbox drained by its own sender task, so
    ``emit`` never awaits and frames reach a socket in the order they
    were emitted.
    """

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.outboxes: Dict[str, asyncio.Queue] = {}
        self.sender_tasks: Dict[str, asyncio.Task] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        """
        Start delivering events to an accepted WebSocket.

        The first frame the client sees is the ``connected`` handshake
        carrying its own connection id.

        Args:
            connection_id: Server-assigned id for this connection
            websocket: An already accepted WebSocket
        """
        outbox: asyncio.Queue = asyncio.Queue()
        self.active_connections[connection_id] = websocket
        self.outboxes[connection_id] = outbox
        self.sender_tasks[connection_id] = asyncio.create_task(self._deliver(connection_id, websocket, outbox))
        self.emit(connection_id, CONNECTED, connection_id)
        logger.debug(f"Registered connection {connection_id} (active connections: {len(self.active_connections)})")

    async def unregister(self, connection_id: str):
        """
        Stop delivering to a connection. Frames still queued are discarded.

        Args:
            connection_id: The id passed to ``register``
        """
        self.active_connections.pop(connection_id, None)
        self.outboxes.pop(connection_id, None)
        task = self.sender_tasks.pop(connection_id, None)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug(f"Unregistered connection {connection_id} (active connections: {len(self.active_connections)})")

    def emit(self, connection_id: str, event: str, *args: Any):
        """
        Queue an event for a single connection.

        Unknown or already closed connection ids are silently dropped.

        Args:
            connection_id: Target connection
            event: Event name
            *args: Event arguments, serialized as a JSON array
        """
        outbox = self.outboxes.get(connection_id)
        if outbox is None:
            logger.debug(f"Dropping '{event}' for unknown connection {connection_id}")
            return
        # Serialize now so later state changes can't leak into a queued frame
        outbox.put_nowait(ServerEvent(event=event, args=list(args)).model_dump_json())

    async def _deliver(self, connection_id: str, websocket: WebSocket, outbox: asyncio.Queue):
        while True:
            frame = await outbox.get()
            try:
                await websocket.send_text(frame)
            except Exception as e:
                logger.warning(f"Error sending to connection {connection_id}, stopping delivery: {e}")
                return

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.active_connections

    def get_total_connections(self) -> int:
        return len(self.active_connections)
