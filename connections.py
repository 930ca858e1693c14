import asyncio
import json
from typing import Callable, List

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from logging_config import get_logger
from tokens import unix_time

logger = get_logger(__name__)


class ConnectionHub:
    """Tracks open WebSocket connections and fans events out to them.

    Delivery is best-effort: connections that are no longer open are skipped
    and send failures are logged. Broadcasts hold a lock so that every
    connection receives them in the order they were triggered.
    """

    def __init__(self, clock: Callable[[], int] = unix_time):
        self._clock = clock
        self._connections: List[WebSocket] = []
        self._send_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket):
        self._connections.append(websocket)
        await websocket.accept()
        logger.info(f"WebSocket connection accepted ({len(self._connections)} open)")

    def disconnect(self, websocket: WebSocket):
        if websocket in self._connections:
            self._connections.remove(websocket)
            logger.info(f"WebSocket connection removed ({len(self._connections)} open)")

    def serialize(self, payload: dict) -> str:
        return json.dumps({**payload, "timestamp": self._clock()})

    @staticmethod
    def is_open(websocket: WebSocket) -> bool:
        return (
            websocket.client_state == WebSocketState.CONNECTED
            and websocket.application_state == WebSocketState.CONNECTED
        )

    async def broadcast(self, payload: dict) -> int:
        """Sends ``payload`` to all open connections. Returns the delivery count."""
        serialized = self.serialize(payload)
        async with self._send_lock:
            delivered = 0
            for websocket in list(self._connections):
                if await self._send_if_open(websocket, serialized):
                    delivered += 1
        logger.debug(f"Broadcast delivered to {delivered}/{len(self._connections)} connections")
        return delivered

    async def send_private(self, websocket: WebSocket, payload: dict) -> bool:
        return await self._send_if_open(websocket, self.serialize(payload))

    async def close(self):
        logger.info(f"Closing {len(self._connections)} WebSocket connections")
        connections, self._connections = self._connections, []
        for websocket in connections:
            if not self.is_open(websocket):
                continue
            try:
                await websocket.close(code=1001)
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")

    async def _send_if_open(self, websocket: WebSocket, serialized: str) -> bool:
        if not self.is_open(websocket):
            return False
        try:
            await websocket.send_text(serialized)
        except Exception as e:
            logger.warning(f"Error sending to connection: {e}")
            return False
        return True
