"""
WebSocket Manager - Pushes flow change events to connected editors.

Clients only receive small events; they re-read the flow over HTTP.
A client whose send fails is forgotten at once, so one dead socket never
delays or breaks delivery to the others.
"""
import asyncio
import json
import logging
from typing import TYPE_CHECKING, Set

from fastapi import WebSocket

if TYPE_CHECKING:
    from flow_core import FlowStore

logger = logging.getLogger(__name__)

PING = "ping"
PONG = {"type": "pong"}


class WebSocketManager:
    """Tracks editor connections and fans out flow events to them."""

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("Editor connected (%d open)", len(self._connections))

    async def disconnect(self, websocket: WebSocket):
        """Forget a connection. Safe to call for one already dropped."""
        async with self._lock:
            if websocket not in self._connections:
                return
            self._connections.discard(websocket)
        logger.info("Editor disconnected (%d open)", len(self._connections))

    async def handle_message(self, websocket: WebSocket, data: str):
        """Answer keep-alive pings; other client messages carry no meaning."""
        if data == PING:
            await websocket.send_text(json.dumps(PONG))
        else:
            logger.debug("Ignoring client message %r", data[:80])

    async def broadcast(self, event: dict) -> int:
        """
        Send one event to every editor.

        Sends happen outside the lock so a slow client cannot block connects
        and disconnects. Returns the number of editors reached.
        """
        async with self._lock:
            targets = list(self._connections)
        if not targets:
            return 0

        text = json.dumps(event)
        delivered = 0
        for websocket in targets:
            try:
                await websocket.send_text(text)
                delivered += 1
            except Exception:
                logger.warning("Dropping editor after failed %s send", event.get("type"), exc_info=True)
                await self.disconnect(websocket)
        return delivered

    async def notify_flow_updated(self, store: "FlowStore") -> int:
        """Tell editors the flow changed, with history and issue counts."""
        return await self.broadcast({
            "type": "flow_updated",
            "can_undo": store.can_undo,
            "can_redo": store.can_redo,
            "error_count": len(store.errors),
            "warning_count": len(store.warnings),
        })
