"""Tests for editor connection tracking and event fan-out."""

import asyncio
import json

from flow_backend.websocket_manager import WebSocketManager
from flow_core import FlowStore


class FakeSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))


def connected(manager, *sockets):
    async def connect_all():
        for socket in sockets:
            await manager.connect(socket)
    asyncio.run(connect_all())


class TestConnections:
    def test_connect_and_disconnect(self):
        manager = WebSocketManager()
        socket = FakeSocket()
        connected(manager, socket)
        assert socket.accepted
        assert manager.connection_count == 1

        asyncio.run(manager.disconnect(socket))
        asyncio.run(manager.disconnect(socket))
        assert manager.connection_count == 0

    def test_ping_gets_pong(self):
        manager = WebSocketManager()
        socket = FakeSocket()
        asyncio.run(manager.handle_message(socket, "ping"))
        asyncio.run(manager.handle_message(socket, "hello"))
        assert socket.sent == [{"type": "pong"}]


class TestBroadcast:
    def test_failed_client_is_dropped(self):
        manager = WebSocketManager()
        healthy, broken = FakeSocket(), FakeSocket(fail=True)
        connected(manager, healthy, broken)

        delivered = asyncio.run(manager.broadcast({"type": "flow_updated"}))
        assert delivered == 1
        assert healthy.sent == [{"type": "flow_updated"}]
        assert manager.connection_count == 1

    def test_no_connections(self):
        assert asyncio.run(WebSocketManager().broadcast({"type": "flow_updated"})) == 0

    def test_flow_updated_carries_store_summary(self):
        store = FlowStore()
        node = store.add_node()
        store.update_node_data(node.id, description="d", prompt="p")
        store.add_node()
        store.undo()
        manager = WebSocketManager()
        socket = FakeSocket()
        connected(manager, socket)

        asyncio.run(manager.notify_flow_updated(store))
        assert socket.sent == [{
            "type": "flow_updated",
            "can_undo": True,
            "can_redo": True,
            "error_count": 0,
            "warning_count": 0,
        }]
