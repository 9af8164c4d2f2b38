from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

import websockets
import websockets.exceptions

from cardtable.models import PlayerInfo

from . import messages

LOGGER = logging.getLogger("mesh.transport")

# Transports move JSON-ready dicts between peers. They know nothing about
# games; the replication coordinator sits on top of exactly one of them.

MessageHandler = Callable[[str, Dict[str, Any]], None]
ConnectionHandler = Callable[[str, bool], None]
Unsubscribe = Callable[[], None]

HELLO_TIMEOUT = 5


class Transport(Protocol):
    peer_id: str

    def send(self, peer_id: str, message: Dict[str, Any]) -> bool:
        ...

    def broadcast(self, message: Dict[str, Any], exclude_peer_id: Optional[str] = None) -> None:
        ...

    def on_message(self, handler: MessageHandler) -> Unsubscribe:
        ...

    def on_connection_change(self, handler: ConnectionHandler) -> Unsubscribe:
        ...


class BaseTransport:
    """Listener bookkeeping shared by the concrete transports."""

    def __init__(self, peer_id: str, display_name: str = "", avatar: str = "") -> None:
        self.peer_id = peer_id
        self.identity = PlayerInfo(peer_id, display_name or peer_id, avatar)
        self.identities: Dict[str, PlayerInfo] = {}
        self._message_handlers: List[MessageHandler] = []
        self._connection_handlers: List[ConnectionHandler] = []

    def on_message(self, handler: MessageHandler) -> Unsubscribe:
        self._message_handlers.append(handler)
        return lambda: self._discard(self._message_handlers, handler)

    def on_connection_change(self, handler: ConnectionHandler) -> Unsubscribe:
        self._connection_handlers.append(handler)
        return lambda: self._discard(self._connection_handlers, handler)

    @staticmethod
    def _discard(handlers: List[Any], handler: Any) -> None:
        if handler in handlers:
            handlers.remove(handler)

    def _emit_message(self, sender: str, message: Dict[str, Any]) -> None:
        for handler in list(self._message_handlers):
            handler(sender, message)

    def _emit_connection(self, peer_id: str, connected: bool) -> None:
        for handler in list(self._connection_handlers):
            handler(peer_id, connected)


class InMemoryHub:
    """Process-local switchboard for hot-seat play and tests.

    Messages are copied through JSON so no peer ever shares an object with
    another. With ``queued=True`` nothing is delivered until ``flush``; a
    flush may shuffle the queue to model an unordered transport.
    """

    def __init__(self, queued: bool = False, rng: Optional[random.Random] = None) -> None:
        self.queued = queued
        self.rng = rng or random.Random()
        self.transports: Dict[str, "InMemoryTransport"] = {}
        self.queue: List[Tuple[str, str, Dict[str, Any]]] = []

    def connect(self, peer_id: str, display_name: str = "", avatar: str = "") -> "InMemoryTransport":
        if peer_id in self.transports:
            raise ValueError(f"Peer {peer_id} already connected")
        transport = InMemoryTransport(self, peer_id, display_name, avatar)
        existing = list(self.transports.values())
        self.transports[peer_id] = transport
        for other in existing:
            other.identities[peer_id] = transport.identity
            transport.identities[other.peer_id] = other.identity
            other._emit_connection(peer_id, True)
            transport._emit_connection(other.peer_id, True)
        return transport

    def disconnect(self, peer_id: str) -> None:
        transport = self.transports.pop(peer_id, None)
        if transport is None:
            return
        for other in list(self.transports.values()):
            other.identities.pop(peer_id, None)
            other._emit_connection(peer_id, False)

    def deliver(self, sender: str, recipient: str, message: Dict[str, Any]) -> bool:
        if recipient not in self.transports:
            return False
        copy = json.loads(json.dumps(message))
        if self.queued:
            self.queue.append((sender, recipient, copy))
        else:
            self.transports[recipient]._emit_message(sender, copy)
        return True

    def flush(self, reorder: bool = False) -> int:
        """Deliver queued messages, including any queued while flushing."""
        delivered = 0
        while self.queue:
            idx = self.rng.randrange(len(self.queue)) if reorder else 0
            sender, recipient, message = self.queue.pop(idx)
            target = self.transports.get(recipient)
            if target is None:
                continue
            target._emit_message(sender, message)
            delivered += 1
        return delivered


class InMemoryTransport(BaseTransport):
    def __init__(self, hub: InMemoryHub, peer_id: str, display_name: str = "", avatar: str = "") -> None:
        super().__init__(peer_id, display_name, avatar)
        self.hub = hub

    @property
    def peers(self) -> List[str]:
        return [peer_id for peer_id in self.hub.transports if peer_id != self.peer_id]

    def send(self, peer_id: str, message: Dict[str, Any]) -> bool:
        return self.hub.deliver(self.peer_id, peer_id, message)

    def broadcast(self, message: Dict[str, Any], exclude_peer_id: Optional[str] = None) -> None:
        for peer_id in self.peers:
            if peer_id != exclude_peer_id:
                self.hub.deliver(self.peer_id, peer_id, message)

    def close(self) -> None:
        self.hub.disconnect(self.peer_id)


class WebSocketTransport(BaseTransport):
    """Star-shaped transport over websockets: the host serves, peers connect.

    Every connection opens with a hello/welcome exchange carrying the peer id,
    display name and avatar. Frames after that are JSON envelopes.
    """

    def __init__(self, peer_id: str, display_name: str = "", avatar: str = "") -> None:
        super().__init__(peer_id, display_name, avatar)
        self.connections: Dict[str, Any] = {}
        self._server: Any = None
        self._tasks: Set["asyncio.Task[Any]"] = set()

    @property
    def peers(self) -> List[str]:
        return list(self.connections)

    async def serve(self, host: str = "0.0.0.0", port: int = 8765) -> None:
        self._server = await websockets.serve(self._handle_connection, host, port)
        LOGGER.info("Listening on %s:%s as %s", host, port, self.peer_id)

    async def connect(self, url: str) -> str:
        """Dial the host, exchange hellos, and return the host's peer id."""
        websocket = await websockets.connect(url)
        await websocket.send(messages.encode(self._hello(messages.HELLO)))
        welcome = await self._read_hello(websocket, messages.WELCOME)
        if welcome is None:
            await websocket.close()
            raise ConnectionError(f"No welcome from {url}")
        remote = self._register(welcome, websocket)
        self._spawn(self._reader(remote, websocket))
        LOGGER.info("Connected to %s at %s", remote, url)
        return remote

    def send(self, peer_id: str, message: Dict[str, Any]) -> bool:
        websocket = self.connections.get(peer_id)
        if websocket is None:
            return False
        self._spawn(websocket.send(messages.encode(message)))
        return True

    def broadcast(self, message: Dict[str, Any], exclude_peer_id: Optional[str] = None) -> None:
        frame = messages.encode(message)
        for peer_id, websocket in list(self.connections.items()):
            if peer_id != exclude_peer_id:
                self._spawn(websocket.send(frame))

    async def close(self) -> None:
        for websocket in list(self.connections.values()):
            await websocket.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle_connection(self, websocket: Any) -> None:
        # First frame must be a hello so we know who is on the other end.
        hello = await self._read_hello(websocket, messages.HELLO)
        if hello is None:
            await websocket.send(messages.encode(messages.error(self.peer_id, None, "BAD_HELLO", "Expected hello")))
            await websocket.close()
            return
        await websocket.send(messages.encode(self._hello(messages.WELCOME)))
        peer_id = self._register(hello, websocket)
        await self._reader(peer_id, websocket)

    def _hello(self, msg_type: str) -> Dict[str, Any]:
        return messages.hello(msg_type, self.peer_id, self.identity.display_name, self.identity.avatar)

    async def _read_hello(self, websocket: Any, expected: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=HELLO_TIMEOUT)
        except (asyncio.TimeoutError, websockets.exceptions.ConnectionClosed):
            return None
        message = messages.decode(raw)
        peer_id = message.get("peer_id")
        if message.get("type") != expected or not isinstance(peer_id, str) or not peer_id:
            LOGGER.warning("Rejected handshake frame: %r", raw)
            return None
        return message

    def _register(self, hello: Dict[str, Any], websocket: Any) -> str:
        peer_id = hello["peer_id"]
        display_name = hello.get("display_name")
        avatar = hello.get("avatar")
        previous = self.connections.get(peer_id)
        if previous is not None and previous is not websocket:
            # Replace the older connection for the same peer id.
            self._spawn(previous.close(code=4000, reason="Replaced by new connection"))
        self.connections[peer_id] = websocket
        self.identities[peer_id] = PlayerInfo(
            peer_id,
            display_name if isinstance(display_name, str) and display_name else peer_id,
            avatar if isinstance(avatar, str) else "",
        )
        self._emit_connection(peer_id, True)
        return peer_id

    async def _reader(self, peer_id: str, websocket: Any) -> None:
        try:
            async for raw in websocket:
                message = messages.decode(raw)
                if not message:
                    LOGGER.warning("Dropped malformed frame from %s", peer_id)
                    continue
                self._emit_message(peer_id, message)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            if self.connections.get(peer_id) is websocket:
                del self.connections[peer_id]
                self._emit_connection(peer_id, False)
                LOGGER.info("Peer %s disconnected", peer_id)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, websockets.exceptions.ConnectionClosed):
            LOGGER.error("Send failed: %s", exc)
