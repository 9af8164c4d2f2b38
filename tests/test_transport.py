import asyncio
import json

from cardtable.intents import PlaceBet
from cardtable.models import GameType
from mesh import messages
from mesh.transport import WebSocketTransport


# Fake sockets so the handshake and reader run without opening real connections.
class DummyWebSocket:
    def __init__(self, incoming=()) -> None:
        self.incoming = list(incoming)
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    async def recv(self) -> str:
        if not self.incoming:
            raise asyncio.TimeoutError
        return self.incoming.pop(0)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if not self.incoming:
            raise StopAsyncIteration
        return self.incoming.pop(0)


def hello_frame(peer_id: str, name: str = "") -> str:
    return messages.encode(messages.hello(messages.HELLO, peer_id, name))


def test_first_frame_must_be_hello():
    transport = WebSocketTransport("host", "Host")
    websocket = DummyWebSocket([messages.encode(messages.envelope(messages.GAME_ACTION, "p1"))])

    asyncio.run(transport._handle_connection(websocket))

    payload = json.loads(websocket.sent[-1])
    assert payload["type"] == "error"
    assert payload["code"] == "BAD_HELLO"
    assert websocket.closed
    assert transport.peers == []


def test_silent_client_is_turned_away():
    transport = WebSocketTransport("host")
    websocket = DummyWebSocket()

    asyncio.run(transport._handle_connection(websocket))
    assert websocket.closed


def test_handshake_registers_peer_and_relays_frames(caplog):
    transport = WebSocketTransport("host", "Host", "owl")
    action = messages.game_action("p1", GameType.KANG, PlaceBet("p1", 20))
    websocket = DummyWebSocket([hello_frame("p1", "Ana"), messages.encode(action), "not json"])
    received = []
    changes = []
    transport.on_message(lambda sender, message: received.append((sender, message)))
    transport.on_connection_change(lambda peer_id, connected: changes.append((peer_id, connected)))

    asyncio.run(transport._handle_connection(websocket))

    welcome = json.loads(websocket.sent[0])
    assert welcome["type"] == messages.WELCOME
    assert (welcome["peer_id"], welcome["display_name"], welcome["avatar"]) == ("host", "Host", "owl")
    assert received == [("p1", action)]
    assert changes == [("p1", True), ("p1", False)]
    assert transport.identities["p1"].display_name == "Ana"
    assert transport.peers == []
    assert "Dropped malformed frame from p1" in caplog.text


def test_send_and_broadcast_reach_registered_sockets():
    transport = WebSocketTransport("host")
    alice, bob = DummyWebSocket(), DummyWebSocket()
    message = messages.error("host", None, "X", "y")

    async def scenario():
        transport._register(messages.hello(messages.HELLO, "alice", ""), alice)
        transport._register(messages.hello(messages.HELLO, "bob", "Bob"), bob)
        assert transport.send("alice", message)
        transport.broadcast(message, exclude_peer_id="alice")
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert len(alice.sent) == 1 and len(bob.sent) == 1
    assert json.loads(bob.sent[0]) == message
    assert transport.identities["alice"].display_name == "alice"


def test_reconnect_replaces_older_socket():
    transport = WebSocketTransport("host")
    first, second = DummyWebSocket(), DummyWebSocket()

    async def scenario():
        transport._register(messages.hello(messages.HELLO, "p1", ""), first)
        transport._register(messages.hello(messages.HELLO, "p1", ""), second)
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert first.closed
    assert transport.connections == {"p1": second}


def test_send_to_unknown_peer_fails():
    transport = WebSocketTransport("host")
    assert transport.send("nobody", {"type": "error"}) is False


def test_envelope_fields():
    message = messages.game_state("host", GameType.SLAVE, {"phase": "playing"}, 3)

    assert message["type"] == messages.GAME_STATE
    assert message["v"] == messages.PROTOCOL_VERSION
    assert message["sender"] == "host"
    assert message["game"] == "slave"
    assert message["revision"] == 3
    assert "ts" in message
    assert "game" not in messages.hello(messages.HELLO, "p1", "Ana")


def test_decode_rejects_non_objects():
    assert messages.decode(b'{"type": "hello"}') == {"type": "hello"}
    assert messages.decode("[1, 2]") == {}
    assert messages.decode("{broken") == {}
    assert messages.decode(None) == {}
