from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from cardtable.engine import TableEngine
from cardtable.errors import IntentError, SnapshotError
from cardtable.intents import Intent, parse_intent
from cardtable.models import PlayerInfo

from . import messages
from .transport import Transport, Unsubscribe

LOGGER = logging.getLogger("mesh.coordinator")

StateHandler = Callable[[Dict[str, Any], int], None]
ErrorHandler = Callable[[str, str], None]
ClosedHandler = Callable[[], None]


class ReplicationCoordinator:
    """Keeps every peer's engine in step with the host's.

    The host is the only writer: it applies intents one at a time and
    broadcasts the whole resulting state under a rising revision number.
    Peers forward their intents to the host and replace their mirror with
    any newer snapshot. Losing the host closes the session for good.
    """

    def __init__(self, transport: Transport, engine: TableEngine, host_peer_id: str) -> None:
        self.transport = transport
        self.engine = engine
        self.host_peer_id = host_peer_id
        self.peer_id = transport.peer_id
        self.revision = 0
        self.closed = False
        self.last_error: Optional[Dict[str, str]] = None
        self._state_handlers: List[StateHandler] = []
        self._error_handlers: List[ErrorHandler] = []
        self._closed_handlers: List[ClosedHandler] = []
        self._subscriptions: List[Unsubscribe] = [
            transport.on_message(self._handle_message),
            transport.on_connection_change(self._handle_connection),
        ]

    @property
    def is_host(self) -> bool:
        return self.peer_id == self.host_peer_id

    @property
    def game(self) -> Any:
        return self.engine.GAME_TYPE

    def state(self) -> Dict[str, Any]:
        return self.engine.get_state()

    # Listeners ---------------------------------------------------------

    def on_state(self, handler: StateHandler) -> Unsubscribe:
        self._state_handlers.append(handler)
        return lambda: self._state_handlers.remove(handler) if handler in self._state_handlers else None

    def on_error(self, handler: ErrorHandler) -> Unsubscribe:
        self._error_handlers.append(handler)
        return lambda: self._error_handlers.remove(handler) if handler in self._error_handlers else None

    def on_closed(self, handler: ClosedHandler) -> Unsubscribe:
        self._closed_handlers.append(handler)
        return lambda: self._closed_handlers.remove(handler) if handler in self._closed_handlers else None

    def close(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        self.closed = True

    # Host-only table management -----------------------------------------

    def add_player(self, info: PlayerInfo) -> bool:
        return self._host_call("add_player", info)

    def remove_player(self, player_id: str) -> bool:
        return self._host_call("remove_player", player_id)

    def start_round(self) -> bool:
        return self._host_call("start_round")

    def end_round(self) -> bool:
        return self._host_call("end_round")

    # Intents -------------------------------------------------------------

    def submit(self, intent: Intent) -> Any:
        """Apply locally on the host, or forward to the host from a peer.

        A peer only learns whether the intent took effect from the next
        snapshot or an ``error`` reply.
        """
        if self.closed:
            LOGGER.warning("Session closed; dropping %s", intent.TYPE)
            return False
        if self.is_host:
            return self._apply(self.peer_id, intent)
        return self.transport.send(self.host_peer_id, messages.game_action(self.peer_id, self.game, intent))

    def _host_call(self, name: str, *args: Any) -> bool:
        if not self.is_host:
            raise RuntimeError(f"{name} is only available on the host")
        if self.closed:
            return False
        result = getattr(self.engine, name)(*args)
        if result:
            self._publish()
        else:
            self._report_rejection(self.peer_id, name)
        return bool(result)

    def _apply(self, sender: str, intent: Intent) -> Any:
        if sender != intent.player_id:
            LOGGER.warning("Peer %s tried to act for %s", sender, intent.player_id)
            self._reply_error(sender, "FORBIDDEN", f"{sender} cannot act for {intent.player_id}")
            return False
        result = self.engine.apply(intent)
        if not result:
            self._report_rejection(sender, intent.TYPE)
            return False
        LOGGER.debug("Accepted %s from %s", intent.TYPE, sender)
        self._publish()
        return result

    def _report_rejection(self, sender: str, action: str) -> None:
        rejection = self.engine.last_rejection
        code = rejection.reason.value if rejection else "REJECTED"
        msg = rejection.msg if rejection else f"{action} rejected"
        LOGGER.warning("Rejected %s from %s: %s (%s)", action, sender, msg, code)
        self._reply_error(sender, code, msg)

    def _reply_error(self, recipient: str, code: str, msg: str) -> None:
        if recipient == self.peer_id:
            self._notify_error(code, msg)
        else:
            self.transport.send(recipient, messages.error(self.peer_id, self.game, code, msg))

    def _publish(self) -> None:
        self.revision += 1
        self.transport.broadcast(
            messages.game_state(self.peer_id, self.game, self.engine.public_state(), self.revision)
        )
        self._notify_state()

    # Inbound -------------------------------------------------------------

    def _handle_message(self, sender: str, message: Dict[str, Any]) -> None:
        if message.get("v") != messages.PROTOCOL_VERSION:
            LOGGER.warning("Dropped message from %s with unsupported version %r", sender, message.get("v"))
            return
        msg_type = message.get("type")
        if msg_type in (messages.GAME_ACTION, messages.GAME_STATE) and message.get("game") != self.game.value:
            LOGGER.warning("Dropped %s for game %r from %s", msg_type, message.get("game"), sender)
            return

        if msg_type == messages.GAME_ACTION and self.is_host:
            self._handle_action(sender, message)
        elif msg_type == messages.GAME_STATE and not self.is_host and sender == self.host_peer_id:
            self._handle_state(message)
        elif msg_type == messages.ERROR and sender == self.host_peer_id:
            code, msg = str(message.get("code", "")), str(message.get("msg", ""))
            LOGGER.warning("Host rejected our intent: %s (%s)", msg, code)
            self._notify_error(code, msg)
        else:
            LOGGER.warning("Dropped unexpected %r from %s", msg_type, sender)

    def _handle_action(self, sender: str, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            intent = parse_intent(self.game, message.get("intent"))
        except IntentError as exc:
            LOGGER.warning("Malformed intent from %s: %s", sender, exc)
            self._reply_error(sender, "BAD_INTENT", str(exc))
            return
        self._apply(sender, intent)

    def _handle_state(self, message: Dict[str, Any]) -> None:
        revision = message.get("revision")
        if not isinstance(revision, int) or isinstance(revision, bool):
            LOGGER.warning("Dropped snapshot without a revision")
            return
        if revision <= self.revision:
            LOGGER.debug("Ignored stale snapshot %d (holding %d)", revision, self.revision)
            return
        try:
            self.engine.set_state(message.get("state"))
        except SnapshotError as exc:
            LOGGER.error("Rejected snapshot %d from host: %s", revision, exc)
            return
        self.revision = revision
        self._notify_state()

    def _handle_connection(self, peer_id: str, connected: bool) -> None:
        if self.is_host:
            LOGGER.info("Peer %s %s", peer_id, "connected" if connected else "disconnected")
            if connected and self.revision:
                # Late joiners start from the current snapshot.
                self.transport.send(
                    peer_id,
                    messages.game_state(self.peer_id, self.game, self.engine.public_state(), self.revision),
                )
            return
        if peer_id == self.host_peer_id and not connected and not self.closed:
            LOGGER.error("Lost connection to host %s; session closed", peer_id)
            self.closed = True
            for handler in list(self._closed_handlers):
                handler()

    # Notifications -------------------------------------------------------

    def _notify_state(self) -> None:
        if not self._state_handlers:
            return
        for handler in list(self._state_handlers):
            handler(self.engine.get_state(), self.revision)

    def _notify_error(self, code: str, msg: str) -> None:
        self.last_error = {"code": code, "msg": msg}
        for handler in list(self._error_handlers):
            handler(code, msg)
