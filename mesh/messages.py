from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cardtable.intents import Intent
from cardtable.models import GameType

PROTOCOL_VERSION = 1

HELLO = "hello"
WELCOME = "welcome"
GAME_ACTION = "game_action"
GAME_STATE = "game_state"
ERROR = "error"


def envelope(msg_type: str, sender: str, game: Optional[GameType] = None, **payload: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "type": msg_type,
        "v": PROTOCOL_VERSION,
        "ts": datetime.now(timezone.utc).isoformat(),
        "sender": sender,
    }
    if game is not None:
        body["game"] = GameType(game).value
    body.update(payload)
    return body


def game_action(sender: str, game: GameType, intent: Intent) -> Dict[str, Any]:
    return envelope(GAME_ACTION, sender, game, intent=intent.to_payload())


def game_state(sender: str, game: GameType, state: Dict[str, Any], revision: int) -> Dict[str, Any]:
    return envelope(GAME_STATE, sender, game, state=state, revision=revision)


def error(sender: str, game: Optional[GameType], code: str, msg: str) -> Dict[str, Any]:
    return envelope(ERROR, sender, game, code=code, msg=msg)


def hello(msg_type: str, peer_id: str, display_name: str, avatar: str = "") -> Dict[str, Any]:
    return envelope(msg_type, peer_id, peer_id=peer_id, display_name=display_name, avatar=avatar)


def encode(message: Dict[str, Any]) -> str:
    return json.dumps(message)


def decode(raw: Any) -> Dict[str, Any]:
    """Parse one frame; anything that is not a JSON object decodes to {}."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {}
    return message if isinstance(message, dict) else {}
