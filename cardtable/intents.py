"""Closed, per-game intent variants and boundary validation."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from .cards import Card
from .errors import IntentError, SnapshotError
from .models import GameType
from .snapshot import from_primitive, to_primitive


@dataclass(frozen=True)
class Intent:
    player_id: str

    TYPE: ClassVar[str] = ""
    # Engine method invoked as handler(player_id, **arguments()).
    HANDLER: ClassVar[str] = ""

    def arguments(self) -> Dict[str, Any]:
        return {field.name: getattr(self, field.name) for field in fields(self) if field.name != "player_id"}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.TYPE, "player_id": self.player_id}
        payload.update(to_primitive(self.arguments()))
        return payload


# Shared -----------------------------------------------------------


@dataclass(frozen=True)
class PlaceBet(Intent):
    amount: int
    TYPE: ClassVar[str] = "place_bet"
    HANDLER: ClassVar[str] = "place_bet"


@dataclass(frozen=True)
class Fold(Intent):
    TYPE: ClassVar[str] = "fold"
    HANDLER: ClassVar[str] = "fold"


# Blackjack --------------------------------------------------------


@dataclass(frozen=True)
class Hit(Intent):
    hand_index: Optional[int] = None
    TYPE: ClassVar[str] = "hit"
    HANDLER: ClassVar[str] = "hit"


@dataclass(frozen=True)
class Stand(Intent):
    hand_index: Optional[int] = None
    TYPE: ClassVar[str] = "stand"
    HANDLER: ClassVar[str] = "stand"


@dataclass(frozen=True)
class Double(Intent):
    hand_index: Optional[int] = None
    TYPE: ClassVar[str] = "double"
    HANDLER: ClassVar[str] = "double"


@dataclass(frozen=True)
class Split(Intent):
    hand_index: Optional[int] = None
    TYPE: ClassVar[str] = "split"
    HANDLER: ClassVar[str] = "split"


@dataclass(frozen=True)
class Surrender(Intent):
    TYPE: ClassVar[str] = "surrender"
    HANDLER: ClassVar[str] = "surrender"


# Kang -------------------------------------------------------------


@dataclass(frozen=True)
class DiscardIndices(Intent):
    card_indices: List[int]
    TYPE: ClassVar[str] = "discard"
    HANDLER: ClassVar[str] = "discard"


@dataclass(frozen=True)
class KeepAll(Intent):
    TYPE: ClassVar[str] = "keep_all"
    HANDLER: ClassVar[str] = "keep_all"


# Pok Deng ---------------------------------------------------------


@dataclass(frozen=True)
class Draw(Intent):
    TYPE: ClassVar[str] = "draw"
    HANDLER: ClassVar[str] = "draw"


@dataclass(frozen=True)
class Stay(Intent):
    TYPE: ClassVar[str] = "stay"
    HANDLER: ClassVar[str] = "stay"


# Dummy ------------------------------------------------------------


@dataclass(frozen=True)
class DrawDeck(Intent):
    TYPE: ClassVar[str] = "draw_deck"
    HANDLER: ClassVar[str] = "draw_from_deck"


@dataclass(frozen=True)
class DrawDiscard(Intent):
    TYPE: ClassVar[str] = "draw_discard"
    HANDLER: ClassVar[str] = "draw_from_discard"


@dataclass(frozen=True)
class DiscardCard(Intent):
    card: Card
    TYPE: ClassVar[str] = "discard"
    HANDLER: ClassVar[str] = "discard"


@dataclass(frozen=True)
class Meld(Intent):
    cards: List[Card]
    TYPE: ClassVar[str] = "meld"
    HANDLER: ClassVar[str] = "meld"


@dataclass(frozen=True)
class LayOff(Intent):
    card: Card
    meld_id: str
    TYPE: ClassVar[str] = "lay_off"
    HANDLER: ClassVar[str] = "lay_off"


@dataclass(frozen=True)
class Knock(Intent):
    TYPE: ClassVar[str] = "knock"
    HANDLER: ClassVar[str] = "knock"


# Slave ------------------------------------------------------------


@dataclass(frozen=True)
class Play(Intent):
    cards: List[Card]
    TYPE: ClassVar[str] = "play"
    HANDLER: ClassVar[str] = "play_cards"


@dataclass(frozen=True)
class Pass(Intent):
    TYPE: ClassVar[str] = "pass"
    HANDLER: ClassVar[str] = "pass_turn"


# Poker ------------------------------------------------------------


@dataclass(frozen=True)
class Check(Intent):
    TYPE: ClassVar[str] = "check"
    HANDLER: ClassVar[str] = "check"


@dataclass(frozen=True)
class Call(Intent):
    TYPE: ClassVar[str] = "call"
    HANDLER: ClassVar[str] = "call"


@dataclass(frozen=True)
class Raise(Intent):
    # Total bet to raise to, not the increment.
    amount: int
    TYPE: ClassVar[str] = "raise"
    HANDLER: ClassVar[str] = "raise_to"


@dataclass(frozen=True)
class AllIn(Intent):
    TYPE: ClassVar[str] = "all_in"
    HANDLER: ClassVar[str] = "all_in"


def _index(*variants: Type[Intent]) -> Dict[str, Type[Intent]]:
    return {variant.TYPE: variant for variant in variants}


INTENTS: Dict[GameType, Dict[str, Type[Intent]]] = {
    GameType.BLACKJACK: _index(PlaceBet, Hit, Stand, Double, Split, Surrender),
    GameType.KANG: _index(PlaceBet, DiscardIndices, KeepAll, Fold),
    GameType.POKDENG: _index(PlaceBet, Draw, Stay, Fold),
    GameType.DUMMY: _index(DrawDeck, DrawDiscard, DiscardCard, Meld, LayOff, Knock),
    GameType.SLAVE: _index(Play, Pass),
    GameType.POKER: _index(Fold, Check, Call, Raise, AllIn),
}


def intent_types(game_type: GameType) -> Tuple[Type[Intent], ...]:
    return tuple(INTENTS[GameType(game_type)].values())


def parse_intent(game_type: GameType, payload: Mapping[str, Any]) -> Intent:
    if not isinstance(payload, Mapping):
        raise IntentError("Intent must be an object")
    variants = INTENTS[GameType(game_type)]
    intent_type = payload.get("type")
    variant = variants.get(intent_type) if isinstance(intent_type, str) else None
    if variant is None:
        raise IntentError(f"Unknown intent type {intent_type!r} for {GameType(game_type).value}")
    player_id = payload.get("player_id")
    if not isinstance(player_id, str) or not player_id:
        raise IntentError("player_id required")

    body = {key: value for key, value in payload.items() if key != "type"}
    try:
        return from_primitive(variant, body, path=variant.TYPE)
    except SnapshotError as exc:
        raise IntentError(str(exc)) from exc
