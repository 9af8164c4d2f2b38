from __future__ import annotations

import copy
import functools
import logging
import random
from collections import Counter
from typing import Any, Callable, ClassVar, Dict, FrozenSet, List, Optional, Type, TypeVar

from .cards import Card, Deck
from .conservation import conservation_gap, describe_gap, is_conserved
from .errors import IntentError, Reason, RuleViolation, SnapshotError
from .intents import Intent, intent_types
from .models import GameType, PlayerInfo, TableConfig, default_config
from .snapshot import from_primitive, to_primitive

LOGGER = logging.getLogger("cardtable.engine")

# TableEngine owns one game's canonical state and its deck. No networking
# lives here; the replication coordinator drives it through apply().

F = TypeVar("F", bound=Callable[..., Any])
E = TypeVar("E", bound="TableEngine")


def checked(method: F) -> F:
    """Run a mutating method atomically.

    A RuleViolation raised anywhere inside restores the state, the deck and
    the rng to what they were before the call and turns into a False result.
    """

    @functools.wraps(method)
    def wrapper(self: "TableEngine", *args: Any, **kwargs: Any) -> Any:
        state = copy.deepcopy(self.state)
        deck = list(self.deck.cards)
        rng_state = self.rng.getstate()
        try:
            result = method(self, *args, **kwargs)
        except RuleViolation as exc:
            self.state = state
            self.deck.cards = deck
            self.rng.setstate(rng_state)
            self.last_rejection = exc
            self.logger.debug("Rejected %s%r: %s (%s)", method.__name__, args, exc.msg, exc.reason.value)
            return False
        self.last_rejection = None
        self.logger.debug("Applied %s%r", method.__name__, args)
        return True if result is None else result

    return wrapper  # type: ignore[return-value]


class TableEngine:
    """Shared contract for every game engine."""

    GAME_TYPE: ClassVar[GameType]
    STATE_CLASS: ClassVar[type]
    PLAYER_CLASS: ClassVar[type]
    # Phases in which seats may change.
    LOBBY_PHASES: ClassVar[FrozenSet[str]] = frozenset({"waiting", "settling", "finished"})
    # False keeps the undealt deck host-only in broadcasts.
    SHARE_DECK: ClassVar[bool] = True

    logger: logging.Logger = LOGGER

    def __init__(self, config: Optional[TableConfig] = None, seed: Optional[int] = None) -> None:
        self.config = config or default_config(self.GAME_TYPE)
        self.seed = seed
        self.rng = random.Random(seed)
        self.deck = Deck(self.config.deck_count, self.rng)
        self.deck.shuffle()
        self.state = self.new_state()
        self.last_rejection: Optional[RuleViolation] = None

    def new_state(self) -> Any:
        return self.STATE_CLASS()

    # Seats -------------------------------------------------------------

    @property
    def players(self) -> List[Any]:
        return self.state.players

    @property
    def phase(self) -> Any:
        return self.state.phase

    def find_player(self, player_id: str) -> Optional[Any]:
        for player in self.state.players:
            if player.player_id == player_id:
                return player
        return None

    def player(self, player_id: str) -> Any:
        player = self.find_player(player_id)
        if player is None:
            raise RuleViolation(Reason.UNKNOWN_PLAYER, f"Unknown player {player_id}")
        return player

    def index_of(self, player_id: str) -> int:
        for idx, player in enumerate(self.state.players):
            if player.player_id == player_id:
                return idx
        raise RuleViolation(Reason.UNKNOWN_PLAYER, f"Unknown player {player_id}")

    def current_player(self) -> Optional[Any]:
        idx = self.state.current_player_index
        if 0 <= idx < len(self.state.players):
            return self.state.players[idx]
        return None

    @checked
    def add_player(self, info: PlayerInfo) -> None:
        self.require_phase(*self.LOBBY_PHASES)
        if self.find_player(info.player_id) is not None:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, f"{info.player_id} already seated")
        if len(self.state.players) >= self.config.max_players:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Table is full")
        self.state.players.append(self.new_player(info))
        self.logger.info("Seated %s (%s)", info.player_id, info.display_name)

    def new_player(self, info: PlayerInfo) -> Any:
        return self.PLAYER_CLASS(player_id=info.player_id, display_name=info.display_name, avatar=info.avatar)

    @checked
    def remove_player(self, player_id: str) -> None:
        self.require_phase(*self.LOBBY_PHASES)
        idx = self.index_of(player_id)
        held = Counter(self.cards_in_play())
        del self.state.players[idx]
        # Whatever the player still held goes back where the game keeps spent cards.
        self.return_cards(list((held - Counter(self.cards_in_play())).elements()))
        self.on_player_removed(idx)
        self.logger.info("Removed %s", player_id)

    def return_cards(self, cards: List[Card]) -> None:
        self.deck.cards.extend(cards)

    def on_player_removed(self, index: int) -> None:
        if self.state.current_player_index >= len(self.state.players):
            self.state.current_player_index = 0

    # Guards --------------------------------------------------------------

    def require_phase(self, *phases: Any) -> None:
        allowed = {getattr(phase, "value", phase) for phase in phases}
        if self.state.phase.value not in allowed:
            raise RuleViolation(Reason.WRONG_PHASE, f"Not allowed during {self.state.phase.value}")

    def require_turn(self, player_id: str) -> Any:
        player = self.player(player_id)
        current = self.current_player()
        if current is None or current.player_id != player_id:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, f"Not {player_id}'s turn")
        return player

    def require_seats(self) -> None:
        count = len(self.state.players)
        if count < self.config.min_players:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, f"Need at least {self.config.min_players} players")

    def require_bet(self, amount: int) -> None:
        if not self.config.min_bet <= amount <= self.config.max_bet:
            raise RuleViolation(
                Reason.OUT_OF_BOUNDS,
                f"Bet {amount} outside [{self.config.min_bet}, {self.config.max_bet}]",
            )

    def deal_card(self) -> Card:
        card = self.deck.deal()
        if card is None:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Deck is empty")
        return card

    def fresh_deck(self) -> None:
        self.deck = Deck(self.config.deck_count, self.rng)
        self.deck.shuffle()

    # Dispatch ------------------------------------------------------------

    def apply(self, intent: Intent) -> Any:
        if type(intent) not in intent_types(self.GAME_TYPE):
            raise IntentError(f"{type(intent).__name__} is not a {self.GAME_TYPE.value} intent")
        return getattr(self, intent.HANDLER)(intent.player_id, **intent.arguments())

    # Snapshots -----------------------------------------------------------

    def get_state(self) -> Dict[str, Any]:
        return to_primitive(self.state)

    def set_state(self, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise SnapshotError("Snapshot must be an object")
        body = {key: value for key, value in data.items() if key != "deck"}
        state = from_primitive(self.STATE_CLASS, body)
        deck = self.deck
        if "deck" in data:
            try:
                deck = Deck.deserialize(data["deck"], self.config.deck_count, self.rng)
            except (TypeError, ValueError) as exc:
                raise SnapshotError(f"state.deck: {exc}") from exc
            missing, extra = conservation_gap(deck.cards + self._cards_of(state), self.config.deck_count)
            if missing or extra:
                raise SnapshotError(f"Card conservation broken: {describe_gap(missing, extra)}")
        self.state = state
        self.deck = deck

    def serialize(self) -> Dict[str, Any]:
        payload = self.get_state()
        payload["deck"] = self.deck.serialize()
        return payload

    @classmethod
    def deserialize(
        cls: Type[E],
        data: Dict[str, Any],
        config: Optional[TableConfig] = None,
        seed: Optional[int] = None,
    ) -> E:
        if not isinstance(data, dict) or "deck" not in data:
            raise SnapshotError("Serialized engine requires a deck")
        engine = cls(config, seed)
        engine.set_state(data)
        return engine

    def public_state(self) -> Dict[str, Any]:
        """Snapshot for broadcast: includes the deck only where the game shares it."""
        return self.serialize() if self.SHARE_DECK else self.get_state()

    # Conservation --------------------------------------------------------

    def cards_in_play(self) -> List[Card]:
        return self._cards_of(self.state)

    def _cards_of(self, state: Any) -> List[Card]:
        raise NotImplementedError

    def is_conserved(self) -> bool:
        return is_conserved(self.deck.cards + self.cards_in_play(), self.config.deck_count)
