from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..cards import Card
from ..engine import TableEngine, checked
from ..errors import Reason, RuleViolation
from ..models import GameType

LOGGER = logging.getLogger("cardtable.slave")

SUIT_VALUES = {"clubs": 1, "diamonds": 2, "hearts": 3, "spades": 4}
TWO_VALUE = 13
STARTING_CARD = Card("clubs", 3)

RANK_TITLES: Dict[int, List[str]] = {
    2: ["president", "slave"],
    3: ["president", "citizen", "slave"],
    4: ["president", "vice_president", "vice_slave", "slave"],
}


class Phase(str, Enum):
    WAITING = "waiting"
    DEALING = "dealing"
    PLAYING = "playing"
    FINISHED = "finished"


@dataclass
class CurrentPlay:
    cards: List[Card]
    play_type: str
    value: int
    player_id: str


@dataclass
class SlavePlayer:
    player_id: str
    display_name: str
    avatar: str = ""
    hand: List[Card] = field(default_factory=list)
    passed: bool = False
    is_out: bool = False
    finish_order: int = 0
    rank: str = ""
    # Title from the previous game; decides who leads the next one.
    last_rank: str = ""

    def reset_for_round(self) -> None:
        if self.rank:
            self.last_rank = self.rank
        self.hand = []
        self.passed = False
        self.is_out = False
        self.finish_order = 0
        self.rank = ""


@dataclass
class SlaveState:
    phase: Phase = Phase.WAITING
    players: List[SlavePlayer] = field(default_factory=list)
    current_player_index: int = 0
    current_play: Optional[CurrentPlay] = None
    last_player_id: Optional[str] = None
    played_pile: List[Card] = field(default_factory=list)
    finish_count: int = 0
    game_number: int = 0


def rank_value(card: Card) -> int:
    """3 is lowest (1), then up through K (11), A (12) and 2 (13)."""
    return (card.rank - 3) % 13 + 1


def card_value(card: Card) -> int:
    return rank_value(card) * 10 + SUIT_VALUES[card.suit]


def play_type(cards: Sequence[Card]) -> Optional[str]:
    ranks = [rank_value(card) for card in cards]
    distinct = set(ranks)
    if len(cards) == 1:
        return "single"
    if len(distinct) == 1:
        return {2: "pair", 3: "triple", 4: "quadruple"}.get(len(cards))
    if len(cards) >= 3 and len(distinct) == len(cards) and TWO_VALUE not in distinct:
        ordered = sorted(distinct)
        if ordered[-1] - ordered[0] == len(ordered) - 1:
            return "straight"
    return None


def play_value(cards: Sequence[Card]) -> int:
    return max(card_value(card) for card in cards)


def beats(kind: str, value: int, length: int, current: CurrentPlay) -> bool:
    if kind == current.play_type:
        if kind == "straight" and length != len(current.cards):
            return False
        return value > current.value
    if kind == "triple":
        return current.play_type == "single"
    if kind == "quadruple":
        return current.play_type in ("single", "pair")
    return False


class SlaveEngine(TableEngine):
    """Climbing game: shed every card before the others to become president."""

    GAME_TYPE = GameType.SLAVE
    STATE_CLASS = SlaveState
    PLAYER_CLASS = SlavePlayer

    logger = LOGGER

    def _cards_of(self, state: SlaveState) -> List[Card]:
        cards = list(state.played_pile)
        if state.current_play is not None:
            cards.extend(state.current_play.cards)
        for player in state.players:
            cards.extend(player.hand)
        return cards

    # Round lifecycle -----------------------------------------------------

    @checked
    def start_game(self) -> None:
        self.require_phase(Phase.WAITING, Phase.FINISHED)
        self.require_seats()
        state = self.state
        state.phase = Phase.DEALING
        self.fresh_deck()
        state.current_play = None
        state.last_player_id = None
        state.played_pile = []
        state.finish_count = 0
        state.game_number += 1

        for player in state.players:
            player.reset_for_round()
        cards = self.deck.deal_many(self.deck.remaining())
        for idx, card in enumerate(cards):
            state.players[idx % len(state.players)].hand.append(card)
        for player in state.players:
            player.hand.sort(key=card_value)

        state.current_player_index = self._starting_index()
        state.phase = Phase.PLAYING
        self.logger.info(
            "Game %d dealt, %s leads", state.game_number, state.players[state.current_player_index].player_id
        )

    start_round = start_game

    @checked
    def end_round(self) -> None:
        self.require_phase(Phase.FINISHED)

    # Intents ---------------------------------------------------------------

    @checked
    def play_cards(self, player_id: str, cards: List[Card]) -> None:
        player = self._acting_player(player_id)
        if not cards or len(set(cards)) != len(cards) or any(card not in player.hand for card in cards):
            raise RuleViolation(Reason.INVALID_CARD_SELECTION, "Cards not held")
        kind = play_type(cards)
        if kind is None:
            raise RuleViolation(Reason.ILLEGAL_MELD_OR_RUN, "Not a single, group or straight")
        value = play_value(cards)
        state = self.state
        if state.current_play is not None:
            if not beats(kind, value, len(cards), state.current_play):
                raise RuleViolation(Reason.THRESHOLD_NOT_MET, "Play does not beat the table")
            state.played_pile.extend(state.current_play.cards)

        player.hand = [card for card in player.hand if card not in cards]
        state.current_play = CurrentPlay(cards=list(cards), play_type=kind, value=value, player_id=player_id)
        state.last_player_id = player_id
        for other in state.players:
            other.passed = False

        if not player.hand:
            state.finish_count += 1
            player.finish_order = state.finish_count
            player.is_out = True
            if sum(1 for p in state.players if not p.is_out) <= 1:
                self._end_game()
                return
        self._advance()

    @checked
    def pass_turn(self, player_id: str) -> None:
        player = self._acting_player(player_id)
        state = self.state
        if state.current_play is None:
            raise RuleViolation(Reason.WRONG_PHASE, "The leader must play")
        player.passed = True
        if all(p.passed or p.player_id == state.last_player_id for p in state.players if not p.is_out):
            self._clear_trick()
        else:
            self._advance()

    # Hints -----------------------------------------------------------------

    def playable_combinations(self, player_id: str) -> List[List[Card]]:
        player = self.find_player(player_id)
        if player is None or player.is_out:
            return []
        by_rank: Dict[int, List[Card]] = defaultdict(list)
        for card in player.hand:
            by_rank[rank_value(card)].append(card)

        candidates: List[List[Card]] = [[card] for card in player.hand]
        for group in by_rank.values():
            for size in range(2, len(group) + 1):
                candidates.extend(list(combo) for combo in itertools.combinations(group, size))
        candidates.extend(self._straights(by_rank))

        current = self.state.current_play
        if current is None:
            return candidates
        return [
            combo
            for combo in candidates
            if beats(play_type(combo) or "", play_value(combo), len(combo), current)
        ]

    # Internals -------------------------------------------------------------

    def _straights(self, by_rank: Dict[int, List[Card]]) -> List[List[Card]]:
        values = sorted(value for value in by_rank if value != TWO_VALUE)
        found: List[List[Card]] = []
        for start in range(len(values)):
            run = [values[start]]
            for value in values[start + 1 :]:
                if value != run[-1] + 1:
                    break
                run.append(value)
                if len(run) >= 3:
                    found.append([max(by_rank[v], key=card_value) for v in run])
        return found

    def _starting_index(self) -> int:
        players = self.state.players
        for idx, player in enumerate(players):
            if player.last_rank == "slave":
                return idx
        for idx, player in enumerate(players):
            if STARTING_CARD in player.hand:
                return idx
        return 0

    def _acting_player(self, player_id: str) -> SlavePlayer:
        self.require_phase(Phase.PLAYING)
        player = self.require_turn(player_id)
        if player.is_out:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, f"{player_id} is already out")
        return player

    def _advance(self) -> None:
        players = self.state.players
        idx = self.state.current_player_index
        for _ in range(len(players)):
            idx = (idx + 1) % len(players)
            if not players[idx].is_out:
                self.state.current_player_index = idx
                return

    def _clear_trick(self) -> None:
        state = self.state
        assert state.current_play is not None
        state.played_pile.extend(state.current_play.cards)
        state.current_play = None
        for player in state.players:
            player.passed = False
        state.current_player_index = self.index_of(state.last_player_id or "")
        if state.players[state.current_player_index].is_out:
            self._advance()

    def _end_game(self) -> None:
        state = self.state
        if state.current_play is not None:
            state.played_pile.extend(state.current_play.cards)
            state.current_play = None
        for player in state.players:
            if not player.is_out:
                state.finish_count += 1
                player.finish_order = state.finish_count
                player.is_out = True
        titles = RANK_TITLES[min(len(state.players), 4)]
        for player in state.players:
            player.rank = titles[player.finish_order - 1]
        state.phase = Phase.FINISHED
        self.logger.info(
            "Game %d finished: %s",
            state.game_number,
            ", ".join(f"{p.player_id}={p.rank}" for p in sorted(state.players, key=lambda p: p.finish_order)),
        )
