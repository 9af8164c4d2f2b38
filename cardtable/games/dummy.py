from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..cards import SUITS, Card
from ..engine import TableEngine, checked
from ..errors import Reason, RuleViolation
from ..models import GameType

LOGGER = logging.getLogger("cardtable.dummy")

KNOCK_LIMIT = 10
GIN_BONUS = 10
UNDERCUT_PENALTY = 10
DUMMY_BONUS = 50

_SUIT_ORDER = {suit: idx for idx, suit in enumerate(SUITS)}


class Phase(str, Enum):
    WAITING = "waiting"
    DEALING = "dealing"
    PLAYING = "playing"
    FINISHED = "finished"


@dataclass
class Meld:
    meld_id: str
    kind: str
    cards: List[Card]
    owner_id: str


@dataclass
class DummyPlayer:
    player_id: str
    display_name: str
    avatar: str = ""
    hand: List[Card] = field(default_factory=list)
    meld_ids: List[str] = field(default_factory=list)
    has_drawn: bool = False
    is_knocker: bool = False
    score: int = 0

    def reset_for_round(self) -> None:
        self.hand = []
        self.meld_ids = []
        self.has_drawn = False
        self.is_knocker = False
        self.score = 0


@dataclass
class DummyState:
    phase: Phase = Phase.WAITING
    players: List[DummyPlayer] = field(default_factory=list)
    current_player_index: int = 0
    discard_pile: List[Card] = field(default_factory=list)
    melds: List[Meld] = field(default_factory=list)
    knocker_id: Optional[str] = None
    winner_id: Optional[str] = None
    win_type: str = ""
    next_meld_number: int = 1
    game_number: int = 0


def card_points(card: Card) -> int:
    if card.rank == 1:
        return 15
    if card.rank >= 10:
        return 10
    return 5


def deadwood(cards: Sequence[Card]) -> int:
    return sum(card_points(card) for card in cards)


def is_set(cards: Sequence[Card]) -> bool:
    if not 3 <= len(cards) <= 4:
        return False
    return len({card.rank for card in cards}) == 1 and len({card.suit for card in cards}) == len(cards)


def is_run(cards: Sequence[Card]) -> bool:
    # Ace is low only: Q-K-A does not wrap.
    if len(cards) < 3 or len({card.suit for card in cards}) != 1:
        return False
    ranks = sorted(card.rank for card in cards)
    return all(high - low == 1 for low, high in zip(ranks, ranks[1:]))


def meld_kind(cards: Sequence[Card]) -> Optional[str]:
    if is_set(cards):
        return "set"
    if is_run(cards):
        return "run"
    return None


def can_lay_off(card: Card, meld: Meld) -> bool:
    if meld.kind == "set":
        return is_set(meld.cards + [card])
    ranks = [c.rank for c in meld.cards]
    return card.suit == meld.cards[0].suit and card.rank in (min(ranks) - 1, max(ranks) + 1)


def sort_hand(cards: List[Card]) -> None:
    cards.sort(key=lambda card: (_SUIT_ORDER[card.suit], card.rank))


def hand_size(player_count: int) -> int:
    return 10 if player_count <= 2 else 7


class DummyEngine(TableEngine):
    """Thai knock rummy: draw, meld, lay off, discard, knock."""

    GAME_TYPE = GameType.DUMMY
    STATE_CLASS = DummyState
    PLAYER_CLASS = DummyPlayer

    logger = LOGGER

    def _cards_of(self, state: DummyState) -> List[Card]:
        cards = list(state.discard_pile)
        for meld in state.melds:
            cards.extend(meld.cards)
        for player in state.players:
            cards.extend(player.hand)
        return cards

    def find_meld(self, meld_id: str) -> Optional[Meld]:
        for meld in self.state.melds:
            if meld.meld_id == meld_id:
                return meld
        return None

    # Round lifecycle -----------------------------------------------------

    @checked
    def start_game(self) -> None:
        self.require_phase(Phase.WAITING, Phase.FINISHED)
        self.require_seats()
        state = self.state
        state.phase = Phase.DEALING
        self.fresh_deck()
        state.discard_pile = []
        state.melds = []
        state.knocker_id = None
        state.winner_id = None
        state.win_type = ""
        state.next_meld_number = 1
        state.game_number += 1

        count = hand_size(len(state.players))
        for player in state.players:
            player.reset_for_round()
            player.hand = self.deck.deal_many(count)
            sort_hand(player.hand)
        state.discard_pile.append(self.deal_card())
        state.current_player_index = 0
        state.phase = Phase.PLAYING
        self.logger.info("Game %d dealt, %d cards each", state.game_number, count)

    start_round = start_game

    @checked
    def end_round(self) -> None:
        self.require_phase(Phase.FINISHED)

    # Intents ---------------------------------------------------------------

    @checked
    def draw_from_deck(self, player_id: str) -> Card:
        player = self._drawing_player(player_id)
        if not self.deck.remaining():
            pile = self.state.discard_pile
            if len(pile) <= 1:
                raise RuleViolation(Reason.OUT_OF_BOUNDS, "No cards left to draw")
            self.deck.reload(pile[:-1])
            self.state.discard_pile = pile[-1:]
            self.logger.debug("Recycled %d discards into the deck", self.deck.remaining())
        card = self.deal_card()
        player.hand.append(card)
        sort_hand(player.hand)
        player.has_drawn = True
        return card

    @checked
    def draw_from_discard(self, player_id: str) -> Card:
        player = self._drawing_player(player_id)
        if not self.state.discard_pile:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Discard pile is empty")
        card = self.state.discard_pile.pop()
        player.hand.append(card)
        sort_hand(player.hand)
        player.has_drawn = True
        return card

    @checked
    def discard(self, player_id: str, card: Card) -> None:
        player = self._acting_player(player_id)
        if not player.has_drawn:
            raise RuleViolation(Reason.WRONG_PHASE, "Draw before discarding")
        self._take_from_hand(player, [card])
        self.state.discard_pile.append(card)
        player.has_drawn = False
        if not player.hand:
            self._finish_knock(player)
            return
        self.state.current_player_index = (self.state.current_player_index + 1) % len(self.state.players)

    @checked
    def meld(self, player_id: str, cards: List[Card]) -> str:
        player = self._acting_player(player_id)
        self._require_held(player, cards)
        kind = meld_kind(cards)
        if kind is None:
            raise RuleViolation(Reason.ILLEGAL_MELD_OR_RUN, "Cards form neither a set nor a run")
        self._take_from_hand(player, cards)

        meld_id = f"m{self.state.next_meld_number}"
        self.state.next_meld_number += 1
        self.state.melds.append(
            Meld(meld_id=meld_id, kind=kind, cards=sorted(cards, key=lambda c: c.rank), owner_id=player_id)
        )
        player.meld_ids.append(meld_id)
        self._check_empty_hand(player)
        return meld_id

    @checked
    def lay_off(self, player_id: str, card: Card, meld_id: str) -> None:
        player = self._acting_player(player_id)
        meld = self.find_meld(meld_id)
        if meld is None:
            raise RuleViolation(Reason.INVALID_CARD_SELECTION, f"Unknown meld {meld_id}")
        self._require_held(player, [card])
        if not can_lay_off(card, meld):
            raise RuleViolation(Reason.ILLEGAL_MELD_OR_RUN, f"{card} does not extend {meld_id}")
        self._take_from_hand(player, [card])
        meld.cards.append(card)
        meld.cards.sort(key=lambda c: c.rank)
        self._check_empty_hand(player)

    @checked
    def knock(self, player_id: str) -> None:
        player = self._acting_player(player_id)
        if not player.has_drawn:
            raise RuleViolation(Reason.WRONG_PHASE, "Draw before knocking")
        points = deadwood(player.hand)
        if points > KNOCK_LIMIT:
            raise RuleViolation(Reason.THRESHOLD_NOT_MET, f"Deadwood {points} above {KNOCK_LIMIT}")
        self._finish_knock(player)

    # Hints -----------------------------------------------------------------

    def possible_melds(self, player_id: str) -> List[List[Card]]:
        player = self.find_player(player_id)
        if player is None:
            return []
        found: List[List[Card]] = []

        by_rank: Dict[int, List[Card]] = defaultdict(list)
        for card in player.hand:
            by_rank[card.rank].append(card)
        for group in by_rank.values():
            if len(group) >= 3 and is_set(group):
                found.append(list(group))
                if len(group) == 4:
                    found.extend([c for c in group if c is not skip] for skip in group)

        for suit in SUITS:
            suited = sorted((c for c in player.hand if c.suit == suit), key=lambda c: c.rank)
            for start in range(len(suited) - 2):
                run = [suited[start]]
                for card in suited[start + 1 :]:
                    if card.rank != run[-1].rank + 1:
                        break
                    run.append(card)
                    if len(run) >= 3:
                        found.append(list(run))
        return found

    # Internals -------------------------------------------------------------

    def _acting_player(self, player_id: str) -> DummyPlayer:
        self.require_phase(Phase.PLAYING)
        return self.require_turn(player_id)

    def _drawing_player(self, player_id: str) -> DummyPlayer:
        player = self._acting_player(player_id)
        if player.has_drawn:
            raise RuleViolation(Reason.WRONG_PHASE, f"{player_id} already drew this turn")
        return player

    def _require_held(self, player: DummyPlayer, cards: Sequence[Card]) -> None:
        remaining = list(player.hand)
        for card in cards:
            if card not in remaining:
                raise RuleViolation(Reason.INVALID_CARD_SELECTION, f"{card} not in hand")
            remaining.remove(card)

    def _take_from_hand(self, player: DummyPlayer, cards: Sequence[Card]) -> None:
        self._require_held(player, cards)
        for card in cards:
            player.hand.remove(card)

    def _check_empty_hand(self, player: DummyPlayer) -> None:
        if player.hand:
            return
        if player.has_drawn:
            self._finish_knock(player)
        else:
            self._finish_dummy(player)

    def _finish_dummy(self, winner: DummyPlayer) -> None:
        for player in self.state.players:
            player.score = deadwood(player.hand)
        winner.score = -DUMMY_BONUS
        self._finish(winner, "dummy")

    def _finish_knock(self, knocker: DummyPlayer) -> None:
        knocker.is_knocker = True
        self.state.knocker_id = knocker.player_id
        for player in self.state.players:
            player.score = deadwood(player.hand)

        others = [p for p in self.state.players if p is not knocker]
        lowest = min(others, key=lambda p: p.score)
        if knocker.score <= lowest.score:
            if knocker.score == 0:
                knocker.score -= GIN_BONUS
                self._finish(knocker, "gin")
            else:
                self._finish(knocker, "knock")
        else:
            lowest.score -= UNDERCUT_PENALTY
            knocker.score += UNDERCUT_PENALTY
            self._finish(lowest, "undercut")

    def _finish(self, winner: DummyPlayer, win_type: str) -> None:
        self.state.winner_id = winner.player_id
        self.state.win_type = win_type
        self.state.phase = Phase.FINISHED
        self.logger.info("Game %d won by %s (%s)", self.state.game_number, winner.player_id, win_type)
