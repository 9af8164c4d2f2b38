from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..cards import Card
from ..engine import TableEngine, checked
from ..errors import Reason, RuleViolation
from ..models import GameType

LOGGER = logging.getLogger("cardtable.pokdeng")

MULTIPLIERS: Dict[str, int] = {
    "tong": 5,
    "straight_flush": 5,
    "straight": 3,
    "flush": 3,
    "pok9": 2,
    "pok8": 2,
    "pair": 2,
    "normal": 1,
}
# Tie-break between equal points.
TYPE_PRIORITY: Dict[str, int] = {
    "tong": 7,
    "straight_flush": 6,
    "straight": 5,
    "flush": 4,
    "pok9": 3,
    "pok8": 2,
    "pair": 1,
    "normal": 0,
}


class Phase(str, Enum):
    WAITING = "waiting"
    BETTING = "betting"
    DEALING = "dealing"
    PLAYING = "playing"
    REVEALING = "revealing"
    SETTLING = "settling"
    FINISHED = "finished"


@dataclass
class PokDengHand:
    points: int
    hand_type: str
    multiplier: int
    is_pok: bool


@dataclass
class PokDengPlayer:
    player_id: str
    display_name: str
    avatar: str = ""
    hand: List[Card] = field(default_factory=list)
    bet: int = 0
    folded: bool = False
    has_acted: bool = False
    result: Optional[PokDengHand] = None
    payout: int = 0

    def reset_for_round(self) -> None:
        self.hand = []
        self.bet = 0
        self.folded = False
        self.has_acted = False
        self.result = None
        self.payout = 0


@dataclass
class PokDengState:
    phase: Phase = Phase.WAITING
    players: List[PokDengPlayer] = field(default_factory=list)
    current_player_index: int = 0
    dealer_index: int = 0
    pot: int = 0
    round_number: int = 0


def card_points(card: Card) -> int:
    return card.rank if card.rank < 10 else 0


def evaluate_pokdeng(cards: Sequence[Card]) -> PokDengHand:
    points = sum(card_points(card) for card in cards) % 10
    hand_type = "normal"
    if len(cards) == 2:
        if points == 9:
            hand_type = "pok9"
        elif points == 8:
            hand_type = "pok8"
        elif cards[0].rank == cards[1].rank:
            hand_type = "pair"
    elif len(cards) == 3:
        ranks = sorted(card.rank for card in cards)
        same_suit = len({card.suit for card in cards}) == 1
        sequential = ranks[1] == ranks[0] + 1 and ranks[2] == ranks[1] + 1
        if ranks[0] == ranks[2]:
            hand_type = "tong"
        elif sequential and same_suit:
            hand_type = "straight_flush"
        elif sequential:
            hand_type = "straight"
        elif same_suit:
            hand_type = "flush"
    return PokDengHand(
        points=points,
        hand_type=hand_type,
        multiplier=MULTIPLIERS[hand_type],
        is_pok=hand_type in ("pok8", "pok9"),
    )


def compare_hands(first: PokDengHand, second: PokDengHand) -> int:
    """Positive when `first` wins, negative when `second` wins, zero on a tie."""
    if first.is_pok != second.is_pok:
        return 1 if first.is_pok else -1
    if first.points != second.points:
        return first.points - second.points
    return TYPE_PRIORITY[first.hand_type] - TYPE_PRIORITY[second.hand_type]


class PokDengEngine(TableEngine):
    """Two or three card showdown against a rotating dealer."""

    GAME_TYPE = GameType.POKDENG
    STATE_CLASS = PokDengState
    PLAYER_CLASS = PokDengPlayer
    SHARE_DECK = False

    logger = LOGGER

    def _cards_of(self, state: PokDengState) -> List[Card]:
        return [card for player in state.players for card in player.hand]

    def dealer(self) -> PokDengPlayer:
        return self.state.players[self.state.dealer_index]

    def on_player_removed(self, index: int) -> None:
        state = self.state
        if index < state.dealer_index:
            state.dealer_index -= 1
        if state.dealer_index >= len(state.players):
            state.dealer_index = 0
        state.current_player_index = state.dealer_index

    def turn_order(self) -> List[int]:
        """Seats after the dealer in rotation, dealer last."""
        count = len(self.state.players)
        return [(self.state.dealer_index + step) % count for step in range(1, count + 1)]

    # Round lifecycle -----------------------------------------------------

    @checked
    def start_round(self) -> None:
        self.require_phase(Phase.WAITING, Phase.SETTLING, Phase.FINISHED)
        self.require_seats()
        self.fresh_deck()
        state = self.state
        for player in state.players:
            player.reset_for_round()
        state.pot = 0
        state.round_number += 1
        state.current_player_index = self.turn_order()[0]
        state.phase = Phase.BETTING
        self.logger.info("Round %d started, dealer %s", state.round_number, self.dealer().player_id)

    @checked
    def end_round(self) -> None:
        self.require_phase(Phase.SETTLING)
        state = self.state
        state.phase = Phase.FINISHED
        state.dealer_index = (state.dealer_index + 1) % len(state.players)
        state.current_player_index = state.dealer_index

    # Intents ---------------------------------------------------------------

    @checked
    def place_bet(self, player_id: str, amount: int) -> None:
        self.require_phase(Phase.BETTING)
        player = self._non_dealer(player_id)
        if player.folded or player.bet:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, f"{player_id} cannot bet again")
        self.require_bet(amount)
        player.bet = amount
        self.state.pot += amount
        self._check_betting_complete()

    @checked
    def draw(self, player_id: str) -> None:
        player = self._acting_player(player_id)
        if len(player.hand) >= 3:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Already holding three cards")
        player.hand.append(self.deal_card())
        player.has_acted = True
        self._advance()

    @checked
    def stay(self, player_id: str) -> None:
        player = self._acting_player(player_id)
        player.has_acted = True
        self._advance()

    @checked
    def fold(self, player_id: str) -> None:
        self.require_phase(Phase.BETTING, Phase.PLAYING)
        if self.state.phase == Phase.PLAYING:
            player = self._acting_player(player_id)
        else:
            player = self.player(player_id)
        if player is self.dealer():
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, "The dealer cannot fold")
        if player.folded:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, f"{player_id} already folded")
        player.folded = True
        if self.state.phase == Phase.BETTING:
            self._check_betting_complete()
        else:
            self._advance()

    # Internals -------------------------------------------------------------

    def _non_dealer(self, player_id: str) -> PokDengPlayer:
        player = self.player(player_id)
        if player is self.dealer():
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, "The dealer does not bet")
        return player

    def _acting_player(self, player_id: str) -> PokDengPlayer:
        self.require_phase(Phase.PLAYING)
        player = self.require_turn(player_id)
        if player.folded or player.has_acted:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, f"{player_id} already acted")
        return player

    def _check_betting_complete(self) -> None:
        punters = [p for p in self.state.players if p is not self.dealer()]
        if not all(p.bet > 0 or p.folded for p in punters):
            return
        if all(p.folded for p in punters):
            self._reveal_and_settle()
            return

        self.state.phase = Phase.DEALING
        seated = [self.state.players[idx] for idx in self.turn_order() if not self.state.players[idx].folded]
        for _ in range(2):
            for player in seated:
                player.hand.append(self.deal_card())

        if any(evaluate_pokdeng(player.hand).is_pok for player in seated):
            self._reveal_and_settle()
            return
        self.state.phase = Phase.PLAYING
        self.state.current_player_index = self.turn_order()[0]
        self._advance(from_current=True)

    def _advance(self, from_current: bool = False) -> None:
        order = self.turn_order()
        start = order.index(self.state.current_player_index)
        if not from_current:
            start += 1
        for idx in order[start:]:
            player = self.state.players[idx]
            if not player.folded and not player.has_acted:
                self.state.current_player_index = idx
                return
        self._reveal_and_settle()

    def _reveal_and_settle(self) -> None:
        state = self.state
        state.phase = Phase.REVEALING
        for player in state.players:
            if player.hand:
                player.result = evaluate_pokdeng(player.hand)

        dealer = self.dealer()
        for player in state.players:
            if player is dealer:
                continue
            if player.folded:
                # Forfeited stake goes to the dealer.
                player.payout = -player.bet
                continue
            assert player.result is not None and dealer.result is not None
            outcome = compare_hands(player.result, dealer.result)
            if outcome > 0:
                player.payout = player.bet * player.result.multiplier
            elif outcome < 0:
                player.payout = -player.bet
            else:
                player.payout = 0
        dealer.payout = -sum(p.payout for p in state.players if p is not dealer)
        state.pot = 0
        state.phase = Phase.SETTLING
        self.logger.info("Round %d settled, dealer %+d", state.round_number, dealer.payout)
