from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..cards import Card
from ..engine import TableEngine, checked
from ..errors import Reason, RuleViolation
from ..evaluator import grouped_values, is_flush, straight_high
from ..models import GameType

LOGGER = logging.getLogger("cardtable.kang")

HAND_SIZE = 5
MAX_DISCARD = 4

# Highest first.
CATEGORY_ORDER = ("kang", "straight_flush", "tong", "flush", "straight", "two_pair", "pair", "high_card")
CATEGORY_RANK: Dict[str, int] = {name: len(CATEGORY_ORDER) - idx for idx, name in enumerate(CATEGORY_ORDER)}
MULTIPLIERS: Dict[str, int] = {
    "kang": 3,
    "straight_flush": 5,
    "tong": 3,
    "flush": 2,
    "straight": 2,
    "two_pair": 2,
    "pair": 1,
    "high_card": 1,
}


class Phase(str, Enum):
    WAITING = "waiting"
    BETTING = "betting"
    DEALING = "dealing"
    DISCARDING = "discarding"
    SHOWDOWN = "showdown"
    SETTLING = "settling"
    FINISHED = "finished"


@dataclass
class KangResult:
    category: str
    rank: int
    high_card: int


@dataclass
class KangPlayer:
    player_id: str
    display_name: str
    avatar: str = ""
    hand: List[Card] = field(default_factory=list)
    bet: int = 0
    folded: bool = False
    has_discarded: bool = False
    discarded_cards: List[Card] = field(default_factory=list)
    result: Optional[KangResult] = None
    payout: int = 0

    def reset_for_round(self) -> None:
        self.hand = []
        self.bet = 0
        self.folded = False
        self.has_discarded = False
        self.discarded_cards = []
        self.result = None
        self.payout = 0


@dataclass
class KangState:
    phase: Phase = Phase.WAITING
    players: List[KangPlayer] = field(default_factory=list)
    current_player_index: int = 0
    dealer_index: int = 0
    dealer_payout: int = 0
    round_number: int = 0


def evaluate_kang(cards: Sequence[Card]) -> KangResult:
    if len(cards) != HAND_SIZE:
        raise ValueError("Kang hands have exactly five cards")
    counts = [count for _, count in grouped_values(cards)]
    flush = is_flush(cards)
    straight = straight_high(cards)
    high = straight or max(card.high_value for card in cards)

    if counts[0] == 3 and counts[1] == 2:
        category = "kang"
    elif straight and flush:
        category = "straight_flush"
    elif counts[0] >= 3:
        category = "tong"
    elif flush:
        category = "flush"
    elif straight:
        category = "straight"
    elif counts[0] == 2 and counts[1] == 2:
        category = "two_pair"
    elif counts[0] == 2:
        category = "pair"
    else:
        category = "high_card"
    return KangResult(category=category, rank=CATEGORY_RANK[category], high_card=high)


def kang_payout(player: KangResult, dealer: KangResult, bet: int) -> int:
    """Signed payout for one player against the dealer."""
    if player.rank > dealer.rank:
        return bet * MULTIPLIERS[player.category]
    if player.rank < dealer.rank:
        return -bet
    if player.high_card > dealer.high_card:
        return bet
    if player.high_card < dealer.high_card:
        return -bet
    return 0


class KangEngine(TableEngine):
    GAME_TYPE = GameType.KANG
    STATE_CLASS = KangState
    PLAYER_CLASS = KangPlayer

    logger = LOGGER

    def _cards_of(self, state: KangState) -> List[Card]:
        cards: List[Card] = []
        for player in state.players:
            cards.extend(player.hand)
            cards.extend(player.discarded_cards)
        return cards

    def dealer(self) -> KangPlayer:
        return self.state.players[self.state.dealer_index]

    def on_player_removed(self, index: int) -> None:
        state = self.state
        if index < state.dealer_index:
            state.dealer_index -= 1
        if state.dealer_index >= len(state.players):
            state.dealer_index = 0
        state.current_player_index = state.dealer_index

    # Round lifecycle -----------------------------------------------------

    @checked
    def start_round(self) -> None:
        self.require_phase(Phase.WAITING, Phase.SETTLING, Phase.FINISHED)
        self.require_seats()
        self.fresh_deck()
        for player in self.state.players:
            player.reset_for_round()
        self.state.dealer_payout = 0
        self.state.round_number += 1
        self.state.current_player_index = self._after_dealer()
        self.state.phase = Phase.BETTING
        self.logger.info("Round %d started, dealer %s", self.state.round_number, self.dealer().player_id)

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
        self._check_betting_complete()

    @checked
    def discard(self, player_id: str, card_indices: List[int]) -> None:
        player = self._discarding_player(player_id)
        if not 1 <= len(card_indices) <= MAX_DISCARD:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, f"Discard between 1 and {MAX_DISCARD} cards")
        if len(set(card_indices)) != len(card_indices):
            raise RuleViolation(Reason.INVALID_CARD_SELECTION, "Duplicate card index")
        if any(idx < 0 or idx >= len(player.hand) for idx in card_indices):
            raise RuleViolation(Reason.INVALID_CARD_SELECTION, "Card index not in hand")
        if self.deck.remaining() < len(card_indices):
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Deck cannot cover the draw")

        player.discarded_cards = [player.hand[idx] for idx in card_indices]
        kept = [card for idx, card in enumerate(player.hand) if idx not in card_indices]
        player.hand = kept + self.deck.deal_many(len(card_indices))
        player.has_discarded = True
        self._check_discarding_complete()

    @checked
    def keep_all(self, player_id: str) -> None:
        player = self._discarding_player(player_id)
        player.has_discarded = True
        self._check_discarding_complete()

    @checked
    def fold(self, player_id: str) -> None:
        self.require_phase(Phase.BETTING, Phase.DISCARDING)
        player = self._non_dealer(player_id)
        if player.folded:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, f"{player_id} already folded")
        player.folded = True
        if self.state.phase == Phase.BETTING:
            self._check_betting_complete()
        else:
            self._check_discarding_complete()

    # Internals -------------------------------------------------------------

    def _after_dealer(self) -> int:
        return (self.state.dealer_index + 1) % len(self.state.players)

    def _non_dealer(self, player_id: str) -> KangPlayer:
        player = self.player(player_id)
        if player is self.dealer():
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, "The dealer does not bet or fold")
        return player

    def _discarding_player(self, player_id: str) -> KangPlayer:
        self.require_phase(Phase.DISCARDING)
        player = self.player(player_id)
        if player.folded or player.has_discarded:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, f"{player_id} has nothing to discard")
        return player

    def _check_betting_complete(self) -> None:
        punters = [p for p in self.state.players if p is not self.dealer()]
        if not all(p.bet > 0 or p.folded for p in punters):
            return
        if all(p.folded for p in punters):
            self._settle()
            return
        self.state.phase = Phase.DEALING
        for player in self.state.players:
            if not player.folded:
                player.hand = self.deck.deal_many(HAND_SIZE)
        self.state.phase = Phase.DISCARDING
        self.state.current_player_index = self._after_dealer()

    def _check_discarding_complete(self) -> None:
        if all(p.has_discarded for p in self.state.players if not p.folded):
            self._showdown()

    def _showdown(self) -> None:
        self.state.phase = Phase.SHOWDOWN
        for player in self.state.players:
            if not player.folded:
                player.result = evaluate_kang(player.hand)
        self._settle()

    def _settle(self) -> None:
        state = self.state
        dealer = self.dealer()
        for player in state.players:
            if player is dealer:
                continue
            if player.folded:
                # Forfeited stake goes to the dealer.
                player.payout = -player.bet
            else:
                assert player.result is not None and dealer.result is not None
                player.payout = kang_payout(player.result, dealer.result, player.bet)
        dealer.payout = -sum(p.payout for p in state.players if p is not dealer)
        state.dealer_payout = dealer.payout
        state.phase = Phase.SETTLING
        self.logger.info("Round %d settled, dealer %+d", state.round_number, dealer.payout)
