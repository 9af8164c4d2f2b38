from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ..cards import Card
from ..engine import TableEngine, checked
from ..errors import Reason, RuleViolation
from ..models import GameType

LOGGER = logging.getLogger("cardtable.blackjack")

DEALER_STANDS_ON = 17
MAX_HANDS = 4


class Phase(str, Enum):
    WAITING = "waiting"
    BETTING = "betting"
    DEALING = "dealing"
    PLAYER_TURN = "player_turn"
    DEALER_TURN = "dealer_turn"
    SETTLING = "settling"
    FINISHED = "finished"


@dataclass
class Hand:
    cards: List[Card] = field(default_factory=list)
    bet: int = 0
    stood: bool = False
    busted: bool = False
    doubled: bool = False
    surrendered: bool = False
    from_split: bool = False
    settled: bool = False
    result: str = ""
    payout: int = 0

    @property
    def actionable(self) -> bool:
        return not (self.stood or self.busted or self.surrendered or self.settled)


@dataclass
class BlackjackPlayer:
    player_id: str
    display_name: str
    avatar: str = ""
    bet: int = 0
    has_bet: bool = False
    hands: List[Hand] = field(default_factory=list)
    current_hand_index: int = 0
    total_payout: int = 0

    def reset_for_round(self) -> None:
        self.bet = 0
        self.has_bet = False
        self.hands = []
        self.current_hand_index = 0
        self.total_payout = 0


@dataclass
class BlackjackState:
    phase: Phase = Phase.WAITING
    players: List[BlackjackPlayer] = field(default_factory=list)
    current_player_index: int = 0
    dealer_cards: List[Card] = field(default_factory=list)
    hole_revealed: bool = False
    dealer_payout: int = 0
    discard_tray: List[Card] = field(default_factory=list)
    round_number: int = 0


def hand_value(cards: Sequence[Card]) -> int:
    total = 0
    aces = 0
    for card in cards:
        if card.rank == 1:
            total += 11
            aces += 1
        else:
            total += min(card.rank, 10)
    while total > 21 and aces:
        total -= 10
        aces -= 1
    return total


def is_blackjack(cards: Sequence[Card], from_split: bool = False) -> bool:
    return len(cards) == 2 and not from_split and hand_value(cards) == 21


class BlackjackEngine(TableEngine):
    """Multi-hand blackjack against the house, played from a 6-deck shoe."""

    GAME_TYPE = GameType.BLACKJACK
    STATE_CLASS = BlackjackState
    PLAYER_CLASS = BlackjackPlayer

    logger = LOGGER

    @property
    def reshuffle_below(self) -> int:
        # A quarter of the shoe.
        return self.config.deck_count * 52 // 4

    def _cards_of(self, state: BlackjackState) -> List[Card]:
        cards = list(state.discard_tray) + list(state.dealer_cards)
        for player in state.players:
            for hand in player.hands:
                cards.extend(hand.cards)
        return cards

    def return_cards(self, cards: List[Card]) -> None:
        self.state.discard_tray.extend(cards)

    # Round lifecycle -----------------------------------------------------

    @checked
    def start_round(self) -> None:
        self.require_phase(Phase.WAITING, Phase.SETTLING, Phase.FINISHED)
        self.require_seats()
        state = self.state
        state.discard_tray.extend(state.dealer_cards)
        for player in state.players:
            for hand in player.hands:
                state.discard_tray.extend(hand.cards)
            player.reset_for_round()
        state.dealer_cards = []
        state.hole_revealed = False
        state.dealer_payout = 0
        state.current_player_index = 0

        if self.deck.remaining() < self.reshuffle_below:
            self.fresh_deck()
            state.discard_tray = []
            self.logger.info("Shoe reshuffled")

        state.round_number += 1
        state.phase = Phase.BETTING
        self.logger.info("Round %d started with %d players", state.round_number, len(state.players))

    @checked
    def end_round(self) -> None:
        self.require_phase(Phase.SETTLING)
        self.state.phase = Phase.FINISHED

    # Intents ---------------------------------------------------------------

    @checked
    def place_bet(self, player_id: str, amount: int) -> None:
        self.require_phase(Phase.BETTING)
        player = self.player(player_id)
        if player.has_bet:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, f"{player_id} already placed a bet")
        self.require_bet(amount)
        player.bet = amount
        player.has_bet = True
        if all(p.has_bet for p in self.state.players):
            self._deal()

    @checked
    def hit(self, player_id: str, hand_index: Optional[int] = None) -> None:
        hand = self._acting_hand(player_id, hand_index)
        hand.cards.append(self.deal_card())
        self._after_draw(hand)

    @checked
    def stand(self, player_id: str, hand_index: Optional[int] = None) -> None:
        hand = self._acting_hand(player_id, hand_index)
        hand.stood = True
        self._advance()

    @checked
    def double(self, player_id: str, hand_index: Optional[int] = None) -> None:
        hand = self._acting_hand(player_id, hand_index)
        if len(hand.cards) != 2 or hand.doubled:
            raise RuleViolation(Reason.INVALID_CARD_SELECTION, "Double only on the first two cards")
        hand.bet *= 2
        hand.doubled = True
        hand.cards.append(self.deal_card())
        if not self._check_bust(hand):
            hand.stood = True
        self._advance()

    @checked
    def split(self, player_id: str, hand_index: Optional[int] = None) -> None:
        hand = self._acting_hand(player_id, hand_index)
        player = self.player(player_id)
        if len(hand.cards) != 2 or hand.cards[0].rank != hand.cards[1].rank:
            raise RuleViolation(Reason.INVALID_CARD_SELECTION, "Split needs a pair of equal ranks")
        if len(player.hands) >= MAX_HANDS:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, f"At most {MAX_HANDS} hands")

        second = Hand(cards=[hand.cards.pop()], bet=hand.bet, from_split=True)
        hand.from_split = True
        hand.cards.append(self.deal_card())
        second.cards.append(self.deal_card())
        player.hands.insert(player.current_hand_index + 1, second)
        for split_hand in (hand, second):
            if hand_value(split_hand.cards) == 21:
                split_hand.stood = True
        self._advance()

    @checked
    def surrender(self, player_id: str) -> None:
        """Give up an untouched hand for half the bet back.

        Chips are whole, so an odd bet forfeits the smaller half.
        """
        hand = self._acting_hand(player_id, None)
        player = self.player(player_id)
        if len(player.hands) != 1 or len(hand.cards) != 2 or hand.from_split or hand.doubled:
            raise RuleViolation(Reason.INVALID_CARD_SELECTION, "Surrender only on an untouched hand")
        hand.surrendered = True
        hand.settled = True
        hand.result = "surrender"
        hand.payout = -(hand.bet // 2)
        self._advance()

    # Internals -------------------------------------------------------------

    def _acting_hand(self, player_id: str, hand_index: Optional[int]) -> Hand:
        self.require_phase(Phase.PLAYER_TURN)
        player = self.require_turn(player_id)
        if hand_index is not None and hand_index != player.current_hand_index:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, f"Hand {hand_index} is not in play")
        hand = player.hands[player.current_hand_index]
        if not hand.actionable:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, "Hand already finished")
        return hand

    def _deal(self) -> None:
        state = self.state
        state.phase = Phase.DEALING
        for player in state.players:
            player.hands = [Hand(bet=player.bet)]
        for _ in range(2):
            for player in state.players:
                player.hands[0].cards.append(self.deal_card())
            state.dealer_cards.append(self.deal_card())

        for player in state.players:
            hand = player.hands[0]
            if hand_value(hand.cards) == 21:
                hand.stood = True

        if is_blackjack(state.dealer_cards):
            self._settle()
            return
        state.phase = Phase.PLAYER_TURN
        state.current_player_index = 0
        self.state.players[0].current_hand_index = 0
        self._advance()

    def _check_bust(self, hand: Hand) -> bool:
        if hand_value(hand.cards) <= 21:
            return False
        hand.busted = True
        hand.settled = True
        hand.result = "bust"
        hand.payout = -hand.bet
        return True

    def _after_draw(self, hand: Hand) -> None:
        if not self._check_bust(hand) and hand_value(hand.cards) == 21:
            hand.stood = True
        self._advance()

    def _advance(self) -> None:
        """Exhaust the current player's hands, then move on, then let the dealer play."""
        state = self.state
        for idx in range(state.current_player_index, len(state.players)):
            player = state.players[idx]
            start = player.current_hand_index if idx == state.current_player_index else 0
            for hand_idx in range(start, len(player.hands)):
                if player.hands[hand_idx].actionable:
                    state.current_player_index = idx
                    player.current_hand_index = hand_idx
                    return
        self._dealer_play()

    def _dealer_play(self) -> None:
        state = self.state
        state.phase = Phase.DEALER_TURN
        state.hole_revealed = True
        live = [
            hand
            for player in state.players
            for hand in player.hands
            if not hand.settled and not is_blackjack(hand.cards, hand.from_split)
        ]
        if live:
            while hand_value(state.dealer_cards) < DEALER_STANDS_ON:
                state.dealer_cards.append(self.deal_card())
        self._settle()

    def _settle(self) -> None:
        state = self.state
        state.hole_revealed = True
        dealer_total = hand_value(state.dealer_cards)
        dealer_natural = is_blackjack(state.dealer_cards)

        for player in state.players:
            for hand in player.hands:
                if not hand.settled:
                    hand.result, hand.payout = self._compare(hand, dealer_total, dealer_natural)
                    hand.settled = True
            player.total_payout = sum(hand.payout for hand in player.hands)

        state.dealer_payout = -sum(player.total_payout for player in state.players)
        state.phase = Phase.SETTLING
        self.logger.info("Round %d settled, dealer %+d", state.round_number, state.dealer_payout)

    def _compare(self, hand: Hand, dealer_total: int, dealer_natural: bool) -> Tuple[str, int]:
        natural = is_blackjack(hand.cards, hand.from_split)
        total = hand_value(hand.cards)
        if natural and dealer_natural:
            return "push", 0
        if natural:
            # 3:2 rounds down on odd bets.
            return "blackjack", hand.bet * 3 // 2
        if dealer_natural:
            return "lose", -hand.bet
        if dealer_total > 21 or total > dealer_total:
            return "win", hand.bet
        if total == dealer_total:
            return "push", 0
        return "lose", -hand.bet
