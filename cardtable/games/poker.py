from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..cards import Card
from ..engine import TableEngine, checked
from ..errors import Reason, RuleViolation
from ..evaluator import Score, describe_rank, evaluate_best
from ..models import GameType, PlayerInfo

LOGGER = logging.getLogger("cardtable.poker")

# PokerEngine keeps chip accounting and betting order for one No-Limit
# Texas Hold'em table. Stacks persist across hands.


class Phase(str, Enum):
    WAITING = "waiting"
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    SHOWDOWN = "showdown"
    SETTLING = "settling"
    FINISHED = "finished"


BETTING_PHASES = (Phase.PREFLOP, Phase.FLOP, Phase.TURN, Phase.RIVER)
_NEXT_STREET = {Phase.PREFLOP: (Phase.FLOP, 3), Phase.FLOP: (Phase.TURN, 1), Phase.TURN: (Phase.RIVER, 1)}


@dataclass
class PokerPlayer:
    player_id: str
    display_name: str
    avatar: str = ""
    chips: int = 0
    hole_cards: List[Card] = field(default_factory=list)
    committed: int = 0
    total_in_pot: int = 0
    folded: bool = False
    all_in: bool = False
    sitting_out: bool = False
    winnings: int = 0
    hand_rank: str = ""

    def reset_for_hand(self) -> None:
        self.hole_cards = []
        self.committed = 0
        self.total_in_pot = 0
        self.folded = False
        self.all_in = False
        self.sitting_out = self.chips <= 0
        self.winnings = 0
        self.hand_rank = ""

    @property
    def in_hand(self) -> bool:
        return not (self.folded or self.sitting_out)


@dataclass
class PokerState:
    phase: Phase = Phase.WAITING
    players: List[PokerPlayer] = field(default_factory=list)
    current_player_index: int = 0
    button_index: int = -1
    community: List[Card] = field(default_factory=list)
    pot: int = 0
    current_bet: int = 0
    min_raise_increment: int = 0
    # Player ids that still owe an action on this street.
    pending: List[str] = field(default_factory=list)
    winners: List[str] = field(default_factory=list)
    hand_number: int = 0


class PokerEngine(TableEngine):
    """No-Limit Texas Hold'em engine for a single table."""

    GAME_TYPE = GameType.POKER
    STATE_CLASS = PokerState
    PLAYER_CLASS = PokerPlayer

    logger = LOGGER

    def new_player(self, info: PlayerInfo) -> PokerPlayer:
        return PokerPlayer(
            player_id=info.player_id,
            display_name=info.display_name,
            avatar=info.avatar,
            chips=self.config.starting_chips,
        )

    def _cards_of(self, state: PokerState) -> List[Card]:
        cards = list(state.community)
        for player in state.players:
            cards.extend(player.hole_cards)
        return cards

    def on_player_removed(self, index: int) -> None:
        state = self.state
        if index <= state.button_index:
            state.button_index -= 1
        state.current_player_index = 0

    # Hand lifecycle --------------------------------------------------

    @checked
    def start_hand(self) -> None:
        self.require_phase(Phase.WAITING, Phase.SETTLING, Phase.FINISHED)
        self.require_seats()
        state = self.state
        active = [p for p in state.players if p.chips > 0]
        if len(active) < 2:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Not enough players with chips")

        self.fresh_deck()
        for player in state.players:
            player.reset_for_hand()
        state.community = []
        state.pot = 0
        state.winners = []
        state.hand_number += 1
        state.button_index = self._next_seat(state.button_index)

        for _ in range(2):
            for idx in self._rotation(state.button_index + 1):
                state.players[idx].hole_cards.append(self.deal_card())

        state.phase = Phase.PREFLOP
        big_blind_idx = self._post_blinds(len(active) == 2)
        state.pending = [p.player_id for p in state.players if p.in_hand and not p.all_in]
        if len(active) == 2:
            state.current_player_index = state.button_index
        else:
            state.current_player_index = self._next_seat(big_blind_idx)
        self.logger.info(
            "Hand %d started, button %s", state.hand_number, state.players[state.button_index].player_id
        )
        self._continue()

    start_round = start_hand

    @checked
    def end_round(self) -> None:
        self.require_phase(Phase.SETTLING)
        self.state.phase = Phase.FINISHED

    def is_match_over(self) -> bool:
        return sum(1 for p in self.state.players if p.chips > 0) <= 1

    # Actions ---------------------------------------------------------

    def legal_actions(self, player_id: str) -> Tuple[List[str], Optional[int], Optional[int], Optional[int]]:
        """Legal intent types plus call amount and min/max raise-to for the actor."""
        player = self.find_player(player_id)
        current = self.current_player()
        if self.state.phase not in BETTING_PHASES or player is None or player is not current:
            return [], None, None, None
        state = self.state
        legal = ["fold"]
        to_call = state.current_bet - player.committed
        if to_call <= 0:
            legal.append("check")
        else:
            legal.append("call")
        max_raise_to = player.chips + player.committed
        min_raise_to = state.current_bet + state.min_raise_increment
        raise_bounds: Tuple[Optional[int], Optional[int]] = (None, None)
        if max_raise_to > min_raise_to:
            legal.append("raise")
            raise_bounds = (min_raise_to, max_raise_to)
        elif max_raise_to > state.current_bet:
            raise_bounds = (max_raise_to, max_raise_to)
        legal.append("all_in")
        return legal, (min(to_call, player.chips) if to_call > 0 else None), raise_bounds[0], raise_bounds[1]

    @checked
    def fold(self, player_id: str) -> None:
        player = self._actor(player_id)
        player.folded = True
        self._after_action(player)

    @checked
    def check(self, player_id: str) -> None:
        player = self._actor(player_id)
        if self.state.current_bet > player.committed:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Cannot check when facing a bet")
        self._after_action(player)

    @checked
    def call(self, player_id: str) -> None:
        player = self._actor(player_id)
        to_call = self.state.current_bet - player.committed
        if to_call <= 0:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Nothing to call")
        self._commit(player, to_call)
        self._after_action(player)

    @checked
    def raise_to(self, player_id: str, amount: int) -> None:
        player = self._actor(player_id)
        state = self.state
        max_raise_to = player.chips + player.committed
        if amount > max_raise_to:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Raise exceeds stack")
        if amount <= state.current_bet:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Raise must exceed current bet")
        if amount < state.current_bet + state.min_raise_increment and amount != max_raise_to:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "Raise below minimum")
        self._raise(player, amount)
        self._after_action(player)

    @checked
    def all_in(self, player_id: str) -> None:
        player = self._actor(player_id)
        if player.chips <= 0:
            raise RuleViolation(Reason.OUT_OF_BOUNDS, "No chips left")
        amount = player.chips + player.committed
        if amount > self.state.current_bet:
            self._raise(player, amount)
        else:
            self._commit(player, player.chips)
        self._after_action(player)

    # Internals -------------------------------------------------------

    def _actor(self, player_id: str) -> PokerPlayer:
        self.require_phase(*BETTING_PHASES)
        player = self.require_turn(player_id)
        if not player.in_hand or player.all_in:
            raise RuleViolation(Reason.NOT_PLAYERS_TURN, f"{player_id} cannot act")
        return player

    def _rotation(self, start: int) -> List[int]:
        """Seat indices of players in the hand, in order from `start`."""
        players = self.state.players
        count = len(players)
        return [(start + step) % count for step in range(count) if players[(start + step) % count].in_hand]

    def _next_seat(self, start: int) -> int:
        players = self.state.players
        for step in range(1, len(players) + 1):
            idx = (start + step) % len(players)
            if players[idx].in_hand and players[idx].chips + players[idx].total_in_pot > 0:
                return idx
        raise RuntimeError("No active seat")

    def _commit(self, player: PokerPlayer, amount: int) -> None:
        amount = min(amount, player.chips)
        player.chips -= amount
        player.committed += amount
        player.total_in_pot += amount
        self.state.pot += amount
        if player.chips == 0:
            player.all_in = True

    def _post_blinds(self, heads_up: bool) -> int:
        state = self.state
        if heads_up:
            small_idx = state.button_index
        else:
            small_idx = self._next_seat(state.button_index)
        big_idx = self._next_seat(small_idx)
        self._commit(state.players[small_idx], self.config.small_blind)
        self._commit(state.players[big_idx], self.config.big_blind)
        state.current_bet = max(state.players[small_idx].committed, state.players[big_idx].committed)
        state.min_raise_increment = self.config.big_blind
        return big_idx

    def _raise(self, player: PokerPlayer, amount: int) -> None:
        state = self.state
        self._commit(player, amount - player.committed)
        previous = state.current_bet
        state.current_bet = amount
        if amount - previous >= state.min_raise_increment:
            state.min_raise_increment = amount - previous
        state.pending = [
            p.player_id for p in state.players if p.in_hand and not p.all_in and p is not player
        ]

    def _after_action(self, player: PokerPlayer) -> None:
        state = self.state
        if player.player_id in state.pending:
            state.pending.remove(player.player_id)
        self._continue()

    def _continue(self) -> None:
        """Hand the turn to the next pending player, or run the board forward."""
        state = self.state
        live = [p for p in state.players if p.in_hand]
        if len(live) == 1:
            self._award([(state.pot, [state.players.index(live[0])])])
            return
        # A lone player with chips facing nobody has nothing left to decide.
        owing = [p for p in live if p.player_id in state.pending]
        if len([p for p in live if not p.all_in]) < 2 and all(p.committed >= state.current_bet for p in owing):
            state.pending = []
        if state.pending:
            for idx in self._rotation(state.current_player_index):
                if state.players[idx].player_id in state.pending:
                    state.current_player_index = idx
                    return
        self._next_street()

    def _next_street(self) -> None:
        state = self.state
        while state.phase in _NEXT_STREET:
            state.phase, count = _NEXT_STREET[state.phase]
            state.community.extend(self.deck.deal_many(count))
            for player in state.players:
                player.committed = 0
            state.current_bet = 0
            state.min_raise_increment = self.config.big_blind
            state.pending = [p.player_id for p in state.players if p.in_hand and not p.all_in]
            if len(state.pending) >= 2:
                state.current_player_index = self._rotation(state.button_index + 1)[0]
                self._continue()
                return
        self._showdown()

    def _showdown(self) -> None:
        state = self.state
        state.phase = Phase.SHOWDOWN
        state.pending = []
        scores: Dict[int, Score] = {}
        for idx, player in enumerate(state.players):
            if player.in_hand:
                scores[idx] = evaluate_best(player.hole_cards + state.community)
                player.hand_rank = describe_rank(scores[idx])

        awards: List[Tuple[int, List[int]]] = []
        for pot_value, contenders in self._build_side_pots():
            if pot_value <= 0:
                continue
            if not contenders:
                # Chips only folded players reached go to the last contested pot.
                if awards:
                    value, winners = awards[-1]
                    awards[-1] = (value + pot_value, winners)
                continue
            best = max(scores[idx] for idx in contenders)
            awards.append((pot_value, [idx for idx in contenders if scores[idx] == best]))
        self._award(awards)

    def _award(self, awards: List[Tuple[int, List[int]]]) -> None:
        state = self.state
        for pot_value, winners in awards:
            share, remainder = divmod(pot_value, len(winners))
            for order, idx in enumerate(sorted(winners)):
                payout = share + (1 if order < remainder else 0)
                winner = state.players[idx]
                winner.chips += payout
                winner.winnings += payout
                if winner.player_id not in state.winners:
                    state.winners.append(winner.player_id)
            state.pot -= pot_value
        for player in state.players:
            player.committed = 0
        state.pending = []
        state.phase = Phase.SETTLING
        self.logger.info("Hand %d settled, winners %s", state.hand_number, ", ".join(state.winners))

    def _build_side_pots(self) -> List[Tuple[int, List[int]]]:
        players = self.state.players
        remaining: Dict[int, int] = {idx: p.total_in_pot for idx, p in enumerate(players) if p.total_in_pot > 0}

        pots: List[Tuple[int, List[int]]] = []
        while True:
            active = [idx for idx, amount in remaining.items() if amount > 0]
            if not active:
                break
            min_amount = min(remaining[idx] for idx in active)
            pot_total = 0
            for idx in active:
                take = min(min_amount, remaining[idx])
                pot_total += take
                remaining[idx] -= take
            contenders = [idx for idx in active if players[idx].in_hand]
            pots.append((pot_total, contenders))
        return pots
