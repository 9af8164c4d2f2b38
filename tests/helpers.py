from __future__ import annotations

import random
from typing import Iterable, List, Optional, Sequence

from cardtable.cards import Deck, parse_cards
from cardtable.engine import TableEngine
from cardtable.games import create_engine
from cardtable.games.poker import BETTING_PHASES
from cardtable.intents import Call, Check, DrawDeck, Fold, KeepAll, Knock, Meld, PlaceBet, Play, Stand, Stay
from cardtable.models import GameType, PlayerInfo, TableConfig, default_config
from mesh.coordinator import ReplicationCoordinator
from mesh.transport import InMemoryHub


def seat_players(engine: TableEngine, count: int, prefix: str = "p") -> List[str]:
    """Seat `count` players named p0, p1, ... and return their ids."""
    ids = []
    for idx in range(count):
        player_id = f"{prefix}{idx}"
        assert engine.add_player(PlayerInfo(player_id, f"Player {idx}"))
        ids.append(player_id)
    return ids


def make_engine(
    game_type: GameType,
    players: int = 2,
    seed: int = 7,
    config: Optional[TableConfig] = None,
    **overrides: int,
) -> TableEngine:
    """Instantiate an engine with a populated table."""
    engine = create_engine(game_type, config or default_config(game_type, **overrides), seed)
    seat_players(engine, players)
    return engine


def move_to_top(deck: Deck, labels: Sequence[str]) -> None:
    """Reorder `deck` so the given cards are dealt first, in order."""
    wanted = parse_cards(labels)
    rest = list(deck.cards)
    for card in wanted:
        rest.remove(card)
    deck.cards = wanted + rest


def stack_deck(engine: TableEngine, labels: Sequence[str]) -> None:
    """Stack the current deck and every fresh deck the engine builds later."""
    original = engine.fresh_deck

    def fresh_deck() -> None:
        original()
        move_to_top(engine.deck, labels)

    engine.fresh_deck = fresh_deck  # type: ignore[method-assign]
    move_to_top(engine.deck, labels)


def assert_conserved(engine: TableEngine) -> None:
    assert engine.is_conserved(), "Cards were created or lost"


def apply_all(engine: TableEngine, intents: Iterable) -> None:
    """Apply a scripted sequence of intents, each of which must be accepted."""
    for intent in intents:
        result = engine.apply(intent)
        assert result, f"{intent} rejected: {engine.last_rejection!r}"
        assert_conserved(engine)


def build_table(game_type=GameType.KANG, peers=("peer",), queued=False, seed=5):
    """Host plus mirrors on an in-memory hub, with everyone seated; host first."""
    hub = InMemoryHub(queued=queued, rng=random.Random(seed))
    host_transport = hub.connect("host", "Host")
    host = ReplicationCoordinator(host_transport, create_engine(game_type, seed=seed), "host")
    mirrors = []
    for peer_id in peers:
        transport = hub.connect(peer_id, peer_id.title())
        mirrors.append(ReplicationCoordinator(transport, create_engine(game_type), "host"))
    assert host.add_player(host_transport.identity)
    for peer_id in peers:
        assert host.add_player(host_transport.identities[peer_id])
    return hub, host, mirrors


def set_hands(engine: TableEngine, hands: dict, leader: str = "p0") -> None:
    """Give each Slave player exactly the listed cards; everything else is already played."""
    state = engine.state
    pool = list(state.played_pile)
    for player in state.players:
        pool.extend(player.hand)
    for player in state.players:
        player.hand = parse_cards(hands[player.player_id])
        for card in player.hand:
            pool.remove(card)
    state.played_pile = pool
    state.current_player_index = engine.index_of(leader)
    assert_conserved(engine)


def auto_complete_hand(engine: TableEngine) -> None:
    """Advance a poker hand with check, else call, else fold."""
    while engine.phase in BETTING_PHASES:
        player_id = engine.current_player().player_id
        legal, *_ = engine.legal_actions(player_id)
        if "check" in legal:
            intent = Check(player_id)
        elif "call" in legal:
            intent = Call(player_id)
        else:
            intent = Fold(player_id)
        assert engine.apply(intent)
        assert_conserved(engine)


# Dealt in blocks: p0's ten, p1's ten, the upcard, then the stock. p0 can
# meld nine cards and knock on 2c + 3h.
KNOCKING_DEAL = [
    "2s", "3s", "4s", "5h", "5d", "5c", "7h", "8h", "9h", "2c",
    "5s", "3d", "4d", "6c", "6h", "6s", "9c", "Tc", "Jc", "Qd",
    "Ks", "3h",
]
KNOCKING_MELDS = [["2s", "3s", "4s"], ["5h", "5d", "5c"], ["7h", "8h", "9h"]]


def play_to_settlement(game_type: GameType) -> TableEngine:
    """Play one round with the simplest legal moves until it is scored.

    Every engine comes back in SETTLING, or FINISHED for Dummy and Slave,
    with p1 still seated and holding cards.
    """
    if game_type is GameType.DUMMY:
        engine = make_engine(game_type, players=2)
        stack_deck(engine, KNOCKING_DEAL)
        assert engine.start_round()
        melds = [Meld("p0", parse_cards(group)) for group in KNOCKING_MELDS]
        apply_all(engine, [DrawDeck("p0")] + melds + [Knock("p0")])
        return engine
    if game_type is GameType.SLAVE:
        engine = make_engine(game_type, players=2)
        assert engine.start_round()
        set_hands(engine, {"p0": ["3c"], "p1": ["4d", "9s"]})
        apply_all(engine, [Play("p0", parse_cards(["3c"]))])
        return engine

    players = 2 if game_type is GameType.BLACKJACK else 3
    engine = make_engine(game_type, players=players)
    assert engine.start_round()
    if game_type is GameType.POKER:
        auto_complete_hand(engine)
        return engine
    punters = ["p0", "p1"] if game_type is GameType.BLACKJACK else ["p1", "p2"]
    apply_all(engine, [PlaceBet(player_id, 20) for player_id in punters])
    if game_type is GameType.KANG:
        apply_all(engine, [KeepAll(f"p{idx}") for idx in range(players)])
    while engine.phase.value in ("player_turn", "playing"):
        player_id = engine.current_player().player_id
        step = Stand(player_id) if game_type is GameType.BLACKJACK else Stay(player_id)
        apply_all(engine, [step])
    return engine
