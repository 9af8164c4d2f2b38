from cardtable.errors import Reason
from cardtable.games.poker import Phase
from cardtable.intents import AllIn, Call, Check, Fold, Raise
from cardtable.models import GameType

from .helpers import apply_all, assert_conserved, auto_complete_hand, make_engine, stack_deck


def start_hand(players=2, deck=(), chips=None):
    engine = make_engine(GameType.POKER, players=players)
    if chips:
        for player, amount in zip(engine.state.players, chips):
            player.chips = amount
    stack_deck(engine, list(deck))
    assert engine.start_hand()
    return engine


def total_chips(engine):
    return sum(p.chips for p in engine.state.players) + engine.state.pot


def actor(engine):
    return engine.current_player().player_id


def test_heads_up_button_posts_small_blind_and_acts_first():
    engine = start_hand()
    button, big = engine.state.players

    assert engine.state.button_index == 0
    assert (button.committed, big.committed) == (5, 10)
    assert engine.state.pot == 15
    assert actor(engine) == "p0"
    assert all(len(p.hole_cards) == 2 for p in engine.state.players)


def test_three_handed_blinds_and_first_actor():
    engine = start_hand(players=3)
    committed = [p.committed for p in engine.state.players]

    assert committed == [0, 5, 10]
    assert actor(engine) == "p0"


def test_legal_actions_for_actor():
    engine = start_hand()
    legal, to_call, min_raise_to, max_raise_to = engine.legal_actions("p0")

    assert legal == ["fold", "call", "raise", "all_in"]
    assert (to_call, min_raise_to, max_raise_to) == (5, 20, 1000)
    assert engine.legal_actions("p1") == ([], None, None, None)


def test_call_and_check_reach_the_flop():
    engine = start_hand()
    apply_all(engine, [Call("p0"), Check("p1")])

    assert engine.phase == Phase.FLOP
    assert len(engine.state.community) == 3
    assert engine.state.current_bet == 0
    # Big blind acts first after the flop heads-up.
    assert actor(engine) == "p1"


def test_check_when_facing_bet_is_rejected():
    engine = start_hand()
    before = engine.serialize()

    assert not engine.apply(Check("p0"))
    assert engine.last_rejection.reason == Reason.OUT_OF_BOUNDS
    assert engine.serialize() == before


def test_fold_awards_pot_immediately():
    engine = start_hand()
    apply_all(engine, [Fold("p0")])

    assert engine.phase == Phase.SETTLING
    assert engine.state.winners == ["p1"]
    assert [p.chips for p in engine.state.players] == [995, 1005]
    assert engine.state.pot == 0


def test_multiple_raises_update_min_increment():
    engine = start_hand(players=3)

    assert not engine.apply(Raise("p0", 15))
    assert engine.last_rejection.reason == Reason.OUT_OF_BOUNDS
    apply_all(engine, [Raise("p0", 20)])
    assert (engine.state.current_bet, engine.state.min_raise_increment) == (20, 10)

    apply_all(engine, [Raise("p1", 50)])
    assert (engine.state.current_bet, engine.state.min_raise_increment) == (50, 30)
    assert engine.state.pending == ["p0", "p2"]
    assert engine.legal_actions("p2")[2] == 80


def test_side_pots_award_each_layer():
    # Holes go p1, p2, p0 twice; then the five board cards.
    deck = ["Ks", "7c", "As", "Kh", "2d", "Ah", "3c", "8d", "9h", "Js", "4c"]
    engine = start_hand(players=3, deck=deck, chips=[100, 300, 300])

    apply_all(engine, [AllIn("p0"), AllIn("p1"), Call("p2")])
    short, middle, big = engine.state.players

    assert engine.phase == Phase.SETTLING
    assert len(engine.state.community) == 5
    assert short.hand_rank == "pair" and middle.hand_rank == "pair"
    assert [short.chips, middle.chips, big.chips] == [300, 400, 0]
    assert short.winnings == 300 and middle.winnings == 400
    assert total_chips(engine) == 700


def test_split_pot_gives_odd_chip_to_lowest_seat():
    # The board is a royal flush, so every live hand ties.
    deck = ["7d", "4h", "2c", "8d", "5c", "3d", "Ts", "Js", "Qs", "Ks", "As"]
    engine = start_hand(players=3, deck=deck)

    apply_all(engine, [Call("p0"), Fold("p1"), Check("p2")])
    for _ in range(3):
        apply_all(engine, [Check("p2"), Check("p0")])

    assert engine.phase == Phase.SETTLING
    assert engine.state.winners == ["p0", "p2"]
    assert [p.chips for p in engine.state.players] == [1003, 995, 1002]


def test_all_in_runs_out_the_board():
    engine = start_hand()
    apply_all(engine, [AllIn("p0"), Call("p1")])

    assert engine.phase == Phase.SETTLING
    assert len(engine.state.community) == 5
    assert total_chips(engine) == 2000
    assert engine.state.winners


def test_button_rotates_between_hands():
    engine = start_hand(players=3)
    auto_complete_hand(engine)

    assert engine.end_round()
    assert engine.start_round()
    assert engine.state.button_index == 1
    assert engine.state.hand_number == 2
    assert all(p.winnings == 0 for p in engine.state.players)
    assert_conserved(engine)


def test_many_hands_keep_chips_and_cards():
    engine = make_engine(GameType.POKER, players=4, seed=11)
    for _ in range(40):
        assert engine.start_round()
        auto_complete_hand(engine)
        assert engine.phase == Phase.SETTLING
        assert total_chips(engine) == 4000
        if engine.is_match_over():
            break
        assert engine.end_round()
