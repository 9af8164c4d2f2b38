from cardtable.cards import parse_cards, parse_label
from cardtable.errors import Reason
from cardtable.games import dummy
from cardtable.games.dummy import Phase, deadwood, is_run, is_set
from cardtable.intents import DiscardCard, DrawDeck, DrawDiscard, Knock, LayOff, Meld
from cardtable.models import GameType

from .helpers import apply_all, assert_conserved, make_engine, stack_deck

P0 = ["2s", "3s", "4s", "5h", "5d", "5c", "7h", "8h", "9h", "2c"]
P1 = ["5s", "3d", "4d", "6c", "6h", "6s", "9c", "Tc", "Jc", "Qd"]
P0_MELDS = [["2s", "3s", "4s"], ["5h", "5d", "5c"], ["7h", "8h", "9h"]]


def start(p0, p1, upcard, stock):
    # Each hand is dealt in one block, then the upcard, then the stock.
    engine = make_engine(GameType.DUMMY, players=2)
    stack_deck(engine, p0 + p1 + [upcard] + stock)
    assert engine.start_game()
    return engine


def card(label):
    return parse_label(label)


def meld_all(player_id, groups):
    return [Meld(player_id, parse_cards(group)) for group in groups]


def test_sets_and_runs():
    assert is_set(parse_cards(["5h", "5d", "5c"]))
    assert not is_set(parse_cards(["5h", "5d"]))
    assert is_run(parse_cards(["Ts", "Js", "Qs", "Ks"]))
    assert is_run(parse_cards(["As", "2s", "3s"]))
    assert not is_run(parse_cards(["Qs", "Ks", "As"]))
    assert not is_run(parse_cards(["2s", "3s", "4h"]))


def test_deadwood_point_table():
    assert deadwood(parse_cards(["As", "Kd", "5c"])) == 30


def test_deal_sizes():
    engine = start(P0, P1, "As", [])
    assert [len(p.hand) for p in engine.state.players] == [10, 10]
    assert engine.state.discard_pile == [card("As")]
    assert engine.deck.remaining() == 31
    assert_conserved(engine)


def test_knock_with_ten_deadwood_wins():
    p1 = ["Kc", "Qd", "Jc", "Td", "9c", "8d", "6d", "6s", "Ad", "Kd"]
    engine = start(P0, p1, "Ks", ["3h"])

    apply_all(engine, [DrawDeck("p0")] + meld_all("p0", P0_MELDS) + [Knock("p0")])
    assert [m.meld_id for m in engine.state.melds] == ["m1", "m2", "m3"]
    knocker = engine.state.players[0]

    assert engine.phase == Phase.FINISHED
    assert engine.state.winner_id == "p0"
    assert engine.state.win_type == "knock"
    assert knocker.is_knocker and knocker.score == 10


def test_knock_above_limit_is_rejected():
    engine = start(P0, P1, "Ks", ["3h"])
    apply_all(engine, [DrawDiscard("p0")] + meld_all("p0", P0_MELDS))
    before = engine.serialize()

    assert not engine.apply(Knock("p0"))
    assert engine.last_rejection.reason == Reason.THRESHOLD_NOT_MET
    assert engine.serialize() == before


def test_knock_limit_boundary(monkeypatch):
    engine = start(P0, P1, "Ks", ["3h"])
    apply_all(engine, [DrawDeck("p0")])

    monkeypatch.setattr(dummy, "deadwood", lambda cards: 11)
    assert not engine.apply(Knock("p0"))
    assert engine.last_rejection.reason == Reason.THRESHOLD_NOT_MET

    monkeypatch.setattr(dummy, "deadwood", lambda cards: 10)
    assert engine.apply(Knock("p0"))


def test_knock_requires_draw():
    engine = start(P0, P1, "Ks", ["3h"])

    assert not engine.apply(Knock("p0"))
    assert engine.last_rejection.reason == Reason.WRONG_PHASE
    assert not engine.apply(DiscardCard("p0", card("2c")))


def test_gin_bonus_when_everything_melds():
    p0 = ["2s", "3s", "4s", "5s", "5h", "5d", "5c", "7h", "8h", "9h"]
    p1 = ["3d", "4d", "6c", "6h", "6s", "9c", "Tc", "Jc", "Qd", "2c"]
    engine = start(p0, p1, "As", ["Th"])

    apply_all(
        engine,
        [DrawDeck("p0")] + meld_all("p0", [["2s", "3s", "4s", "5s"], ["5h", "5d", "5c"], ["7h", "8h", "9h", "Th"]]),
    )
    assert engine.phase == Phase.FINISHED
    assert engine.state.win_type == "gin"
    assert engine.state.players[0].score == -dummy.GIN_BONUS


def test_melding_out_before_drawing_is_a_dummy():
    p0 = ["2s", "3s", "4s", "5s", "5h", "5d", "5c", "7h", "8h", "9h"]
    engine = start(p0, P1[1:] + ["2c"], "As", [])

    apply_all(engine, meld_all("p0", [["2s", "3s", "4s", "5s"], ["5h", "5d", "5c"], ["7h", "8h", "9h"]]))
    assert engine.state.win_type == "dummy"
    assert engine.state.players[0].score == -dummy.DUMMY_BONUS


def test_undercut_reverses_the_knock():
    p1 = ["2d", "3d", "4d", "6c", "6h", "6s", "9c", "Tc", "Jc", "Qd"]
    engine = start(P0, p1, "As", ["Kd", "2h", "3c"])

    apply_all(engine, [DrawDeck("p0"), DiscardCard("p0", card("Kd"))])
    apply_all(
        engine,
        [DrawDeck("p1")]
        + meld_all("p1", [["2d", "3d", "4d"], ["6c", "6h", "6s"], ["9c", "Tc", "Jc"]])
        + [DiscardCard("p1", card("Qd"))],
    )
    assert engine.state.players[1].hand == [card("2h")]

    apply_all(engine, [DrawDeck("p0")] + meld_all("p0", P0_MELDS) + [Knock("p0")])
    knocker, winner = engine.state.players

    assert engine.state.win_type == "undercut"
    assert engine.state.winner_id == "p1"
    assert engine.state.knocker_id == "p0"
    assert winner.score == 5 - dummy.UNDERCUT_PENALTY
    assert knocker.score == 10 + dummy.UNDERCUT_PENALTY


def test_lay_off_extends_an_existing_meld():
    engine = start(P0, P1, "As", ["Kd", "2h"])

    apply_all(engine, [DrawDeck("p0"), Meld("p0", parse_cards(["2s", "3s", "4s"])), DiscardCard("p0", card("Kd"))])
    assert engine.current_player().player_id == "p1"
    apply_all(engine, [DrawDeck("p1")])

    assert not engine.apply(LayOff("p1", card("9c"), "m1"))
    assert engine.last_rejection.reason == Reason.ILLEGAL_MELD_OR_RUN
    assert not engine.apply(LayOff("p1", card("5s"), "m9"))
    assert engine.last_rejection.reason == Reason.INVALID_CARD_SELECTION

    apply_all(engine, [LayOff("p1", card("5s"), "m1")])
    meld = engine.find_meld("m1")
    assert meld.cards == parse_cards(["2s", "3s", "4s", "5s"])
    assert meld.owner_id == "p0"


def test_meld_validation():
    engine = start(P0, P1, "As", ["Kd"])
    apply_all(engine, [DrawDeck("p0")])

    assert not engine.apply(Meld("p0", parse_cards(["2s", "3s", "5h"])))
    assert engine.last_rejection.reason == Reason.ILLEGAL_MELD_OR_RUN
    assert not engine.apply(Meld("p0", parse_cards(["Qd", "Kd", "Jd"])))
    assert engine.last_rejection.reason == Reason.INVALID_CARD_SELECTION


def test_draw_recycles_discards_when_stock_is_empty():
    engine = start(P0, P1, "As", [])
    state = engine.state
    state.discard_pile = engine.deck.cards + state.discard_pile
    engine.deck.cards = []
    assert_conserved(engine)

    apply_all(engine, [DrawDeck("p0")])
    assert engine.state.discard_pile == [card("As")]
    assert engine.deck.remaining() == 30
    assert_conserved(engine)


def test_draw_once_per_turn():
    engine = start(P0, P1, "As", ["Kd"])
    apply_all(engine, [DrawDeck("p0")])

    assert not engine.apply(DrawDiscard("p0"))
    assert engine.last_rejection.reason == Reason.WRONG_PHASE
    assert not engine.apply(DrawDeck("p1"))
    assert engine.last_rejection.reason == Reason.NOT_PLAYERS_TURN


def test_possible_melds_lists_sets_and_runs():
    engine = start(P0, P1, "As", [])
    found = [sorted(c.label for c in group) for group in engine.possible_melds("p0")]
    for group in P0_MELDS:
        assert sorted(group) in found
