import pytest

from cardtable.models import GameType
from cardtable.intents import KeepAll, PlaceBet
from mesh.__main__ import _config_overrides, handle_intent, parse_args, seat_arrivals

from .helpers import build_table


def test_host_arguments_map_onto_config():
    args = parse_args(["--peer-id", "ana", "host", "--game", "kang", "--min-bet", "20", "--seed", "4"])

    assert (args.command, args.game, args.port, args.seed) == ("host", "kang", 8765, 4)
    assert _config_overrides(args) == {"min_bet": 20}


def test_join_requires_a_known_game():
    args = parse_args(["--peer-id", "bo", "join", "--game", "slave"])
    assert args.url == "ws://127.0.0.1:8765"
    assert _config_overrides(args) == {}

    with pytest.raises(SystemExit):
        parse_args(["--peer-id", "bo", "join", "--game", "bridge"])


def test_typed_intent_defaults_to_local_player():
    hub, host, (peer,) = build_table()
    assert host.start_round()

    assert handle_intent(peer, '{"type": "place_bet", "amount": 20}')
    assert host.engine.state.players[1].bet == 20
    assert peer.state()["phase"] == "discarding"


def test_bad_lines_are_reported(capsys):
    hub, host, (peer,) = build_table(game_type=GameType.SLAVE)

    assert handle_intent(peer, "deal") is False
    assert handle_intent(peer, '{"type": "fold"}') is False
    out = capsys.readouterr().out
    assert "Unknown command" in out
    assert "Bad intent" in out


def test_peers_arriving_between_rounds_are_seated_at_once():
    hub, host, (peer,) = build_table()
    waiting = seat_arrivals(host, host.transport)

    hub.connect("early", "Early")
    assert host.engine.find_player("early").display_name == "Early"
    assert waiting == set()


def test_peers_arriving_mid_round_wait_for_settlement(capsys):
    hub, host, (peer,) = build_table()
    waiting = seat_arrivals(host, host.transport)
    assert host.start_round()

    hub.connect("late", "Late")
    assert waiting == {"late"}
    assert host.engine.find_player("late") is None
    assert "late joined mid-round" in capsys.readouterr().out

    peer.submit(PlaceBet("peer", 20))
    host.submit(KeepAll("host"))
    assert waiting == {"late"}
    peer.submit(KeepAll("peer"))

    assert host.engine.phase.value == "settling"
    assert host.engine.find_player("late") is not None
    assert waiting == set()
    assert peer.engine.get_state() == host.engine.get_state()
