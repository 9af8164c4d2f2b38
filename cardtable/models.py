from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict


class GameType(str, Enum):
    BLACKJACK = "blackjack"
    KANG = "kang"
    POKDENG = "pokdeng"
    DUMMY = "dummy"
    SLAVE = "slave"
    POKER = "poker"


@dataclass
class TableConfig:
    min_players: int = 2
    max_players: int = 6
    min_bet: int = 10
    max_bet: int = 100
    deck_count: int = 1
    small_blind: int = 5
    big_blind: int = 10
    starting_chips: int = 1_000


_DEFAULTS: Dict[GameType, TableConfig] = {
    GameType.BLACKJACK: TableConfig(min_players=1, max_players=7, max_bet=500, deck_count=6),
    GameType.KANG: TableConfig(min_players=2, max_players=6),
    GameType.POKDENG: TableConfig(min_players=2, max_players=9),
    GameType.DUMMY: TableConfig(min_players=2, max_players=4),
    GameType.SLAVE: TableConfig(min_players=2, max_players=4),
    GameType.POKER: TableConfig(min_players=2, max_players=9),
}


def default_config(game_type: GameType, **overrides: int) -> TableConfig:
    return replace(_DEFAULTS[GameType(game_type)], **overrides)


@dataclass(frozen=True)
class PlayerInfo:
    # Supplied by the identity collaborator at add_player time.
    player_id: str
    display_name: str
    avatar: str = ""
