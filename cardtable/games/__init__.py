"""Rule engines for every supported game, keyed by GameType."""

from typing import Dict, Optional, Type

from ..engine import TableEngine
from ..models import GameType, TableConfig
from .blackjack import BlackjackEngine
from .dummy import DummyEngine
from .kang import KangEngine
from .pokdeng import PokDengEngine
from .poker import PokerEngine
from .slave import SlaveEngine

ENGINES: Dict[GameType, Type[TableEngine]] = {
    GameType.BLACKJACK: BlackjackEngine,
    GameType.KANG: KangEngine,
    GameType.POKDENG: PokDengEngine,
    GameType.DUMMY: DummyEngine,
    GameType.SLAVE: SlaveEngine,
    GameType.POKER: PokerEngine,
}


def create_engine(game_type: GameType, config: Optional[TableConfig] = None, seed: Optional[int] = None) -> TableEngine:
    return ENGINES[GameType(game_type)](config, seed)


__all__ = [
    "ENGINES",
    "create_engine",
    "BlackjackEngine",
    "DummyEngine",
    "KangEngine",
    "PokDengEngine",
    "PokerEngine",
    "SlaveEngine",
]
