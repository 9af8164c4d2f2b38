"""Host-authoritative rule engines for small-table card games."""

from .cards import RANKS, SUITS, Card, Deck, full_deck, parse_cards, parse_label
from .engine import TableEngine
from .errors import IntentError, Reason, RuleViolation, SnapshotError
from .evaluator import describe_rank, evaluate_best
from .games import ENGINES, create_engine
from .intents import Intent, parse_intent
from .models import GameType, PlayerInfo, TableConfig, default_config

__all__ = [
    "Card",
    "Deck",
    "RANKS",
    "SUITS",
    "full_deck",
    "parse_cards",
    "parse_label",
    "TableEngine",
    "IntentError",
    "Reason",
    "RuleViolation",
    "SnapshotError",
    "describe_rank",
    "evaluate_best",
    "ENGINES",
    "create_engine",
    "Intent",
    "parse_intent",
    "GameType",
    "PlayerInfo",
    "TableConfig",
    "default_config",
]
