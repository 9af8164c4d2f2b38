from __future__ import annotations

from collections import Counter
from typing import Iterable, Tuple

from .cards import Card, full_deck


def conservation_gap(cards: Iterable[Card], deck_count: int) -> Tuple[Counter, Counter]:
    """Return (missing, extra) against `deck_count` full decks."""
    seen = Counter(cards)
    expected = Counter(full_deck(deck_count))
    return expected - seen, seen - expected


def is_conserved(cards: Iterable[Card], deck_count: int) -> bool:
    missing, extra = conservation_gap(cards, deck_count)
    return not missing and not extra


def describe_gap(missing: Counter, extra: Counter) -> str:
    parts = []
    if missing:
        parts.append("missing " + ",".join(sorted(card.label for card in missing.elements())))
    if extra:
        parts.append("duplicated " + ",".join(sorted(card.label for card in extra.elements())))
    return "; ".join(parts) or "conserved"
