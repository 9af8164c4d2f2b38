from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

SUITS = ("spades", "hearts", "diamonds", "clubs")
RANKS = tuple(range(1, 14))

RANK_LABELS = "A23456789TJQK"
SUIT_LABELS = {"spades": "s", "hearts": "h", "diamonds": "d", "clubs": "c"}
_SUIT_BY_LABEL = {label: suit for suit, label in SUIT_LABELS.items()}


@dataclass(frozen=True)
class Card:
    suit: str
    rank: int

    def __post_init__(self) -> None:
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")
        if isinstance(self.rank, bool) or self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")

    @property
    def label(self) -> str:
        return f"{RANK_LABELS[self.rank - 1]}{SUIT_LABELS[self.suit]}"

    @property
    def high_value(self) -> int:
        # Ace high (14) for showdown comparisons.
        return 14 if self.rank == 1 else self.rank

    def __str__(self) -> str:
        return self.label


def full_deck(deck_count: int = 1) -> List[Card]:
    return [Card(suit, rank) for _ in range(deck_count) for suit in SUITS for rank in RANKS]


def parse_label(label: str) -> Card:
    if not isinstance(label, str) or len(label) != 2:
        raise ValueError(f"Invalid card label: {label!r}")
    rank_char, suit_char = label[0].upper(), label[1].lower()
    if rank_char not in RANK_LABELS:
        raise ValueError(f"Invalid rank: {label[0]}")
    if suit_char not in _SUIT_BY_LABEL:
        raise ValueError(f"Invalid suit: {label[1]}")
    return Card(_SUIT_BY_LABEL[suit_char], RANK_LABELS.index(rank_char) + 1)


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]


def cards_to_labels(cards: Iterable[Card]) -> List[str]:
    return [card.label for card in cards]


class Deck:
    """Shuffled draw source built from `deck_count` standard 52-card decks.

    Index 0 is the top of the deck. Only the undealt sequence is tracked;
    dealt cards live wherever the owning engine put them.
    """

    def __init__(self, deck_count: int = 1, rng: Optional[random.Random] = None) -> None:
        self.deck_count = deck_count
        self.rng = rng or random.Random()
        self.cards: List[Card] = full_deck(deck_count)

    def shuffle(self) -> None:
        self.rng.shuffle(self.cards)

    def deal(self) -> Optional[Card]:
        if not self.cards:
            return None
        return self.cards.pop(0)

    def deal_many(self, count: int) -> List[Card]:
        dealt = self.cards[:count]
        del self.cards[:count]
        return dealt

    def remaining(self) -> int:
        return len(self.cards)

    def reload(self, cards: Iterable[Card], shuffle: bool = True) -> None:
        self.cards = list(cards)
        if shuffle:
            self.shuffle()

    def serialize(self) -> List[str]:
        return cards_to_labels(self.cards)

    @classmethod
    def deserialize(
        cls,
        labels: Sequence[str],
        deck_count: int = 1,
        rng: Optional[random.Random] = None,
    ) -> "Deck":
        deck = cls(deck_count, rng)
        deck.cards = parse_cards(labels)
        return deck
