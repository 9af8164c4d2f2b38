from __future__ import annotations

import itertools
from collections import Counter
from typing import Iterable, List, Optional, Sequence, Tuple

from .cards import Card

CATEGORY_NAMES = (
    "high_card",
    "pair",
    "two_pair",
    "three_of_a_kind",
    "straight",
    "flush",
    "full_house",
    "four_of_a_kind",
    "straight_flush",
)

Score = Tuple[int, List[int]]


def evaluate_best(cards: Sequence[Card]) -> Score:
    """Return a strength tuple for the best 5 of up to 7 cards. Higher is better."""
    if len(cards) < 5:
        raise ValueError("Need at least five cards")
    best: Optional[Score] = None
    for combo in itertools.combinations(cards, 5):
        rank = evaluate_five(combo)
        if best is None or rank > best:
            best = rank
    assert best is not None
    return best


def evaluate_five(cards: Sequence[Card]) -> Score:
    values = sorted((card.high_value for card in cards), reverse=True)
    flush = is_flush(cards)
    high = straight_high(cards)
    grouped = grouped_values(cards)
    counts = [count for _, count in grouped]

    if high and flush:
        return (8, [high])
    if counts[0] == 4:
        return (7, [grouped[0][0], grouped[1][0]])
    if counts[0] == 3 and counts[1] == 2:
        return (6, [grouped[0][0], grouped[1][0]])
    if flush:
        return (5, values)
    if high:
        return (4, [high])
    if counts[0] == 3:
        return (3, [value for value, _ in grouped])
    if counts[0] == 2 and counts[1] == 2:
        return (2, [value for value, _ in grouped])
    if counts[0] == 2:
        return (1, [value for value, _ in grouped])
    return (0, values)


def describe_rank(score: Score) -> str:
    return CATEGORY_NAMES[score[0]]


def grouped_values(cards: Iterable[Card]) -> List[Tuple[int, int]]:
    """(value, count) pairs, largest group first, then highest value."""
    counts = Counter(card.high_value for card in cards)
    return sorted(counts.items(), key=lambda item: (item[1], item[0]), reverse=True)


def is_flush(cards: Sequence[Card]) -> bool:
    return len({card.suit for card in cards}) == 1


def straight_high(cards: Iterable[Card]) -> Optional[int]:
    """High card of a five-long straight; the wheel A-2-3-4-5 counts as 5."""
    values = {card.high_value for card in cards}
    if 14 in values:  # Ace low
        values.add(1)
    ordered = sorted(values, reverse=True)
    for idx in range(len(ordered) - 4):
        window = ordered[idx : idx + 5]
        if window[0] - window[-1] == 4:
            return window[0]
    return None
