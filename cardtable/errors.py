from __future__ import annotations

from enum import Enum


class Reason(str, Enum):
    WRONG_PHASE = "WRONG_PHASE"
    NOT_PLAYERS_TURN = "NOT_PLAYERS_TURN"
    INVALID_CARD_SELECTION = "INVALID_CARD_SELECTION"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    ILLEGAL_MELD_OR_RUN = "ILLEGAL_MELD_OR_RUN"
    THRESHOLD_NOT_MET = "THRESHOLD_NOT_MET"
    UNKNOWN_PLAYER = "UNKNOWN_PLAYER"


class RuleViolation(Exception):
    """An expected rule violation. Engines convert it to a falsy result."""

    def __init__(self, reason: Reason, msg: str) -> None:
        super().__init__(msg)
        self.reason = reason
        self.msg = msg

    def __repr__(self) -> str:
        return f"RuleViolation({self.reason.value}, {self.msg!r})"


class SnapshotError(ValueError):
    """Snapshot is structurally invalid or breaks card conservation."""


class IntentError(ValueError):
    """Intent payload does not match any known variant for the game."""
