"""
Draft error taxonomy.

Only ValidationRejection and CommitFailure ever reach the proposing actor.
RaceLost is absorbed by re-validation. RollbackFailure and AuditFailure are
built for the operator log and are never raised to a caller.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class RejectionReason(str, Enum):
    LEAGUE_NOT_FOUND = "league_not_found"
    LEAGUE_NOT_ACTIVE = "league_not_active"
    NOT_YOUR_TURN = "not_your_turn"
    CAPTAIN_NOT_FOUND = "captain_not_found"
    PLAYER_NOT_FOUND = "player_not_found"
    ALREADY_DRAFTED = "already_drafted"
    CAPTAIN_PLAYER = "captain_player"
    TIME_BARRED = "time_barred"
    STALE_TURN = "stale_turn"
    INVALID_TRANSITION = "invalid_transition"
    NOTHING_TO_UNDO = "nothing_to_undo"
    ALREADY_QUEUED = "already_queued"
    INVALID_QUEUE = "invalid_queue"


NOT_FOUND_REASONS = frozenset(
    {
        RejectionReason.LEAGUE_NOT_FOUND,
        RejectionReason.CAPTAIN_NOT_FOUND,
        RejectionReason.PLAYER_NOT_FOUND,
    }
)


class DraftError(Exception):
    pass


class ValidationRejection(DraftError):
    def __init__(self, reason: RejectionReason, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason.value.replace("_", " ").capitalize()
        super().__init__(self.message)


class RaceLost(DraftError):
    """Another actor moved the league before our conditional write landed."""

    def __init__(self, league_id: str, expected_pick_index: int, detail: str = ""):
        self.league_id = league_id
        self.expected_pick_index = expected_pick_index
        self.detail = detail
        super().__init__(
            f"league {league_id} moved past pick index {expected_pick_index}"
            + (f" ({detail})" if detail else "")
        )


class CommitFailure(DraftError):
    """Unexpected store error while recording a pick (after rollback was attempted)."""

    def __init__(self, league_id: str, pick_number: int, step: str):
        self.league_id = league_id
        self.pick_number = pick_number
        self.step = step
        super().__init__(f"failed to commit pick {pick_number} in league {league_id} at step '{step}'")


class RollbackFailure(DraftError):
    def __init__(self, league_id: str, pick_number: int, player_id: Optional[str], step: str):
        self.league_id = league_id
        self.pick_number = pick_number
        self.player_id = player_id
        self.step = step
        super().__init__(
            f"rollback of pick {pick_number} in league {league_id} failed at '{step}' (player {player_id})"
        )


class AuditFailure(DraftError):
    pass
