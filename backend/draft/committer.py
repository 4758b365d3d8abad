"""
Turn committer: the only code that moves a league's current_pick_index.

Every pointer write is conditioned on the index (and status) that the caller
validated against. Zero matched rows means another actor got there first:
that is reported as RaceLost and the caller re-reads state instead of
retrying.

A pick is recorded in three separately committed steps:
  1. insert the draft_picks row for (league, current_pick_index)
  2. mark the player drafted, only if still undrafted
  3. advance the league pointer (or complete the draft)
If a later step fails, earlier ones are undone by the RollbackCoordinator.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from draft.errors import CommitFailure, RaceLost, RejectionReason, ValidationRejection
from draft.order import is_final_slot
from draft.rollback import RollbackCoordinator
from draft.store import DraftStore
from draft.types import CommitResult, LeagueSnapshot, LeagueStatus, PickRecord

logger = logging.getLogger(__name__)


class TurnCommitter:
    def __init__(self, store: DraftStore, rollback: RollbackCoordinator, auto_enable_after_timeouts: int = 2):
        self.store = store
        self.rollback = rollback
        self.auto_enable_after_timeouts = auto_enable_after_timeouts

    # -------------------------
    # Picks
    # -------------------------

    def commit_pick(
        self,
        league: LeagueSnapshot,
        captain_id: str,
        player_id: str,
        *,
        auto: bool,
        now: datetime,
    ) -> CommitResult:
        n = league.current_pick_index

        # 1) pick row; the unique (league, pick_number) / (league, player) keys catch races
        try:
            self.store.insert_pick(league.id, n, captain_id, player_id, auto, now)
            self.store.commit()
        except IntegrityError:
            self.store.reset()
            raise RaceLost(league.id, n, "pick slot or player already recorded")
        except SQLAlchemyError as exc:
            self.store.reset()
            logger.exception("Failed to insert pick %s in league %s", n, league.id)
            raise CommitFailure(league.id, n, "insert_pick") from exc

        # 2) player
        try:
            updated = self.store.mark_player_drafted(league.id, player_id, captain_id, n)
            self.store.commit()
        except SQLAlchemyError as exc:
            self.store.reset()
            logger.exception("Failed to update player %s, rolling back pick %s", player_id, n)
            self.rollback.rollback_pick(league.id, n, player_id, reset_player=False, reason="player update failed")
            raise CommitFailure(league.id, n, "mark_player_drafted") from exc

        if updated == 0:
            self.rollback.rollback_pick(league.id, n, player_id, reset_player=False, reason="player taken concurrently")
            raise RaceLost(league.id, n, "player drafted concurrently")

        # 3) pointer
        try:
            remaining = self.store.count_available(league.id, league.captain_player_ids)
            is_complete = remaining <= 0 or is_final_slot(n, len(league.captains), league.draft_rounds)
            matched = self._advance(league, n, is_complete, now)
        except SQLAlchemyError as exc:
            self.store.reset()
            logger.exception("Failed to advance league %s past pick %s, rolling back", league.id, n)
            self.rollback.rollback_pick(league.id, n, player_id, reset_player=True, reason="league advance failed")
            raise CommitFailure(league.id, n, "advance_league") from exc

        if matched == 0:
            logger.info("Optimistic lock failed for league %s at pick %s", league.id, n)
            self.rollback.rollback_pick(league.id, n, player_id, reset_player=True, reason="pointer moved")
            raise RaceLost(league.id, n, "current_pick_index changed since read")

        self._after_pick(captain_id, player_id, auto)
        return CommitResult(pick_number=n, captain_id=captain_id, player_id=player_id, is_complete=is_complete)

    def skip_turn(self, league: LeagueSnapshot, captain_id: str, now: datetime) -> CommitResult:
        """Advance past the current slot without recording a pick."""
        n = league.current_pick_index
        try:
            remaining = self.store.count_available(league.id, league.captain_player_ids)
            is_complete = remaining <= 0 or is_final_slot(n, len(league.captains), league.draft_rounds)
            matched = self._advance(league, n, is_complete, now)
        except SQLAlchemyError as exc:
            self.store.reset()
            logger.exception("Failed to skip pick %s in league %s", n, league.id)
            raise CommitFailure(league.id, n, "skip_turn") from exc

        if matched == 0:
            raise RaceLost(league.id, n, "current_pick_index changed since read")

        self._bump_timeouts(captain_id)
        return CommitResult(pick_number=n, captain_id=captain_id, player_id=None, is_complete=is_complete)

    def _advance(self, league: LeagueSnapshot, n: int, is_complete: bool, now: datetime) -> int:
        # A completed draft keeps its final index and stops the clock.
        if is_complete:
            matched = self.store.advance_league(league.id, n, n, LeagueStatus.COMPLETED, None)
        else:
            matched = self.store.advance_league(league.id, n, n + 1, LeagueStatus.IN_PROGRESS, now)
        self.store.commit()
        return matched

    def _after_pick(self, captain_id: str, player_id: str, auto: bool) -> None:
        try:
            self.store.purge_from_queues(player_id)
            self.store.commit()
        except SQLAlchemyError:
            self.store.reset()
            logger.error("Queue cleanup failed for player %s", player_id, exc_info=True)

        if auto:
            self._bump_timeouts(captain_id)
            return
        try:
            self.store.reset_timeout_counter(captain_id)
            self.store.commit()
        except SQLAlchemyError:
            self.store.reset()
            logger.error("Could not reset timeout counter for captain %s", captain_id, exc_info=True)

    def _bump_timeouts(self, captain_id: str) -> None:
        try:
            self.store.bump_timeout_counter(captain_id, self.auto_enable_after_timeouts)
            self.store.commit()
        except SQLAlchemyError:
            self.store.reset()
            logger.error("Could not bump timeout counter for captain %s", captain_id, exc_info=True)

    # -------------------------
    # Manager overrides
    # -------------------------

    def undo_last(self, league: LeagueSnapshot, now: datetime) -> tuple[int, Optional[PickRecord]]:
        """
        Reopen the previous slot. Returns (reopened pick index, removed pick or None).

        The pick row and player are cleared in one transaction, then the pointer
        is rewound conditionally. If the rewind loses a race, the pick is put back.
        """
        if league.status not in (LeagueStatus.IN_PROGRESS, LeagueStatus.PAUSED, LeagueStatus.COMPLETED):
            raise ValidationRejection(
                RejectionReason.INVALID_TRANSITION,
                f"Draft must be in progress, paused or completed to undo (status: {league.status.value})",
            )

        index = league.current_pick_index
        # A completed draft parks its pointer on the final slot.
        target = index if league.status == LeagueStatus.COMPLETED else index - 1
        if target < 0:
            raise ValidationRejection(RejectionReason.NOTHING_TO_UNDO, "No picks to undo")

        try:
            pick = self.store.get_pick(league.id, target)
            if pick is not None:
                self.store.delete_pick(league.id, target)
                self.store.clear_player(pick.player_id, target)
            self.store.commit()
        except SQLAlchemyError as exc:
            self.store.reset()
            logger.exception("Failed to remove pick %s in league %s", target, league.id)
            raise CommitFailure(league.id, target, "undo_remove_pick") from exc

        if league.status == LeagueStatus.PAUSED:
            new_status, started_at = LeagueStatus.PAUSED, None
        else:
            new_status, started_at = LeagueStatus.IN_PROGRESS, now

        try:
            matched = self.store.rewind_league(league.id, index, league.status, target, new_status, started_at)
            self.store.commit()
        except SQLAlchemyError as exc:
            self.store.reset()
            logger.exception("Failed to rewind league %s to pick %s, restoring", league.id, target)
            if pick is not None:
                self.rollback.restore_pick(pick)
            raise CommitFailure(league.id, target, "undo_rewind") from exc

        if matched == 0:
            if pick is not None:
                self.rollback.restore_pick(pick)
            raise RaceLost(league.id, index, "league moved during undo")

        return target, pick

    def reset_draft(self, league: LeagueSnapshot) -> int:
        """Wipe every pick of a paused draft and send it back to not_started. Returns picks removed."""
        if league.status != LeagueStatus.PAUSED:
            raise ValidationRejection(
                RejectionReason.INVALID_TRANSITION,
                f"Draft must be paused to restart (status: {league.status.value})",
            )

        try:
            removed = self.store.delete_all_picks(league.id)
            self.store.clear_all_players(league.id)
            matched = self.store.rewind_league(
                league.id,
                league.current_pick_index,
                LeagueStatus.PAUSED,
                0,
                LeagueStatus.NOT_STARTED,
                None,
            )
            if matched == 0:
                self.store.reset()
                raise RaceLost(league.id, league.current_pick_index, "league moved during restart")
            self.store.commit()
        except SQLAlchemyError as exc:
            self.store.reset()
            logger.exception("Failed to restart draft for league %s", league.id)
            raise CommitFailure(league.id, league.current_pick_index, "restart") from exc

        return removed
