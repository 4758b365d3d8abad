"""
Undo a partially-applied pick.

Rollback never raises: the caller has already failed its own operation and
must report that. A failed rollback leaves the store inconsistent, so it is
logged at CRITICAL and handed to the audit trail for an operator.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from draft.errors import RollbackFailure
from draft.store import DraftStore
from draft.types import PickRecord, SYSTEM_ACTOR

logger = logging.getLogger(__name__)


class RollbackCoordinator:
    def __init__(self, store: DraftStore, audit=None):
        self.store = store
        self.audit = audit

    def rollback_pick(
        self,
        league_id: str,
        pick_number: int,
        player_id: Optional[str],
        reset_player: bool,
        reason: str = "",
    ) -> bool:
        """Delete the (league, pick_number) row and optionally clear the player. True if fully undone."""
        ok = True

        try:
            self.store.delete_pick(league_id, pick_number)
            self.store.commit()
        except SQLAlchemyError:
            self.store.reset()
            self._report(RollbackFailure(league_id, pick_number, player_id, "delete_pick"))
            ok = False

        if reset_player and player_id:
            try:
                self.store.clear_player(player_id, pick_number)
                self.store.commit()
            except SQLAlchemyError:
                self.store.reset()
                self._report(RollbackFailure(league_id, pick_number, player_id, "reset_player"))
                ok = False

        if ok:
            logger.warning(
                "Rolled back pick %s in league %s (player %s, reset_player=%s): %s",
                pick_number, league_id, player_id, reset_player, reason or "no reason given",
            )
            if self.audit is not None:
                self.audit.record(
                    "pick_rolled_back",
                    league_id,
                    SYSTEM_ACTOR,
                    {"pickNumber": pick_number, "playerId": player_id, "resetPlayer": reset_player, "reason": reason},
                )
        return ok

    def restore_pick(self, pick: PickRecord) -> bool:
        """Put back a pick that an undo removed before its pointer rewind lost a race."""
        try:
            self.store.restore_pick(pick)
            self.store.mark_player_drafted(pick.league_id, pick.player_id, pick.captain_id, pick.pick_number)
            self.store.commit()
        except SQLAlchemyError:
            self.store.reset()
            self._report(RollbackFailure(pick.league_id, pick.pick_number, pick.player_id, "restore_pick"))
            return False
        logger.warning("Restored pick %s in league %s after a failed undo", pick.pick_number, pick.league_id)
        return True

    def _report(self, failure: RollbackFailure) -> None:
        logger.critical("CRITICAL: %s", failure, exc_info=True)
        if self.audit is not None:
            self.audit.record(
                "rollback_failed",
                failure.league_id,
                SYSTEM_ACTOR,
                {"pickNumber": failure.pick_number, "playerId": failure.player_id, "step": failure.step},
            )
