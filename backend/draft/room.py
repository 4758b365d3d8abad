"""
DraftRoom: the boundary the API and the scheduler talk to.

    propose_pick  -> validate -> commit (-> rollback) -> audit
    on_timeout_tick -> arbiter -> validate -> commit/skip/pause -> audit
    get_current_turn

plus the manager overrides (start/pause/resume/undo/restart) and the
captain settings (auto-pick flag, draft queue). Caller identity, the clock
and every policy are passed in; nothing is read from globals.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from draft.arbiter import TimeoutArbiter, deadline_for
from draft.audit import AuditRecorder
from draft.committer import TurnCommitter
from draft.errors import CommitFailure, RaceLost, RejectionReason, ValidationRejection
from draft.order import round_number
from draft.policies import AutoPickPolicy, queue_then_rank
from draft.rollback import RollbackCoordinator
from draft.store import DraftStore
from draft.types import (
    Actor,
    ActorType,
    ArbiterState,
    LeagueSnapshot,
    LeagueStatus,
    PickOutcome,
    SYSTEM_ACTOR,
    TickOutcome,
    TimeoutPolicy,
    Turn,
    is_valid_transition,
)
from draft.validator import expected_captain_id, validate_pick

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DraftRoom:
    def __init__(
        self,
        db: Session,
        audit: AuditRecorder,
        *,
        timeout_policy: TimeoutPolicy = TimeoutPolicy.SKIP,
        auto_pick_policy: AutoPickPolicy = queue_then_rank,
        grace_seconds: int = 0,
        auto_enable_after_timeouts: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = DraftStore(db)
        self.audit = audit
        self.clock = clock
        self.rollback = RollbackCoordinator(self.store, audit)
        self.committer = TurnCommitter(self.store, self.rollback, auto_enable_after_timeouts)
        self.arbiter = TimeoutArbiter(self.store, timeout_policy, auto_pick_policy, grace_seconds)

    # -------------------------
    # Boundary operations
    # -------------------------

    def propose_pick(
        self,
        league_id: str,
        captain_id: str,
        player_id: str,
        actor: Actor,
        *,
        expected_pick_index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> PickOutcome:
        now = now or self.clock()
        manual = actor.type != ActorType.SYSTEM
        league = self.store.load_league(league_id)

        try:
            self._validate(league, captain_id, player_id, manual=manual, expected_pick_index=expected_pick_index)
        except ValidationRejection as rej:
            return self._rejected(league_id, captain_id, player_id, actor, rej, league, now)

        try:
            result = self.committer.commit_pick(league, captain_id, player_id, auto=not manual, now=now)
        except RaceLost as race:
            return self._after_race(race, captain_id, player_id, actor, now)
        except CommitFailure as failure:
            self.audit.record(
                "pick_failed",
                league_id,
                actor,
                {"pickNumber": failure.pick_number, "playerId": player_id, "captainId": captain_id, "step": failure.step},
                created_at=now,
            )
            raise

        logger.info("Pick %s in league %s: captain %s took player %s", result.pick_number, league_id, captain_id, player_id)
        self.audit.record(
            "pick_made",
            league_id,
            actor,
            {
                "pickNumber": result.pick_number,
                "playerId": player_id,
                "captainId": captain_id,
                "isComplete": result.is_complete,
            },
            created_at=now,
        )
        return PickOutcome(
            accepted=True,
            pick_number=result.pick_number,
            is_complete=result.is_complete,
            turn=self._turn(self.store.load_league(league_id), now),
        )

    def on_timeout_tick(
        self,
        league_id: str,
        now: Optional[datetime] = None,
        expected_pick_index: Optional[int] = None,
    ) -> TickOutcome:
        now = now or self.clock()
        league = self.store.load_league(league_id)

        state = self.arbiter.evaluate(league, now)
        if state != ArbiterState.EXPIRING:
            return TickOutcome(state=state)

        if expected_pick_index is not None and expected_pick_index != league.current_pick_index:
            # Someone already resolved the turn this tick was scheduled for.
            return TickOutcome(state=ArbiterState.ON_THE_CLOCK, reason=RejectionReason.STALE_TURN.value)

        decision = self.arbiter.decide(league)
        if decision is None:
            return TickOutcome(state=ArbiterState.WAITING)

        n = league.current_pick_index
        captain = decision.captain

        if decision.action == TimeoutPolicy.PAUSE.value:
            return self._timeout_pause(league, captain.id, now)

        if decision.action == TimeoutPolicy.SKIP.value:
            try:
                result = self.committer.skip_turn(league, captain.id, now)
            except RaceLost:
                self.audit.record(
                    "pick_race_lost", league_id, SYSTEM_ACTOR, {"pickNumber": n, "captainId": captain.id}, created_at=now
                )
                return TickOutcome(state=ArbiterState.AUTO_PICKING, reason=RejectionReason.STALE_TURN.value)
            logger.info("Skipped pick %s for captain %s in league %s", n, captain.name, league_id)
            self.audit.record(
                "turn_skipped",
                league_id,
                SYSTEM_ACTOR,
                {"pickNumber": n, "captainId": captain.id, "captainName": captain.name, "isComplete": result.is_complete},
                created_at=now,
            )
            return TickOutcome(state=ArbiterState.AUTO_PICKING, action="skip", pick_number=n)

        player = decision.player
        try:
            self._validate(league, captain.id, player.id, manual=False)
        except ValidationRejection as rej:
            self.audit.record(
                "pick_rejected",
                league_id,
                SYSTEM_ACTOR,
                {"pickNumber": n, "playerId": player.id, "captainId": captain.id, "reason": rej.reason.value},
                created_at=now,
            )
            return TickOutcome(state=ArbiterState.AUTO_PICKING, reason=rej.reason.value)

        try:
            result = self.committer.commit_pick(league, captain.id, player.id, auto=True, now=now)
        except RaceLost:
            logger.info("Auto-pick for league %s lost the race at pick %s", league_id, n)
            self.audit.record(
                "pick_race_lost",
                league_id,
                SYSTEM_ACTOR,
                {"pickNumber": n, "playerId": player.id, "captainId": captain.id},
                created_at=now,
            )
            return TickOutcome(state=ArbiterState.AUTO_PICKING, reason=RejectionReason.STALE_TURN.value)
        except CommitFailure as failure:
            self.audit.record(
                "pick_failed",
                league_id,
                SYSTEM_ACTOR,
                {"pickNumber": n, "playerId": player.id, "captainId": captain.id, "step": failure.step},
                created_at=now,
            )
            raise

        logger.info("Auto-picked %s for %s in league %s (pick %s)", player.name, captain.name, league_id, n)
        self.audit.record(
            "auto_pick_made",
            league_id,
            SYSTEM_ACTOR,
            {
                "pickNumber": n,
                "playerId": player.id,
                "playerName": player.name,
                "captainId": captain.id,
                "captainName": captain.name,
                "isComplete": result.is_complete,
                "fromQueue": decision.from_queue,
                "timerExpiry": not captain.auto_pick_enabled,
            },
            created_at=now,
        )
        return TickOutcome(state=ArbiterState.AUTO_PICKING, action="auto_pick", pick_number=n, player_id=player.id)

    def get_current_turn(self, league_id: str, now: Optional[datetime] = None) -> Turn:
        league = self.store.load_league(league_id)
        if league is None:
            raise ValidationRejection(RejectionReason.LEAGUE_NOT_FOUND, "League not found")
        return self._turn(league, now or self.clock())

    # -------------------------
    # Manager overrides
    # -------------------------

    def start_draft(self, league_id: str, actor: Actor, now: Optional[datetime] = None) -> Turn:
        now = now or self.clock()
        league = self._require_league(league_id)
        self._require_transition(league, LeagueStatus.IN_PROGRESS)
        if league.status != LeagueStatus.NOT_STARTED:
            raise ValidationRejection(RejectionReason.INVALID_TRANSITION, "Draft can only be started once")
        if not league.captains:
            raise ValidationRejection(RejectionReason.INVALID_TRANSITION, "League has no captains")
        if self.store.count_available(league_id, league.captain_player_ids) <= 0:
            raise ValidationRejection(RejectionReason.INVALID_TRANSITION, "League has no draftable players")

        self._set_status(league, LeagueStatus.NOT_STARTED, LeagueStatus.IN_PROGRESS, now)
        self.audit.record("draft_started", league_id, actor, {"captainCount": len(league.captains)}, created_at=now)
        return self.get_current_turn(league_id, now)

    def pause_draft(self, league_id: str, actor: Actor, now: Optional[datetime] = None) -> Turn:
        now = now or self.clock()
        league = self._require_league(league_id)
        self._require_transition(league, LeagueStatus.PAUSED)
        self._set_status(league, LeagueStatus.IN_PROGRESS, LeagueStatus.PAUSED, None)
        self.audit.record("draft_paused", league_id, actor, {"pickNumber": league.current_pick_index}, created_at=now)
        return self.get_current_turn(league_id, now)

    def resume_draft(self, league_id: str, actor: Actor, now: Optional[datetime] = None) -> Turn:
        now = now or self.clock()
        league = self._require_league(league_id)
        if league.status != LeagueStatus.PAUSED:
            raise ValidationRejection(
                RejectionReason.INVALID_TRANSITION,
                f"Draft is not paused (status: {league.status.value})",
            )
        self._set_status(league, LeagueStatus.PAUSED, LeagueStatus.IN_PROGRESS, now)
        self.audit.record("draft_resumed", league_id, actor, {"pickNumber": league.current_pick_index}, created_at=now)
        return self.get_current_turn(league_id, now)

    def undo_last_pick(self, league_id: str, actor: Actor, now: Optional[datetime] = None) -> Dict:
        now = now or self.clock()
        league = self._require_league(league_id)
        try:
            reopened, pick = self.committer.undo_last(league, now)
        except RaceLost:
            raise ValidationRejection(RejectionReason.STALE_TURN, "Draft changed during undo. Please try again.")

        self.audit.record(
            "pick_undone",
            league_id,
            actor,
            {
                "pickNumber": reopened,
                "playerId": pick.player_id if pick else None,
                "captainId": pick.captain_id if pick else None,
            },
            created_at=now,
        )
        return {
            "undone_pick": reopened,
            "player_id": pick.player_id if pick else None,
            "turn": self.get_current_turn(league_id, now),
        }

    def restart_draft(self, league_id: str, actor: Actor) -> int:
        league = self._require_league(league_id)
        try:
            removed = self.committer.reset_draft(league)
        except RaceLost:
            raise ValidationRejection(RejectionReason.STALE_TURN, "Draft changed during restart. Please try again.")
        self.audit.record(
            "draft_restarted", league_id, actor, {"picksRemoved": removed},
            created_at=self.clock(),
        )
        return removed

    # -------------------------
    # Captain settings
    # -------------------------

    def set_auto_pick(self, league_id: str, captain_id: str, enabled: bool, actor: Actor) -> bool:
        try:
            updated = self.store.set_auto_pick(league_id, captain_id, enabled)
            self.store.commit()
        except SQLAlchemyError:
            self.store.reset()
            raise
        if updated == 0:
            raise ValidationRejection(RejectionReason.CAPTAIN_NOT_FOUND, "Captain not found in this league")
        self.audit.record(
            "auto_pick_toggled", league_id, actor, {"captainId": captain_id, "enabled": bool(enabled)},
            created_at=self.clock(),
        )
        return bool(enabled)

    def get_queue(self, league_id: str, captain_id: str) -> List[str]:
        self._require_captain(league_id, captain_id)
        return self.store.captain_queue(captain_id)

    def queue_add(self, league_id: str, captain_id: str, player_id: str, actor: Actor) -> int:
        league = self._require_captain(league_id, captain_id)
        player = self.store.get_player(player_id)
        if player is None or player.league_id != league.id:
            raise ValidationRejection(RejectionReason.PLAYER_NOT_FOUND, "Player not found in this league")
        if player.is_drafted:
            raise ValidationRejection(RejectionReason.ALREADY_DRAFTED, "Player already drafted")
        if player.id in league.captain_player_ids:
            raise ValidationRejection(RejectionReason.CAPTAIN_PLAYER, "Cannot queue a captain")

        try:
            position = self.store.queue_append(captain_id, player_id)
            self.store.commit()
        except IntegrityError:
            self.store.reset()
            raise ValidationRejection(RejectionReason.ALREADY_QUEUED, "Player is already in queue")

        self.audit.record(
            "draft_queue_add", league_id, actor, {"captainId": captain_id, "playerId": player_id},
            created_at=self.clock(),
        )
        return position

    def queue_remove(self, league_id: str, captain_id: str, player_id: str, actor: Actor) -> None:
        self._require_captain(league_id, captain_id)
        removed = self.store.queue_remove(captain_id, player_id)
        self.store.commit()
        if removed == 0:
            raise ValidationRejection(RejectionReason.PLAYER_NOT_FOUND, "Player is not in queue")
        self.audit.record(
            "draft_queue_remove", league_id, actor, {"captainId": captain_id, "playerId": player_id},
            created_at=self.clock(),
        )

    def queue_reorder(self, league_id: str, captain_id: str, player_ids: List[str], actor: Actor) -> List[str]:
        self._require_captain(league_id, captain_id)
        current = self.store.captain_queue(captain_id)
        if len(player_ids) != len(set(player_ids)) or sorted(player_ids) != sorted(current):
            raise ValidationRejection(RejectionReason.INVALID_QUEUE, "New order must contain exactly the queued players")
        self.store.queue_set_positions(captain_id, player_ids)
        self.store.commit()
        self.audit.record(
            "draft_queue_reorder", league_id, actor, {"captainId": captain_id, "playerIds": player_ids},
            created_at=self.clock(),
        )
        return self.store.captain_queue(captain_id)

    # -------------------------
    # Helpers
    # -------------------------

    def _validate(
        self,
        league: Optional[LeagueSnapshot],
        captain_id: str,
        player_id: str,
        *,
        manual: bool,
        expected_pick_index: Optional[int] = None,
    ) -> None:
        player = self.store.get_player(player_id)
        slot_pick = None
        if league is not None and league.status == LeagueStatus.IN_PROGRESS:
            slot_pick = self.store.get_pick(league.id, league.current_pick_index)
        validate_pick(
            league,
            captain_id,
            player,
            manual=manual,
            slot_pick=slot_pick,
            expected_pick_index=expected_pick_index,
        )

    def _rejected(self, league_id, captain_id, player_id, actor, rej, league, now) -> PickOutcome:
        logger.info("Pick rejected in league %s (%s): %s", league_id, rej.reason.value, rej.message)
        # audit_logs.league_id is a foreign key, so an unknown id only survives in metadata
        self.audit.record(
            "pick_rejected",
            league_id if league is not None else None,
            actor,
            {
                "leagueId": league_id,
                "pickNumber": league.current_pick_index if league is not None else None,
                "playerId": player_id,
                "captainId": captain_id,
                "reason": rej.reason.value,
            },
            created_at=now,
        )
        return PickOutcome(
            accepted=False,
            reason=rej.reason.value,
            message=rej.message,
            turn=self._turn(league, now) if league is not None else None,
        )

    def _after_race(self, race: RaceLost, captain_id, player_id, actor, now) -> PickOutcome:
        """Re-read and re-validate once; never commit a second time in the same call."""
        logger.info("Race lost in league %s at pick %s: %s", race.league_id, race.expected_pick_index, race.detail)
        self.audit.record(
            "pick_race_lost",
            race.league_id,
            actor,
            {"pickNumber": race.expected_pick_index, "playerId": player_id, "captainId": captain_id},
            created_at=now,
        )

        fresh = self.store.load_league(race.league_id)
        try:
            self._validate(fresh, captain_id, player_id, manual=actor.type != ActorType.SYSTEM)
        except ValidationRejection as rej:
            reason, message = rej.reason, rej.message
        else:
            reason = RejectionReason.STALE_TURN
            message = "Draft state changed concurrently. Please try again."

        return PickOutcome(
            accepted=False,
            reason=reason.value,
            message=message,
            turn=self._turn(fresh, now) if fresh is not None else None,
        )

    def _timeout_pause(self, league: LeagueSnapshot, captain_id: str, now: datetime) -> TickOutcome:
        try:
            matched = self.store.pause_at(league.id, league.current_pick_index)
            self.store.commit()
        except SQLAlchemyError as exc:
            self.store.reset()
            raise CommitFailure(league.id, league.current_pick_index, "timeout_pause") from exc
        if matched == 0:
            return TickOutcome(state=ArbiterState.AUTO_PICKING, reason=RejectionReason.STALE_TURN.value)

        logger.info("Paused league %s after pick %s timed out", league.id, league.current_pick_index)
        self.audit.record(
            "draft_timeout_paused",
            league.id,
            SYSTEM_ACTOR,
            {"pickNumber": league.current_pick_index, "captainId": captain_id},
            created_at=now,
        )
        return TickOutcome(state=ArbiterState.AUTO_PICKING, action="pause", pick_number=league.current_pick_index)

    def _turn(self, league: LeagueSnapshot, now: datetime) -> Turn:
        deadline = deadline_for(league, self.arbiter.grace_seconds)
        on_clock = None
        if league.status in (LeagueStatus.IN_PROGRESS, LeagueStatus.PAUSED):
            on_clock = expected_captain_id(league)
        remaining = None
        if deadline is not None:
            remaining = max(0.0, (deadline - now) / timedelta(seconds=1))
        return Turn(
            league_id=league.id,
            status=league.status,
            pick_index=league.current_pick_index,
            round=round_number(league.current_pick_index, len(league.captains)),
            captain_id=on_clock,
            deadline=deadline,
            seconds_remaining=remaining,
        )

    def _require_league(self, league_id: str) -> LeagueSnapshot:
        league = self.store.load_league(league_id)
        if league is None:
            raise ValidationRejection(RejectionReason.LEAGUE_NOT_FOUND, "League not found")
        return league

    def _require_captain(self, league_id: str, captain_id: str) -> LeagueSnapshot:
        league = self._require_league(league_id)
        if league.captain(captain_id) is None:
            raise ValidationRejection(RejectionReason.CAPTAIN_NOT_FOUND, "Captain not found in this league")
        return league

    def _require_transition(self, league: LeagueSnapshot, new_status: LeagueStatus) -> None:
        if not is_valid_transition(league.status, new_status):
            raise ValidationRejection(
                RejectionReason.INVALID_TRANSITION,
                f"Cannot move draft from {league.status.value} to {new_status.value}",
            )

    def _set_status(
        self,
        league: LeagueSnapshot,
        expected: LeagueStatus,
        new_status: LeagueStatus,
        started_at: Optional[datetime],
    ) -> None:
        try:
            matched = self.store.set_status(league.id, expected, new_status, started_at)
            self.store.commit()
        except SQLAlchemyError:
            self.store.reset()
            raise
        if matched == 0:
            raise ValidationRejection(RejectionReason.STALE_TURN, "League changed concurrently. Please try again.")
