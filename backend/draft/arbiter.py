"""
Timeout arbiter for a single league.

    waiting -> on_the_clock -> expiring -> auto_picking

waiting:      draft not in progress, or no clock running
on_the_clock: clock running, limit not reached
expiring:     now - current_pick_started_at >= time_limit_seconds (+ grace)
auto_picking: the arbiter is resolving the expired turn

Resolution goes through the same validator/committer path as a manual pick,
tagged as the system actor. A tick computed for pick N is a no-op once the
league has moved past N, which is how a manual pick cancels a pending timeout.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from draft.policies import AutoPickPolicy, queue_then_rank
from draft.store import DraftStore
from draft.types import ArbiterState, CaptainRow, LeagueSnapshot, LeagueStatus, PlayerRow, TimeoutPolicy
from draft.validator import expected_captain_id

logger = logging.getLogger(__name__)


def deadline_for(league: LeagueSnapshot, grace_seconds: int = 0) -> Optional[datetime]:
    if league.status != LeagueStatus.IN_PROGRESS or league.current_pick_started_at is None:
        return None
    return league.current_pick_started_at + timedelta(seconds=league.time_limit_seconds + grace_seconds)


def evaluate(league: Optional[LeagueSnapshot], now: datetime, grace_seconds: int = 0) -> ArbiterState:
    if league is None or not league.captains:
        return ArbiterState.WAITING
    deadline = deadline_for(league, grace_seconds)
    if deadline is None:
        return ArbiterState.WAITING
    if now >= deadline:
        return ArbiterState.EXPIRING
    return ArbiterState.ON_THE_CLOCK


@dataclass(frozen=True)
class TimeoutDecision:
    """What to do with an expired turn. player is set only for auto_pick."""
    action: str  # auto_pick | skip | pause
    captain: CaptainRow
    player: Optional[PlayerRow] = None
    from_queue: bool = False


class TimeoutArbiter:
    def __init__(
        self,
        store: DraftStore,
        policy: TimeoutPolicy = TimeoutPolicy.SKIP,
        auto_pick_policy: AutoPickPolicy = queue_then_rank,
        grace_seconds: int = 0,
    ):
        self.store = store
        self.policy = TimeoutPolicy(policy)
        self.auto_pick_policy = auto_pick_policy
        self.grace_seconds = grace_seconds

    def evaluate(self, league: Optional[LeagueSnapshot], now: datetime) -> ArbiterState:
        return evaluate(league, now, self.grace_seconds)

    def decide(self, league: LeagueSnapshot) -> Optional[TimeoutDecision]:
        """Pick the resolution for an expired turn; None if nobody is on the clock."""
        captain_id = expected_captain_id(league)
        captain = league.captain(captain_id) if captain_id else None
        if captain is None:
            return None

        wants_pick = captain.auto_pick_enabled or self.policy == TimeoutPolicy.AUTO_PICK
        if not wants_pick:
            return TimeoutDecision(action=self.policy.value, captain=captain)

        available = self.store.available_players(league.id, league.captain_player_ids)
        queue = self.store.captain_queue(captain.id)
        player = self.auto_pick_policy(league, captain, available, queue)
        if player is None:
            logger.info("No draftable player left for %s in league %s, skipping", captain.name, league.id)
            return TimeoutDecision(action=TimeoutPolicy.SKIP.value, captain=captain)

        return TimeoutDecision(
            action=TimeoutPolicy.AUTO_PICK.value,
            captain=captain,
            player=player,
            from_queue=player.id in set(queue),
        )
