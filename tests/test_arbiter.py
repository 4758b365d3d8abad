"""Timeout arbiter state machine and auto-pick selection policies."""

import random
from datetime import timedelta

import pytest

from conftest import T0
from draft.arbiter import TimeoutArbiter, deadline_for, evaluate
from draft.policies import queue_then_rank, random_choice, ranked
from draft.types import (
    ArbiterState,
    CaptainRow,
    DraftType,
    LeagueSnapshot,
    LeagueStatus,
    PlayerRow,
    TimeoutPolicy,
)


# ── Helpers ──────────────────────────────────────────────────────────


def _captain(cid, pos, auto=False, player_id=None):
    return CaptainRow(id=cid, league_id="L1", name=cid.upper(), draft_position=pos,
                      auto_pick_enabled=auto, consecutive_timeout_picks=0, player_id=player_id)


def _league(status=LeagueStatus.IN_PROGRESS, started_at=T0, captains=None, index=0):
    return LeagueSnapshot(
        id="L1",
        name="League",
        draft_type=DraftType.ROUND_ROBIN,
        time_limit_seconds=30,
        draft_rounds=None,
        status=status,
        current_pick_index=index,
        current_pick_started_at=started_at,
        captains=captains if captains is not None else [_captain("a", 1), _captain("b", 2)],
    )


def _player(pid, rank, name=None):
    return PlayerRow(id=pid, league_id="L1", name=name or pid, rank=rank)


class FakeStore:
    def __init__(self, available=(), queue=()):
        self.available = list(available)
        self.queue = list(queue)
        self.excluded = None

    def available_players(self, league_id, exclude_ids=()):
        self.excluded = set(exclude_ids)
        return [p for p in self.available if p.id not in self.excluded]

    def captain_queue(self, captain_id):
        return list(self.queue)


# ── evaluate ─────────────────────────────────────────────────────────


def test_on_the_clock_before_the_limit():
    assert evaluate(_league(), T0 + timedelta(seconds=29)) == ArbiterState.ON_THE_CLOCK


def test_expiring_at_the_limit():
    assert evaluate(_league(), T0 + timedelta(seconds=30)) == ArbiterState.EXPIRING


def test_grace_period_delays_expiry():
    assert evaluate(_league(), T0 + timedelta(seconds=31), grace_seconds=5) == ArbiterState.ON_THE_CLOCK
    assert evaluate(_league(), T0 + timedelta(seconds=35), grace_seconds=5) == ArbiterState.EXPIRING


@pytest.mark.parametrize(
    "status",
    [LeagueStatus.NOT_STARTED, LeagueStatus.PAUSED, LeagueStatus.COMPLETED],
)
def test_never_fires_unless_in_progress(status):
    assert evaluate(_league(status=status), T0 + timedelta(hours=1)) == ArbiterState.WAITING


def test_never_fires_without_a_clock():
    assert evaluate(_league(started_at=None), T0 + timedelta(hours=1)) == ArbiterState.WAITING


def test_waiting_without_league_or_captains():
    assert evaluate(None, T0) == ArbiterState.WAITING
    assert evaluate(_league(captains=[]), T0 + timedelta(hours=1)) == ArbiterState.WAITING


def test_deadline():
    assert deadline_for(_league()) == T0 + timedelta(seconds=30)
    assert deadline_for(_league(), grace_seconds=3) == T0 + timedelta(seconds=33)
    assert deadline_for(_league(status=LeagueStatus.PAUSED)) is None


# ── decide ───────────────────────────────────────────────────────────


def test_skip_policy_for_captain_without_auto_pick():
    arbiter = TimeoutArbiter(FakeStore([_player("p1", 1)]), TimeoutPolicy.SKIP)
    decision = arbiter.decide(_league())
    assert decision.action == "skip"
    assert decision.captain.id == "a"
    assert decision.player is None


def test_pause_policy_for_captain_without_auto_pick():
    decision = TimeoutArbiter(FakeStore([_player("p1", 1)]), TimeoutPolicy.PAUSE).decide(_league())
    assert decision.action == "pause"


def test_auto_pick_enabled_captain_always_gets_a_player():
    league = _league(captains=[_captain("a", 1, auto=True), _captain("b", 2)])
    store = FakeStore([_player("p2", 2), _player("p1", 1)])
    decision = TimeoutArbiter(store, TimeoutPolicy.PAUSE).decide(league)
    assert decision.action == "auto_pick"
    assert decision.player.id == "p1"
    assert not decision.from_queue


def test_auto_pick_policy_applies_to_everyone():
    store = FakeStore([_player("p1", 1)])
    decision = TimeoutArbiter(store, TimeoutPolicy.AUTO_PICK).decide(_league())
    assert decision.action == "auto_pick"


def test_queue_is_consulted_first():
    league = _league(captains=[_captain("a", 1, auto=True)])
    store = FakeStore([_player("p1", 1), _player("p9", 9)], queue=["p9"])
    decision = TimeoutArbiter(store).decide(league)
    assert decision.player.id == "p9"
    assert decision.from_queue


def test_empty_pool_turns_into_a_skip():
    league = _league(captains=[_captain("a", 1, auto=True)])
    decision = TimeoutArbiter(FakeStore([])).decide(league)
    assert decision.action == "skip"


def test_captain_linked_players_are_excluded():
    league = _league(captains=[_captain("a", 1, auto=True), _captain("b", 2, player_id="p0")])
    store = FakeStore([_player("p0", 0), _player("p1", 1)])
    decision = TimeoutArbiter(store).decide(league)
    assert decision.player.id == "p1"
    assert store.excluded == {"p0"}


def test_injected_policy_is_used():
    league = _league(captains=[_captain("a", 1, auto=True)])
    chosen = _player("p5", 5)

    def last_ranked(league, captain, available, queue=()):
        return max(available, key=lambda p: p.rank)

    store = FakeStore([_player("p1", 1), chosen])
    decision = TimeoutArbiter(store, auto_pick_policy=last_ranked).decide(league)
    assert decision.player == chosen


# ── policies ─────────────────────────────────────────────────────────


def test_ranked_puts_unranked_last_and_breaks_ties_by_name():
    league = _league()
    captain = league.captains[0]
    pool = [_player("x", None, "Zed"), _player("y", 3, "Bea"), _player("z", 3, "Abe")]
    assert ranked(league, captain, pool).id == "z"
    assert ranked(league, captain, [_player("x", None, "Zed")]).id == "x"
    assert ranked(league, captain, []) is None


def test_queue_then_rank_skips_unavailable_queue_entries():
    league = _league()
    pool = [_player("p1", 1), _player("p4", 4)]
    assert queue_then_rank(league, league.captains[0], pool, ["gone", "p4"]).id == "p4"
    assert queue_then_rank(league, league.captains[0], pool, ["gone"]).id == "p1"


def test_random_choice_is_reproducible_with_a_seed():
    league = _league()
    pool = [_player(f"p{i}", i) for i in range(10)]
    first = random_choice(random.Random(7))(league, league.captains[0], pool)
    second = random_choice(random.Random(7))(league, league.captains[0], list(reversed(pool)))
    assert first.id == second.id


def test_random_choice_still_prefers_the_queue():
    league = _league()
    pool = [_player(f"p{i}", i) for i in range(10)]
    pick = random_choice(random.Random(1))(league, league.captains[0], pool, ["p3"])
    assert pick.id == "p3"
