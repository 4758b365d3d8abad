"""
Auto-pick selection policies.

A policy is any callable
    (league, captain, available_players, queue_player_ids) -> PlayerRow | None
so the ranking source can be swapped without touching the arbiter.
"""
from __future__ import annotations

import random
from typing import Callable, List, Optional, Sequence

from draft.types import CaptainRow, LeagueSnapshot, PlayerRow

AutoPickPolicy = Callable[[LeagueSnapshot, CaptainRow, Sequence[PlayerRow], Sequence[str]], Optional[PlayerRow]]


def _rank_key(p: PlayerRow):
    # Unranked players go last; name/id keep it deterministic.
    return (p.rank is None, p.rank if p.rank is not None else 0, p.name.lower(), p.id)


def ranked(
    league: LeagueSnapshot,
    captain: CaptainRow,
    available: Sequence[PlayerRow],
    queue: Sequence[str] = (),
) -> Optional[PlayerRow]:
    """Highest-ranked (lowest rank number) available player."""
    if not available:
        return None
    return min(available, key=_rank_key)


def queue_then_rank(
    league: LeagueSnapshot,
    captain: CaptainRow,
    available: Sequence[PlayerRow],
    queue: Sequence[str] = (),
) -> Optional[PlayerRow]:
    """First still-available player from the captain's queue, else the best ranked."""
    by_id = {p.id: p for p in available}
    for player_id in queue:
        if player_id in by_id:
            return by_id[player_id]
    return ranked(league, captain, available)


def random_choice(rng: Optional[random.Random] = None) -> AutoPickPolicy:
    """Queue first, then a random available player drawn from `rng`."""
    rng = rng or random.Random()

    def _pick(league, captain, available, queue=()):
        by_id = {p.id: p for p in available}
        for player_id in queue:
            if player_id in by_id:
                return by_id[player_id]
        if not available:
            return None
        pool: List[PlayerRow] = sorted(available, key=lambda p: p.id)
        return rng.choice(pool)

    return _pick


POLICIES = {
    "queue_then_rank": queue_then_rank,
    "ranked": ranked,
}
