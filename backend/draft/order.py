"""
Draft order math.

Snake drafts reverse direction every other round:
  Round 1: A, B, C
  Round 2: C, B, A
  Round 3: A, B, C
Round-robin (linear) drafts repeat the same order every round.

Everything here is a pure function of the pick index, so "who is on the
clock" never needs stored state beyond current_pick_index.
"""
from __future__ import annotations

from typing import Optional, Sequence

from draft.types import DraftType


def captain_at(captain_ids: Sequence[str], pick_index: int, draft_type: DraftType) -> Optional[str]:
    """Captain id picking at a zero-based pick index (captain_ids sorted by draft_position)."""
    if pick_index < 0:
        raise ValueError("pick_index must be >= 0")

    count = len(captain_ids)
    if count == 0:
        return None

    round_idx = pick_index // count
    position_in_round = pick_index % count

    if DraftType(draft_type) == DraftType.SNAKE and round_idx % 2 == 1:
        return captain_ids[count - 1 - position_in_round]
    return captain_ids[position_in_round]


def round_number(pick_index: int, captain_count: int) -> int:
    """1-based round for a pick index (0 when there are no captains)."""
    if captain_count <= 0:
        return 0
    return pick_index // captain_count + 1


def total_slots(captain_count: int, draft_rounds: Optional[int]) -> Optional[int]:
    """Length of the pick sequence, or None when it only ends with the pool."""
    if draft_rounds is None:
        return None
    return max(0, captain_count * draft_rounds)


def is_final_slot(pick_index: int, captain_count: int, draft_rounds: Optional[int]) -> bool:
    slots = total_slots(captain_count, draft_rounds)
    if slots is None:
        return False
    return pick_index >= slots - 1


def pick_order(captain_ids: Sequence[str], total_picks: int, draft_type: DraftType) -> list:
    """Full sequence of captain ids for the first `total_picks` slots."""
    if not captain_ids:
        return []
    return [captain_at(captain_ids, i, draft_type) for i in range(total_picks)]
