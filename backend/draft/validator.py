"""
Pick validation.

Pure checks over state that the caller already read; nothing here touches
the store, so a rejection can never leave a side effect behind.
"""
from __future__ import annotations

from typing import Optional

from draft.errors import RejectionReason, ValidationRejection
from draft.order import captain_at
from draft.types import LeagueSnapshot, LeagueStatus, PickRecord, PlayerRow


def expected_captain_id(league: LeagueSnapshot) -> Optional[str]:
    return captain_at(league.captain_ids_in_order, league.current_pick_index, league.draft_type)


def validate_pick(
    league: Optional[LeagueSnapshot],
    captain_id: str,
    player: Optional[PlayerRow],
    *,
    manual: bool = True,
    slot_pick: Optional[PickRecord] = None,
    expected_pick_index: Optional[int] = None,
) -> None:
    """
    Raise ValidationRejection if `captain_id` may not draft `player` right now.

    Checks run in a fixed order: league active, turn, player, time bar.
    `slot_pick` is the row already recorded for the current index, if any: a
    pick that landed but has not yet advanced the pointer. Only an auto-pick
    row time-bars a manual pick; any other row means the turn was lost.
    """
    if league is None:
        raise ValidationRejection(RejectionReason.LEAGUE_NOT_FOUND, "League not found")

    if league.status != LeagueStatus.IN_PROGRESS:
        raise ValidationRejection(
            RejectionReason.LEAGUE_NOT_ACTIVE,
            f"Draft is not in progress (status: {league.status.value})",
        )

    if expected_pick_index is not None and expected_pick_index != league.current_pick_index:
        raise ValidationRejection(
            RejectionReason.STALE_TURN,
            f"Pick {expected_pick_index} is no longer current (now {league.current_pick_index})",
        )

    if league.captain(captain_id) is None:
        raise ValidationRejection(RejectionReason.CAPTAIN_NOT_FOUND, "Captain not found in this league")

    if expected_captain_id(league) != captain_id:
        raise ValidationRejection(RejectionReason.NOT_YOUR_TURN, "Not your turn to pick")

    if player is None or player.league_id != league.id:
        raise ValidationRejection(RejectionReason.PLAYER_NOT_FOUND, "Player not found in this league")

    if player.is_drafted:
        raise ValidationRejection(RejectionReason.ALREADY_DRAFTED, "Player already drafted")

    if player.id in league.captain_player_ids:
        raise ValidationRejection(RejectionReason.CAPTAIN_PLAYER, "Cannot draft a captain")

    if slot_pick is not None:
        if manual and slot_pick.is_auto_pick:
            raise ValidationRejection(
                RejectionReason.TIME_BARRED,
                "An auto-pick was already recorded for this turn",
            )
        raise ValidationRejection(
            RejectionReason.STALE_TURN,
            f"Pick {slot_pick.pick_number} was already made. Please try again.",
        )
