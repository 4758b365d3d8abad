"""Pick validation runs on plain snapshots; no database needed."""

from datetime import datetime, timezone

import pytest

from draft.errors import RejectionReason, ValidationRejection
from draft.types import CaptainRow, DraftType, LeagueSnapshot, LeagueStatus, PickRecord, PlayerRow
from draft.validator import expected_captain_id, validate_pick

STARTED = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────


def _league(status=LeagueStatus.IN_PROGRESS, index=0, linked_player=None, **overrides):
    captains = [
        CaptainRow(id="cap-a", league_id="L1", name="A", draft_position=1,
                   auto_pick_enabled=False, consecutive_timeout_picks=0, player_id=linked_player),
        CaptainRow(id="cap-b", league_id="L1", name="B", draft_position=2,
                   auto_pick_enabled=False, consecutive_timeout_picks=0),
    ]
    fields = dict(
        id="L1",
        name="League",
        draft_type=DraftType.SNAKE,
        time_limit_seconds=60,
        draft_rounds=None,
        status=status,
        current_pick_index=index,
        current_pick_started_at=STARTED,
        captains=captains,
    )
    fields.update(overrides)
    return LeagueSnapshot(**fields)


def _player(pid="p1", league_id="L1", drafted_by=None):
    return PlayerRow(id=pid, league_id=league_id, name=pid.upper(), rank=1, drafted_by_captain_id=drafted_by)


def _reason(league, captain_id, player, **kwargs):
    with pytest.raises(ValidationRejection) as exc:
        validate_pick(league, captain_id, player, **kwargs)
    return exc.value.reason


def _slot(auto):
    return PickRecord(league_id="L1", pick_number=0, captain_id="cap-a", player_id="p9", is_auto_pick=auto)


# ── Tests ────────────────────────────────────────────────────────────


def test_valid_pick_passes():
    validate_pick(_league(), "cap-a", _player())


def test_missing_league():
    assert _reason(None, "cap-a", _player()) == RejectionReason.LEAGUE_NOT_FOUND


@pytest.mark.parametrize("status", [LeagueStatus.NOT_STARTED, LeagueStatus.PAUSED, LeagueStatus.COMPLETED])
def test_league_must_be_in_progress(status):
    assert _reason(_league(status=status), "cap-a", _player()) == RejectionReason.LEAGUE_NOT_ACTIVE


def test_unknown_captain():
    assert _reason(_league(), "cap-x", _player()) == RejectionReason.CAPTAIN_NOT_FOUND


def test_wrong_captain_is_not_your_turn():
    assert _reason(_league(), "cap-b", _player()) == RejectionReason.NOT_YOUR_TURN


def test_snake_second_round_reverses():
    # index 2 in a two-captain snake belongs to B again
    league = _league(index=2)
    assert expected_captain_id(league) == "cap-b"
    validate_pick(league, "cap-b", _player())


def test_missing_player():
    assert _reason(_league(), "cap-a", None) == RejectionReason.PLAYER_NOT_FOUND


def test_player_from_another_league():
    assert _reason(_league(), "cap-a", _player(league_id="L2")) == RejectionReason.PLAYER_NOT_FOUND


def test_already_drafted():
    assert _reason(_league(), "cap-a", _player(drafted_by="cap-b")) == RejectionReason.ALREADY_DRAFTED


def test_captain_linked_player_is_never_draftable():
    league = _league(linked_player="p-cap")
    assert _reason(league, "cap-a", _player("p-cap")) == RejectionReason.CAPTAIN_PLAYER


def test_stale_expected_index():
    reason = _reason(_league(index=3), "cap-b", _player(), expected_pick_index=2)
    assert reason == RejectionReason.STALE_TURN


def test_manual_pick_is_time_barred_once_auto_pick_landed():
    reason = _reason(_league(), "cap-a", _player(), manual=True, slot_pick=_slot(auto=True))
    assert reason == RejectionReason.TIME_BARRED


def test_manual_row_on_the_slot_means_the_turn_was_lost():
    reason = _reason(_league(), "cap-a", _player(), manual=True, slot_pick=_slot(auto=False))
    assert reason == RejectionReason.STALE_TURN


def test_automatic_pick_is_never_time_barred():
    reason = _reason(_league(), "cap-a", _player(), manual=False, slot_pick=_slot(auto=True))
    assert reason == RejectionReason.STALE_TURN


def test_empty_slot_passes():
    validate_pick(_league(), "cap-a", _player(), manual=True, slot_pick=None)


def test_turn_is_checked_before_the_player():
    # A wrong-turn proposal for a drafted player reports the turn, not the player.
    assert _reason(_league(), "cap-b", _player(drafted_by="cap-a")) == RejectionReason.NOT_YOUR_TURN
