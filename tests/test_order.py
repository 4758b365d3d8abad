"""Draft order math: snake vs round-robin, rounds and the end of the sequence."""

import pytest

from draft.order import captain_at, is_final_slot, pick_order, round_number, total_slots
from draft.types import DraftType

CAPTAINS = ["a", "b", "c"]


def test_snake_reverses_every_other_round():
    assert pick_order(CAPTAINS, 9, DraftType.SNAKE) == [
        "a", "b", "c",
        "c", "b", "a",
        "a", "b", "c",
    ]


def test_round_robin_repeats_the_same_order():
    assert pick_order(CAPTAINS, 6, DraftType.ROUND_ROBIN) == ["a", "b", "c", "a", "b", "c"]


def test_two_captain_snake_gives_back_to_back_turns():
    order = pick_order(["a", "b"], 6, DraftType.SNAKE)
    assert order == ["a", "b", "b", "a", "a", "b"]


def test_draft_type_accepts_plain_strings():
    assert captain_at(CAPTAINS, 3, "snake") == "c"
    assert captain_at(CAPTAINS, 3, "round_robin") == "a"


def test_no_captains_means_nobody_on_the_clock():
    assert captain_at([], 0, DraftType.SNAKE) is None
    assert pick_order([], 5, DraftType.SNAKE) == []


def test_negative_index_is_rejected():
    with pytest.raises(ValueError):
        captain_at(CAPTAINS, -1, DraftType.SNAKE)


@pytest.mark.parametrize(
    "index, expected",
    [(0, 1), (2, 1), (3, 2), (5, 2), (6, 3)],
)
def test_round_number_is_one_based(index, expected):
    assert round_number(index, 3) == expected


def test_round_number_without_captains():
    assert round_number(4, 0) == 0


def test_final_slot_uses_rounds_times_captains():
    assert total_slots(3, 2) == 6
    assert not is_final_slot(4, 3, 2)
    assert is_final_slot(5, 3, 2)


def test_unbounded_draft_has_no_final_slot():
    assert total_slots(3, None) is None
    assert not is_final_slot(1000, 3, None)
