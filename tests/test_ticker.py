"""Background ticker: one pass over every league with a running clock."""

import logging
from datetime import timedelta

from conftest import MANAGER, T0, seed_league
from db.session import SessionLocal
from draft.room import DraftRoom
from draft.store import DraftStore
from draft.ticker import TimeoutTicker


def test_tick_all_resolves_only_expired_leagues(db, room, audit):
    expired = seed_league(db)
    fresh = seed_league(db)
    idle = seed_league(db)
    room.start_draft(expired.league_id, MANAGER, now=T0)
    room.start_draft(fresh.league_id, MANAGER, now=T0 + timedelta(seconds=50))

    later = T0 + timedelta(seconds=70)
    ticker = TimeoutTicker(SessionLocal, lambda s: DraftRoom(s, audit, clock=lambda: later), interval=0)

    assert set(DraftStore(db).active_league_ids()) == {expired.league_id, fresh.league_id}
    assert ticker.tick_all() == 1

    store = DraftStore(db)
    assert store.load_league(expired.league_id).current_pick_index == 1
    assert store.load_league(fresh.league_id).current_pick_index == 0
    assert store.load_league(idle.league_id).current_pick_index == 0


def test_one_failing_league_does_not_stop_the_pass(db, room, audit, caplog):
    first = seed_league(db)
    second = seed_league(db)
    room.start_draft(first.league_id, MANAGER, now=T0)
    room.start_draft(second.league_id, MANAGER, now=T0)

    later = T0 + timedelta(seconds=90)

    def factory(session):
        real = DraftRoom(session, audit, clock=lambda: later)
        original = real.on_timeout_tick

        def tick(league_id, *args, **kwargs):
            if league_id == first.league_id:
                raise RuntimeError("boom")
            return original(league_id, *args, **kwargs)

        real.on_timeout_tick = tick
        return real

    with caplog.at_level(logging.ERROR, logger="draft.ticker"):
        acted = TimeoutTicker(SessionLocal, factory, interval=0).tick_all()

    assert acted == 1
    assert any("Timeout tick failed" in r.getMessage() for r in caplog.records)
    assert DraftStore(db).load_league(second.league_id).current_pick_index == 1


def test_disabled_ticker_starts_no_thread(audit):
    ticker = TimeoutTicker(SessionLocal, lambda s: DraftRoom(s, audit), interval=0).start()
    assert ticker._thread is None
    ticker.stop()
