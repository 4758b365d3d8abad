"""Shared fixtures: a throwaway SQLite database, seeding helpers and a fixed clock."""

import os
import tempfile
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

# Settings are read at import time, so the environment must be ready first.
_DB_DIR = tempfile.mkdtemp(prefix="draft-room-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'draft.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DRAFT_TICK_SECONDS"] = "0"
os.environ["TIMEOUT_POLICY"] = "skip"
os.environ["AUTO_PICK_POLICY"] = "queue_then_rank"
os.environ["TIMEOUT_GRACE_SECONDS"] = "0"
os.environ["AUTO_ENABLE_AFTER_TIMEOUTS"] = "2"

import pytest  # noqa: E402

from db.models import Base, Captain, League, Player, User  # noqa: E402
from db.session import SessionLocal, engine  # noqa: E402
from draft.audit import AuditRecorder  # noqa: E402
from draft.room import DraftRoom  # noqa: E402
from draft.store import DraftStore  # noqa: E402
from draft.types import Actor, ActorType  # noqa: E402

T0 = datetime(2026, 3, 1, 18, 0, 0, tzinfo=timezone.utc)


# ── Schema / sessions ────────────────────────────────────────────────


@pytest.fixture
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(schema):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def audit(schema):
    # No worker thread: flush() writes inline, which keeps tests deterministic.
    recorder = AuditRecorder(SessionLocal)
    yield recorder
    recorder.close()


@pytest.fixture
def make_room(db, audit):
    def _make(**kwargs):
        kwargs.setdefault("clock", lambda: T0)
        return DraftRoom(db, audit, **kwargs)

    return _make


@pytest.fixture
def room(make_room):
    return make_room()


# ── Seeding ──────────────────────────────────────────────────────────


def seed_league(
    db,
    *,
    captains=("Alice", "Bob"),
    players=6,
    draft_type="snake",
    draft_rounds=None,
    time_limit_seconds=60,
    captain_is_player=None,
):
    """
    Create a manager, a league, its captains (positions 1..N) and ranked players P1..Pn.
    captain_is_player: name of a captain to link to an extra pool player.
    """
    manager = User(username=f"mgr-{uuid.uuid4().hex[:8]}", password_hash="not-a-real-hash")
    db.add(manager)
    db.flush()

    league = League(
        manager_id=manager.id,
        name="Test League",
        draft_type=draft_type,
        time_limit_seconds=time_limit_seconds,
        draft_rounds=draft_rounds,
    )
    db.add(league)
    db.flush()

    player_rows = [Player(league_id=league.id, name=f"P{i}", rank=i) for i in range(1, players + 1)]
    db.add_all(player_rows)
    db.flush()

    linked = None
    if captain_is_player:
        linked = Player(league_id=league.id, name=f"{captain_is_player} (captain)", rank=0)
        db.add(linked)
        db.flush()

    captain_rows = []
    for pos, name in enumerate(captains, start=1):
        c = Captain(
            league_id=league.id,
            name=name,
            draft_position=pos,
            access_token=f"token-{name.lower()}-{uuid.uuid4().hex[:6]}",
            player_id=linked.id if linked is not None and name == captain_is_player else None,
        )
        captain_rows.append(c)
    db.add_all(captain_rows)
    db.commit()

    return SimpleNamespace(
        league_id=league.id,
        manager_id=manager.id,
        captains={c.name: c.id for c in captain_rows},
        tokens={c.name: c.access_token for c in captain_rows},
        players=[p.id for p in player_rows],
        linked_player_id=linked.id if linked is not None else None,
    )


MANAGER = Actor(ActorType.MANAGER, "manager-1", "10.0.0.1")


def captain_actor(captain_id):
    return Actor(ActorType.CAPTAIN, captain_id, "10.0.0.2")


def audit_rows(audit, league_id):
    """Flush pending audit entries and read them back through a fresh session."""
    audit.flush()
    session = SessionLocal()
    try:
        return DraftStore(session).list_audit(league_id)
    finally:
        session.close()


def audit_actions(audit, league_id):
    return [row["action"] for row in audit_rows(audit, league_id)]


@pytest.fixture
def seeded(db):
    return seed_league(db)


@pytest.fixture
def started(room, seeded):
    room.start_draft(seeded.league_id, MANAGER, now=T0)
    return seeded
