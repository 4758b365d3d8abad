# backend/db/models.py
from __future__ import annotations

import uuid
from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Text,
    Boolean,
    Integer,
    ForeignKey,
    DateTime,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """League managers (the only account holders; captains use link tokens)."""
    __tablename__ = "users"

    id = Column(Text, primary_key=True, default=_new_id)
    username = Column(Text, nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class League(Base):
    __tablename__ = "leagues"

    id = Column(Text, primary_key=True, default=_new_id)
    manager_id = Column(Text, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    draft_type = Column(Text, nullable=False, server_default="snake")  # snake | round_robin
    time_limit_seconds = Column(Integer, nullable=False, server_default="60")
    draft_rounds = Column(Integer, nullable=True)  # null = until the pool runs dry
    status = Column(Text, nullable=False, server_default="not_started", index=True)
    current_pick_index = Column(Integer, nullable=False, server_default="0")
    current_pick_started_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("manager_id", "name", name="uq_league_manager_name"),
        CheckConstraint("draft_type in ('snake', 'round_robin')", name="ck_league_draft_type"),
        CheckConstraint(
            "status in ('not_started', 'in_progress', 'paused', 'completed')",
            name="ck_league_status",
        ),
        CheckConstraint("current_pick_index >= 0", name="ck_league_pick_index"),
    )


class Captain(Base):
    __tablename__ = "captains"

    id = Column(Text, primary_key=True, default=_new_id)
    league_id = Column(Text, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    draft_position = Column(Integer, nullable=False)
    access_token = Column(Text, nullable=False, index=True)
    # A captain may also be a player in the pool; that player is never draftable.
    player_id = Column(Text, nullable=True)
    auto_pick_enabled = Column(Boolean, nullable=False, server_default=false())
    consecutive_timeout_picks = Column(Integer, nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("league_id", "draft_position", name="uq_captain_draft_position"),
    )


class Player(Base):
    """
    Draftable items in a league's pool.
    drafted_by_captain_id / draft_pick_number are written together, exactly once per pick.
    """
    __tablename__ = "players"

    id = Column(Text, primary_key=True, default=_new_id)
    league_id = Column(Text, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    rank = Column(Integer, nullable=True)  # lower is better; used by auto-pick
    drafted_by_captain_id = Column(Text, ForeignKey("captains.id", ondelete="SET NULL"), nullable=True, index=True)
    draft_pick_number = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DraftPick(Base):
    """
    Append-only pick log.
    One row per (league, pick_number) and one row per (league, player), so two
    actors can never claim the same slot or the same player.
    """
    __tablename__ = "draft_picks"

    id = Column(Text, primary_key=True, default=_new_id)
    league_id = Column(Text, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True)
    pick_number = Column(Integer, nullable=False)
    captain_id = Column(Text, ForeignKey("captains.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(Text, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    is_auto_pick = Column(Boolean, nullable=False, server_default=false())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("league_id", "pick_number", name="uq_pick_league_pick_number"),
        UniqueConstraint("league_id", "player_id", name="uq_pick_league_player"),
    )


class CaptainDraftQueue(Base):
    """A captain's private, ordered wish list. Auto-pick consults it first."""
    __tablename__ = "captain_draft_queues"

    id = Column(Text, primary_key=True, default=_new_id)
    captain_id = Column(Text, ForeignKey("captains.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(Text, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("captain_id", "player_id", name="uq_queue_captain_player"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Text, primary_key=True, default=_new_id)
    action = Column(Text, nullable=False)
    league_id = Column(Text, ForeignKey("leagues.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_type = Column(Text, nullable=False)  # manager | captain | player | system
    actor_id = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=False, default=dict)
    ip_address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    # tie-break for entries stamped with the same created_at
    seq = Column(Integer, nullable=False, server_default="0")
