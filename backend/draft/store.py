"""
SQL access for the draft core.

Thin wrapper around a SQLAlchemy Session. Statements are plain SQL through
text(); timestamp columns go through typed binds/columns so the same SQL
runs on Postgres and SQLite. Nothing here commits: callers decide where the
step boundaries are.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import JSON, DateTime, bindparam, text
from sqlalchemy.orm import Session

from draft.types import (
    CaptainRow,
    DraftType,
    LeagueSnapshot,
    LeagueStatus,
    PickRecord,
    PlayerRow,
)

_TS = DateTime(timezone=True)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _captain_from_row(row) -> CaptainRow:
    return CaptainRow(
        id=str(row["id"]),
        league_id=str(row["league_id"]),
        name=row["name"],
        draft_position=int(row["draft_position"]),
        auto_pick_enabled=bool(row["auto_pick_enabled"]),
        consecutive_timeout_picks=int(row["consecutive_timeout_picks"] or 0),
        player_id=str(row["player_id"]) if row["player_id"] else None,
        access_token=row["access_token"],
    )


def _player_from_row(row) -> PlayerRow:
    return PlayerRow(
        id=str(row["id"]),
        league_id=str(row["league_id"]),
        name=row["name"],
        rank=row["rank"],
        drafted_by_captain_id=str(row["drafted_by_captain_id"]) if row["drafted_by_captain_id"] else None,
        draft_pick_number=row["draft_pick_number"],
    )


def _pick_from_row(row) -> PickRecord:
    return PickRecord(
        league_id=str(row["league_id"]),
        pick_number=int(row["pick_number"]),
        captain_id=str(row["captain_id"]),
        player_id=str(row["player_id"]),
        is_auto_pick=bool(row["is_auto_pick"]),
        created_at=as_utc(row["created_at"]),
    )


_PLAYER_COLUMNS = "id, league_id, name, rank, drafted_by_captain_id, draft_pick_number"


class DraftStore:
    def __init__(self, db: Session):
        self.db = db

    # -------------------------
    # Transaction control
    # -------------------------

    def commit(self) -> None:
        self.db.commit()

    def reset(self) -> None:
        # Clear a failed transaction so compensation can run on the same session.
        self.db.rollback()

    # -------------------------
    # Reads
    # -------------------------

    def load_league(self, league_id: str) -> Optional[LeagueSnapshot]:
        league = self.db.execute(
            text(
                """
                select id, manager_id, name, draft_type, time_limit_seconds, draft_rounds,
                       status, current_pick_index, current_pick_started_at
                from leagues
                where id = :lid
                """
            ).columns(current_pick_started_at=_TS),
            {"lid": league_id},
        ).mappings().first()

        if not league:
            return None

        captains = self.db.execute(
            text(
                """
                select id, league_id, name, draft_position, auto_pick_enabled,
                       consecutive_timeout_picks, player_id, access_token
                from captains
                where league_id = :lid
                order by draft_position asc, id asc
                """
            ),
            {"lid": league_id},
        ).mappings().all()

        return LeagueSnapshot(
            id=str(league["id"]),
            manager_id=str(league["manager_id"]) if league["manager_id"] else None,
            name=league["name"],
            draft_type=DraftType(league["draft_type"]),
            time_limit_seconds=int(league["time_limit_seconds"]),
            draft_rounds=league["draft_rounds"],
            status=LeagueStatus(league["status"]),
            current_pick_index=int(league["current_pick_index"]),
            current_pick_started_at=as_utc(league["current_pick_started_at"]),
            captains=[_captain_from_row(c) for c in captains],
        )

    def active_league_ids(self) -> List[str]:
        rows = self.db.execute(
            text(
                """
                select id
                from leagues
                where status = 'in_progress'
                  and current_pick_started_at is not null
                order by current_pick_started_at asc
                """
            )
        ).all()
        return [str(r[0]) for r in rows]

    def get_player(self, player_id: str) -> Optional[PlayerRow]:
        row = self.db.execute(
            text(f"select {_PLAYER_COLUMNS} from players where id = :pid"),
            {"pid": player_id},
        ).mappings().first()
        return _player_from_row(row) if row else None

    def available_players(self, league_id: str, exclude_ids: Iterable[str] = ()) -> List[PlayerRow]:
        excluded = set(exclude_ids)
        rows = self.db.execute(
            text(
                f"""
                select {_PLAYER_COLUMNS}
                from players
                where league_id = :lid
                  and drafted_by_captain_id is null
                order by id asc
                """
            ),
            {"lid": league_id},
        ).mappings().all()
        return [_player_from_row(r) for r in rows if str(r["id"]) not in excluded]

    def count_available(self, league_id: str, exclude_ids: Iterable[str] = ()) -> int:
        return len(self.available_players(league_id, exclude_ids))

    def get_pick(self, league_id: str, pick_number: int) -> Optional[PickRecord]:
        row = self.db.execute(
            text(
                """
                select league_id, pick_number, captain_id, player_id, is_auto_pick, created_at
                from draft_picks
                where league_id = :lid and pick_number = :n
                """
            ).columns(created_at=_TS),
            {"lid": league_id, "n": pick_number},
        ).mappings().first()
        return _pick_from_row(row) if row else None

    def list_picks(self, league_id: str) -> List[PickRecord]:
        rows = self.db.execute(
            text(
                """
                select league_id, pick_number, captain_id, player_id, is_auto_pick, created_at
                from draft_picks
                where league_id = :lid
                order by pick_number asc
                """
            ).columns(created_at=_TS),
            {"lid": league_id},
        ).mappings().all()
        return [_pick_from_row(r) for r in rows]

    def drafted_players(self, league_id: str) -> List[PlayerRow]:
        rows = self.db.execute(
            text(
                f"""
                select {_PLAYER_COLUMNS}
                from players
                where league_id = :lid and drafted_by_captain_id is not null
                order by draft_pick_number asc
                """
            ),
            {"lid": league_id},
        ).mappings().all()
        return [_player_from_row(r) for r in rows]

    def captain_queue(self, captain_id: str) -> List[str]:
        rows = self.db.execute(
            text(
                """
                select player_id
                from captain_draft_queues
                where captain_id = :cid
                order by position asc
                """
            ),
            {"cid": captain_id},
        ).all()
        return [str(r[0]) for r in rows]

    # -------------------------
    # Pick writes (turn committer / rollback coordinator only)
    # -------------------------

    def insert_pick(
        self,
        league_id: str,
        pick_number: int,
        captain_id: str,
        player_id: str,
        is_auto_pick: bool,
        created_at: datetime,
    ) -> None:
        self.db.execute(
            text(
                """
                insert into draft_picks (id, league_id, pick_number, captain_id, player_id, is_auto_pick, created_at)
                values (:id, :lid, :n, :cid, :pid, :auto, :ts)
                """
            ).bindparams(bindparam("ts", type_=_TS)),
            {
                "id": str(uuid.uuid4()),
                "lid": league_id,
                "n": pick_number,
                "cid": captain_id,
                "pid": player_id,
                "auto": bool(is_auto_pick),
                "ts": created_at,
            },
        )

    def restore_pick(self, pick: PickRecord) -> None:
        self.insert_pick(
            pick.league_id,
            pick.pick_number,
            pick.captain_id,
            pick.player_id,
            pick.is_auto_pick,
            pick.created_at or datetime.now(timezone.utc),
        )

    def mark_player_drafted(self, league_id: str, player_id: str, captain_id: str, pick_number: int) -> int:
        result = self.db.execute(
            text(
                """
                update players
                set drafted_by_captain_id = :cid, draft_pick_number = :n
                where id = :pid
                  and league_id = :lid
                  and drafted_by_captain_id is null
                """
            ),
            {"cid": captain_id, "n": pick_number, "pid": player_id, "lid": league_id},
        )
        return result.rowcount

    def delete_pick(self, league_id: str, pick_number: int) -> int:
        result = self.db.execute(
            text("delete from draft_picks where league_id = :lid and pick_number = :n"),
            {"lid": league_id, "n": pick_number},
        )
        return result.rowcount

    def clear_player(self, player_id: str, pick_number: int) -> int:
        # Only clears the draft that this pick number wrote.
        result = self.db.execute(
            text(
                """
                update players
                set drafted_by_captain_id = null, draft_pick_number = null
                where id = :pid and draft_pick_number = :n
                """
            ),
            {"pid": player_id, "n": pick_number},
        )
        return result.rowcount

    def delete_all_picks(self, league_id: str) -> int:
        result = self.db.execute(
            text("delete from draft_picks where league_id = :lid"),
            {"lid": league_id},
        )
        return result.rowcount

    def clear_all_players(self, league_id: str) -> int:
        result = self.db.execute(
            text(
                """
                update players
                set drafted_by_captain_id = null, draft_pick_number = null
                where league_id = :lid and drafted_by_captain_id is not null
                """
            ),
            {"lid": league_id},
        )
        return result.rowcount

    # -------------------------
    # League pointer (conditional on the index read at validation time)
    # -------------------------

    def advance_league(
        self,
        league_id: str,
        expected_index: int,
        new_index: int,
        new_status: LeagueStatus,
        started_at: Optional[datetime],
    ) -> int:
        result = self.db.execute(
            text(
                """
                update leagues
                set current_pick_index = :new_idx,
                    status = :status,
                    current_pick_started_at = :started_at
                where id = :lid
                  and current_pick_index = :expected
                  and status = 'in_progress'
                """
            ).bindparams(bindparam("started_at", type_=_TS)),
            {
                "new_idx": new_index,
                "status": LeagueStatus(new_status).value,
                "started_at": started_at,
                "lid": league_id,
                "expected": expected_index,
            },
        )
        return result.rowcount

    def rewind_league(
        self,
        league_id: str,
        expected_index: int,
        expected_status: LeagueStatus,
        new_index: int,
        new_status: LeagueStatus,
        started_at: Optional[datetime],
    ) -> int:
        result = self.db.execute(
            text(
                """
                update leagues
                set current_pick_index = :new_idx,
                    status = :new_status,
                    current_pick_started_at = :started_at
                where id = :lid
                  and current_pick_index = :expected
                  and status = :expected_status
                """
            ).bindparams(bindparam("started_at", type_=_TS)),
            {
                "new_idx": new_index,
                "new_status": LeagueStatus(new_status).value,
                "started_at": started_at,
                "lid": league_id,
                "expected": expected_index,
                "expected_status": LeagueStatus(expected_status).value,
            },
        )
        return result.rowcount

    def set_status(
        self,
        league_id: str,
        expected_status: LeagueStatus,
        new_status: LeagueStatus,
        started_at: Optional[datetime],
    ) -> int:
        """Status/clock change that leaves current_pick_index alone."""
        result = self.db.execute(
            text(
                """
                update leagues
                set status = :new_status,
                    current_pick_started_at = :started_at
                where id = :lid and status = :expected_status
                """
            ).bindparams(bindparam("started_at", type_=_TS)),
            {
                "new_status": LeagueStatus(new_status).value,
                "started_at": started_at,
                "lid": league_id,
                "expected_status": LeagueStatus(expected_status).value,
            },
        )
        return result.rowcount

    def pause_at(self, league_id: str, expected_index: int) -> int:
        """Pause only if the league is still on the turn the caller looked at."""
        result = self.db.execute(
            text(
                """
                update leagues
                set status = 'paused', current_pick_started_at = null
                where id = :lid
                  and status = 'in_progress'
                  and current_pick_index = :expected
                """
            ),
            {"lid": league_id, "expected": expected_index},
        )
        return result.rowcount

    # -------------------------
    # Captains
    # -------------------------

    def reset_timeout_counter(self, captain_id: str) -> None:
        self.db.execute(
            text("update captains set consecutive_timeout_picks = 0 where id = :cid"),
            {"cid": captain_id},
        )

    def bump_timeout_counter(self, captain_id: str, auto_enable_after: int) -> None:
        # auto_enable_after <= 0 never flips the flag.
        self.db.execute(
            text(
                """
                update captains
                set consecutive_timeout_picks = consecutive_timeout_picks + 1,
                    auto_pick_enabled = case
                      when :threshold > 0 and consecutive_timeout_picks + 1 >= :threshold then :yes
                      else auto_pick_enabled
                    end
                where id = :cid
                """
            ),
            {"cid": captain_id, "threshold": auto_enable_after, "yes": True},
        )

    def set_auto_pick(self, league_id: str, captain_id: str, enabled: bool) -> int:
        result = self.db.execute(
            text(
                """
                update captains
                set auto_pick_enabled = :enabled
                where id = :cid and league_id = :lid
                """
            ),
            {"enabled": bool(enabled), "cid": captain_id, "lid": league_id},
        )
        return result.rowcount

    # -------------------------
    # Draft queues
    # -------------------------

    def queue_append(self, captain_id: str, player_id: str) -> int:
        row = self.db.execute(
            text(
                """
                select coalesce(max(position), -1) + 1 as next_pos
                from captain_draft_queues
                where captain_id = :cid
                """
            ),
            {"cid": captain_id},
        ).mappings().first()
        position = int(row["next_pos"]) if row else 0

        self.db.execute(
            text(
                """
                insert into captain_draft_queues (id, captain_id, player_id, position)
                values (:id, :cid, :pid, :pos)
                """
            ),
            {"id": str(uuid.uuid4()), "cid": captain_id, "pid": player_id, "pos": position},
        )
        return position

    def queue_remove(self, captain_id: str, player_id: str) -> int:
        result = self.db.execute(
            text("delete from captain_draft_queues where captain_id = :cid and player_id = :pid"),
            {"cid": captain_id, "pid": player_id},
        )
        return result.rowcount

    def queue_set_positions(self, captain_id: str, player_ids: List[str]) -> None:
        for pos, pid in enumerate(player_ids):
            self.db.execute(
                text(
                    """
                    update captain_draft_queues
                    set position = :pos
                    where captain_id = :cid and player_id = :pid
                    """
                ),
                {"pos": pos, "cid": captain_id, "pid": pid},
            )

    def purge_from_queues(self, player_id: str) -> int:
        result = self.db.execute(
            text("delete from captain_draft_queues where player_id = :pid"),
            {"pid": player_id},
        )
        return result.rowcount

    # -------------------------
    # Audit
    # -------------------------

    def insert_audit(
        self,
        action: str,
        league_id: Optional[str],
        actor_type: str,
        actor_id: Optional[str],
        details: dict,
        ip_address: Optional[str],
        created_at: datetime,
        seq: int = 0,
    ) -> None:
        self.db.execute(
            text(
                """
                insert into audit_logs (id, action, league_id, actor_type, actor_id, metadata, ip_address, created_at, seq)
                values (:id, :action, :lid, :atype, :aid, :meta, :ip, :ts, :seq)
                """
            ).bindparams(bindparam("meta", type_=JSON), bindparam("ts", type_=_TS)),
            {
                "id": str(uuid.uuid4()),
                "action": action,
                "lid": league_id,
                "atype": actor_type,
                "aid": actor_id,
                "meta": details or {},
                "ip": ip_address,
                "ts": created_at,
                "seq": seq,
            },
        )

    def list_audit(self, league_id: str, limit: int = 200) -> List[dict]:
        rows = self.db.execute(
            text(
                """
                select action, league_id, actor_type, actor_id, metadata, ip_address, created_at
                from audit_logs
                where league_id = :lid
                order by created_at asc, seq asc
                limit :lim
                """
            ).columns(metadata=JSON, created_at=_TS),
            {"lid": league_id, "lim": limit},
        ).mappings().all()
        return [dict(r, created_at=as_utc(r["created_at"])) for r in rows]
