import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy import text

from db.session import get_db
from api.deps import get_current_user, get_room, manager_actor, rejection_to_http, require_manager
from core.security import new_captain_token
from draft.errors import ValidationRejection
from draft.room import DraftRoom
from draft.store import DraftStore

router = APIRouter(prefix="/leagues", tags=["leagues"])


class CreateLeagueIn(BaseModel):
    name: str = Field(min_length=3, max_length=60)
    draft_type: str = Field(default="snake", pattern="^(snake|round_robin)$")
    time_limit_seconds: int = Field(default=60, ge=10, le=3600)
    draft_rounds: Optional[int] = Field(default=None, ge=1, le=100)


class AddCaptainIn(BaseModel):
    name: str = Field(min_length=1, max_length=60)
    draft_position: Optional[int] = Field(default=None, ge=1)
    # Link to a pool player (captain plays too); that player is never draftable.
    player_id: Optional[str] = None


class PlayerIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    rank: Optional[int] = Field(default=None, ge=1)


class AddPlayersIn(BaseModel):
    players: list[PlayerIn] = Field(min_length=1, max_length=500)


def _league_row(db: Session, league_id: str):
    row = db.execute(
        text(
            """
            select id, manager_id, name, draft_type, time_limit_seconds, draft_rounds,
                   status, current_pick_index, created_at
            from leagues
            where id = :lid
            """
        ),
        {"lid": league_id},
    ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="League not found")
    return row


def _run(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except ValidationRejection as rej:
        raise rejection_to_http(rej)


@router.post("/create")
def create_league(
    body: CreateLeagueIn,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    league_id = str(uuid.uuid4())
    try:
        db.execute(
            text(
                """
                insert into leagues (id, manager_id, name, draft_type, time_limit_seconds, draft_rounds,
                                     status, current_pick_index)
                values (:id, :mid, :name, :dt, :tl, :dr, 'not_started', 0)
                """
            ),
            {
                "id": league_id,
                "mid": user["id"],
                "name": body.name,
                "dt": body.draft_type,
                "tl": body.time_limit_seconds,
                "dr": body.draft_rounds,
            },
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="You already have a league with that name")

    return dict(_league_row(db, league_id))


@router.get("/mine")
def my_leagues(
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = db.execute(
        text(
            """
            select id, name, draft_type, status, current_pick_index, created_at
            from leagues
            where manager_id = :uid
            order by created_at desc, id asc
            """
        ),
        {"uid": user["id"]},
    ).mappings().all()
    return {"leagues": [dict(r) for r in rows]}


@router.get("/{league_id}")
def league_detail(
    league_id: str,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    """Manager view: includes captain access tokens so links can be shared."""
    require_manager(db, league_id, user["id"])
    league = _league_row(db, league_id)

    captains = db.execute(
        text(
            """
            select id, name, draft_position, access_token, player_id,
                   auto_pick_enabled, consecutive_timeout_picks
            from captains
            where league_id = :lid
            order by draft_position asc
            """
        ),
        {"lid": league_id},
    ).mappings().all()

    players = db.execute(
        text(
            """
            select id, name, rank, drafted_by_captain_id, draft_pick_number
            from players
            where league_id = :lid
            order by rank is null, rank asc, name asc
            """
        ),
        {"lid": league_id},
    ).mappings().all()

    picks = DraftStore(db).list_picks(league_id)

    return {
        "league": dict(league),
        "captains": [{**dict(c), "auto_pick_enabled": bool(c["auto_pick_enabled"])} for c in captains],
        "players": [dict(p) for p in players],
        "picks": [
            {
                "pick_number": p.pick_number,
                "captain_id": p.captain_id,
                "player_id": p.player_id,
                "is_auto_pick": p.is_auto_pick,
            }
            for p in picks
        ],
    }


@router.post("/{league_id}/captains")
def add_captain(
    league_id: str,
    body: AddCaptainIn,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    league = _league_row(db, league_id)
    if league["status"] != "not_started":
        raise HTTPException(status_code=409, detail=f"Draft already started (status: {league['status']})")

    if body.player_id:
        owned = db.execute(
            text("select 1 from players where id = :pid and league_id = :lid"),
            {"pid": body.player_id, "lid": league_id},
        ).first()
        if not owned:
            raise HTTPException(status_code=404, detail="Player not found in this league")

    position = body.draft_position
    if position is None:
        row = db.execute(
            text("select coalesce(max(draft_position), 0) as m from captains where league_id = :lid"),
            {"lid": league_id},
        ).mappings().first()
        position = int(row["m"]) + 1

    captain = {
        "id": str(uuid.uuid4()),
        "name": body.name,
        "draft_position": position,
        "access_token": new_captain_token(),
        "player_id": body.player_id,
    }
    try:
        db.execute(
            text(
                """
                insert into captains (id, league_id, name, draft_position, access_token, player_id)
                values (:id, :lid, :name, :pos, :tok, :pid)
                """
            ),
            {
                "id": captain["id"],
                "lid": league_id,
                "name": captain["name"],
                "pos": position,
                "tok": captain["access_token"],
                "pid": captain["player_id"],
            },
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"Draft position {position} is already taken")

    return captain


@router.post("/{league_id}/players")
def add_players(
    league_id: str,
    body: AddPlayersIn,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    league = _league_row(db, league_id)
    if league["status"] == "completed":
        raise HTTPException(status_code=409, detail="Draft already completed")

    created = []
    for p in body.players:
        pid = str(uuid.uuid4())
        db.execute(
            text("insert into players (id, league_id, name, rank) values (:id, :lid, :name, :rank)"),
            {"id": pid, "lid": league_id, "name": p.name, "rank": p.rank},
        )
        created.append({"id": pid, "name": p.name, "rank": p.rank})
    db.commit()

    return {"ok": True, "players": created}


# ---------- Draft controls (manager) ----------

@router.post("/{league_id}/start")
def start_draft(
    league_id: str,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    turn = _run(room.start_draft, league_id, manager_actor(request, user))
    return {"ok": True, "turn": turn.as_dict()}


@router.post("/{league_id}/pause")
def pause_draft(
    league_id: str,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    turn = _run(room.pause_draft, league_id, manager_actor(request, user))
    return {"ok": True, "turn": turn.as_dict()}


@router.post("/{league_id}/resume")
def resume_draft(
    league_id: str,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    turn = _run(room.resume_draft, league_id, manager_actor(request, user))
    return {"ok": True, "turn": turn.as_dict()}


@router.post("/{league_id}/undo")
def undo_pick(
    league_id: str,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    result = _run(room.undo_last_pick, league_id, manager_actor(request, user))
    return {
        "ok": True,
        "undone_pick": result["undone_pick"],
        "player_id": result["player_id"],
        "turn": result["turn"].as_dict(),
    }


@router.post("/{league_id}/restart")
def restart_draft(
    league_id: str,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    removed = _run(room.restart_draft, league_id, manager_actor(request, user))
    return {"ok": True, "picks_removed": removed}


@router.get("/{league_id}/audit")
def audit_log(
    league_id: str,
    request: Request,
    limit: int = 200,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    require_manager(db, league_id, user["id"])
    # Make sure anything still queued by this process is visible.
    request.app.state.audit.flush()
    return {"league_id": league_id, "entries": DraftStore(db).list_audit(league_id, limit=min(limit, 1000))}
