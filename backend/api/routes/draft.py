from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from sqlalchemy import text

from db.session import get_db
from api.deps import get_optional_user, get_room, rejection_to_http, require_manager
from core.security import tokens_match
from draft.audit import client_ip
from draft.errors import CommitFailure, RejectionReason, ValidationRejection
from draft.order import pick_order, total_slots
from draft.room import DraftRoom
from draft.store import DraftStore
from draft.types import Actor, ActorType

router = APIRouter(prefix="/draft", tags=["draft"])

CAPTAIN_TOKEN_HEADER = "X-Captain-Token"


class MakePickIn(BaseModel):
    league_id: str
    player_id: str = Field(min_length=1)
    # Required when the league manager picks on a captain's behalf.
    captain_id: Optional[str] = None
    expected_pick_index: Optional[int] = Field(default=None, ge=0)


class TickIn(BaseModel):
    league_id: str
    expected_pick_index: Optional[int] = Field(default=None, ge=0)


class AutoPickIn(BaseModel):
    league_id: str
    enabled: bool
    captain_id: Optional[str] = None


class QueueAddIn(BaseModel):
    league_id: str
    player_id: str = Field(min_length=1)
    captain_id: Optional[str] = None


class QueueReorderIn(BaseModel):
    league_id: str
    player_ids: list[str] = Field(max_length=500)
    captain_id: Optional[str] = None


def _captain_by_token(db: Session, league_id: str, token: str):
    row = db.execute(
        text("select id, league_id, access_token from captains where league_id = :lid and access_token = :tok"),
        {"lid": league_id, "tok": token},
    ).mappings().first()
    if not row or not tokens_match(row["access_token"], token):
        raise HTTPException(status_code=403, detail="Invalid captain link for this league")
    return row


def _acting_captain(
    request: Request,
    db: Session,
    league_id: str,
    captain_id: Optional[str],
    user: Optional[dict],
) -> tuple[str, Actor]:
    """
    Resolve who is acting and for which captain:
      - Header X-Captain-Token: the captain themselves
      - Authorization: Bearer <jwt>: the league manager, on behalf of captain_id
    """
    ip = client_ip(request.headers)

    token = request.headers.get(CAPTAIN_TOKEN_HEADER)
    if token:
        captain = _captain_by_token(db, league_id, token)
        if captain_id and captain_id != str(captain["id"]):
            raise HTTPException(status_code=403, detail="Captains can only act for themselves")
        return str(captain["id"]), Actor(ActorType.CAPTAIN, str(captain["id"]), ip)

    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")

    require_manager(db, league_id, user["id"])
    if not captain_id:
        raise HTTPException(status_code=400, detail="captain_id is required")
    return captain_id, Actor(ActorType.MANAGER, str(user["id"]), ip)


@router.get("/state")
def draft_state(
    league_id: str,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
):
    """
    Public board for everyone holding a link: whose turn it is, the clock,
    picks so far, the slot-by-slot order, each captain's roster and who is
    still available.
    """
    try:
        turn = room.get_current_turn(league_id)
    except ValidationRejection as rej:
        raise rejection_to_http(rej)

    store = DraftStore(db)
    league = store.load_league(league_id)
    available = store.available_players(league_id, league.captain_player_ids)

    captain_ids = league.captain_ids_in_order
    # Open-ended drafts show through the end of the next round.
    slots = total_slots(len(captain_ids), league.draft_rounds)
    if slots is None:
        slots = (league.current_pick_index // max(len(captain_ids), 1) + 2) * len(captain_ids)

    rosters = {cid: [] for cid in captain_ids}
    for p in store.drafted_players(league_id):
        rosters.setdefault(p.drafted_by_captain_id, []).append(
            {"id": p.id, "name": p.name, "pick_number": p.draft_pick_number}
        )

    return {
        "league": {
            "id": league.id,
            "name": league.name,
            "draft_type": league.draft_type.value,
            "time_limit_seconds": league.time_limit_seconds,
            "draft_rounds": league.draft_rounds,
        },
        "turn": turn.as_dict(),
        "captains": [
            {
                "id": c.id,
                "name": c.name,
                "draft_position": c.draft_position,
                "auto_pick_enabled": c.auto_pick_enabled,
            }
            for c in sorted(league.captains, key=lambda c: c.draft_position)
        ],
        "picks": [
            {
                "pick_number": p.pick_number,
                "captain_id": p.captain_id,
                "player_id": p.player_id,
                "is_auto_pick": p.is_auto_pick,
            }
            for p in store.list_picks(league_id)
        ],
        "order": pick_order(captain_ids, slots, league.draft_type),
        "rosters": rosters,
        "available": [{"id": p.id, "name": p.name, "rank": p.rank} for p in available],
    }


@router.post("/pick")
def make_pick(
    body: MakePickIn,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_optional_user),
):
    captain_id, actor = _acting_captain(request, db, body.league_id, body.captain_id, user)

    try:
        outcome = room.propose_pick(
            body.league_id,
            captain_id,
            body.player_id,
            actor,
            expected_pick_index=body.expected_pick_index,
        )
    except CommitFailure:
        raise HTTPException(status_code=500, detail="Failed to record pick")

    if not outcome.accepted:
        reason = RejectionReason(outcome.reason or RejectionReason.STALE_TURN.value)
        raise rejection_to_http(ValidationRejection(reason, outcome.message))

    return outcome.as_dict()


@router.post("/tick")
def timeout_tick(
    body: TickIn,
    room: DraftRoom = Depends(get_room),
):
    """
    Anyone watching the clock may nudge the arbiter when it hits zero.
    Idempotent per pick index; the background ticker does the same.
    """
    try:
        outcome = room.on_timeout_tick(body.league_id, expected_pick_index=body.expected_pick_index)
    except CommitFailure:
        raise HTTPException(status_code=500, detail="Failed to record pick")
    return outcome.as_dict()


@router.post("/auto-pick")
def toggle_auto_pick(
    body: AutoPickIn,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_optional_user),
):
    captain_id, actor = _acting_captain(request, db, body.league_id, body.captain_id, user)
    try:
        enabled = room.set_auto_pick(body.league_id, captain_id, body.enabled, actor)
    except ValidationRejection as rej:
        raise rejection_to_http(rej)
    return {"ok": True, "captain_id": captain_id, "auto_pick_enabled": enabled}


# ---------- Draft queue ----------

@router.get("/queue")
def get_queue(
    league_id: str,
    request: Request,
    captain_id: Optional[str] = None,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_optional_user),
):
    captain_id, _ = _acting_captain(request, db, league_id, captain_id, user)
    try:
        queue = room.get_queue(league_id, captain_id)
    except ValidationRejection as rej:
        raise rejection_to_http(rej)
    return {"captain_id": captain_id, "queue": queue}


@router.post("/queue")
def add_to_queue(
    body: QueueAddIn,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_optional_user),
):
    captain_id, actor = _acting_captain(request, db, body.league_id, body.captain_id, user)
    try:
        position = room.queue_add(body.league_id, captain_id, body.player_id, actor)
    except ValidationRejection as rej:
        raise rejection_to_http(rej)
    return {"ok": True, "position": position}


@router.delete("/queue")
def remove_from_queue(
    league_id: str,
    player_id: str,
    request: Request,
    captain_id: Optional[str] = None,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_optional_user),
):
    captain_id, actor = _acting_captain(request, db, league_id, captain_id, user)
    try:
        room.queue_remove(league_id, captain_id, player_id, actor)
    except ValidationRejection as rej:
        raise rejection_to_http(rej)
    return {"ok": True}


@router.post("/queue/reorder")
def reorder_queue(
    body: QueueReorderIn,
    request: Request,
    db: Session = Depends(get_db),
    room: DraftRoom = Depends(get_room),
    user=Depends(get_optional_user),
):
    captain_id, actor = _acting_captain(request, db, body.league_id, body.captain_id, user)
    try:
        queue = room.queue_reorder(body.league_id, captain_id, body.player_ids, actor)
    except ValidationRejection as rej:
        raise rejection_to_http(rej)
    return {"ok": True, "queue": queue}
