from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text

from api.deps import get_current_user
from db.session import get_db

router = APIRouter(tags=["me"])


@router.get("/me")
def me(
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    leagues = db.execute(
        text(
            """
            select id, name, status
            from leagues
            where manager_id = :uid
            order by created_at desc, id asc
            """
        ),
        {"uid": user["id"]},
    ).mappings().all()

    return {**user, "leagues": [dict(r) for r in leagues]}
