import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.logging import configure_logging
from db.session import SessionLocal

from api.deps import build_room
from api.routes.auth import router as auth_router
from api.routes.me import router as me_router
from api.routes.leagues import router as leagues_router
from api.routes.draft import router as draft_router
from draft.audit import AuditRecorder
from draft.ticker import TimeoutTicker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)

    audit = AuditRecorder(SessionLocal, maxsize=settings.audit_queue_size).start()
    app.state.audit = audit

    ticker = TimeoutTicker(
        SessionLocal,
        lambda db: build_room(db, audit),
        settings.draft_tick_seconds,
    ).start()
    app.state.ticker = ticker

    logger.info(
        "Draft API up (timeout policy: %s, tick every %ss)",
        settings.timeout_policy,
        settings.draft_tick_seconds,
    )
    yield

    ticker.stop()
    audit.close()
    logger.info("Draft API shut down")


app = FastAPI(
    title="Draft Room API",
    lifespan=lifespan,
    swagger_ui_parameters={"persistAuthorization": True},
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(me_router)
app.include_router(leagues_router)
app.include_router(draft_router)


@app.get("/health")
def health():
    return {"ok": True}
