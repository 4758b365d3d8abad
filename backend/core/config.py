import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()  # loads backend/.env (local). In deployment, env vars are already set.

TIMEOUT_POLICIES = ("skip", "pause", "auto_pick")
AUTO_PICK_POLICIES = ("queue_then_rank", "ranked")


def _parse_frontend_origins(value: str) -> list[str]:
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or ["http://localhost:3000"]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "")
    frontend_origins: list[str] = field(
        default_factory=lambda: _parse_frontend_origins(
            os.getenv("FRONTEND_ORIGINS", os.getenv("FRONTEND_ORIGIN", "http://localhost:3000"))
        )
    )
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    # What the timeout arbiter does for a captain without auto-pick.
    timeout_policy: str = os.getenv("TIMEOUT_POLICY", "skip").strip().lower()
    timeout_grace_seconds: int = _int_env("TIMEOUT_GRACE_SECONDS", 0)
    auto_enable_after_timeouts: int = _int_env("AUTO_ENABLE_AFTER_TIMEOUTS", 2)
    auto_pick_policy: str = os.getenv("AUTO_PICK_POLICY", "queue_then_rank").strip().lower()
    draft_tick_seconds: int = _int_env("DRAFT_TICK_SECONDS", 5)

    audit_queue_size: int = _int_env("AUDIT_QUEUE_SIZE", 1000)


settings = Settings()

if not settings.database_url:
    raise RuntimeError("DATABASE_URL is missing. Set it in the environment or backend/.env.")

if settings.timeout_policy not in TIMEOUT_POLICIES:
    raise RuntimeError(
        f"TIMEOUT_POLICY must be one of {', '.join(TIMEOUT_POLICIES)} (got {settings.timeout_policy!r})"
    )

if settings.auto_pick_policy not in AUTO_PICK_POLICIES:
    raise RuntimeError(
        f"AUTO_PICK_POLICY must be one of {', '.join(AUTO_PICK_POLICIES)} (got {settings.auto_pick_policy!r})"
    )
