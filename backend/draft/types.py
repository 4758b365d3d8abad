from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class LeagueStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class DraftType(str, Enum):
    SNAKE = "snake"
    ROUND_ROBIN = "round_robin"


class ActorType(str, Enum):
    MANAGER = "manager"
    CAPTAIN = "captain"
    PLAYER = "player"
    SYSTEM = "system"


class ArbiterState(str, Enum):
    WAITING = "waiting"
    ON_THE_CLOCK = "on_the_clock"
    EXPIRING = "expiring"
    AUTO_PICKING = "auto_picking"


class TimeoutPolicy(str, Enum):
    """What happens when the clock runs out on a captain without auto-pick."""
    SKIP = "skip"
    PAUSE = "pause"
    AUTO_PICK = "auto_pick"


# status -> statuses it may move to
VALID_TRANSITIONS: Dict[LeagueStatus, tuple] = {
    LeagueStatus.NOT_STARTED: (LeagueStatus.IN_PROGRESS,),
    LeagueStatus.IN_PROGRESS: (LeagueStatus.PAUSED, LeagueStatus.COMPLETED),
    LeagueStatus.PAUSED: (LeagueStatus.IN_PROGRESS, LeagueStatus.NOT_STARTED),
    LeagueStatus.COMPLETED: (LeagueStatus.IN_PROGRESS,),
}


def is_valid_transition(current: LeagueStatus, new: LeagueStatus) -> bool:
    return new in VALID_TRANSITIONS[current]


@dataclass(frozen=True)
class Actor:
    """Who is acting. Passed explicitly; the core never looks up a session user."""
    type: ActorType
    id: Optional[str] = None
    ip_address: Optional[str] = None


SYSTEM_ACTOR = Actor(ActorType.SYSTEM)


@dataclass(frozen=True)
class CaptainRow:
    id: str
    league_id: str
    name: str
    draft_position: int
    auto_pick_enabled: bool
    consecutive_timeout_picks: int
    player_id: Optional[str] = None
    access_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class PlayerRow:
    id: str
    league_id: str
    name: str
    rank: Optional[int] = None
    drafted_by_captain_id: Optional[str] = None
    draft_pick_number: Optional[int] = None

    @property
    def is_drafted(self) -> bool:
        return self.drafted_by_captain_id is not None


@dataclass(frozen=True)
class PickRecord:
    league_id: str
    pick_number: int
    captain_id: str
    player_id: str
    is_auto_pick: bool = False
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class LeagueSnapshot:
    """League row plus its captains, as read at one moment."""
    id: str
    name: str
    draft_type: DraftType
    time_limit_seconds: int
    draft_rounds: Optional[int]
    status: LeagueStatus
    current_pick_index: int
    current_pick_started_at: Optional[datetime]
    captains: List[CaptainRow] = field(default_factory=list)
    manager_id: Optional[str] = None

    @property
    def captain_ids_in_order(self) -> List[str]:
        return [c.id for c in sorted(self.captains, key=lambda c: c.draft_position)]

    @property
    def captain_player_ids(self) -> set:
        return {c.player_id for c in self.captains if c.player_id}

    def captain(self, captain_id: str) -> Optional[CaptainRow]:
        for c in self.captains:
            if c.id == captain_id:
                return c
        return None


@dataclass(frozen=True)
class Turn:
    league_id: str
    status: LeagueStatus
    pick_index: int
    round: int
    captain_id: Optional[str]
    deadline: Optional[datetime]
    seconds_remaining: Optional[float]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "league_id": self.league_id,
            "status": self.status.value,
            "pick_index": self.pick_index,
            "round": self.round,
            "captain_id": self.captain_id,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "seconds_remaining": self.seconds_remaining,
        }


@dataclass(frozen=True)
class CommitResult:
    pick_number: int
    captain_id: str
    player_id: Optional[str]
    is_complete: bool


@dataclass(frozen=True)
class PickOutcome:
    accepted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    pick_number: Optional[int] = None
    is_complete: bool = False
    turn: Optional[Turn] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "reason": self.reason,
            "message": self.message,
            "pick_number": self.pick_number,
            "is_complete": self.is_complete,
            "turn": self.turn.as_dict() if self.turn else None,
        }


@dataclass(frozen=True)
class TickOutcome:
    state: ArbiterState
    action: Optional[str] = None  # auto_pick | skip | pause | None
    pick_number: Optional[int] = None
    player_id: Optional[str] = None
    reason: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "action": self.action,
            "pick_number": self.pick_number,
            "player_id": self.player_id,
            "reason": self.reason,
        }
