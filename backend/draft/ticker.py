"""
In-process scheduler for on_timeout_tick.

A daemon thread wakes every `interval` seconds, lists leagues with a running
clock and ticks each one in its own session. One league blowing up is logged
and does not stop the loop. Correctness never depends on this thread: ticks
are idempotent per pick index, so several app instances can run it at once.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from sqlalchemy.orm import Session

from draft.room import DraftRoom
from draft.store import DraftStore

logger = logging.getLogger(__name__)


class TimeoutTicker:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        room_factory: Callable[[Session], DraftRoom],
        interval: float,
    ):
        self.session_factory = session_factory
        self.room_factory = room_factory
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "TimeoutTicker":
        if self.interval <= 0:
            logger.info("Draft ticker disabled")
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="draft-ticker")
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 5)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.tick_all()

    def tick_all(self) -> int:
        """Tick every active league once. Returns how many leagues acted on their clock."""
        acted = 0
        db = self.session_factory()
        try:
            league_ids = DraftStore(db).active_league_ids()
        except Exception:
            logger.exception("Ticker could not list active leagues")
            db.close()
            return 0
        db.close()

        for league_id in league_ids:
            db = self.session_factory()
            try:
                outcome = self.room_factory(db).on_timeout_tick(league_id)
                if outcome.action:
                    acted += 1
            except Exception:
                logger.exception("Timeout tick failed for league %s", league_id)
            finally:
                db.close()
        return acted
