# sessions.py
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from errors import NoItineraryError, SubmissionInFlightError
from models import Itinerary, PlanRequest, SessionView
from services.image_service import ImageLookup, fetch_activity_images
from services.ingestor import plan_itinerary
from services.openai_service import GenerationService
from services.reorder import apply_order, move_activity, reorder_itinerary

log = logging.getLogger("sessions")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"


@dataclass
class PlanningSession:
    id: str
    state: SessionState = SessionState.IDLE
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    steps: List[Dict[str, Any]] = field(default_factory=list)  # {'seq', 'ts', 'msg'}
    itinerary: Optional[Itinerary] = None
    # keyed by activity id, so they follow an activity through reorders
    completed: Set[str] = field(default_factory=set)
    notes: Dict[str, str] = field(default_factory=dict)
    images: Dict[str, str] = field(default_factory=dict)
    touched: float = field(default_factory=time.time)

    def progress(self, msg: str) -> None:
        self.steps.append({"seq": len(self.steps) + 1, "ts": _now(), "msg": msg})
        self.updated_at = _now()
        self.touched = time.time()

    def view(self) -> SessionView:
        return SessionView(
            session_id=self.id,
            state=self.state.value,
            itinerary=self.itinerary,
            completed=sorted(self.completed),
            notes=dict(self.notes),
            images=dict(self.images),
            steps=list(self.steps),
        )

    def require_itinerary(self) -> Itinerary:
        if self.itinerary is None:
            raise NoItineraryError("This session has no itinerary yet.")
        return self.itinerary

    def require_activity(self, activity_id: str) -> None:
        if all(a.id != activity_id for a in self.require_itinerary().activities):
            raise KeyError(activity_id)


class SessionManager:
    """
    In-memory planning sessions. Nothing is shared between sessions and
    nothing survives a restart.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, PlanningSession] = {}
        self._lock = threading.Lock()

    def create(self) -> PlanningSession:
        session = PlanningSession(id=uuid.uuid4().hex[:12])
        with self._lock:
            self._sessions[session.id] = session
        log.info("Planning session created", extra={"session_id": session.id})
        return session

    def get(self, session_id: str) -> Optional[PlanningSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def prune(self, older_than_seconds: int) -> int:
        cutoff = time.time() - older_than_seconds
        with self._lock:
            stale = [sid for sid, s in self._sessions.items()
                     if s.touched < cutoff and s.state is not SessionState.GENERATING]
            for sid in stale:
                self._sessions.pop(sid, None)
        if stale:
            log.info("Pruned planning sessions", extra={"count": len(stale)})
        return len(stale)

    async def plan(
        self,
        session: PlanningSession,
        req: PlanRequest,
        service: Optional[GenerationService],
        image_lookup: Optional[ImageLookup] = None,
        *,
        progress: Optional[Callable[[str], None]] = None,
    ) -> Itinerary:
        """
        Generate a fresh itinerary for the session. Only one request may be
        outstanding per session; a second submission is refused, not queued.
        """
        with self._lock:
            if session.state is SessionState.GENERATING:
                raise SubmissionInFlightError("A plan is already being generated for this session.")
            session.state = SessionState.GENERATING

        def report(msg: str) -> None:
            session.progress(msg)
            if progress:
                progress(msg)

        previous = session.itinerary
        try:
            itinerary = await plan_itinerary(req, service, progress=report)
            self._discard(session)
            session.itinerary = itinerary
            if image_lookup is not None:
                report("Finding pictures")
                await fetch_activity_images(itinerary.activities, image_lookup, session.images)
        finally:
            with self._lock:
                session.state = SessionState.READY if session.itinerary else SessionState.IDLE
        log.info("Session plan ready", extra={
            "session_id": session.id,
            "degraded": itinerary.degraded,
            "replaced_previous": previous is not None,
        })
        return itinerary

    @staticmethod
    def _require_settled(session: PlanningSession) -> None:
        if session.state is SessionState.GENERATING:
            raise SubmissionInFlightError("A plan is being generated for this session; try again when it is ready.")

    def reorder(self, session: PlanningSession, ordered_ids: List[str]) -> Itinerary:
        with self._lock:
            self._require_settled(session)
            itinerary = session.require_itinerary()
            session.itinerary = reorder_itinerary(itinerary, apply_order(itinerary.activities, ordered_ids))
            session.progress("Activities reordered")
            return session.itinerary

    def move(self, session: PlanningSession, from_index: int, to_index: int) -> Itinerary:
        with self._lock:
            self._require_settled(session)
            itinerary = session.require_itinerary()
            session.itinerary = reorder_itinerary(itinerary, move_activity(itinerary.activities, from_index, to_index))
            session.progress("Activities reordered")
            return session.itinerary

    def toggle_completion(self, session: PlanningSession, activity_id: str) -> bool:
        with self._lock:
            self._require_settled(session)
            session.require_activity(activity_id)
            if activity_id in session.completed:
                session.completed.discard(activity_id)
                return False
            session.completed.add(activity_id)
            return True

    def set_note(self, session: PlanningSession, activity_id: str, note: str) -> None:
        with self._lock:
            self._require_settled(session)
            session.require_activity(activity_id)
            note = note.strip()
            if note:
                session.notes[activity_id] = note
            else:
                session.notes.pop(activity_id, None)

    def reset(self, session: PlanningSession) -> None:
        """Discard the itinerary and everything keyed to its activities."""
        with self._lock:
            if session.state is SessionState.GENERATING:
                raise SubmissionInFlightError("Cannot reset while a plan is being generated.")
            self._discard(session)
            session.state = SessionState.IDLE
        session.progress("Itinerary discarded")

    @staticmethod
    def _discard(session: PlanningSession) -> None:
        session.itinerary = None
        session.completed.clear()
        session.notes.clear()
        session.images.clear()


manager = SessionManager()
