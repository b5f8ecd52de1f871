# main.py
from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from errors import NoItineraryError, SubmissionInFlightError
from logging_config import new_request_id, setup_logging
from models import Itinerary, NoteUpdate, PlanRequest, ReorderRequest, SessionView
from security import security_headers_middleware, validate_request_size
from services.allocator import INTERESTS
from services.image_service import ImageLookup, WikipediaImageLookup
from services.ingestor import plan_itinerary
from services.openai_service import GenerationService, default_generation_service
from sessions import PlanningSession, SessionManager, manager

# Initialize logging BEFORE creating the app
setup_logging(settings.log_level)
log = logging.getLogger("app")

app = FastAPI(
    title="PlayDay Planner",
    version="1.0.0",
    description="Family day-out itineraries with a deterministic fallback",
)

_image_lookup: Optional[WikipediaImageLookup] = None


def get_generation_service() -> Optional[GenerationService]:
    return default_generation_service()


def get_image_lookup() -> ImageLookup:
    global _image_lookup
    if _image_lookup is None:
        _image_lookup = WikipediaImageLookup()
    return _image_lookup


def get_session_manager() -> SessionManager:
    return manager


@app.on_event("startup")
async def on_startup():
    log.info("App starting", extra={
        "model": settings.OPENAI_MODEL,
        "env": settings.APP_ENV,
        "generation_configured": bool(settings.OPENAI_API_KEY),
        "max_attempts": settings.GENERATION_MAX_ATTEMPTS,
    })


@app.on_event("shutdown")
async def on_shutdown():
    if _image_lookup is not None:
        await _image_lookup.aclose()


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
    expose_headers=settings.CORS_EXPOSE_HEADERS,
)

app.middleware("http")(security_headers_middleware())


@app.middleware("http")
async def request_logging_mw(request: Request, call_next):
    rid = new_request_id()
    start = time.perf_counter()
    response: Response | None = None

    if request.method in ("POST", "PUT", "PATCH"):
        try:
            validate_request_size(request)
        except HTTPException as e:
            response = JSONResponse(status_code=e.status_code, content={"detail": e.detail})
            response.headers["X-Request-Id"] = rid
            return response

    try:
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response
    finally:
        dur_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            f"{request.method} {request.url.path} -> {getattr(response, 'status_code', '?')} in {dur_ms}ms",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": getattr(response, "status_code", None),
                "duration_ms": dur_ms,
            },
        )


@app.get("/health")
def health():
    return {
        "status": "ok",
        "openai_key_loaded": bool(settings.OPENAI_API_KEY),
        "model": settings.OPENAI_MODEL,
    }


@app.get("/api/interests")
def list_interests():
    return {"interests": list(INTERESTS)}


@app.post("/api/plan-trip", response_model=Itinerary)
async def plan_trip(
    req: PlanRequest,
    service: Optional[GenerationService] = Depends(get_generation_service),
) -> Itinerary:
    log.info("Plan request received", extra={
        "date": str(req.date),
        "window": [req.window.start, req.window.end],
        "interests": req.interests,
        "budget": req.budget,
        "children_count": len(req.children),
    })
    return await plan_itinerary(req, service)

# --- SESSION ENDPOINTS ---

def _session_or_404(session_id: str, sessions: SessionManager) -> PlanningSession:
    session = sessions.get(session_id)
    if not session:
        log.warning("Session not found", extra={"session_id": session_id})
        raise HTTPException(status_code=404, detail="session not found")
    return session


@app.post("/api/sessions")
def create_session(sessions: SessionManager = Depends(get_session_manager)):
    sessions.prune(settings.SESSION_TTL_S)
    session = sessions.create()
    return {"session_id": session.id, "state": session.state.value}


@app.get("/api/sessions/{session_id}", response_model=SessionView)
def get_session(session_id: str, sessions: SessionManager = Depends(get_session_manager)):
    return _session_or_404(session_id, sessions).view()


@app.post("/api/sessions/{session_id}/plan", response_model=Itinerary)
async def plan_session(
    session_id: str,
    req: PlanRequest,
    sessions: SessionManager = Depends(get_session_manager),
    service: Optional[GenerationService] = Depends(get_generation_service),
    image_lookup: ImageLookup = Depends(get_image_lookup),
) -> Itinerary:
    session = _session_or_404(session_id, sessions)
    try:
        return await sessions.plan(session, req, service, image_lookup)
    except SubmissionInFlightError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/api/sessions/{session_id}/reorder", response_model=Itinerary)
def reorder_session(
    session_id: str,
    body: ReorderRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> Itinerary:
    session = _session_or_404(session_id, sessions)
    try:
        if body.order is not None:
            return sessions.reorder(session, body.order)
        return sessions.move(session, body.from_index, body.to_index)
    except (NoItineraryError, SubmissionInFlightError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/sessions/{session_id}/activities/{activity_id}/complete")
def toggle_activity(
    session_id: str,
    activity_id: str,
    sessions: SessionManager = Depends(get_session_manager),
):
    session = _session_or_404(session_id, sessions)
    try:
        done = sessions.toggle_completion(session, activity_id)
    except (NoItineraryError, SubmissionInFlightError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except KeyError:
        raise HTTPException(status_code=404, detail="activity not found")
    return {"activity_id": activity_id, "completed": done}


@app.put("/api/sessions/{session_id}/activities/{activity_id}/note")
def update_note(
    session_id: str,
    activity_id: str,
    body: NoteUpdate,
    sessions: SessionManager = Depends(get_session_manager),
):
    session = _session_or_404(session_id, sessions)
    try:
        sessions.set_note(session, activity_id, body.note)
    except (NoItineraryError, SubmissionInFlightError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except KeyError:
        raise HTTPException(status_code=404, detail="activity not found")
    return {"activity_id": activity_id, "note": session.notes.get(activity_id, "")}


@app.delete("/api/sessions/{session_id}/itinerary")
def discard_itinerary(session_id: str, sessions: SessionManager = Depends(get_session_manager)):
    session = _session_or_404(session_id, sessions)
    try:
        sessions.reset(session)
    except SubmissionInFlightError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"session_id": session.id, "state": session.state.value}


# Production entry point
if __name__ == "__main__":
    import uvicorn

    log.info(f"Starting server on {settings.HOST}:{settings.PORT}")
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=1,
        access_log=True,
        log_level="info" if settings.APP_ENV == "production" else "debug",
    )
