# services/ingestor.py
"""
Itinerary generation with a guaranteed answer.

The planning request goes to the text generator; its reply is mined for a JSON
object and validated. Any failure along the way (overload after all retries,
a rejected request, an unreachable service, unreadable output) produces the
deterministic plan instead, flagged as degraded with a short explanation.
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from config import settings
from errors import (
    FatalServiceError,
    GenerationNetworkError,
    MalformedPayloadError,
    PlannerError,
    ServiceNotConfiguredError,
    TransientServiceError,
)
from logging_config import get_request_id
from models import (
    Activity,
    GenerationPayload,
    InvalidPayload,
    Itinerary,
    Location,
    Meta,
    PlanRequest,
    ValidPayload,
)
from services.allocator import FALLBACK_TITLE_PREFIX, allocate
from services.durations import format_duration, parse_duration
from services.openai_service import GenerationService, build_planning_prompt
from services.reorder import settle_schedule, total_duration_text
from services.timeslots import parse_clock

log = logging.getLogger("generation")

RETRYABLE_STATUSES = frozenset({429, 503, 529})
REQUIRED_ACTIVITY_FIELDS = ("title", "time", "duration", "description")

ProgressFn = Callable[[str], None]


def classify_status(status: int) -> str:
    if 200 <= status < 300:
        return "ok"
    if status in RETRYABLE_STATUSES:
        return "retryable"
    return "fatal"


def _notify(progress: Optional[ProgressFn], msg: str) -> None:
    if progress is None:
        return
    try:
        progress(msg)
    except Exception:
        log.debug("Progress callback failed", exc_info=True)


async def request_generation(
    service: GenerationService,
    prompt: str,
    *,
    max_attempts: int,
    retry_delay_s: float,
    progress: Optional[ProgressFn] = None,
) -> str:
    """
    Submit the prompt, retrying overloaded replies after a fixed delay.
    Returns the reply text, or raises TransientServiceError once attempts run
    out and FatalServiceError (including network failures) straight away.
    """
    rid = get_request_id()
    attempt = 0
    while True:
        attempt += 1
        _notify(progress, f"Asking the planner (attempt {attempt} of {max_attempts})")
        reply = await service.submit(prompt)
        kind = classify_status(reply.status)
        if kind == "ok":
            return reply.body
        if kind == "fatal":
            raise FatalServiceError(f"Generation request rejected with status {reply.status}", status=reply.status)

        log.warning("Generation service busy", extra={
            "request_id": rid, "status": reply.status, "attempt": attempt, "max_attempts": max_attempts,
        })
        if attempt >= max_attempts:
            raise TransientServiceError(
                f"Generation service still busy after {attempt} attempts",
                status=reply.status,
                attempts=attempt,
            )
        _notify(progress, f"The planner is busy, trying again in {retry_delay_s:g}s "
                          f"(attempt {attempt + 1} of {max_attempts})")
        await asyncio.sleep(retry_delay_s)

# ---------- payload extraction ----------

def extract_json_block(text: Optional[str]) -> str:
    """First '{' through last '}', so prose and code fences around the JSON are tolerated."""
    if not text:
        raise MalformedPayloadError("empty response")
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise MalformedPayloadError("no JSON object found in response")
    return text[start:end + 1]


def _unwrap_root(candidate: Any) -> Any:
    if isinstance(candidate, dict) and len(candidate) == 1:
        k = next(iter(candidate.keys()))
        if k in {"itinerary", "plan", "data", "result"}:
            return candidate[k]
    return candidate


def _text(val: Any) -> Optional[str]:
    if val is None:
        return None
    if isinstance(val, (str, int, float)):
        s = str(val).strip()
        return s or None
    return None


def _section(val: Any) -> Optional[Dict[str, Any]]:
    return val if isinstance(val, dict) and val else None


def _location(val: Any) -> Optional[Location]:
    if isinstance(val, str) and val.strip():
        return Location(address=val.strip())
    if isinstance(val, dict):
        loc = Location.model_validate({k: _text(v) for k, v in val.items()})
        if loc.address or loc.nearest_tube or loc.accessibility:
            return loc
    return None


def _normalize_activity(entry: Any, index: int, budget: Optional[str]) -> Activity:
    if not isinstance(entry, dict):
        raise MalformedPayloadError(f"activity {index} is not an object")
    missing = [f for f in REQUIRED_ACTIVITY_FIELDS if _text(entry.get(f)) is None]
    if missing:
        raise MalformedPayloadError(f"activity {index} is missing {', '.join(missing)}")

    slots = parse_duration(_text(entry["duration"]))
    time_text = _text(entry["time"])
    return Activity(
        title=_text(entry["title"]),
        description=_text(entry["description"]),
        time=time_text,
        start_slot=parse_clock(time_text),
        duration=format_duration(slots),
        duration_slots=slots,
        budget_level=budget,
        location=_location(entry.get("location")),
        cost_estimate=_text(entry.get("costEstimate") or entry.get("cost_estimate")),
        crowd_level=_text(entry.get("crowdLevel") or entry.get("crowd_level")),
        child_engagement=_text(entry.get("childEngagement") or entry.get("child_engagement")),
        practical_tips=_text(entry.get("practicalTips") or entry.get("practical_tips")),
        transport_to_next=_text(entry.get("transportToNext") or entry.get("transport_to_next")),
    )


def parse_generation_payload(text: Optional[str], *, budget: Optional[str] = None) -> GenerationPayload:
    try:
        try:
            raw = json.loads(extract_json_block(text))
        except json.JSONDecodeError as e:
            raise MalformedPayloadError(f"invalid JSON: {e.msg}") from e

        candidate = _unwrap_root(raw)
        if not isinstance(candidate, dict):
            raise MalformedPayloadError("top-level JSON is not an object")
        entries = candidate.get("activities")
        if not isinstance(entries, list) or not entries:
            raise MalformedPayloadError("'activities' must be a non-empty list")

        activities = [_normalize_activity(e, i, budget) for i, e in enumerate(entries)]
        return ValidPayload(
            activities=activities,
            summary=_text(candidate.get("summary")),
            logistics=_section(candidate.get("logistics")),
            meal_planning=_section(candidate.get("mealPlanning") or candidate.get("meal_planning")),
            emergency_info=_section(candidate.get("emergencyInfo") or candidate.get("emergency_info")),
        )
    except MalformedPayloadError as e:
        return InvalidPayload(reason=str(e))
    except ValidationError as e:
        return InvalidPayload(reason=f"activity failed validation ({e.error_count()} errors)")
    except (OverflowError, ValueError) as e:
        return InvalidPayload(reason=f"unreadable value in reply: {e}")

# ---------- itinerary assembly ----------

def _meta(generator: str) -> Meta:
    return Meta(generator=generator, generated_at_iso=datetime.now(timezone.utc).isoformat())


def _diagnostic_for(exc: Exception) -> str:
    if isinstance(exc, TransientServiceError):
        lead = f"The planning service was busy after {exc.attempts} attempts"
    elif isinstance(exc, ServiceNotConfiguredError):
        lead = "The planning service is not configured"
    elif isinstance(exc, GenerationNetworkError):
        lead = "We could not reach the planning service"
    elif isinstance(exc, FatalServiceError):
        lead = f"The planning service could not handle this request (status {exc.status})"
    elif isinstance(exc, MalformedPayloadError):
        lead = f"The planning service returned a plan we could not read ({exc})"
    else:
        lead = "The planning service failed"
    return f"{lead}, so this is a simple plan built from your interests."


def build_fallback_itinerary(req: PlanRequest, diagnostic: str) -> Itinerary:
    allocation = allocate(req.interests, req.window, req.budget)
    activities = [
        a.model_copy(update={"title": FALLBACK_TITLE_PREFIX + a.title})
        for a in allocation.activities
    ]
    return Itinerary(
        date=req.date,
        window=req.window,
        children=req.children,
        activities=activities,
        total_duration=total_duration_text(activities, req.window),
        degraded=True,
        diagnostic=diagnostic,
        meta=_meta("playday@fallback"),
    )


def build_generated_itinerary(req: PlanRequest, payload: ValidPayload) -> Itinerary:
    activities = settle_schedule(payload.activities, req.window)
    if activities[-1].end_slot > req.window.end:
        raise MalformedPayloadError("generated activities do not fit the time window")
    return Itinerary(
        date=req.date,
        window=req.window,
        children=req.children,
        summary=payload.summary,
        logistics=payload.logistics,
        meal_planning=payload.meal_planning,
        emergency_info=payload.emergency_info,
        activities=activities,
        total_duration=total_duration_text(activities, req.window),
        meta=_meta("playday@openai"),
    )


async def plan_itinerary(
    req: PlanRequest,
    service: Optional[GenerationService],
    *,
    progress: Optional[ProgressFn] = None,
    max_attempts: Optional[int] = None,
    retry_delay_s: Optional[float] = None,
) -> Itinerary:
    """Always returns an Itinerary; generation failures turn into a degraded plan."""
    rid = get_request_id()
    attempts = max_attempts or settings.GENERATION_MAX_ATTEMPTS
    delay = settings.GENERATION_RETRY_DELAY_S if retry_delay_s is None else retry_delay_s

    try:
        if service is None:
            raise ServiceNotConfiguredError("no generation service configured")
        body = await request_generation(
            service, build_planning_prompt(req),
            max_attempts=attempts, retry_delay_s=delay, progress=progress,
        )
        payload = parse_generation_payload(body, budget=req.budget)
        if isinstance(payload, InvalidPayload):
            raise MalformedPayloadError(payload.reason)
        itinerary = build_generated_itinerary(req, payload)
    except PlannerError as e:
        log.warning("Falling back to the simple planner", extra={
            "request_id": rid, "reason": type(e).__name__, "detail": str(e),
        })
        _notify(progress, "Building a simple plan instead")
        return build_fallback_itinerary(req, _diagnostic_for(e))
    except Exception as e:
        log.error("Unexpected generation failure; falling back to the simple planner", exc_info=True, extra={
            "request_id": rid, "reason": type(e).__name__,
        })
        _notify(progress, "Building a simple plan instead")
        return build_fallback_itinerary(req, _diagnostic_for(e))

    _notify(progress, "Plan ready")
    log.info("Generated itinerary accepted", extra={
        "request_id": rid, "activities": len(itinerary.activities),
    })
    return itinerary
