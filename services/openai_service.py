# services/openai_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from config import settings
from errors import GenerationNetworkError
from logging_config import get_request_id
from models import BUDGET_LABELS, PlanRequest
from services.timeslots import decode_slot

log = logging.getLogger("generation")

SYSTEM_PROMPT = """You are London's most experienced family tour guide, with over 20 years of expertise.
Create a carefully timed itinerary for a family day out in London.

Write in British English throughout, in clear, accessible language for a parent of young children.
Avoid em dashes in favour of simple punctuation.

Planning rules:
- Keep every activity inside the family's time frame, in time order, without overlaps.
- Allow realistic travel between venues on London public transport and mention step-free access.
- Consider rush hours (8-9:30am, 5-7pm), crowd levels, and whether booking ahead is needed.
- Match attention spans to ages (toddlers 15-30 min, preschool 30-45 min, school age 1-2 hours).
- Plan food and toilet breaks and suggest an indoor backup for outdoor activities.
- Keep costs in line with the budget level and recommend contactless payment for transport.
"""

OUTPUT_CONTRACT = """Reply with a single JSON object in exactly this shape:
{
  "summary": "A brief overview of the day and why it suits this family",
  "logistics": {"totalWalkingTime": "...", "transportMethod": "...", "weatherBackup": "..."},
  "activities": [
    {
      "time": "9:00 AM",
      "duration": "2 hours",
      "title": "Activity name",
      "description": "Child-friendly explanation of the activity",
      "location": {"address": "...", "nearestTube": "...", "accessibility": "..."},
      "crowdLevel": "Low/Medium/High with timing notes",
      "costEstimate": "Current prices, per person or family",
      "childEngagement": "How to keep these children engaged",
      "practicalTips": "Booking, what to bring, contingencies",
      "transportToNext": "How to reach the next activity"
    }
  ],
  "mealPlanning": {"breakfast": "...", "lunch": "...", "snacks": "...", "dietary": "..."},
  "emergencyInfo": {"nearestHospital": "...", "pharmacies": "...", "toilets": "..."}
}"""


def age_group(age: int) -> str:
    if age <= 3:
        return "Toddler"
    if age <= 6:
        return "Preschooler"
    if age <= 10:
        return "Primary School"
    if age <= 14:
        return "Tween"
    return "Teenager"


def build_planning_prompt(req: PlanRequest) -> str:
    children = "; ".join(
        f"Child {i}: {c.age} years old ({age_group(c.age)})"
        + (f", special notes: {c.preferences}" if c.preferences else "")
        for i, c in enumerate(req.children, 1)
    ) or "not specified"
    budget_legend = ", ".join(f"{k} = {v}" for k, v in BUDGET_LABELS.items())

    blocks = [
        "Plan a family day out in London.",
        f"date: {req.date.strftime('%A %d %B %Y')} (consider typical London weather for the season)",
        f"time frame: from {decode_slot(req.window.start)} to {decode_slot(req.window.end)}",
        f"children: {children}",
        f"interests: {', '.join(req.interests) if req.interests else 'none given, suggest a balanced day'}",
        f"budget level: {req.budget} ({budget_legend})",
        "",
        OUTPUT_CONTRACT,
    ]
    return "\n".join(blocks)


@dataclass(frozen=True)
class GenerationReply:
    status: int
    body: str


class GenerationService(Protocol):
    async def submit(self, prompt: str) -> GenerationReply: ...


class OpenAIGenerationService:
    """Chat completion call reduced to (status, text). Retries are the caller's job."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model or settings.OPENAI_MODEL
        self._client = client or AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY,
            timeout=timeout_s or settings.OPENAI_TIMEOUT_S,
            max_retries=0,
        )

    async def submit(self, prompt: str) -> GenerationReply:
        rid = get_request_id()
        try:
            chat = await self._client.chat.completions.create(
                model=self.model,
                temperature=0.4,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except APIStatusError as e:
            log.warning("Generation service returned an error status", extra={
                "request_id": rid, "status": e.status_code, "model": self.model,
            })
            return GenerationReply(status=e.status_code, body=e.message or "")
        except APIConnectionError as e:
            log.warning("Generation service unreachable", extra={"request_id": rid, "error": str(e)})
            raise GenerationNetworkError(f"Could not reach the generation service: {e}") from e

        content = chat.choices[0].message.content if chat.choices else None
        log.info("LLM call ok", extra={"request_id": rid, "model": self.model, "chars": len(content or "")})
        return GenerationReply(status=200, body=content or "")


def default_generation_service() -> Optional[GenerationService]:
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIGenerationService()
