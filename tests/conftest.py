"""Shared pytest fixtures."""

import os

# Settings are read at import time; keep the suite offline and fast.
os.environ["APP_ENV"] = "development"
os.environ["OPENAI_API_KEY"] = ""
os.environ["GENERATION_RETRY_DELAY_S"] = "0"

import json
from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from models import Activity, PlanRequest, Window
from services.durations import format_duration, parse_duration
from services.openai_service import GenerationReply


GENERATED_PLAN: Dict[str, Any] = {
    "summary": "A dinosaur morning and a riverside afternoon.",
    "logistics": {"transportMethod": "Tube, pay by contactless"},
    "activities": [
        {
            "time": "11:00 AM",
            "duration": "1.5 hours",
            "title": "Picnic in Hyde Park",
            "description": "Playground and picnic by the Serpentine.",
            "costEstimate": "Free",
        },
        {
            "time": "9:00 AM",
            "duration": "2 hours",
            "title": "Natural History Museum",
            "description": "Dinosaurs and the earthquake room.",
            "location": {"address": "Cromwell Rd, London SW7 5BD", "nearestTube": "South Kensington"},
            "practicalTips": "Arrive before opening.",
        },
    ],
    "mealPlanning": {"lunch": "Picnic"},
}


def wrap_in_prose(payload: Dict[str, Any]) -> str:
    return "Here is your plan!\n```json\n" + json.dumps(payload) + "\n```\nEnjoy your day."


class ScriptedService:
    """Generation service double: replays replies in order, repeating the last one."""

    def __init__(self, *replies):
        self.replies: List[Any] = list(replies)
        self.prompts: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def submit(self, prompt: str) -> GenerationReply:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
            if isinstance(reply, BaseException):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


def ok(body: str) -> GenerationReply:
    return GenerationReply(status=200, body=body)


def make_activity(title: str, duration: str, start: Optional[int] = None) -> Activity:
    slots = parse_duration(duration)
    return Activity(
        title=title,
        description=f"{title} description",
        time="",
        start_slot=start,
        duration=format_duration(slots),
        duration_slots=slots,
    )


@pytest.fixture
def window() -> Window:
    return Window(start=18, end=36)


@pytest.fixture
def make_request():
    def _make(**overrides) -> PlanRequest:
        data = {
            "date": date(2026, 11, 14),
            "window": [18, 36],
            "children": [{"age": 4, "preferences": "loves dinosaurs"}, {"age": 9}],
            "interests": ["Museums", "Parks"],
            "budget": "££",
        }
        data.update(overrides)
        return PlanRequest.model_validate(data)

    return _make


@pytest.fixture
def sample_activities() -> List[Activity]:
    return [
        make_activity("Natural History Museum", "2 hours"),
        make_activity("Borough Market", "1.5 hours"),
        make_activity("Neal's Yard", "45 mins"),
        make_activity("Thames Clipper", "1 hour"),
    ]
