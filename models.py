from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    ConfigDict,
    field_validator,
    model_validator,
    conint,
    AliasChoices,
)

BudgetLevel = Literal["£", "££", "£££", "££££"]

BUDGET_LABELS: Dict[str, str] = {
    "£": "budget-conscious",
    "££": "moderate",
    "£££": "comfortable",
    "££££": "luxury",
}


def new_activity_id() -> str:
    return uuid.uuid4().hex[:12]

# -----------------------------
# Request
# -----------------------------

class Window(BaseModel):
    """Half-open [start, end) range of half-hour slots within one day."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    start: conint(ge=0, le=48)
    end: conint(ge=0, le=48)

    @model_validator(mode="before")
    @classmethod
    def _accept_pair(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            if len(v) != 2:
                raise ValueError("window must be a [start, end] pair of slots.")
            return {"start": v[0], "end": v[1]}
        return v

    @model_validator(mode="after")
    def _ordered(self) -> "Window":
        if self.start >= self.end:
            raise ValueError("window start must be before window end.")
        return self

    @property
    def length(self) -> int:
        return self.end - self.start


class Child(BaseModel):
    model_config = ConfigDict(extra="forbid")

    age: conint(ge=0, le=18)
    preferences: Optional[str] = None

    @field_validator("preferences")
    @classmethod
    def _screen_preferences(cls, v):
        from security import screen_free_text
        return screen_free_text(v, field="preferences")


class PlanRequest(BaseModel):
    """The form submission: one day out, one window, one family."""
    model_config = ConfigDict(extra="forbid")

    date: date
    window: Window = Field(validation_alias=AliasChoices("window", "time_range", "timeRange"))
    children: List[Child] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    budget: BudgetLevel

    @field_validator("children", "interests", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("interests")
    @classmethod
    def _validate_interests(cls, v):
        from security import validate_interests
        return validate_interests(v)

# -----------------------------
# Itinerary
# -----------------------------

class Location(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    address: Optional[str] = None
    nearest_tube: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("nearest_tube", "nearestTube")
    )
    accessibility: Optional[str] = None


class Activity(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=new_activity_id)
    title: str
    description: str
    time: str = Field(description="Display time, e.g. '9:00 AM - 11:00 AM'.")
    start_slot: Optional[int] = None
    duration: str = Field(description="Canonical duration text, e.g. '1 hour 30 mins'.")
    duration_slots: conint(ge=1)
    budget_level: Optional[BudgetLevel] = None

    location: Optional[Location] = None
    cost_estimate: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("cost_estimate", "costEstimate")
    )
    crowd_level: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("crowd_level", "crowdLevel")
    )
    child_engagement: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("child_engagement", "childEngagement")
    )
    practical_tips: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("practical_tips", "practicalTips")
    )
    transport_to_next: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("transport_to_next", "transportToNext")
    )

    @property
    def end_slot(self) -> Optional[int]:
        if self.start_slot is None:
            return None
        return self.start_slot + self.duration_slots


class Meta(BaseModel):
    model_config = ConfigDict(extra="forbid")
    schema_version: str = "1.0.0"
    generated_at_iso: Optional[str] = None
    generator: str = "playday@fallback"


class Itinerary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: date
    window: Window
    children: List[Child] = Field(default_factory=list)
    summary: Optional[str] = None
    logistics: Optional[Dict[str, Any]] = None
    meal_planning: Optional[Dict[str, Any]] = None
    emergency_info: Optional[Dict[str, Any]] = None

    activities: List[Activity] = Field(min_length=1)
    total_duration: str
    degraded: bool = False
    diagnostic: Optional[str] = None
    meta: Meta = Field(default_factory=Meta)

# -----------------------------
# Generation payload (validated once at the boundary)
# -----------------------------

class ValidPayload(BaseModel):
    kind: Literal["valid"] = "valid"
    activities: List[Activity] = Field(min_length=1)
    summary: Optional[str] = None
    logistics: Optional[Dict[str, Any]] = None
    meal_planning: Optional[Dict[str, Any]] = None
    emergency_info: Optional[Dict[str, Any]] = None


class InvalidPayload(BaseModel):
    kind: Literal["invalid"] = "invalid"
    reason: str


GenerationPayload = Annotated[Union[ValidPayload, InvalidPayload], Field(discriminator="kind")]

# -----------------------------
# Session API bodies
# -----------------------------

class ReorderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order: Optional[List[str]] = Field(default=None, description="Activity ids in their new order.")
    from_index: Optional[conint(ge=0)] = None
    to_index: Optional[conint(ge=0)] = None

    @model_validator(mode="after")
    def _one_form(self) -> "ReorderRequest":
        has_move = self.from_index is not None and self.to_index is not None
        if (self.order is None) == (not has_move):
            raise ValueError("Provide either 'order' or both 'from_index' and 'to_index'.")
        return self


class NoteUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    note: str = Field(default="", max_length=2000)


class SessionView(BaseModel):
    session_id: str
    state: str
    itinerary: Optional[Itinerary] = None
    completed: List[str] = Field(default_factory=list)
    notes: Dict[str, str] = Field(default_factory=dict)
    images: Dict[str, str] = Field(default_factory=dict)
    steps: List[Dict[str, Any]] = Field(default_factory=list)
