"""
EventDetector - one event's date, time, place and RSVP details.

Phase 2, runs when the categorizer set has_event without has_multiple_events
(MultiEventDetector covers the other case). When the orchestrator resolved
linked pages, their text is appended to the email so details that only live
on the registration page (time, venue, cost) can still be extracted.

The per-event field table and EventDetails type are shared with
MultiEventDetector.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from inboxlens.analyzers.contract import StageConfig, StageDefinition, StageInvocation
from inboxlens.analyzers.normalization import (
    Normalized,
    choice,
    flag,
    normalize_fields,
    number,
    text,
    text_list,
)
from inboxlens.analyzers.types import (
    Correction,
    EventLocality,
    LocationType,
    UserContext,
)
from inboxlens.links.resolver import format_resolved_links_for_prompt

STAGE_NAME = "event_detector"
MAX_EVENT_KEY_POINTS = 5


@dataclass
class EventDetails:
    event_title: str
    event_date: str
    event_time: str | None = None
    event_end_time: str | None = None
    event_end_date: str | None = None
    location_type: str = LocationType.UNKNOWN.value
    event_locality: str | None = None
    location: str | None = None
    registration_deadline: str | None = None
    rsvp_required: bool = False
    rsvp_url: str | None = None
    organizer: str | None = None
    cost: str | None = None
    additional_details: str | None = None
    event_summary: str | None = None
    key_points: list[str] = field(default_factory=list)
    confidence: float = 0.5


@dataclass
class EventDetectionData(EventDetails):
    has_event: bool = False


class EventWire(BaseModel):
    event_title: str
    event_date: str = Field(description="YYYY-MM-DD")
    event_time: str | None = Field(default=None, description="HH:MM, 24h")
    event_end_time: str | None = None
    event_end_date: str | None = None
    location_type: LocationType
    event_locality: EventLocality | None = Field(
        default=None, description="Relative to the user's location: local, out_of_town or virtual"
    )
    location: str | None = Field(default=None, description="Address or meeting link")
    registration_deadline: str | None = None
    rsvp_required: bool = False
    rsvp_url: str | None = None
    organizer: str | None = None
    cost: str | None = Field(default=None, description='"Free", "$25", "$10-50"')
    additional_details: str | None = None
    event_summary: str | None = Field(default=None, description="One-line pitch for the event")
    key_points: list[str] = Field(default_factory=list, max_length=MAX_EVENT_KEY_POINTS)
    confidence: float = Field(ge=0.0, le=1.0)


class EventDetectionWire(EventWire):
    has_event: bool


EVENT_FIELDS = (
    text("event_title", default="Untitled Event", required=True),
    text("event_date", default=""),
    text("event_time"),
    text("event_end_time"),
    text("event_end_date"),
    choice("location_type", LocationType, default=LocationType.UNKNOWN.value, required=True),
    choice("event_locality", EventLocality),
    text("location"),
    text("registration_deadline"),
    flag("rsvp_required"),
    text("rsvp_url"),
    text("organizer"),
    text("cost"),
    text("additional_details"),
    text("event_summary"),
    text_list("key_points", max_items=MAX_EVENT_KEY_POINTS),
    number("confidence", default=0.5, required=True),
)

EVENT_DETECTION_FIELDS = (flag("has_event", required=True),) + EVENT_FIELDS


def repair_event_locality(event: dict[str, Any], corrections: list[Correction], path: str = "") -> None:
    """A virtual event without a locality is virtual."""
    if event["location_type"] == LocationType.VIRTUAL.value and event["event_locality"] is None:
        event["event_locality"] = EventLocality.VIRTUAL.value
        corrections.append(Correction(f"{path}event_locality", "defaulted", None, EventLocality.VIRTUAL.value))


def event_details_kwargs(event: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "event_title": event["event_title"],
        "event_date": event["event_date"],
        "event_time": event["event_time"],
        "event_end_time": event["event_end_time"],
        "event_end_date": event["event_end_date"],
        "location_type": event["location_type"],
        "event_locality": event["event_locality"],
        "location": event["location"],
        "registration_deadline": event["registration_deadline"],
        "rsvp_required": event["rsvp_required"],
        "rsvp_url": event["rsvp_url"],
        "organizer": event["organizer"],
        "cost": event["cost"],
        "additional_details": event["additional_details"],
        "event_summary": event["event_summary"],
        "key_points": list(event["key_points"]),
        "confidence": event["confidence"],
    }


def empty_event_detection() -> EventDetectionData:
    return EventDetectionData(event_title="", event_date="", confidence=0.0, has_event=False)


def normalize_event_detection(raw: Mapping[str, Any]) -> Normalized[EventDetectionData]:
    clean, corrections = normalize_fields(raw, EVENT_DETECTION_FIELDS)
    repair_event_locality(clean, corrections)
    data = EventDetectionData(has_event=clean["has_event"], **event_details_kwargs(clean))
    return Normalized(data=data, corrections=corrections, wire=clean)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


SYSTEM_PROMPT = """You extract event details from an email so the user can add it to a calendar.

- event_title: what the event is, not the sender's tagline
- event_date: YYYY-MM-DD; resolve relative dates against the email date ({email_date})
- event_time / event_end_time: HH:MM, 24h
- location_type: in_person (venue required), virtual (Zoom, Meet, webinar link),
  hybrid (both offered) or unknown
- location: street address or meeting link, as specific as the email allows
- event_locality: local (near the user), out_of_town, or virtual
- registration_deadline, rsvp_required, rsvp_url, organizer and cost when stated
- event_summary: one line on why someone would go; key_points: up to 5 details

If the email also includes content from linked pages, prefer those details when
the email itself is vague.

Lower confidence when the date is ambiguous, the location unclear or the time
missing.{location_context}"""


def build_location_context(context: UserContext | None) -> str:
    if context is None:
        return ""
    area = context.location_metro or context.location_city
    if not area:
        return ""
    return f"\n\nThe user lives in {area}. Events within driving distance are local."


def build_system_prompt(invocation: StageInvocation) -> str:
    return SYSTEM_PROMPT.format(
        email_date=invocation.email.date,
        location_context=build_location_context(invocation.context),
    )


def append_resolved_links(user_content: str, invocation: StageInvocation) -> str:
    """Ground the email with text from resolved linked pages, if any."""
    block = format_resolved_links_for_prompt(invocation.extras.resolved_pages)
    if not block:
        return user_content
    return f"{user_content}\n\n{block}"


def event_detector_stage(config: StageConfig | None = None) -> StageDefinition[EventDetectionData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=EventDetectionWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_event_detection(raw),
        empty=empty_event_detection,
        build_user_content=append_resolved_links,
    )
