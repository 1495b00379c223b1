"""
MultiEventDetector - every event in newsletters, schedules and roundups.

Phase 2, runs when the categorizer set both has_event and has_multiple_events.
Recurring series are expanded into one entry per occurrence, capped at
MAX_EVENTS. Entries the user attends are full events; registration deadlines
and release dates come back as key dates (is_key_date=True).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from inboxlens.analyzers.contract import StageConfig, StageDefinition, StageInvocation
from inboxlens.analyzers.event_detector import (
    EVENT_FIELDS,
    EventDetails,
    EventWire,
    append_resolved_links,
    event_details_kwargs,
    repair_event_locality,
)
from inboxlens.analyzers.normalization import (
    Normalized,
    choice,
    flag,
    integer,
    normalize_fields,
    number,
    object_list,
    repair_contradiction,
    text,
)
from inboxlens.analyzers.types import KeyDateType

STAGE_NAME = "multi_event_detector"
MAX_EVENTS = 10


@dataclass
class MultiEventItem(EventDetails):
    is_key_date: bool = False
    key_date_type: str | None = None


@dataclass
class MultiEventDetectionData:
    has_multiple_events: bool
    event_count: int = 0
    events: list[MultiEventItem] = field(default_factory=list)
    source_description: str | None = None
    confidence: float = 0.5


class MultiEventItemWire(EventWire):
    is_key_date: bool = Field(default=False, description="True for dates that are not attended")
    key_date_type: KeyDateType | None = None


class MultiEventDetectionWire(BaseModel):
    has_multiple_events: bool
    event_count: int = Field(ge=0)
    events: list[MultiEventItemWire] = Field(max_length=MAX_EVENTS)
    source_description: str | None = Field(
        default=None, description='Where the events come from, e.g. "Library monthly calendar"'
    )
    confidence: float = Field(ge=0.0, le=1.0)


MULTI_EVENT_ITEM_FIELDS = EVENT_FIELDS + (
    flag("is_key_date"),
    choice("key_date_type", KeyDateType),
)

MULTI_EVENT_FIELDS = (
    flag("has_multiple_events", required=True),
    integer("event_count", lo=0),
    object_list(
        "events",
        MULTI_EVENT_ITEM_FIELDS,
        max_items=MAX_EVENTS,
        drop_item_unless=("event_date",),
    ),
    text("source_description"),
    number("confidence", default=0.5, required=True),
)


def empty_multi_event_detection() -> MultiEventDetectionData:
    return MultiEventDetectionData(has_multiple_events=False, confidence=0.0)


def normalize_multi_event_detection(raw: Mapping[str, Any]) -> Normalized[MultiEventDetectionData]:
    clean, corrections = normalize_fields(raw, MULTI_EVENT_FIELDS)
    repair_contradiction(clean, "has_multiple_events", "events", corrections)

    for index, event in enumerate(clean["events"]):
        repair_event_locality(event, corrections, f"events[{index}].")

    if clean["event_count"] is None:
        clean["event_count"] = len(clean["events"])

    events = [
        MultiEventItem(
            is_key_date=event["is_key_date"],
            key_date_type=event["key_date_type"],
            **event_details_kwargs(event),
        )
        for event in clean["events"]
    ]
    data = MultiEventDetectionData(
        has_multiple_events=clean["has_multiple_events"],
        event_count=clean["event_count"],
        events=events,
        source_description=clean["source_description"],
        confidence=clean["confidence"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


SYSTEM_PROMPT = """This email contains MULTIPLE events or dates. Extract EACH ONE as a separate event.

USER LOCATION: {user_location}
(Use it to decide whether each event is local, out_of_town or virtual.)

Common patterns: newsletter "upcoming events" sections, course schedules, conference
agendas, school calendars, monthly event listings.

For a recurring series ("Every Tuesday 6-8pm, Jan 7 through Mar 11") extract each
occurrence with the same title plus its date ("Pottery Class - Jan 7").

Extract up to {max_events} events. If there are more, keep the nearest and most
important ones and report the full number in event_count.

FULL EVENT (is_key_date=false): something the user attends.
KEY DATE (is_key_date=true): an important date that is not attended
(registration_deadline, open_house, deadline, release_date, other).

Per event: event_title, event_date (YYYY-MM-DD), event_time (HH:MM, 24h), end date
and time, location_type, event_locality, location, rsvp_required, rsvp_url,
registration_deadline, organizer, cost, event_summary, 2-3 key_points, confidence.

Share common fields (organizer, location) across events from the same source.
If unsure about a field leave it empty. Every event needs a title and a date.
Linked page content may be included after the email; use it."""


def build_system_prompt(invocation: StageInvocation) -> str:
    context = invocation.context
    user_location = "Unknown"
    if context:
        user_location = context.location_metro or context.location_city or "Unknown"
    return SYSTEM_PROMPT.format(user_location=user_location, max_events=MAX_EVENTS)


def multi_event_detector_stage(
    config: StageConfig | None = None,
) -> StageDefinition[MultiEventDetectionData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=MultiEventDetectionWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_multi_event_detection(raw),
        empty=empty_multi_event_detection,
        build_user_content=append_resolved_links,
    )
