"""
DateExtractor - deadlines, payment dates, appointments, anniversaries.

Phase 1, always runs. Feeds the timeline view. Dates that fall before the
email's own send date are dropped (they are history, not reminders); the
cut-off comes from the email rather than the wall clock so re-analyzing an old
email gives the same answer.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from inboxlens.analyzers.contract import StageConfig, StageDefinition, StageInvocation
from inboxlens.analyzers.normalization import (
    Normalized,
    choice,
    flag,
    normalize_fields,
    number,
    object_list,
    text,
)
from inboxlens.analyzers.types import Correction, DateType, Recurrence

STAGE_NAME = "date_extractor"
MAX_DATES = 10


@dataclass
class ExtractedDate:
    date_type: str
    date: str
    title: str
    time: str | None = None
    end_date: str | None = None
    end_time: str | None = None
    description: str | None = None
    source_snippet: str | None = None
    related_entity: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None
    confidence: float = 0.5


@dataclass
class DateExtractionData:
    has_dates: bool
    dates: list[ExtractedDate] = field(default_factory=list)
    confidence: float = 0.5


class ExtractedDateWire(BaseModel):
    date_type: DateType
    date: str = Field(description="YYYY-MM-DD")
    time: str | None = Field(default=None, description="HH:MM, 24h")
    end_date: str | None = None
    end_time: str | None = None
    title: str = Field(description="Short label, e.g. 'Invoice #1234 due'")
    description: str | None = None
    source_snippet: str | None = Field(default=None, description="Text the date was found in")
    related_entity: str | None = Field(default=None, description="Company, person or thing the date belongs to")
    is_recurring: bool = False
    recurrence_pattern: Recurrence | None = None
    confidence: float = Field(ge=0.0, le=1.0)


class DateExtractionWire(BaseModel):
    has_dates: bool
    dates: list[ExtractedDateWire] = Field(default_factory=list, max_length=MAX_DATES)
    confidence: float = Field(ge=0.0, le=1.0)


DATE_FIELDS = (
    choice("date_type", DateType, default=DateType.OTHER.value, required=True),
    text("date", default=""),
    text("time"),
    text("end_date"),
    text("end_time"),
    text("title", default="Upcoming date", required=True),
    text("description"),
    text("source_snippet"),
    text("related_entity"),
    flag("is_recurring"),
    choice("recurrence_pattern", Recurrence),
    number("confidence", default=0.5, required=True),
)

DATE_EXTRACTION_FIELDS = (
    flag("has_dates", required=True),
    object_list("dates", DATE_FIELDS, max_items=MAX_DATES, drop_item_unless=("date",)),
    number("confidence", default=0.5, required=True),
)


def empty_date_extraction() -> DateExtractionData:
    return DateExtractionData(has_dates=False, confidence=0.0)


def _parse_day(value: str | None) -> date | None:
    if not value or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def normalize_date_extraction(
    raw: Mapping[str, Any], reference_date: str | None = None
) -> Normalized[DateExtractionData]:
    """
    Wire payload -> DateExtractionData.

    Args:
        raw: Wire payload
        reference_date: ISO date/timestamp; extracted dates before it are dropped.
            Dates that do not parse are kept.
    """
    clean, corrections = normalize_fields(raw, DATE_EXTRACTION_FIELDS)

    cutoff = _parse_day(reference_date)
    if cutoff is not None:
        upcoming = [d for d in clean["dates"] if (_parse_day(d["date"]) or cutoff) >= cutoff]
        if len(upcoming) != len(clean["dates"]):
            corrections.append(
                Correction("dates", "dropped_items", len(clean["dates"]) - len(upcoming), None)
            )
        clean["dates"] = upcoming

    has_dates = bool(clean["dates"])
    if clean["has_dates"] != has_dates:
        corrections.append(Correction("has_dates", "contradiction", clean["has_dates"], has_dates))
        clean["has_dates"] = has_dates

    dates = [
        ExtractedDate(
            date_type=d["date_type"],
            date=d["date"],
            title=d["title"],
            time=d["time"],
            end_date=d["end_date"],
            end_time=d["end_time"],
            description=d["description"],
            source_snippet=d["source_snippet"],
            related_entity=d["related_entity"],
            is_recurring=d["is_recurring"] or d["recurrence_pattern"] is not None,
            recurrence_pattern=d["recurrence_pattern"],
            confidence=d["confidence"],
        )
        for d in clean["dates"]
    ]
    data = DateExtractionData(has_dates=has_dates, dates=dates, confidence=clean["confidence"])
    return Normalized(data=data, corrections=corrections, wire=clean)


SYSTEM_PROMPT = """You extract every date the user may need to remember from an email.

DATE TYPES:
- deadline: something must be done by this date
- event / appointment: something happens at this time
- payment_due, expiration: money or access runs out
- follow_up, reminder: check back later
- birthday, anniversary, recurring, other

RULES:
- Resolve relative dates ("next Friday", "in 2 weeks") against the email date: {email_date}
- Use YYYY-MM-DD for dates and HH:MM (24h) for times
- Skip dates that are already in the past relative to the email date
- Skip boilerplate dates (copyright years, "sent on" headers, unsubscribe footers)
- title names the thing, not the date ("Invoice #1234 due", not "March 15")
- Set recurrence_pattern only when the email states a cadence{timezone}"""


def build_system_prompt(invocation: StageInvocation) -> str:
    context = invocation.context
    timezone = ""
    if context and context.timezone:
        timezone = f"\n- The user's timezone is {context.timezone}"
    return SYSTEM_PROMPT.format(email_date=invocation.email.date, timezone=timezone)


def _reference_date(invocation: StageInvocation) -> str:
    return invocation.extras.reference_date or invocation.email.date


def date_extractor_stage(config: StageConfig | None = None) -> StageDefinition[DateExtractionData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=DateExtractionWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, invocation: normalize_date_extraction(raw, _reference_date(invocation)),
        empty=empty_date_extraction,
    )
