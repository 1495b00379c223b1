"""
InsightExtractor - the ideas worth keeping from substantive content.

Phase 2, runs on non-noise single-topic, digest and curated-link emails.
Complements ContentDigest: the digest says what the email is about, this
stage keeps the tips, frameworks and counterintuitive observations the user
would underline. Overall confidence is the mean of the insight confidences.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from inboxlens.analyzers.contract import StageConfig, StageDefinition, StageInvocation
from inboxlens.analyzers.normalization import (
    Normalized,
    choice,
    flag,
    mean_confidence,
    normalize_fields,
    number,
    object_list,
    repair_contradiction,
    text,
    text_list,
)
from inboxlens.analyzers.types import Correction

STAGE_NAME = "insight_extractor"
MAX_INSIGHTS = 4
MAX_INSIGHT_TOPICS = 3


class InsightType(str, Enum):
    TIP = "tip"
    FRAMEWORK = "framework"
    OBSERVATION = "observation"
    COUNTERINTUITIVE = "counterintuitive"
    TREND = "trend"


@dataclass
class EmailInsight:
    insight: str
    type: str = InsightType.OBSERVATION.value
    topics: list[str] = field(default_factory=list)
    confidence: float = 0.5


@dataclass
class InsightExtractionData:
    has_insights: bool
    insights: list[EmailInsight] = field(default_factory=list)
    confidence: float = 0.0


class InsightWire(BaseModel):
    insight: str = Field(description="The idea in one or two sentences, in your own words")
    type: InsightType
    topics: list[str] = Field(min_length=1, max_length=MAX_INSIGHT_TOPICS)
    confidence: float = Field(ge=0.0, le=1.0)


class InsightExtractionWire(BaseModel):
    has_insights: bool
    insights: list[InsightWire] = Field(default_factory=list, max_length=MAX_INSIGHTS)
    confidence: float = Field(ge=0.0, le=1.0)


INSIGHT_FIELDS = (
    text("insight", default=""),
    choice("type", InsightType, default=InsightType.OBSERVATION.value, required=True),
    text_list("topics", max_items=MAX_INSIGHT_TOPICS),
    number("confidence", default=0.5, required=True),
)

INSIGHT_EXTRACTION_FIELDS = (
    flag("has_insights", required=True),
    object_list("insights", INSIGHT_FIELDS, max_items=MAX_INSIGHTS, drop_item_unless=("insight",)),
    number("confidence"),
)


def empty_insight_extraction() -> InsightExtractionData:
    return InsightExtractionData(has_insights=False)


def normalize_insight_extraction(raw: Mapping[str, Any]) -> Normalized[InsightExtractionData]:
    """
    Wire payload -> InsightExtractionData.

    has_insights=true with no insights collapses to the empty answer with
    confidence 0; otherwise confidence is the mean of the kept insights.
    """
    clean, corrections = normalize_fields(raw, INSIGHT_EXTRACTION_FIELDS)

    if repair_contradiction(clean, "has_insights", "insights", corrections):
        clean["confidence"] = 0.0
    elif clean["insights"]:
        if not clean["has_insights"]:
            corrections.append(Correction("has_insights", "contradiction", False, True))
            clean["has_insights"] = True
        mean = mean_confidence(clean["insights"])
        if clean["confidence"] != mean:
            corrections.append(Correction("confidence", "synthesized", clean["confidence"], mean))
            clean["confidence"] = mean
    elif clean["confidence"] is None:
        clean["confidence"] = 0.0

    data = InsightExtractionData(
        has_insights=clean["has_insights"],
        insights=[
            EmailInsight(
                insight=item["insight"],
                type=item["type"],
                topics=list(item["topics"]),
                confidence=item["confidence"],
            )
            for item in clean["insights"]
        ],
        confidence=clean["confidence"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


SYSTEM_PROMPT = """You pull out the ideas worth remembering from an email, the lines a
thoughtful reader would underline.

INSIGHT TYPES:
- tip: a practical technique the user can apply
- framework: a mental model or structured way of thinking
- observation: a sharp take on how something works
- counterintuitive: something that goes against common belief
- trend: a shift that is happening now

RULES:
- Up to {max_insights} insights; zero is fine for thin content
- Restate each insight so it stands alone without the email
- 1-3 short topics per insight
- Skip promotional claims, product features and calls to action
- Set has_insights=false when nothing is worth keeping{interests}"""


def build_system_prompt(invocation: StageInvocation) -> str:
    interests = ""
    context = invocation.context
    if context and context.interests:
        interests = f"\n\nThe user cares about: {', '.join(context.interests)}. Favor insights on these."
    return SYSTEM_PROMPT.format(max_insights=MAX_INSIGHTS, interests=interests)


def insight_extractor_stage(config: StageConfig | None = None) -> StageDefinition[InsightExtractionData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=InsightExtractionWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_insight_extraction(raw),
        empty=empty_insight_extraction,
    )
