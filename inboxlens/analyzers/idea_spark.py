"""
IdeaSpark - three personalized ideas sparked by an email.

Phase 2, skipped for noise. Ideas are only as good as the user context: the
stage grades the context (rich / moderate / minimal) and logs a warning when
it is too sparse to personalize. The model is asked for exactly 3 ideas;
fewer are kept as-is (never padded), more are truncated.
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
    normalize_fields,
    number,
    object_list,
    synthesize_confidence,
    text,
)
from inboxlens.analyzers.types import Correction, UserContext
from inboxlens.observability.logging import get_logger

logger = get_logger(__name__)

STAGE_NAME = "idea_spark"
IDEAS_PER_EMAIL = 3


class IdeaType(str, Enum):
    SOCIAL_POST = "social_post"
    NETWORKING = "networking"
    BUSINESS = "business"
    CONTENT_CREATION = "content_creation"
    HOBBY = "hobby"
    SHOPPING = "shopping"
    DATE_NIGHT = "date_night"
    FAMILY_ACTIVITY = "family_activity"
    PERSONAL_GROWTH = "personal_growth"
    COMMUNITY = "community"


@dataclass
class IdeaSpark:
    idea: str
    type: str
    relevance: str = "Connected to email content"
    confidence: float = 0.5


@dataclass
class IdeaSparkData:
    has_ideas: bool
    ideas: list[IdeaSpark] = field(default_factory=list)
    confidence: float = 0.0


class IdeaWire(BaseModel):
    idea: str = Field(description="Specific, actionable idea in one or two sentences")
    type: IdeaType
    relevance: str = Field(description="Why this idea fits THIS user")
    confidence: float = Field(ge=0.0, le=1.0)


class IdeaSparkWire(BaseModel):
    has_ideas: bool
    ideas: list[IdeaWire] = Field(min_length=IDEAS_PER_EMAIL, max_length=IDEAS_PER_EMAIL)
    confidence: float = Field(ge=0.0, le=1.0)


IDEA_FIELDS = (
    text("idea", default=""),
    choice("type", IdeaType, default=IdeaType.PERSONAL_GROWTH.value),
    text("relevance", default="Connected to email content", required=True),
    number("confidence", default=0.5, required=True),
)

IDEA_SPARK_FIELDS = (
    flag("has_ideas", required=True),
    object_list("ideas", IDEA_FIELDS, max_items=IDEAS_PER_EMAIL, drop_item_unless=("idea",)),
    number("confidence"),
)


def empty_idea_spark() -> IdeaSparkData:
    return IdeaSparkData(has_ideas=False)


def normalize_idea_spark(raw: Mapping[str, Any]) -> Normalized[IdeaSparkData]:
    clean, corrections = normalize_fields(raw, IDEA_SPARK_FIELDS)

    has_ideas = clean["has_ideas"] and bool(clean["ideas"])
    if clean["has_ideas"] != has_ideas:
        corrections.append(Correction("has_ideas", "contradiction", clean["has_ideas"], has_ideas))
        clean["has_ideas"] = has_ideas
    if has_ideas and len(clean["ideas"]) < IDEAS_PER_EMAIL:
        logger.warning("Received %d ideas, expected %d", len(clean["ideas"]), IDEAS_PER_EMAIL)

    synthesize_confidence(clean, "ideas", corrections)

    data = IdeaSparkData(
        has_ideas=has_ideas,
        ideas=[
            IdeaSpark(
                idea=idea["idea"],
                type=idea["type"],
                relevance=idea["relevance"],
                confidence=idea["confidence"],
            )
            for idea in clean["ideas"]
        ],
        confidence=clean["confidence"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def assess_context_quality(context: UserContext | None) -> str:
    """Grade how much personalization the user context allows."""
    if context is None:
        return "minimal"
    score = sum(
        (
            bool(context.role),
            bool(context.interests),
            bool(context.projects),
            bool(context.location_city),
            context.family_context is not None,
            bool(context.priorities),
        )
    )
    if score >= 4:
        return "rich"
    if score >= 2:
        return "moderate"
    return "minimal"


SYSTEM_PROMPT = """You are a creative, well-connected friend. Read the email and spark exactly
{count} ideas the user could act on this week.

IDEA TYPES: social_post, networking, business, content_creation, hobby, shopping,
date_night, family_activity, personal_growth, community.

RULES:
- Each idea is specific and doable ("Post a 3-tip thread on X about ..."), never
  generic ("Think about your goals")
- Mix types; do not return three of the same kind
- relevance says why the idea fits THIS user, using what you know about them
- No ideas that require spending money unless the email is about a purchase
{user_context}"""


def build_user_context_block(context: UserContext | None) -> str:
    if context is None:
        return ""
    lines: list[str] = []
    if context.role:
        lines.append(f"- Role: {context.role}")
    if context.interests:
        lines.append(f"- Interests: {', '.join(context.interests)}")
    if context.projects:
        lines.append(f"- Projects: {', '.join(context.projects)}")
    if context.location_city:
        lines.append(f"- Lives in: {context.location_city}")
    if context.family_context:
        family = []
        if context.family_context.spouse_name:
            family.append(f"partner {context.family_context.spouse_name}")
        if context.family_context.kid_names:
            family.append(f"kids {', '.join(context.family_context.kid_names)}")
        if family:
            lines.append(f"- Family: {'; '.join(family)}")
    if context.priorities:
        lines.append(f"- Priorities: {', '.join(context.priorities)}")
    if not lines:
        return ""
    return "\nABOUT THE USER:\n" + "\n".join(lines)


def build_system_prompt(invocation: StageInvocation) -> str:
    quality = assess_context_quality(invocation.context)
    if quality == "minimal":
        logger.warning(
            "Sparse user context for email %s, ideas will be less personalized",
            invocation.email.id,
        )
    else:
        logger.debug("Idea spark context quality for email %s: %s", invocation.email.id, quality)
    return SYSTEM_PROMPT.format(
        count=IDEAS_PER_EMAIL,
        user_context=build_user_context_block(invocation.context),
    )


def idea_spark_stage(config: StageConfig | None = None) -> StageDefinition[IdeaSparkData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=IdeaSparkWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_idea_spark(raw),
        empty=empty_idea_spark,
    )
