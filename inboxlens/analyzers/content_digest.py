"""
ContentDigest - gist, key points, valuable links, golden nuggets.

Phase 1, always runs. The extracted links feed two consumers downstream:
LinkAnalyzer (as raw links) and the link resolver that grounds the event
stages. Nuggets and style ideas are typed; items with an unknown type are
dropped during normalization and the drop is reported as a Correction.
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
    text,
    text_list,
)
from inboxlens.analyzers.types import ContentType, ExtractedLink, LinkType

STAGE_NAME = "content_digest"
MAX_KEY_POINTS = 5
MAX_LINKS = 10
MAX_NUGGETS = 7
MAX_STYLE_IDEAS = 3


class NuggetType(str, Enum):
    DEAL = "deal"
    TIP = "tip"
    QUOTE = "quote"
    STAT = "stat"
    RECOMMENDATION = "recommendation"
    REMEMBER_THIS = "remember_this"
    SALES_OPPORTUNITY = "sales_opportunity"


class StyleIdeaType(str, Enum):
    LAYOUT = "layout"
    SUBJECT_LINE = "subject_line"
    TONE = "tone"
    CTA = "cta"
    VISUAL = "visual"
    STORYTELLING = "storytelling"
    PERSONALIZATION = "personalization"


@dataclass
class KeyPoint:
    point: str
    relevance: str | None = None


@dataclass
class GoldenNugget:
    nugget: str
    type: str


@dataclass
class EmailStyleIdea:
    idea: str
    type: str
    why_it_works: str = ""
    confidence: float = 0.5


@dataclass
class ContentDigestData:
    gist: str
    key_points: list[KeyPoint] = field(default_factory=list)
    links: list[ExtractedLink] = field(default_factory=list)
    content_type: str = ContentType.SINGLE_TOPIC.value
    topics_highlighted: list[str] = field(default_factory=list)
    golden_nuggets: list[GoldenNugget] = field(default_factory=list)
    email_style_ideas: list[EmailStyleIdea] = field(default_factory=list)
    confidence: float = 0.5

    def main_links(self) -> list[ExtractedLink]:
        return [link for link in self.links if link.is_main_content]


# ---------------------------------------------------------------------------
# Wire schema
# ---------------------------------------------------------------------------


class KeyPointWire(BaseModel):
    point: str = Field(description="Specific, scannable detail (names, dates, numbers)")
    relevance: str | None = Field(default=None, description="Why it matters to this user, if it does")


class LinkWire(BaseModel):
    url: str
    type: LinkType = LinkType.OTHER
    title: str = Field(description="What the link is")
    description: str = Field(default="", description="Why someone might click it")
    is_main_content: bool = Field(default=False, description="True if this link IS the point of the email")


class NuggetWire(BaseModel):
    nugget: str = Field(description="The deal, tip, quote or fact worth saving")
    type: NuggetType


class StyleIdeaWire(BaseModel):
    idea: str
    type: StyleIdeaType
    why_it_works: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ContentDigestWire(BaseModel):
    gist: str = Field(description="1-2 punchy sentences: what happened and why it matters")
    key_points: list[KeyPointWire] = Field(min_length=2, max_length=MAX_KEY_POINTS)
    links: list[LinkWire] = Field(default_factory=list, max_length=MAX_LINKS)
    content_type: ContentType
    topics_highlighted: list[str] = Field(default_factory=list)
    golden_nuggets: list[NuggetWire] = Field(default_factory=list, max_length=MAX_NUGGETS)
    email_style_ideas: list[StyleIdeaWire] = Field(default_factory=list, max_length=MAX_STYLE_IDEAS)
    confidence: float = Field(ge=0.0, le=1.0)


KEY_POINT_FIELDS = (
    text("point", default=""),
    text("relevance"),
)

LINK_FIELDS = (
    text("url", default=""),
    choice("type", LinkType, default=LinkType.OTHER.value),
    text("title", default=""),
    text("description", default=""),
    flag("is_main_content"),
)

NUGGET_FIELDS = (
    text("nugget", default=""),
    choice("type", NuggetType),
)

STYLE_IDEA_FIELDS = (
    text("idea", default=""),
    choice("type", StyleIdeaType),
    text("why_it_works", default=""),
    number("confidence", default=0.5),
)

CONTENT_DIGEST_FIELDS = (
    text("gist", default="Unable to extract gist", required=True),
    object_list("key_points", KEY_POINT_FIELDS, max_items=MAX_KEY_POINTS, drop_item_unless=("point",)),
    object_list("links", LINK_FIELDS, max_items=MAX_LINKS, drop_item_unless=("url",)),
    choice("content_type", ContentType, default=ContentType.SINGLE_TOPIC.value, required=True),
    text_list("topics_highlighted"),
    object_list(
        "golden_nuggets", NUGGET_FIELDS, max_items=MAX_NUGGETS, drop_item_unless=("nugget", "type")
    ),
    object_list(
        "email_style_ideas",
        STYLE_IDEA_FIELDS,
        max_items=MAX_STYLE_IDEAS,
        drop_item_unless=("idea", "type"),
    ),
    number("confidence", default=0.5, required=True),
)


def empty_content_digest() -> ContentDigestData:
    return ContentDigestData(gist="", confidence=0.0)


def normalize_content_digest(raw: Mapping[str, Any]) -> Normalized[ContentDigestData]:
    """Wire payload -> ContentDigestData. Invalid nuggets/style ideas are dropped."""
    clean, corrections = normalize_fields(raw, CONTENT_DIGEST_FIELDS)

    data = ContentDigestData(
        gist=clean["gist"],
        key_points=[KeyPoint(point=kp["point"], relevance=kp["relevance"]) for kp in clean["key_points"]],
        links=[
            ExtractedLink(
                url=link["url"],
                type=link["type"],
                title=link["title"],
                description=link["description"],
                is_main_content=link["is_main_content"],
            )
            for link in clean["links"]
        ],
        content_type=clean["content_type"],
        topics_highlighted=list(clean["topics_highlighted"]),
        golden_nuggets=[GoldenNugget(nugget=n["nugget"], type=n["type"]) for n in clean["golden_nuggets"]],
        email_style_ideas=[
            EmailStyleIdea(
                idea=s["idea"],
                type=s["type"],
                why_it_works=s["why_it_works"],
                confidence=s["confidence"],
            )
            for s in clean["email_style_ideas"]
        ],
        confidence=clean["confidence"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


SYSTEM_PROMPT = """You are the user's sharpest assistant. You read every email before they do and
brief them like a trusted friend: the juice, no filler, and the hidden gems.

GIST: 1-2 punchy sentences. What happened and why it matters. Be specific.
  Good: "AWS bill: $142.67, up 12% from last month. Auto-paid."
  Bad: "Email about billing"

KEY POINTS: 2-5 specific bullets (names, dates, numbers, what changed, what to do).
For multi-story newsletters give the gist of each story and fill 'relevance' when
a story matches the user's interests.

LINKS: only links worth the click (registration, documents, the article the email
is about, primary videos, announced products). Mark unsubscribe and social links
with their type and is_main_content=false. Skip tracking pixels, "view in browser"
and privacy/terms links.

CONTENT TYPE: single_topic, multi_topic_digest, curated_links, personal_update or
transactional.

GOLDEN NUGGETS (0-7): deals with codes and expiry, tips, memorable quotes, stats,
recommendations, things to remember about people, sales opportunities. Only what
is genuinely worth saving.

EMAIL STYLE IDEAS (0-3): for well-crafted marketing or newsletter emails only, note
what the sender did well (layout, subject_line, tone, cta, visual, storytelling,
personalization) and why it works.
{interests}"""


def build_system_prompt(invocation: StageInvocation) -> str:
    interests = ""
    context = invocation.context
    if context and context.interests:
        interests = f"\nUser interests (use for key point relevance): {', '.join(context.interests)}"
    return SYSTEM_PROMPT.format(interests=interests)


def content_digest_stage(config: StageConfig | None = None) -> StageDefinition[ContentDigestData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=ContentDigestWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_content_digest(raw),
        empty=empty_content_digest,
    )
