"""
NewsBrief - factual news items (launches, deals, policy changes) from an email.

Phase 2, runs on non-noise emails labeled industry_news or shaped like a
digest / link roundup. Items are headline + one-line detail, tagged with
topics and, when the email states one, the date the news refers to.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from inboxlens.analyzers.contract import StageConfig, StageDefinition, StageInvocation
from inboxlens.analyzers.normalization import (
    Normalized,
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
from inboxlens.observability.logging import get_logger

logger = get_logger(__name__)

STAGE_NAME = "news_brief"
MAX_NEWS_ITEMS = 5
MAX_NEWS_TOPICS = 3

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class NewsItem:
    headline: str
    detail: str = ""
    topics: list[str] = field(default_factory=list)
    date_mentioned: str | None = None
    confidence: float = 0.5


@dataclass
class NewsBriefData:
    has_news: bool
    news_items: list[NewsItem] = field(default_factory=list)
    confidence: float = 0.0


class NewsItemWire(BaseModel):
    headline: str = Field(description="What happened, in under 12 words")
    detail: str = Field(description="One sentence of specifics (numbers, names, dates)")
    topics: list[str] = Field(min_length=1, max_length=MAX_NEWS_TOPICS)
    date_mentioned: str | None = Field(default=None, description="YYYY-MM-DD, only if stated")
    confidence: float = Field(ge=0.0, le=1.0)


class NewsBriefWire(BaseModel):
    has_news: bool
    news_items: list[NewsItemWire] = Field(default_factory=list, max_length=MAX_NEWS_ITEMS)
    confidence: float = Field(ge=0.0, le=1.0)


NEWS_ITEM_FIELDS = (
    text("headline", default=""),
    text("detail", default=""),
    text_list("topics", max_items=MAX_NEWS_TOPICS),
    text("date_mentioned"),
    number("confidence", default=0.5, required=True),
)

NEWS_BRIEF_FIELDS = (
    flag("has_news", required=True),
    object_list("news_items", NEWS_ITEM_FIELDS, max_items=MAX_NEWS_ITEMS, drop_item_unless=("headline",)),
    number("confidence"),
)


def empty_news_brief() -> NewsBriefData:
    return NewsBriefData(has_news=False)


def normalize_news_brief(raw: Mapping[str, Any]) -> Normalized[NewsBriefData]:
    """
    Wire payload -> NewsBriefData.

    date_mentioned survives only in strict YYYY-MM-DD form. Confidence is the
    mean of the item confidences (0 after a has_news contradiction).
    """
    clean, corrections = normalize_fields(raw, NEWS_BRIEF_FIELDS)

    for index, item in enumerate(clean["news_items"]):
        mentioned = item["date_mentioned"]
        if mentioned is not None and not ISO_DATE_PATTERN.match(mentioned):
            logger.debug("Stripping invalid date format from news item: %r", mentioned)
            corrections.append(Correction(f"news_items[{index}].date_mentioned", "coerced", mentioned, None))
            item["date_mentioned"] = None

    if repair_contradiction(clean, "has_news", "news_items", corrections):
        clean["confidence"] = 0.0
    elif clean["news_items"]:
        if not clean["has_news"]:
            corrections.append(Correction("has_news", "contradiction", False, True))
            clean["has_news"] = True
        mean = mean_confidence(clean["news_items"])
        if clean["confidence"] != mean:
            corrections.append(Correction("confidence", "synthesized", clean["confidence"], mean))
            clean["confidence"] = mean
    elif clean["confidence"] is None:
        clean["confidence"] = 0.0

    data = NewsBriefData(
        has_news=clean["has_news"],
        news_items=[
            NewsItem(
                headline=item["headline"],
                detail=item["detail"],
                topics=list(item["topics"]),
                date_mentioned=item["date_mentioned"],
                confidence=item["confidence"],
            )
            for item in clean["news_items"]
        ],
        confidence=clean["confidence"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


SYSTEM_PROMPT = """You extract hard news from an email: launches, funding rounds, acquisitions,
policy or pricing changes, releases, notable results.

RULES:
- Up to {max_items} items; zero is fine when nothing is newsworthy
- headline: what happened, under 12 words, no hype
- detail: one sentence with the specifics (numbers, names, dates)
- 1-3 short topics per item
- date_mentioned: YYYY-MM-DD only when the email states when it happened or takes effect
- Opinions, tips and promotions are not news
- Set has_news=false when there is nothing to report{interests}"""


def build_system_prompt(invocation: StageInvocation) -> str:
    interests = ""
    context = invocation.context
    if context and context.interests:
        interests = f"\n\nRank items on the user's interests first: {', '.join(context.interests)}."
    return SYSTEM_PROMPT.format(max_items=MAX_NEWS_ITEMS, interests=interests)


def news_brief_stage(config: StageConfig | None = None) -> StageDefinition[NewsBriefData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=NewsBriefWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_news_brief(raw),
        empty=empty_news_brief,
    )
