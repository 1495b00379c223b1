"""
LinkAnalyzer - prioritizes the links ContentDigest found for this user.

Phase 2, runs when ContentDigest extracted at least one link. The raw links
arrive as a call parameter (StageExtras.raw_links), never as stage state, so
concurrent emails cannot see each other's links. With no raw links the stage
answers locally without a model call.

Each link gets a priority (must_read > worth_reading > reference > skip),
up to 3 topics, a save-worthy flag and an optional expiry; the result is
sorted by priority.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
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
    object_list,
    synthesize_confidence,
    text,
    text_list,
)
from inboxlens.analyzers.types import (
    Correction,
    ExtractedLink,
    LinkPriority,
    LinkType,
    UserContext,
)

STAGE_NAME = "link_analyzer"
MAX_ANALYZED_LINKS = 10
MAX_LINK_TOPICS = 3
NO_LINKS_SUMMARY = "No links found in this email."

PRIORITY_ORDER: dict[str, int] = {
    LinkPriority.MUST_READ.value: 0,
    LinkPriority.WORTH_READING.value: 1,
    LinkPriority.REFERENCE.value: 2,
    LinkPriority.SKIP.value: 3,
}


@dataclass
class AnalyzedLink:
    url: str
    title: str
    type: str = LinkType.OTHER.value
    description: str = ""
    is_main_content: bool = False
    priority: str = LinkPriority.REFERENCE.value
    topics: list[str] = field(default_factory=list)
    save_worthy: bool = False
    expires: str | None = None
    confidence: float = 0.5


@dataclass
class LinkAnalysisData:
    has_links: bool
    links: list[AnalyzedLink] = field(default_factory=list)
    summary: str = ""
    confidence: float = 0.0


class AnalyzedLinkWire(BaseModel):
    url: str
    type: LinkType = LinkType.OTHER
    title: str
    description: str = ""
    is_main_content: bool = False
    priority: LinkPriority = Field(description="must_read, worth_reading, reference or skip for THIS user")
    topics: list[str] = Field(default_factory=list, max_length=MAX_LINK_TOPICS)
    save_worthy: bool = Field(default=False, description="Worth bookmarking for later")
    expires: str | None = Field(default=None, description="YYYY-MM-DD when the link stops being useful")
    confidence: float = Field(ge=0.0, le=1.0)


class LinkAnalysisWire(BaseModel):
    has_links: bool
    links: list[AnalyzedLinkWire] = Field(default_factory=list, max_length=MAX_ANALYZED_LINKS)
    summary: str = Field(description="One sentence on which links matter and why")
    confidence: float = Field(ge=0.0, le=1.0)


ANALYZED_LINK_FIELDS = (
    text("url", default=""),
    choice("type", LinkType, default=LinkType.OTHER.value),
    text("title", default=""),
    text("description", default=""),
    flag("is_main_content"),
    choice("priority", LinkPriority, default=LinkPriority.REFERENCE.value, required=True),
    text_list("topics", max_items=MAX_LINK_TOPICS),
    flag("save_worthy"),
    text("expires"),
    number("confidence", default=0.5, required=True),
)

LINK_ANALYSIS_FIELDS = (
    flag("has_links", required=True),
    object_list(
        "links",
        ANALYZED_LINK_FIELDS,
        max_items=MAX_ANALYZED_LINKS,
        drop_item_unless=("url", "title"),
    ),
    text("summary"),
    number("confidence"),
)


def empty_link_analysis() -> LinkAnalysisData:
    return LinkAnalysisData(has_links=False)


def no_links_result() -> LinkAnalysisData:
    return LinkAnalysisData(has_links=False, summary=NO_LINKS_SUMMARY, confidence=1.0)


def normalize_link_analysis(raw: Mapping[str, Any]) -> Normalized[LinkAnalysisData]:
    """Wire payload -> LinkAnalysisData, links sorted by priority (stable)."""
    clean, corrections = normalize_fields(raw, LINK_ANALYSIS_FIELDS)

    clean["links"] = sorted(clean["links"], key=lambda link: PRIORITY_ORDER[link["priority"]])

    has_links = clean["has_links"] and bool(clean["links"])
    if clean["has_links"] != has_links:
        corrections.append(Correction("has_links", "contradiction", clean["has_links"], has_links))
        clean["has_links"] = has_links

    if clean["summary"] is None:
        count = len(clean["links"])
        clean["summary"] = f"{count} link{'' if count == 1 else 's'} found."
        corrections.append(Correction("summary", "defaulted", None, clean["summary"]))

    synthesize_confidence(clean, "links", corrections)

    links = [
        AnalyzedLink(
            url=link["url"],
            title=link["title"],
            type=link["type"],
            description=link["description"],
            is_main_content=link["is_main_content"],
            priority=link["priority"],
            topics=list(link["topics"]),
            save_worthy=link["save_worthy"],
            expires=link["expires"],
            confidence=link["confidence"],
        )
        for link in clean["links"]
    ]
    data = LinkAnalysisData(
        has_links=has_links,
        links=links,
        summary=clean["summary"],
        confidence=clean["confidence"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


SYSTEM_PROMPT = """You decide which links in an email are worth this user's time.

PRIORITY (relative to the user, not the sender):
- must_read: directly tied to the user's work, projects or priorities; act on it
- worth_reading: matches an interest; good use of 10 minutes
- reference: might be useful later (docs, tools, archives)
- skip: promotional, social follows, tracking, unsubscribe

For each link return: url, type, title, description, is_main_content, priority,
up to 3 topics, save_worthy (bookmark it?), expires (YYYY-MM-DD for deadlines,
sales or registrations that close) and confidence.

Only analyze links from the list below. Drop links you cannot describe.
{user_context}
LINKS FOUND IN THIS EMAIL:
{links}"""


def build_user_context_block(context: UserContext | None) -> str:
    if context is None:
        return ""
    lines: list[str] = []
    if context.role:
        role = context.role
        if context.company:
            role += f" at {context.company}"
        lines.append(f"- Role: {role}")
    if context.interests:
        lines.append(f"- Interests: {', '.join(context.interests)}")
    if context.projects:
        lines.append(f"- Current projects: {', '.join(context.projects)}")
    if context.priorities:
        lines.append(f"- Priorities: {', '.join(context.priorities)}")
    if not lines:
        return ""
    return "\nABOUT THE USER:\n" + "\n".join(lines) + "\n"


def format_raw_links(links: Sequence[ExtractedLink]) -> str:
    lines: list[str] = []
    for index, link in enumerate(links, start=1):
        line = f"{index}. [{link.type}] {link.title or '(untitled)'} - {link.url}"
        if link.description:
            line += f"\n   {link.description}"
        if link.is_main_content:
            line += "\n   (main content)"
        lines.append(line)
    return "\n".join(lines)


def build_system_prompt(invocation: StageInvocation) -> str:
    return SYSTEM_PROMPT.format(
        user_context=build_user_context_block(invocation.context),
        links=format_raw_links(invocation.extras.raw_links),
    )


def answer_without_links(invocation: StageInvocation) -> LinkAnalysisData | None:
    if invocation.extras.raw_links:
        return None
    return no_links_result()


def link_analyzer_stage(config: StageConfig | None = None) -> StageDefinition[LinkAnalysisData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=LinkAnalysisWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_link_analysis(raw),
        empty=empty_link_analysis,
        short_circuit=answer_without_links,
    )
