"""
Categorizer - primary category, labels, signal strength, reply-worthiness.

Phase 1, always runs. Its output drives every Phase 2 gate: labels decide the
event stages, signal strength keeps noise away from the expensive creative
stages. When the model is unsure it should pick the bucket that surfaces the
email rather than hides it.

Cost: ~750 output tokens max per email
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
    choice_list,
    normalize_fields,
    number,
    text,
    text_list,
)
from inboxlens.analyzers.types import (
    Category,
    Correction,
    Label,
    QuickAction,
    ReplyWorthiness,
    SignalStrength,
    UserContext,
)

STAGE_NAME = "categorizer"
MAX_LABELS = 5
MAX_TOPICS = 5
MAX_ADDITIONAL_CATEGORIES = 2

# Unknown categories fall back to direct correspondence so the email stays visible
FALLBACK_CATEGORY = Category.PERSONAL_FRIENDS_FAMILY.value

# Legacy action-focused names and label-like values the model sometimes returns as a category
CATEGORY_ALIASES: dict[str, str] = {
    "newsletter": Category.NEWSLETTERS_INDUSTRY.value,
    "newsletters": Category.NEWSLETTERS_INDUSTRY.value,
    "industry_news": Category.NEWSLETTERS_INDUSTRY.value,
    "creator_newsletter": Category.NEWSLETTERS_CREATOR.value,
    "substack": Category.NEWSLETTERS_CREATOR.value,
    "news": Category.NEWS_POLITICS.value,
    "politics": Category.NEWS_POLITICS.value,
    "product_update": Category.PRODUCT_UPDATES.value,
    "updates": Category.PRODUCT_UPDATES.value,
    "promotional": Category.SHOPPING.value,
    "promo": Category.SHOPPING.value,
    "promotions": Category.SHOPPING.value,
    "deals": Category.SHOPPING.value,
    "receipt": Category.SHOPPING.value,
    "purchases": Category.SHOPPING.value,
    "event": Category.LOCAL.value,
    "events": Category.LOCAL.value,
    "local_event": Category.LOCAL.value,
    "community": Category.LOCAL.value,
    "invoice": Category.FINANCE.value,
    "billing": Category.FINANCE.value,
    "payment_due": Category.FINANCE.value,
    "bills": Category.FINANCE.value,
    "client": Category.CLIENTS.value,
    "client_pipeline": Category.CLIENTS.value,
    "action_required": Category.WORK.value,
    "meeting_request": Category.WORK.value,
    "job_opportunity": Category.WORK.value,
    "personal": Category.PERSONAL_FRIENDS_FAMILY.value,
    "friends": Category.PERSONAL_FRIENDS_FAMILY.value,
    "family_related": Category.FAMILY.value,
    "school": Category.FAMILY.value,
    "admin": Category.NOTIFICATIONS.value,
    "notification": Category.NOTIFICATIONS.value,
    "automated": Category.NOTIFICATIONS.value,
    "security": Category.NOTIFICATIONS.value,
}


@dataclass
class CategorizationData:
    """Normalized categorizer output."""

    category: str
    labels: list[str]
    signal_strength: str
    reply_worthiness: str
    quick_action: str
    summary: str
    topics: list[str] = field(default_factory=list)
    additional_categories: list[str] = field(default_factory=list)
    confidence: float = 0.5
    reasoning: str = ""


class CategorizationWire(BaseModel):
    """Output schema sent to the completion service."""

    category: Category = Field(description="Primary life-area bucket for this email")
    additional_categories: list[Category] = Field(
        default_factory=list,
        max_length=MAX_ADDITIONAL_CATEGORIES,
        description="Up to 2 other buckets this email also belongs to (never the primary)",
    )
    labels: list[Label] = Field(
        default_factory=list,
        max_length=MAX_LABELS,
        description="0-5 secondary labels from the closed vocabulary",
    )
    signal_strength: SignalStrength = Field(
        description="high=act/read now, medium=worth a look, low=skim, noise=safe to ignore"
    )
    reply_worthiness: ReplyWorthiness = Field(
        description="must_reply=someone is waiting, should_reply=smart move, optional_reply, no_reply"
    )
    quick_action: QuickAction = Field(description="Single suggested triage action")
    summary: str = Field(description="One-sentence assistant-style summary")
    topics: list[str] = Field(
        default_factory=list, min_length=1, max_length=MAX_TOPICS, description="1-5 short topic keywords"
    )
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence in this categorization")
    reasoning: str = Field(default="", description="Brief explanation of the choices")


CATEGORIZATION_FIELDS = (
    choice(
        "category",
        Category,
        default=FALLBACK_CATEGORY,
        aliases=CATEGORY_ALIASES,
        required=True,
    ),
    choice_list("additional_categories", Category, max_items=MAX_ADDITIONAL_CATEGORIES + 1),
    choice_list("labels", Label, max_items=MAX_LABELS),
    choice("signal_strength", SignalStrength, default=SignalStrength.MEDIUM.value, required=True),
    choice("reply_worthiness", ReplyWorthiness, default=ReplyWorthiness.NO_REPLY.value, required=True),
    choice("quick_action", QuickAction, default=QuickAction.REVIEW.value, required=True),
    text("summary", default="Email received", required=True),
    text_list("topics", max_items=MAX_TOPICS),
    number("confidence", default=0.5, required=True),
    text("reasoning", default=""),
)


def empty_categorization() -> CategorizationData:
    return CategorizationData(
        category=FALLBACK_CATEGORY,
        labels=[],
        signal_strength=SignalStrength.MEDIUM.value,
        reply_worthiness=ReplyWorthiness.NO_REPLY.value,
        quick_action=QuickAction.REVIEW.value,
        summary="",
        confidence=0.0,
    )


def normalize_categorization(raw: Mapping[str, Any]) -> Normalized[CategorizationData]:
    """Wire payload -> CategorizationData."""
    clean, corrections = normalize_fields(raw, CATEGORIZATION_FIELDS)

    # Secondary categories never repeat the primary and stay within bounds
    additional = [c for c in clean["additional_categories"] if c != clean["category"]]
    if len(additional) != len(clean["additional_categories"]):
        corrections.append(
            Correction("additional_categories", "dropped_items", clean["category"], None)
        )
    if len(additional) > MAX_ADDITIONAL_CATEGORIES:
        corrections.append(
            Correction("additional_categories", "truncated", len(additional), MAX_ADDITIONAL_CATEGORIES)
        )
        additional = additional[:MAX_ADDITIONAL_CATEGORIES]
    clean["additional_categories"] = additional

    data = CategorizationData(
        category=clean["category"],
        labels=list(clean["labels"]),
        signal_strength=clean["signal_strength"],
        reply_worthiness=clean["reply_worthiness"],
        quick_action=clean["quick_action"],
        summary=clean["summary"],
        topics=list(clean["topics"]),
        additional_categories=list(additional),
        confidence=clean["confidence"],
        reasoning=clean["reasoning"] or "",
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


SYSTEM_PROMPT = """You are an email triage assistant. Classify the email the way a sharp personal
assistant would after reading it once.

CATEGORY (pick exactly one life-area bucket):
{categories}

When torn between two buckets, pick the one that implies the user needs to act
or read it. Surfacing an email is better than hiding it.

LABELS (0-5, only from this list):
{labels}
- has_event: the email announces or invites to at least one dated event
- has_multiple_events: the email lists two or more distinct events (always also set has_event)
- industry_news: reporting on the user's professional field

SIGNAL STRENGTH:
- high: a real person or time-critical matter needs the user
- medium: worth reading today
- low: skim when convenient
- noise: sales pitches, mass outreach, fake awards, generic promotions

REPLY WORTHINESS: must_reply, should_reply, optional_reply or no_reply.
QUICK ACTION: respond, review, archive, save, calendar, unsubscribe, follow_up or none.

Write the summary as one blunt sentence. For noise: "Sales pitch from <company> - skip".
{user_context}"""


def build_user_context_block(context: UserContext | None) -> str:
    """Personalization lines for label assignment (from_vip, local_event, family_related)."""
    if context is None:
        return ""

    lines: list[str] = []
    if context.role:
        lines.append(f"- User role: {context.role}")
    if context.priorities:
        lines.append(f"- User priorities: {', '.join(context.priorities)}")
    if context.vip_emails or context.vip_domains:
        vips = list(context.vip_emails) + [f"@{d}" for d in context.vip_domains]
        lines.append(f"- VIP senders (apply from_vip): {', '.join(vips)}")
    if context.location_metro or context.location_city:
        area = context.location_metro or context.location_city
        lines.append(f"- User lives in {area} (apply local_event for events nearby)")
    if context.family_context:
        names = list(context.family_context.kid_names)
        if context.family_context.spouse_name:
            names.append(context.family_context.spouse_name)
        if names:
            lines.append(f"- Family members (apply family_related): {', '.join(names)}")

    if not lines:
        return ""
    return "\nWHAT I KNOW ABOUT THE USER:\n" + "\n".join(lines)


def build_system_prompt(invocation: StageInvocation) -> str:
    return SYSTEM_PROMPT.format(
        categories=", ".join(c.value for c in Category),
        labels=", ".join(label.value for label in Label),
        user_context=build_user_context_block(invocation.context),
    )


def categorizer_stage(config: StageConfig | None = None) -> StageDefinition[CategorizationData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=CategorizationWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_categorization(raw),
        empty=empty_categorization,
    )
