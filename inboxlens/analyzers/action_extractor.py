"""
ActionExtractor - every action item in an email, ordered by priority.

Phase 1, always runs. Returns the full list plus the legacy single-action
fields (action_type, action_title, ...) mirrored from the primary action so
older consumers keep working.

Example:
    "Can you review the proposal by Friday? Also send your headshot."
    -> 1. review  "Review proposal"  deadline=Friday  priority=1
       2. respond "Send headshot"                    priority=2
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
    integer,
    normalize_fields,
    number,
    object_list,
    repair_contradiction,
    text,
)
from inboxlens.analyzers.types import ActionType, Correction

STAGE_NAME = "action_extractor"
MAX_ACTIONS = 10


@dataclass
class ActionItem:
    type: str
    title: str
    priority: int = 1
    description: str | None = None
    deadline: str | None = None
    estimated_minutes: int | None = None
    source_line: str | None = None
    confidence: float = 0.5


@dataclass
class ActionExtractionData:
    """Multi-action result with legacy mirror fields for the primary action."""

    has_action: bool
    actions: list[ActionItem] = field(default_factory=list)
    primary_action_index: int = 0
    urgency_score: int = 1
    confidence: float = 0.5
    # Legacy single-action fields
    action_type: str = ActionType.NONE.value
    action_title: str | None = None
    action_description: str | None = None
    deadline: str | None = None
    estimated_minutes: int | None = None

    @property
    def primary_action(self) -> ActionItem | None:
        if not self.actions:
            return None
        return self.actions[self.primary_action_index]


class ActionItemWire(BaseModel):
    type: ActionType
    title: str = Field(description="Short imperative title, e.g. 'Review proposal'")
    description: str | None = None
    deadline: str | None = Field(default=None, description="Deadline as written or ISO date")
    priority: int = Field(ge=1, description="1 = most important")
    estimated_minutes: int | None = Field(default=None, ge=0)
    source_line: str | None = Field(default=None, description="Sentence the action came from")
    confidence: float = Field(ge=0.0, le=1.0)


class ActionExtractionWire(BaseModel):
    has_action: bool
    actions: list[ActionItemWire] = Field(
        default_factory=list,
        max_length=MAX_ACTIONS,
        description="All action items found in the email, ordered by priority",
    )
    primary_action_index: int = Field(default=0, ge=0)
    urgency_score: int = Field(ge=1, le=10, description="Highest urgency across all actions (1=low, 10=critical)")
    confidence: float = Field(ge=0.0, le=1.0)


ACTION_ITEM_FIELDS = (
    choice("type", ActionType, default=ActionType.NONE.value, required=True),
    text("title", default="Action required", required=True),
    text("description"),
    text("deadline"),
    integer("priority", default=1, lo=1, required=True),
    integer("estimated_minutes", lo=0),
    text("source_line"),
    number("confidence", default=0.5, required=True),
)

ACTION_EXTRACTION_FIELDS = (
    flag("has_action", required=True),
    object_list("actions", ACTION_ITEM_FIELDS, max_items=MAX_ACTIONS),
    integer("primary_action_index", default=0, lo=0),
    integer("urgency_score", default=1, lo=1, hi=10, required=True),
    number("confidence", default=0.5, required=True),
)


def empty_action_extraction() -> ActionExtractionData:
    return ActionExtractionData(has_action=False, confidence=0.0)


def normalize_action_extraction(raw: Mapping[str, Any]) -> Normalized[ActionExtractionData]:
    """
    Wire payload -> ActionExtractionData.

    Actions are sorted ascending by priority (stable, so ties keep email
    order) and the primary index is pinned to the top item.
    """
    clean, corrections = normalize_fields(raw, ACTION_EXTRACTION_FIELDS)
    repair_contradiction(clean, "has_action", "actions", corrections)

    clean["actions"] = sorted(clean["actions"], key=lambda item: item["priority"])
    if clean["actions"] and clean["primary_action_index"] != 0:
        corrections.append(Correction("primary_action_index", "coerced", clean["primary_action_index"], 0))
    clean["primary_action_index"] = 0

    actions = [
        ActionItem(
            type=item["type"],
            title=item["title"],
            priority=item["priority"],
            description=item["description"],
            deadline=item["deadline"],
            estimated_minutes=item["estimated_minutes"],
            source_line=item["source_line"],
            confidence=item["confidence"],
        )
        for item in clean["actions"]
    ]
    primary = actions[0] if actions else None

    data = ActionExtractionData(
        has_action=clean["has_action"],
        actions=actions,
        primary_action_index=0,
        urgency_score=clean["urgency_score"],
        confidence=clean["confidence"],
        action_type=primary.type if primary else ActionType.NONE.value,
        action_title=primary.title if primary else None,
        action_description=primary.description if primary else None,
        deadline=primary.deadline if primary else None,
        estimated_minutes=primary.estimated_minutes if primary else None,
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


SYSTEM_PROMPT = """You extract EVERY action item the user needs to take from an email.

For each action give:
- type: respond, review, create, schedule, decide, pay, submit, register, book or none
- title: short imperative ("Review proposal", "Send headshot")
- deadline: as written or as an ISO date, when one is mentioned
- priority: 1 = most important. Explicit deadlines, someone waiting or blocked,
  and "urgent"/"ASAP" language raise priority. "When you get a chance" lowers it.
- estimated_minutes: realistic effort
- source_line: the sentence the action came from

urgency_score (1-10) is the HIGHEST urgency among all actions:
1-3 can wait a week, 4-6 this week, 7-8 within 1-2 days, 9-10 today.

Newsletters, receipts and notifications usually have no actions. Do not invent
actions from marketing calls to action ("Shop now")."""


def build_system_prompt(invocation: StageInvocation) -> str:
    context = invocation.context
    if context and context.role:
        return SYSTEM_PROMPT + f"\n\nThe user is a {context.role}; weigh work requests accordingly."
    return SYSTEM_PROMPT


def action_extractor_stage(config: StageConfig | None = None) -> StageDefinition[ActionExtractionData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=ActionExtractionWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_action_extraction(raw),
        empty=empty_action_extraction,
    )
