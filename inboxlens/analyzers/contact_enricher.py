"""
ContactEnricher - sender profile details and sender-type classification.

Phase 2, runs only for senders the enrichment gate selects (enough emails,
stale or low-confidence profile). Two jobs in one call:

1. Pull professional details from the signature and body (company, title,
   phone, LinkedIn, relationship, birthday, work anniversary).
2. Classify HOW the sender communicates: direct, broadcast, cold_outreach,
   opportunity or unknown. The orchestrator reconciles this with the
   deterministic header heuristics and records the winning source in
   sender_type_source.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
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
)
from inboxlens.analyzers.types import (
    BroadcastSubtype,
    ContactSource,
    Correction,
    RelationshipType,
    SenderType,
    SenderTypeSource,
)
from inboxlens.observability.logging import get_logger

logger = get_logger(__name__)

STAGE_NAME = "contact_enricher"


@dataclass
class ContactEnrichmentData:
    has_enrichment: bool
    company: str | None = None
    job_title: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    relationship_type: str | None = None
    birthday: str | None = None
    work_anniversary: str | None = None
    source: str = ContactSource.EMAIL_BODY.value
    confidence: float = 0.5
    sender_type: str = SenderType.UNKNOWN.value
    broadcast_subtype: str | None = None
    sender_type_confidence: float = 0.5
    sender_type_reasoning: str | None = None
    sender_type_source: str = SenderTypeSource.AI.value


class ContactEnrichmentWire(BaseModel):
    has_enrichment: bool = Field(description="True if any contact detail was found")
    company: str | None = Field(default=None, description='Company without "Inc."/"LLC" suffixes')
    job_title: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    relationship_type: RelationshipType | None = None
    birthday: str | None = Field(default=None, description="MM-DD or YYYY-MM-DD")
    work_anniversary: str | None = None
    source: ContactSource = ContactSource.EMAIL_BODY
    confidence: float = Field(ge=0.0, le=1.0)
    sender_type: SenderType
    broadcast_subtype: BroadcastSubtype | None = Field(
        default=None, description="Only when sender_type is broadcast"
    )
    sender_type_confidence: float = Field(ge=0.0, le=1.0)
    sender_type_reasoning: str | None = None


CONTACT_ENRICHMENT_FIELDS = (
    flag("has_enrichment", required=True),
    text("company"),
    text("job_title"),
    text("phone"),
    text("linkedin_url"),
    choice("relationship_type", RelationshipType),
    text("birthday"),
    text("work_anniversary"),
    choice("source", ContactSource, default=ContactSource.EMAIL_BODY.value, required=True),
    number("confidence", default=0.5, required=True),
    choice("sender_type", SenderType, default=SenderType.UNKNOWN.value, required=True),
    choice("broadcast_subtype", BroadcastSubtype),
    number("sender_type_confidence", default=0.5, required=True),
    text("sender_type_reasoning"),
)


def empty_contact_enrichment() -> ContactEnrichmentData:
    return ContactEnrichmentData(has_enrichment=False, confidence=0.0, sender_type_confidence=0.0)


def normalize_contact_enrichment(raw: Mapping[str, Any]) -> Normalized[ContactEnrichmentData]:
    clean, corrections = normalize_fields(raw, CONTACT_ENRICHMENT_FIELDS)

    if clean["sender_type"] != SenderType.BROADCAST.value and clean["broadcast_subtype"] is not None:
        corrections.append(Correction("broadcast_subtype", "contradiction", clean["broadcast_subtype"], None))
        clean["broadcast_subtype"] = None

    logger.debug(
        "Contact enrichment: has_enrichment=%s sender_type=%s subtype=%s",
        clean["has_enrichment"],
        clean["sender_type"],
        clean["broadcast_subtype"],
    )

    data = ContactEnrichmentData(
        has_enrichment=clean["has_enrichment"],
        company=clean["company"],
        job_title=clean["job_title"],
        phone=clean["phone"],
        linkedin_url=clean["linkedin_url"],
        relationship_type=clean["relationship_type"],
        birthday=clean["birthday"],
        work_anniversary=clean["work_anniversary"],
        source=clean["source"],
        confidence=clean["confidence"],
        sender_type=clean["sender_type"],
        broadcast_subtype=clean["broadcast_subtype"],
        sender_type_confidence=clean["sender_type_confidence"],
        sender_type_reasoning=clean["sender_type_reasoning"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


SYSTEM_PROMPT = """You are a contact information extraction specialist. Your job is to:
1. Extract professional details about the sender from their signature and content
2. Classify the SENDER TYPE: is this a real contact or a broadcast sender?

SENDER TYPES (how the sender communicates, not who they are):
- direct: a real person writing one-to-one; shared context, expects a reply,
  uses the recipient's name naturally
- broadcast: one-to-many (newsletter, marketing, notifications). "View in browser",
  unsubscribe footer, merge tags, copyright footer, sent via Mailchimp/Substack.
  A personal-looking sender name ("Sarah from Acme") is still broadcast when these
  signals are present. broadcast_subtype: newsletter_author, company_newsletter,
  digest_service or transactional.
- cold_outreach: a stranger reaching out for a sale, partnership, hire or PR
  ("I noticed you...", "Quick question...")
- opportunity: a list where replying is optional (HARO, journalist queries,
  calls for submissions, RFPs)
- unknown: cannot tell from the content

FIELDS: company, job_title, phone, linkedin_url, relationship_type (client,
colleague, vendor, friend, family, recruiter, service, networking, unknown),
birthday, work_anniversary. Only extract what is actually present. Set source to
signature, email_body or both.

Set has_enrichment=false when no contact detail was found. Broadcast senders
rarely carry useful contact details."""


def build_system_prompt(invocation: StageInvocation) -> str:
    return SYSTEM_PROMPT


def contact_enricher_stage(config: StageConfig | None = None) -> StageDefinition[ContactEnrichmentData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=ContactEnrichmentWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, _invocation: normalize_contact_enrichment(raw),
        empty=empty_contact_enrichment,
    )
