"""
ClientTagger - links an email to one of the user's known clients.

Phase 1, always runs. The model picks a client from the roster in the prompt;
the claimed name is then resolved back to a client id. A claimed client that
is not in the roster is downgraded to "no match" so nothing gets linked to a
record that does not exist.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
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
from inboxlens.analyzers.types import Client, Correction, RelationshipSignal
from inboxlens.observability.logging import get_logger

logger = get_logger(__name__)

STAGE_NAME = "client_tagger"


@dataclass
class ClientTaggingData:
    client_match: bool
    match_confidence: float = 0.0
    client_name: str | None = None
    client_id: str | None = None
    project_name: str | None = None
    new_client_suggestion: str | None = None
    relationship_signal: str = RelationshipSignal.UNKNOWN.value


class ClientTaggingWire(BaseModel):
    client_match: bool = Field(description="Whether this email relates to a known client")
    client_name: str | None = Field(
        default=None, description="Name of the client from the provided roster, or null if no match"
    )
    match_confidence: float = Field(ge=0.0, le=1.0)
    project_name: str | None = Field(default=None, description='Specific project mentioned (e.g. "Website Redesign")')
    new_client_suggestion: str | None = Field(
        default=None, description="Company or person worth adding as a new client"
    )
    relationship_signal: RelationshipSignal = Field(
        description="Sentiment/health of the relationship based on email tone"
    )


CLIENT_TAGGING_FIELDS = (
    flag("client_match", required=True),
    text("client_name"),
    number("match_confidence", default=0.0, required=True),
    text("project_name"),
    text("new_client_suggestion"),
    choice(
        "relationship_signal",
        RelationshipSignal,
        default=RelationshipSignal.UNKNOWN.value,
        required=True,
    ),
)


def empty_client_tagging() -> ClientTaggingData:
    return ClientTaggingData(client_match=False)


def find_client_by_name(name: str, clients: Sequence[Client]) -> Client | None:
    """
    Resolve a model-supplied client name against the roster.

    Order: exact name, exact company, then substring either way
    (tolerates "Acme" vs "Acme Inc"). All comparisons are case-insensitive.
    """
    wanted = name.strip().lower()
    if not wanted:
        return None

    for client in clients:
        if client.name.strip().lower() == wanted:
            return client

    for client in clients:
        if client.company and client.company.strip().lower() == wanted:
            return client

    for client in clients:
        candidate = client.name.strip().lower()
        if candidate and (candidate in wanted or wanted in candidate):
            return client

    return None


def normalize_client_tagging(
    raw: Mapping[str, Any], clients: Sequence[Client] = ()
) -> Normalized[ClientTaggingData]:
    """Wire payload -> ClientTaggingData, with the claimed client resolved to an id."""
    clean, corrections = normalize_fields(raw, CLIENT_TAGGING_FIELDS)

    client_id: str | None = None
    if clean["client_match"] and clean["client_name"]:
        matched = find_client_by_name(clean["client_name"], clients)
        if matched is not None:
            client_id = matched.id
            logger.debug("Client matched: %s -> %s", clean["client_name"], matched.id)
        else:
            logger.warning(
                "Model matched client not found in roster: %s (roster size %d)",
                clean["client_name"],
                len(clients),
            )
            corrections.append(Correction("client_match", "unresolved", clean["client_name"], False))
            clean["client_match"] = False
            clean["match_confidence"] = 0.0

    data = ClientTaggingData(
        client_match=clean["client_match"],
        match_confidence=clean["match_confidence"],
        client_name=clean["client_name"],
        client_id=client_id,
        project_name=clean["project_name"],
        new_client_suggestion=clean["new_client_suggestion"],
        relationship_signal=clean["relationship_signal"],
    )
    return Normalized(data=data, corrections=corrections, wire=clean)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


SYSTEM_PROMPT = """You are a client relationship specialist. Decide whether this email relates to
one of the user's known clients.

Known clients:
{client_list}

MATCHING CRITERIA (strongest first):
1. Sender email domain matches a client's registered domains
2. Email explicitly mentions the client or company name
3. Email discusses a known project with this client
4. Context strongly suggests client-related correspondence

Only match when confident. A common word is not a match ("apple" the fruit vs
Apple Inc.). If several clients could match, pick the most likely one and use the
name exactly as listed.

IF NO MATCH: could this be a NEW potential client (business inquiry, referral,
ongoing business)? If so, fill new_client_suggestion.

PROJECT: extract a project name only when clearly mentioned.

RELATIONSHIP SIGNAL from tone: positive, neutral, negative or unknown.

Keep match_confidence below 0.7 when the match rests on the domain alone or the
client name is generic."""

NO_CLIENTS_PROMPT = """You are a client relationship specialist. The user has not added any clients yet.

Decide whether this email looks like it comes from a potential client or business
contact (business inquiry, referral or introduction, ongoing business discussion).
If so, suggest adding them via new_client_suggestion.

RELATIONSHIP SIGNAL from tone: positive, neutral, negative or unknown.

Set client_match to false since there are no known clients to match against."""


def format_client_list(clients: Sequence[Client]) -> str:
    """Prompt block for active clients only."""
    lines: list[str] = []
    for client in clients:
        if client.status != "active":
            continue
        header = f"- {client.name}"
        if client.company:
            header += f" ({client.company})"
        lines.append(header)
        if client.email_domains:
            lines.append(f"  Domains: {', '.join(client.email_domains)}")
        if client.keywords:
            lines.append(f"  Keywords: {', '.join(client.keywords)}")
        if client.priority in ("vip", "high"):
            lines.append(f"  Priority: {client.priority.upper()}")
    return "\n".join(lines) if lines else "(No active clients)"


def _clients(invocation: StageInvocation) -> tuple[Client, ...]:
    return invocation.context.clients if invocation.context else ()


def build_system_prompt(invocation: StageInvocation) -> str:
    clients = _clients(invocation)
    if not clients:
        logger.warning("No clients in context for email %s, using discovery prompt", invocation.email.id)
        return NO_CLIENTS_PROMPT
    return SYSTEM_PROMPT.format(client_list=format_client_list(clients))


def client_tagger_stage(config: StageConfig | None = None) -> StageDefinition[ClientTaggingData]:
    return StageDefinition(
        name=STAGE_NAME,
        config=config or StageConfig.from_settings(STAGE_NAME),
        wire_model=ClientTaggingWire,
        build_system_prompt=build_system_prompt,
        normalize=lambda raw, invocation: normalize_client_tagging(raw, _clients(invocation)),
        empty=empty_client_tagging,
    )
