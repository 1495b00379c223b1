"""
Pytest configuration for InboxLens tests

Provides a fake completion service with canned per-stage payloads, sample
emails and user context, and an instant retry policy. Telemetry counters are
reset around every test.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from inboxlens.analyzers.contract import RetryPolicy
from inboxlens.analyzers.types import Client, EmailInput, FamilyContext, UserContext
from inboxlens.llm.client import CompletionRequest, CompletionResponse
from inboxlens.llm.errors import CompletionError
from inboxlens.observability.telemetry import reset_counters, reset_latencies

# Valid wire payloads, one per stage
CANNED_PAYLOADS: dict[str, dict[str, Any]] = {
    "categorizer": {
        "category": "work",
        "additional_categories": [],
        "labels": ["needs_reply", "has_deadline"],
        "signal_strength": "high",
        "reply_worthiness": "must_reply",
        "quick_action": "respond",
        "summary": "Dana needs the proposal reviewed by Friday.",
        "topics": ["proposal", "deadline"],
        "confidence": 0.9,
        "reasoning": "Direct request with a deadline",
    },
    "content_digest": {
        "gist": "Dana wants a proposal review by Friday and a headshot.",
        "key_points": [{"point": "Proposal review due Friday"}, {"point": "Send a headshot"}],
        "links": [],
        "content_type": "personal_update",
        "topics_highlighted": ["proposal"],
        "golden_nuggets": [],
        "email_style_ideas": [],
        "confidence": 0.85,
    },
    "action_extractor": {
        "has_action": True,
        "actions": [
            {"type": "review", "title": "Review proposal", "priority": 1, "deadline": "Friday", "confidence": 0.9},
        ],
        "primary_action_index": 0,
        "urgency_score": 7,
        "confidence": 0.9,
    },
    "client_tagger": {
        "client_match": False,
        "client_name": None,
        "match_confidence": 0.0,
        "relationship_signal": "neutral",
    },
    "date_extractor": {
        "has_dates": True,
        "dates": [{"date_type": "deadline", "date": "2026-03-20", "title": "Proposal review due", "confidence": 0.8}],
        "confidence": 0.8,
    },
    "event_detector": {
        "has_event": True,
        "event_title": "Spring Maker Fair",
        "event_date": "2026-04-11",
        "event_time": "10:00",
        "location_type": "in_person",
        "event_locality": "local",
        "location": "Fort Mason, San Francisco",
        "rsvp_required": False,
        "key_points": ["Free entry"],
        "confidence": 0.85,
    },
    "multi_event_detector": {
        "has_multiple_events": True,
        "event_count": 2,
        "events": [
            {"event_title": "Story Time", "event_date": "2026-04-02", "location_type": "in_person", "confidence": 0.8},
            {"event_title": "Book Sale", "event_date": "2026-04-09", "location_type": "in_person", "confidence": 0.7},
        ],
        "source_description": "Library monthly calendar",
        "confidence": 0.75,
    },
    "idea_spark": {
        "has_ideas": True,
        "ideas": [
            {"idea": "Share the proposal outline as a LinkedIn post", "type": "social_post", "relevance": "Builds your consulting brand", "confidence": 0.7},
            {"idea": "Ask Dana for an intro to her design lead", "type": "networking", "relevance": "Expands your client network", "confidence": 0.6},
            {"idea": "Turn the proposal into a reusable template", "type": "business", "relevance": "Saves time on the next pitch", "confidence": 0.8},
        ],
        "confidence": 0.7,
    },
    "insight_extractor": {
        "has_insights": True,
        "insights": [{"insight": "Short proposals get faster approvals", "type": "observation", "topics": ["sales"], "confidence": 0.6}],
        "confidence": 0.6,
    },
    "news_brief": {
        "has_news": True,
        "news_items": [{"headline": "Acme raises $20M Series B", "detail": "Led by Example Ventures.", "topics": ["funding"], "date_mentioned": "2026-03-10", "confidence": 0.9}],
        "confidence": 0.9,
    },
    "contact_enricher": {
        "has_enrichment": True,
        "company": "Acme",
        "job_title": "Head of Product",
        "source": "signature",
        "confidence": 0.8,
        "sender_type": "direct",
        "sender_type_confidence": 0.7,
        "sender_type_reasoning": "Personal one-to-one request",
    },
    "link_analyzer": {
        "has_links": True,
        "links": [{"url": "https://example.com/doc", "title": "Proposal draft", "type": "document", "priority": "must_read", "confidence": 0.9}],
        "summary": "The proposal draft is the one link that matters.",
        "confidence": 0.9,
    },
}


class FakeCompletionService:
    """
    CompletionService double keyed by stage name (CompletionRequest.schema_name).

    errors maps a stage to an exception, or to a list of exceptions raised on
    successive calls before the canned payload is returned.
    """

    def __init__(
        self,
        payloads: dict[str, dict[str, Any]] | None = None,
        errors: dict[str, Any] | None = None,
        tokens: int = 120,
        cost: float = 0.0001,
    ):
        self.payloads = copy.deepcopy(CANNED_PAYLOADS)
        self.payloads.update(payloads or {})
        self.errors = dict(errors or {})
        self.tokens = tokens
        self.cost = cost
        self.calls: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.calls.append(request)
        name = request.schema_name

        error = self.errors.get(name)
        if isinstance(error, list):
            if error:
                raise error.pop(0)
        elif error is not None:
            raise error

        if name not in self.payloads:
            raise CompletionError(f"No canned payload for {name}")
        return CompletionResponse(
            data=copy.deepcopy(self.payloads[name]),
            tokens_total=self.tokens,
            estimated_cost=self.cost,
            duration_ms=5,
        )

    def called_stages(self) -> list[str]:
        return [request.schema_name for request in self.calls]

    def call_count(self, stage_name: str) -> int:
        return self.called_stages().count(stage_name)


@pytest.fixture(autouse=True)
def reset_telemetry():
    """Counters and latencies are process-global; isolate every test."""
    reset_counters()
    reset_latencies()
    yield
    reset_counters()
    reset_latencies()


@pytest.fixture
def make_service():
    """Factory for FakeCompletionService with per-test overrides."""
    return FakeCompletionService


@pytest.fixture
def fake_service():
    return FakeCompletionService()


@pytest.fixture
def fast_retry():
    """Retry policy with no backoff delay."""
    return RetryPolicy(max_attempts=3, base_delay=0, jitter=0, timeout=5)


@pytest.fixture
def sample_email():
    return EmailInput(
        id="msg-001",
        sender_email="dana@acme.com",
        sender_name="Dana Reyes",
        date="2026-03-16T09:30:00Z",
        subject="Proposal review",
        body_text="Can you review the proposal by Friday? Also send your headshot.",
        gmail_labels=("INBOX",),
    )


@pytest.fixture
def sample_context():
    return UserContext(
        user_id="user-1",
        role="Independent consultant",
        company="Reyes Studio",
        location_city="Oakland",
        location_metro="San Francisco Bay Area",
        interests=("product design", "AI tools"),
        priorities=("client work",),
        projects=("Website Redesign",),
        vip_emails=("ceo@bigco.com",),
        vip_domains=("acme.com",),
        family_context=FamilyContext(spouse_name="Sam", kid_names=("Ava",)),
        clients=(
            Client(id="c-1", name="Acme Corp", company="Acme", email_domains=("acme.com",), priority="vip"),
            Client(id="c-2", name="Globex", company="Globex Inc", status="inactive"),
        ),
    )
