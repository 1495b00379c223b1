"""
Tests for AnalysisOrchestrator.

Every collaborator is a fake: the completion service answers from canned
per-stage payloads and the link resolver returns fixed pages.
"""

from __future__ import annotations

import json

import pytest

from inboxlens.analyzers.registry import PHASE1_STAGES, default_registry
from inboxlens.analyzers.types import EmailInput, ResolvedLink
from inboxlens.llm.errors import CompletionSchemaError
from inboxlens.observability.telemetry import get_counter, get_latency_stats
from inboxlens.pipeline.enrichment import SenderRecord
from inboxlens.pipeline.orchestrator import AnalysisOrchestrator, PipelineState

EVENT_CATEGORIZATION = {
    "category": "local",
    "labels": ["has_event", "local_event", "industry_news"],
    "signal_strength": "medium",
    "reply_worthiness": "no_reply",
    "quick_action": "calendar",
    "summary": "Maker fair at Fort Mason on April 11.",
    "topics": ["maker fair"],
    "confidence": 0.8,
}

EVENT_DIGEST = {
    "gist": "The Spring Maker Fair is back on April 11.",
    "key_points": [{"point": "Free entry"}, {"point": "Workshops need registration"}],
    "links": [
        {"url": "https://lu.ma/spring-fair", "type": "registration", "title": "Register", "is_main_content": True},
    ],
    "content_type": "multi_topic_digest",
    "confidence": 0.8,
}

FAIR_PAGE = ResolvedLink(
    url="https://lu.ma/spring-fair",
    title="Spring Maker Fair",
    text="Saturday April 11, 10am-4pm, Fort Mason Center. Free entry.",
)


class FakeResolver:
    def __init__(self, pages=(FAIR_PAGE,), error=None):
        self.pages = list(pages)
        self.error = error
        self.calls = []

    async def resolve_links(self, links):
        self.calls.append(list(links))
        if self.error is not None:
            raise self.error
        return self.pages


def orchestrator(service, fast_retry, registry=None, **kwargs):
    return AnalysisOrchestrator(
        registry or default_registry(),
        service,
        retry_policy=fast_retry,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_default_run(fake_service, fast_retry, sample_email, sample_context):
    result = await orchestrator(fake_service, fast_retry).process(sample_email, sample_context)

    assert result.success is True
    assert result.errors == []
    assert result.state is PipelineState.AGGREGATED
    assert set(PHASE1_STAGES) <= set(fake_service.called_stages())
    # personal_update, no links, no sender record: only idea_spark passes the gates
    assert set(fake_service.called_stages()) - set(PHASE1_STAGES) == {"idea_spark"}

    analysis = result.analysis
    assert analysis.categorization.category == "work"
    assert analysis.action_extraction.action_title == "Review proposal"
    assert analysis.idea_sparks.has_ideas is True
    assert analysis.event_detection is None
    assert analysis.total_tokens_used == 120 * len(fake_service.calls)
    assert get_counter("pipeline.email.processed") == 1


@pytest.mark.asyncio
async def test_event_email_runs_gated_stages_with_resolved_pages(make_service, fast_retry, sample_email, sample_context):
    service = make_service(payloads={"categorizer": EVENT_CATEGORIZATION, "content_digest": EVENT_DIGEST})
    resolver = FakeResolver()

    result = await orchestrator(
        service,
        fast_retry,
        link_resolver=resolver,
        enrichment_eligibility=lambda email: True,
    ).process(sample_email, sample_context)

    called = set(service.called_stages())
    assert {"event_detector", "idea_spark", "insight_extractor", "news_brief", "contact_enricher", "link_analyzer"} <= called
    assert "multi_event_detector" not in called
    assert service.call_count("event_detector") == 1

    # Links resolved once, from ContentDigest output
    assert len(resolver.calls) == 1
    assert resolver.calls[0][0].url == "https://lu.ma/spring-fair"
    for metric in ("pipeline.phase1.latency", "links.resolve.latency", "pipeline.phase2.latency"):
        assert get_latency_stats(metric)["count"] == 1

    event_request = next(r for r in service.calls if r.schema_name == "event_detector")
    assert "--- Page: Spring Maker Fair ---" in event_request.user_content

    link_request = next(r for r in service.calls if r.schema_name == "link_analyzer")
    assert "https://lu.ma/spring-fair" in link_request.system_prompt

    assert result.success is True
    assert result.analysis.event_detection.event_title == "Spring Maker Fair"
    assert result.gate_decision.should_run("event_detector")


@pytest.mark.asyncio
async def test_multiple_events_use_multi_event_detector(make_service, fast_retry, sample_email):
    categorization = dict(EVENT_CATEGORIZATION, labels=["has_event", "has_multiple_events"])
    service = make_service(payloads={"categorizer": categorization, "content_digest": EVENT_DIGEST})

    result = await orchestrator(service, fast_retry, link_resolver=FakeResolver()).process(sample_email)

    called = service.called_stages()
    assert "multi_event_detector" in called
    assert "event_detector" not in called
    assert result.analysis.multi_event_detection.event_count == 2


@pytest.mark.asyncio
async def test_noise_skips_content_stages(make_service, fast_retry, sample_email):
    categorization = dict(EVENT_CATEGORIZATION, labels=["sales_pitch"], signal_strength="noise")
    service = make_service(payloads={"categorizer": categorization, "content_digest": EVENT_DIGEST})

    result = await orchestrator(service, fast_retry).process(sample_email)

    called = service.called_stages()
    for name in PHASE1_STAGES:
        assert service.call_count(name) == 1
    for name in ("idea_spark", "insight_extractor", "news_brief"):
        assert name not in called
        assert not result.gate_decision.should_run(name)
    assert result.success is True


@pytest.mark.asyncio
async def test_one_failure_does_not_abort(make_service, fast_retry, sample_email):
    service = make_service(errors={"content_digest": CompletionSchemaError("Invalid JSON")})

    result = await orchestrator(service, fast_retry).process(sample_email)

    assert result.success is False
    assert [(e.stage, e.error) for e in result.errors] == [("content_digest", "Invalid JSON")]
    assert result.analysis.content_digest is None
    assert result.analysis.categorization is not None
    assert result.analysis.date_extraction is not None
    assert result.results["content_digest"].data.gist == ""
    assert get_counter("pipeline.email.partial") == 1


@pytest.mark.asyncio
async def test_categorizer_failure_keeps_noise_gates_open(make_service, fast_retry, sample_email):
    service = make_service(
        payloads={"content_digest": EVENT_DIGEST},
        errors={"categorizer": CompletionSchemaError("Invalid JSON")},
    )

    result = await orchestrator(service, fast_retry, link_resolver=FakeResolver()).process(sample_email)

    called = service.called_stages()
    assert "event_detector" not in called
    assert "multi_event_detector" not in called
    assert "idea_spark" in called
    assert "link_analyzer" in called
    assert [e.stage for e in result.errors] == ["categorizer"]


@pytest.mark.asyncio
async def test_disabled_stage_is_not_a_failure(fake_service, fast_retry, sample_email):
    registry = default_registry().with_config("action_extractor", enabled=False)

    result = await orchestrator(fake_service, fast_retry, registry=registry).process(sample_email)

    assert "action_extractor" not in fake_service.called_stages()
    assert result.success is True
    assert result.errors == []
    assert result.analysis.action_extraction is None


@pytest.mark.asyncio
async def test_resolver_failure_falls_back_to_email_only(make_service, fast_retry, sample_email):
    service = make_service(payloads={"categorizer": EVENT_CATEGORIZATION, "content_digest": EVENT_DIGEST})
    resolver = FakeResolver(error=RuntimeError("network down"))

    result = await orchestrator(service, fast_retry, link_resolver=resolver).process(sample_email)

    event_request = next(r for r in service.calls if r.schema_name == "event_detector")
    assert "ADDITIONAL CONTENT FROM LINKED PAGES" not in event_request.user_content
    assert result.success is True


@pytest.mark.asyncio
async def test_resolver_not_called_without_event_stage(make_service, fast_retry, sample_email):
    digest = dict(EVENT_DIGEST, content_type="single_topic")
    service = make_service(payloads={"content_digest": digest})
    resolver = FakeResolver()

    await orchestrator(service, fast_retry, link_resolver=resolver).process(sample_email)

    assert resolver.calls == []
    assert "link_analyzer" in service.called_stages()


@pytest.mark.asyncio
async def test_header_detection_reconciles_contact_enrichment(fake_service, fast_retry):
    newsletter = EmailInput(
        id="msg-news",
        sender_email="hello@brand.example",
        date="2026-03-16T08:00:00Z",
        subject="This week at Brand",
        body_text="Our spring collection is here.",
        headers={"List-Unsubscribe": "<https://brand.example/u>"},
    )

    result = await orchestrator(fake_service, fast_retry).process(
        newsletter, sender_record=SenderRecord(newsletter.sender_email, email_count=12)
    )

    enrichment = result.analysis.contact_enrichment
    assert "contact_enricher" in fake_service.called_stages()
    assert enrichment.sender_type == "broadcast"
    assert enrichment.sender_type_source == "header"
    assert enrichment.company == "Acme"
    assert result.analysis.sender_type.source == "header"


@pytest.mark.asyncio
async def test_model_sender_type_kept_without_strong_signal(fast_retry, fake_service, sample_email):
    result = await orchestrator(fake_service, fast_retry, enrichment_eligibility=lambda email: True).process(
        sample_email
    )

    enrichment = result.analysis.contact_enrichment
    assert enrichment.sender_type == "direct"
    assert enrichment.sender_type_source == "ai"


@pytest.mark.asyncio
async def test_result_is_json_serializable(make_service, fast_retry, sample_email, sample_context):
    service = make_service(payloads={"categorizer": EVENT_CATEGORIZATION, "content_digest": EVENT_DIGEST})

    result = await orchestrator(service, fast_retry, link_resolver=FakeResolver()).process(
        sample_email, sample_context
    )
    payload = json.loads(json.dumps(result.to_dict()))

    assert payload["email_id"] == "msg-001"
    assert payload["state"] == "aggregated"
    assert payload["analysis"]["event_detection"]["event_title"] == "Spring Maker Fair"
    assert payload["analysis"]["analyzer_version"]
    assert payload["results"]["categorizer"]["success"] is True
    assert "event_detector" in payload["gate_decision"]["runs"]


@pytest.mark.asyncio
async def test_raising_eligibility_skips_enrichment(fake_service, fast_retry, sample_email):
    def broken(email):
        raise LookupError("contacts store unavailable")

    result = await orchestrator(fake_service, fast_retry, enrichment_eligibility=broken).process(sample_email)

    assert result.success is True
    assert result.state is PipelineState.AGGREGATED
    assert "contact_enricher" not in fake_service.called_stages()
    assert not result.gate_decision.should_run("contact_enricher")
    assert get_counter("pipeline.enrichment_gate.error") == 1


@pytest.mark.asyncio
async def test_malformed_sender_record_still_aggregates(fake_service, fast_retry, sample_email):
    record = SenderRecord(
        sample_email.sender_email, email_count=5, extraction_confidence=0.9, last_extracted_at="last week"
    )

    result = await orchestrator(fake_service, fast_retry).process(sample_email, sender_record=record)

    assert result.success is True
    assert result.analysis.categorization.category == "work"
    assert "contact_enricher" not in fake_service.called_stages()
