"""Unit tests for declarative normalization and the per-stage wire mappings.

No completion service is involved: each stage's normalize_* function is fed
raw payloads directly.
"""

from __future__ import annotations

import pytest

from inboxlens.analyzers.action_extractor import normalize_action_extraction
from inboxlens.analyzers.categorizer import normalize_categorization
from inboxlens.analyzers.client_tagger import normalize_client_tagging
from inboxlens.analyzers.contact_enricher import normalize_contact_enrichment
from inboxlens.analyzers.content_digest import normalize_content_digest
from inboxlens.analyzers.date_extractor import normalize_date_extraction
from inboxlens.analyzers.event_detector import normalize_event_detection
from inboxlens.analyzers.idea_spark import normalize_idea_spark
from inboxlens.analyzers.insight_extractor import normalize_insight_extraction
from inboxlens.analyzers.link_analyzer import normalize_link_analysis
from inboxlens.analyzers.multi_event_detector import normalize_multi_event_detection
from inboxlens.analyzers.news_brief import normalize_news_brief
from inboxlens.analyzers.normalization import (
    choice,
    integer,
    normalize_fields,
    number,
    object_list,
    text,
    text_list,
)
from inboxlens.analyzers.types import Client, SignalStrength


def kinds(corrections):
    return {(c.field, c.kind) for c in corrections}


class TestFieldEngine:
    """Tests for normalize_fields()."""

    def test_out_of_vocabulary_choice_gets_default(self):
        clean, corrections = normalize_fields(
            {"signal": "extreme"}, (choice("signal", SignalStrength, default="medium", required=True),)
        )
        assert clean["signal"] == "medium"
        assert ("signal", "out_of_vocabulary") in kinds(corrections)

    def test_choice_folds_case_and_separators(self):
        clean, corrections = normalize_fields(
            {"signal": "NOISE"}, (choice("signal", SignalStrength, default="medium"),)
        )
        assert clean["signal"] == "noise"
        assert ("signal", "coerced") in kinds(corrections)

    def test_confidence_clamped_to_unit_interval(self):
        clean, corrections = normalize_fields({"confidence": 1.7}, (number("confidence", default=0.5),))
        assert clean["confidence"] == 1.0
        assert ("confidence", "clamped") in kinds(corrections)

        clean, _ = normalize_fields({"confidence": -3}, (number("confidence", default=0.5),))
        assert clean["confidence"] == 0.0

    def test_numeric_string_is_coerced(self):
        clean, corrections = normalize_fields({"confidence": "0.8"}, (number("confidence"),))
        assert clean["confidence"] == 0.8
        assert ("confidence", "coerced") in kinds(corrections)

    def test_non_numeric_confidence_uses_default(self):
        clean, _ = normalize_fields({"confidence": "high"}, (number("confidence", default=0.5),))
        assert clean["confidence"] == 0.5

    def test_integer_bounds(self):
        clean, _ = normalize_fields({"urgency": 42}, (integer("urgency", default=1, lo=1, hi=10),))
        assert clean["urgency"] == 10

    def test_bounded_list_truncated(self):
        clean, corrections = normalize_fields(
            {"topics": ["a", "b", "c", "d"]}, (text_list("topics", max_items=3),)
        )
        assert clean["topics"] == ["a", "b", "c"]
        assert ("topics", "truncated") in kinds(corrections)

    def test_missing_required_field_reports_default(self):
        clean, corrections = normalize_fields({}, (text("summary", default="Email received", required=True),))
        assert clean["summary"] == "Email received"
        assert ("summary", "defaulted") in kinds(corrections)

    def test_missing_optional_field_is_silent(self):
        clean, corrections = normalize_fields({}, (text("location"),))
        assert clean["location"] is None
        assert corrections == []

    def test_non_mapping_payload(self):
        clean, _ = normalize_fields(["not", "a", "dict"], (text("gist", default=""),))
        assert clean == {"gist": ""}

    def test_object_list_drops_items_missing_required_keys(self):
        spec = object_list("items", (text("name", default=""),), drop_item_unless=("name",))
        clean, corrections = normalize_fields({"items": [{"name": "ok"}, {"name": ""}, "junk"]}, (spec,))
        assert clean["items"] == [{"name": "ok"}]
        assert any(c.kind == "dropped_items" and c.original == 2 for c in corrections)


class TestCategorizerNormalization:
    def test_labels_kept_with_high_signal(self):
        result = normalize_categorization(
            {
                "category": "work",
                "labels": ["needs_reply", "urgent"],
                "signal_strength": "high",
                "reply_worthiness": "must_reply",
                "quick_action": "respond",
                "summary": "Reply today",
                "topics": ["deal"],
                "confidence": 0.9,
            }
        )
        assert result.data.labels == ["needs_reply", "urgent"]
        assert result.data.signal_strength == "high"

    def test_labels_capped_deduplicated_and_filtered(self):
        result = normalize_categorization(
            {
                "category": "work",
                "labels": [
                    "needs_reply",
                    "urgent",
                    "needs_reply",
                    "made_up_label",
                    "has_deadline",
                    "from_vip",
                    "has_question",
                    "has_link",
                    "invoice",
                ],
                "signal_strength": "high",
            }
        )
        assert len(result.data.labels) == 5
        assert result.data.labels[:2] == ["needs_reply", "urgent"]
        assert "made_up_label" not in result.data.labels
        assert ("labels", "out_of_vocabulary") in kinds(result.corrections)
        assert ("labels", "truncated") in kinds(result.corrections)

    def test_defaults_for_missing_fields(self):
        result = normalize_categorization({"category": "finance"})
        assert result.data.quick_action == "review"
        assert result.data.signal_strength == "medium"
        assert result.data.reply_worthiness == "no_reply"
        assert result.data.summary == "Email received"

    def test_legacy_category_is_aliased(self):
        result = normalize_categorization({"category": "promotional"})
        assert result.data.category == "shopping"
        assert ("category", "aliased") in kinds(result.corrections)

    def test_unknown_category_falls_back(self):
        result = normalize_categorization({"category": "space_travel"})
        assert result.data.category == "personal_friends_family"

    def test_additional_categories_never_repeat_primary(self):
        result = normalize_categorization(
            {"category": "work", "additional_categories": ["work", "finance", "clients", "travel"]}
        )
        assert result.data.additional_categories == ["finance", "clients"]


class TestContentDigestNormalization:
    def test_invalid_nuggets_and_style_ideas_dropped(self):
        result = normalize_content_digest(
            {
                "gist": "Weekly roundup",
                "content_type": "multi_topic_digest",
                "golden_nuggets": [
                    {"nugget": "20% off with SAVE20", "type": "deal"},
                    {"nugget": "Mystery", "type": "gossip"},
                    {"nugget": "", "type": "tip"},
                ],
                "email_style_ideas": [
                    {"idea": "Emoji subject line", "type": "subject_line", "why_it_works": "Stands out"},
                    {"idea": "Big hero image", "type": "vibes"},
                ],
                "confidence": 0.8,
            }
        )
        assert [n.nugget for n in result.data.golden_nuggets] == ["20% off with SAVE20"]
        assert [s.type for s in result.data.email_style_ideas] == ["subject_line"]

        dropped = {c.field: c.original for c in result.corrections if c.kind == "dropped_items"}
        assert dropped["golden_nuggets"] == 2
        assert dropped["email_style_ideas"] == 1

    def test_links_become_extracted_links(self):
        result = normalize_content_digest(
            {
                "gist": "Meetup next week",
                "links": [
                    {"url": "https://lu.ma/abc", "type": "registration", "title": "RSVP", "is_main_content": True},
                    {"url": "", "type": "article"},
                    {"url": "https://example.com", "type": "podcast"},
                ],
            }
        )
        assert [link.url for link in result.data.links] == ["https://lu.ma/abc", "https://example.com"]
        assert result.data.links[1].type == "other"
        assert result.data.main_links()[0].type == "registration"

    def test_missing_gist_defaulted(self):
        result = normalize_content_digest({})
        assert result.data.gist == "Unable to extract gist"


class TestContradictionRepair:
    def test_insights_flag_without_items(self):
        result = normalize_insight_extraction({"has_insights": True, "insights": []})
        assert result.data.has_insights is False
        assert result.data.insights == []
        assert result.data.confidence == 0

    def test_insight_confidence_is_mean_of_items(self):
        result = normalize_insight_extraction(
            {
                "has_insights": True,
                "insights": [
                    {"insight": "A", "type": "tip", "topics": ["x"], "confidence": 0.4},
                    {"insight": "B", "type": "trend", "topics": ["y"], "confidence": 0.8},
                ],
            }
        )
        assert result.data.confidence == pytest.approx(0.6)

    def test_news_items_capped_and_bad_dates_cleared(self):
        items = [
            {"headline": f"Story {i}", "detail": "d", "topics": ["t"], "date_mentioned": "March 3", "confidence": 0.5}
            for i in range(7)
        ]
        result = normalize_news_brief({"has_news": True, "news_items": items})
        assert len(result.data.news_items) == 5
        assert all(item.date_mentioned is None for item in result.data.news_items)

    def test_ideas_capped_at_three_and_not_padded(self):
        ideas = [{"idea": f"Idea {i}", "type": "hobby", "relevance": "r", "confidence": 0.5} for i in range(5)]
        assert len(normalize_idea_spark({"has_ideas": True, "ideas": ideas}).data.ideas) == 3

        two = normalize_idea_spark({"has_ideas": True, "ideas": ideas[:2]})
        assert len(two.data.ideas) == 2

    def test_idea_with_unknown_type_becomes_personal_growth(self):
        result = normalize_idea_spark(
            {"has_ideas": True, "ideas": [{"idea": "Try pottery", "type": "craft", "relevance": "r"}]}
        )
        assert result.data.ideas[0].type == "personal_growth"

    def test_link_analysis_contradiction_and_summary(self):
        result = normalize_link_analysis({"has_links": True, "links": []})
        assert result.data.has_links is False
        assert result.data.summary == "0 links found."
        assert result.data.confidence == 0.0

    def test_multi_event_contradiction(self):
        result = normalize_multi_event_detection({"has_multiple_events": True, "events": []})
        assert result.data.has_multiple_events is False
        assert result.data.event_count == 0

    def test_contact_subtype_cleared_for_direct_sender(self):
        result = normalize_contact_enrichment(
            {"has_enrichment": False, "sender_type": "direct", "broadcast_subtype": "digest_service"}
        )
        assert result.data.broadcast_subtype is None
        assert ("broadcast_subtype", "contradiction") in kinds(result.corrections)


class TestEventNormalization:
    def test_virtual_event_locality_filled(self):
        result = normalize_event_detection(
            {"has_event": True, "event_title": "Webinar", "event_date": "2026-05-01", "location_type": "virtual"}
        )
        assert result.data.event_locality == "virtual"

    def test_multi_event_items_without_date_dropped(self):
        result = normalize_multi_event_detection(
            {
                "has_multiple_events": True,
                "events": [
                    {"event_title": "Open House", "event_date": "2026-05-02", "location_type": "in_person"},
                    {"event_title": "TBD", "location_type": "in_person"},
                ],
            }
        )
        assert [e.event_title for e in result.data.events] == ["Open House"]
        assert result.data.event_count == 1


MESSY_PAYLOADS = [
    pytest.param(
        lambda raw: normalize_categorization(raw),
        {"category": "Promo", "labels": ["URGENT", "bogus", "urgent"], "signal_strength": "loud", "confidence": 3},
        id="categorizer",
    ),
    pytest.param(
        lambda raw: normalize_content_digest(raw),
        {
            "gist": "  g  ",
            "key_points": [{"point": "p"}] * 8,
            "links": [{"url": "https://a.com", "type": "Article"}, {"url": None}],
            "golden_nuggets": [{"nugget": "n", "type": "bad"}],
            "content_type": "newsletter",
        },
        id="content_digest",
    ),
    pytest.param(
        lambda raw: normalize_action_extraction(raw),
        {
            "has_action": "yes",
            "actions": [
                {"type": "reply", "title": "Send headshot", "priority": 2},
                {"type": "review", "title": "Review proposal", "priority": "1"},
            ],
            "primary_action_index": 1,
            "urgency_score": 15,
        },
        id="action_extractor",
    ),
    pytest.param(
        lambda raw: normalize_client_tagging(raw, (Client(id="c-1", name="Acme Corp"),)),
        {"client_match": True, "client_name": "Initech", "match_confidence": 0.9, "relationship_signal": "great"},
        id="client_tagger",
    ),
    pytest.param(
        lambda raw: normalize_date_extraction(raw, "2026-03-16"),
        {
            "has_dates": True,
            "dates": [
                {"date": "2026-01-01", "title": "Past"},
                {"date": "2026-04-01", "date_type": "due", "recurrence_pattern": "weekly"},
            ],
        },
        id="date_extractor",
    ),
    pytest.param(
        lambda raw: normalize_event_detection(raw),
        {"has_event": 1, "event_title": "", "location_type": "online", "key_points": ["a"] * 9},
        id="event_detector",
    ),
    pytest.param(
        lambda raw: normalize_multi_event_detection(raw),
        {"has_multiple_events": True, "events": [{"event_date": "2026-05-01", "location_type": "virtual"}] * 12},
        id="multi_event_detector",
    ),
    pytest.param(
        lambda raw: normalize_idea_spark(raw),
        {"has_ideas": True, "ideas": [{"idea": "x", "type": "?"}] * 4},
        id="idea_spark",
    ),
    pytest.param(
        lambda raw: normalize_insight_extraction(raw),
        {"has_insights": False, "insights": [{"insight": "i", "type": "nope", "topics": ["a", "b", "c", "d"]}]},
        id="insight_extractor",
    ),
    pytest.param(
        lambda raw: normalize_news_brief(raw),
        {"has_news": True, "news_items": [{"headline": "h", "date_mentioned": "2026/03/01"}]},
        id="news_brief",
    ),
    pytest.param(
        lambda raw: normalize_contact_enrichment(raw),
        {"has_enrichment": True, "sender_type": "Broadcast", "broadcast_subtype": "weekly", "confidence": "0.7"},
        id="contact_enricher",
    ),
    pytest.param(
        lambda raw: normalize_link_analysis(raw),
        {
            "has_links": True,
            "links": [
                {"url": "https://b.com", "title": "B", "priority": "skip"},
                {"url": "https://a.com", "title": "A", "priority": "must_read"},
                {"url": "https://c.com", "priority": "reference"},
            ],
        },
        id="link_analyzer",
    ),
]


@pytest.mark.parametrize(("normalize", "raw"), MESSY_PAYLOADS)
def test_normalization_is_idempotent(normalize, raw):
    """Normalizing an already-normalized wire payload changes nothing."""
    first = normalize(raw)
    second = normalize(first.wire)

    assert second.data == first.data
    assert second.wire == first.wire
    assert second.corrections == []
