"""Unit tests for deterministic sender-type detection and reconciliation."""

from __future__ import annotations

import pytest

from inboxlens.analyzers.contact_enricher import ContactEnrichmentData
from inboxlens.analyzers.sender_type import (
    SenderTypeDetection,
    SenderTypeDetector,
    reconcile_sender_type,
)
from inboxlens.analyzers.types import EmailInput


def email(sender="dana@acme.com", subject="Hello", body="", headers=None):
    return EmailInput(
        id="m-1",
        sender_email=sender,
        date="2026-03-16",
        subject=subject,
        body_text=body,
        headers=headers or {},
    )


@pytest.fixture(scope="module")
def detector():
    return SenderTypeDetector()


class TestDetect:
    def test_list_unsubscribe_header(self, detector):
        result = detector.detect(email(headers={"List-Unsubscribe": "<mailto:unsub@list.example.com>"}))

        assert result.sender_type == "broadcast"
        assert result.broadcast_subtype == "company_newsletter"
        assert result.source == "header"
        assert result.confidence == 0.95

    def test_list_id_header(self, detector):
        result = detector.detect(email(headers={"List-Id": "team.lists.example.com"}))
        assert result.source == "header"
        assert result.confidence == 0.90

    def test_esp_marker_in_headers(self, detector):
        result = detector.detect(email(headers={"X-Mailer": "Mailchimp Mailer - **CID1234**"}))

        assert result.sender_type == "broadcast"
        assert result.confidence == 0.85
        assert "ESP detected in headers: mailchimp" in result.signals

    def test_known_platform_domain(self, detector):
        result = detector.detect(email(sender="writer@substack.com"))

        assert result.sender_type == "broadcast"
        assert result.broadcast_subtype == "newsletter_author"
        assert result.source == "email_pattern"

    def test_domain_from_rules_file(self, detector):
        result = detector.detect(email(sender="calendar@lu.ma"))
        assert result.broadcast_subtype == "company_newsletter"

    @pytest.mark.parametrize(
        ("sender", "subtype", "confidence"),
        [
            ("noreply@shop.example", "transactional", 0.90),
            ("no-reply@bank.example", "transactional", 0.90),
            ("newsletter@brand.example", "company_newsletter", 0.80),
            ("news.team@brand.example", "company_newsletter", 0.80),
            ("digest@forum.example", "digest_service", 0.80),
        ],
    )
    def test_broadcast_prefixes(self, detector, sender, subtype, confidence):
        result = detector.detect(email(sender=sender))

        assert result.sender_type == "broadcast"
        assert result.broadcast_subtype == subtype
        assert result.confidence == confidence

    def test_prefix_must_be_whole_word(self, detector):
        result = detector.detect(email(sender="newsome@brand.example"))
        assert result.sender_type == "unknown"

    def test_newsletter_boilerplate(self, detector):
        body = "View in browser. Unsubscribe here. All rights reserved."

        result = detector.detect(email(sender="team@brand.example", body=body))

        assert result.sender_type == "broadcast"
        assert result.confidence == pytest.approx(0.85)

    def test_cold_outreach(self, detector):
        body = (
            "Quick question. I came across your profile and I'd love to schedule a call. "
            "Do you have 15 minutes this week?"
        )

        result = detector.detect(email(sender="rep@vendor.example", body=body))

        assert result.sender_type == "cold_outreach"
        assert result.broadcast_subtype is None
        assert result.confidence == 0.75

    def test_opportunity_list(self, detector):
        result = detector.detect(
            email(sender="queries@press.example", subject="HARO query", body="Looking for sources on remote work.")
        )

        assert result.sender_type == "opportunity"
        assert result.confidence == 0.70

    def test_haro_needs_word_boundary(self, detector):
        result = detector.detect(email(sender="x@y.example", subject="Pharos lighthouse tour"))
        assert result.sender_type == "unknown"

    def test_direct_mail_is_unknown(self, detector, sample_email):
        result = detector.detect(sample_email)

        assert result.sender_type == "unknown"
        assert result.confidence == 0.0
        assert not result.is_known

    def test_detect_from_email_only(self, detector):
        assert detector.detect_from_email_only("alerts@bank.example").broadcast_subtype == "transactional"
        assert detector.detect_from_email_only("dana@acme.com") is None


class TestRulesFile:
    def test_custom_rules_and_invalid_subtype(self, tmp_path):
        rules = tmp_path / "rules.yaml"
        rules.write_text("broadcast_domains:\n  Example.org: digest_service\n  bad.example: spam\n")

        detector = SenderTypeDetector(rules_path=rules)

        assert detector.broadcast_domains["example.org"] == "digest_service"
        assert "bad.example" not in detector.broadcast_domains
        assert "substack.com" in detector.broadcast_domains

    def test_missing_rules_file_uses_builtin_tables(self, tmp_path):
        detector = SenderTypeDetector(rules_path=tmp_path / "missing.yaml")

        assert "lu.ma" not in detector.broadcast_domains
        assert "substack.com" in detector.broadcast_domains


def enrichment(sender_type="direct", confidence=0.7, subtype=None):
    return ContactEnrichmentData(
        has_enrichment=True,
        company="Acme",
        sender_type=sender_type,
        broadcast_subtype=subtype,
        sender_type_confidence=confidence,
        sender_type_reasoning="model said so",
    )


class TestReconcile:
    def test_header_detection_overrides_model(self):
        detection = SenderTypeDetection(
            sender_type="broadcast",
            broadcast_subtype="company_newsletter",
            confidence=0.95,
            source="header",
            reasoning="List-Unsubscribe",
        )

        merged = reconcile_sender_type(enrichment(), detection)

        assert merged.sender_type == "broadcast"
        assert merged.broadcast_subtype == "company_newsletter"
        assert merged.sender_type_confidence == 0.95
        assert merged.sender_type_source == "header"
        assert merged.company == "Acme"

    def test_weaker_header_detection_loses(self):
        detection = SenderTypeDetection(
            sender_type="broadcast", confidence=0.85, source="header", reasoning="ESP"
        )

        merged = reconcile_sender_type(enrichment(confidence=0.9), detection)

        assert merged.sender_type == "direct"
        assert merged.sender_type_source == "ai"

    def test_pattern_detection_fills_unknown(self):
        detection = SenderTypeDetection(
            sender_type="cold_outreach", confidence=0.75, source="email_pattern", reasoning="outreach"
        )

        merged = reconcile_sender_type(enrichment(sender_type="unknown", confidence=0.2), detection)

        assert merged.sender_type == "cold_outreach"
        assert merged.sender_type_source == "email_pattern"

    def test_pattern_detection_does_not_override_model(self):
        detection = SenderTypeDetection(
            sender_type="broadcast",
            broadcast_subtype="transactional",
            confidence=0.9,
            source="email_pattern",
            reasoning="noreply",
        )

        merged = reconcile_sender_type(enrichment(), detection)

        assert merged.sender_type == "direct"
        assert merged.sender_type_source == "ai"

    def test_subtype_cleared_for_non_broadcast(self):
        detection = SenderTypeDetection(sender_type="unknown", confidence=0.0, source="email_pattern", reasoning="")

        merged = reconcile_sender_type(enrichment(subtype="digest_service"), detection)

        assert merged.broadcast_subtype is None

    def test_input_not_modified(self):
        original = enrichment()
        detection = SenderTypeDetection(sender_type="broadcast", confidence=0.95, source="header", reasoning="")

        reconcile_sender_type(original, detection)

        assert original.sender_type == "direct"
