"""Unit tests for the contact enrichment eligibility gate."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from inboxlens.analyzers.types import EmailInput
from inboxlens.pipeline.enrichment import (
    SenderRecord,
    eligibility_from_records,
    never_enrich,
    should_enrich_contact,
)

NOW = datetime(2026, 3, 16, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("record", "expected"),
    [
        (None, False),
        (SenderRecord("a@b.com", email_count=2), False),
        (SenderRecord("a@b.com", email_count=3), True),
        (SenderRecord("a@b.com", email_count=5, extraction_confidence=0.3), True),
        (SenderRecord("a@b.com", email_count=5, extraction_confidence=0.8), False),
        (
            SenderRecord("a@b.com", email_count=5, extraction_confidence=0.8, last_extracted_at=NOW - timedelta(days=10)),
            False,
        ),
        (
            SenderRecord("a@b.com", email_count=5, extraction_confidence=0.8, last_extracted_at=NOW - timedelta(days=45)),
            True,
        ),
        (
            SenderRecord("a@b.com", email_count=5, extraction_confidence=0.8, last_extracted_at="2026-01-01T00:00:00Z"),
            True,
        ),
    ],
)
def test_should_enrich_contact(record, expected):
    assert should_enrich_contact(record, now=NOW) is expected


def test_naive_timestamps_are_utc():
    record = SenderRecord(
        "a@b.com",
        email_count=4,
        extraction_confidence=0.9,
        last_extracted_at=datetime(2026, 3, 1, 12, 0),
    )
    assert should_enrich_contact(record, now=NOW) is False


def test_eligibility_lookup_is_case_insensitive():
    eligible = eligibility_from_records({"Dana@Acme.com": SenderRecord("Dana@Acme.com", email_count=7)}, now=NOW)

    known = EmailInput(id="1", sender_email="dana@acme.com", date="2026-03-16")
    stranger = EmailInput(id="2", sender_email="who@else.com", date="2026-03-16")

    assert eligible(known) is True
    assert eligible(stranger) is False


def test_never_enrich():
    assert never_enrich(EmailInput(id="1", sender_email="a@b.com", date="2026-03-16")) is False


@pytest.mark.parametrize("stamp", ["not-a-date", "last week", "2026-13-45"])
def test_unparseable_timestamp_is_not_stale(stamp):
    record = SenderRecord("a@b.com", email_count=5, extraction_confidence=0.9, last_extracted_at=stamp)
    assert should_enrich_contact(record, now=NOW) is False
