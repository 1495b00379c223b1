"""
Selective enrichment gate for ContactEnricher.

Enrichment costs a model call per sender, so it only runs for senders seen
often enough to matter whose stored profile is missing, weak or stale.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from inboxlens import config
from inboxlens.analyzers.types import EmailInput


@dataclass(frozen=True)
class SenderRecord:
    """What the contacts store knows about a sender."""

    email: str
    email_count: int = 0
    extraction_confidence: float | None = None
    last_extracted_at: datetime | str | None = None


def _as_datetime(value: datetime | str | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def should_enrich_contact(record: SenderRecord | None, now: datetime | None = None) -> bool:
    """
    Decide whether a sender is worth (re-)enriching.

    Requires at least ENRICHMENT_MIN_EMAIL_COUNT emails, then any of: never
    enriched, confidence below ENRICHMENT_MIN_CONFIDENCE, or last enrichment
    older than ENRICHMENT_STALE_DAYS before ``now``.
    """
    if record is None or record.email_count < config.ENRICHMENT_MIN_EMAIL_COUNT:
        return False

    if record.extraction_confidence is None:
        return True

    if record.extraction_confidence < config.ENRICHMENT_MIN_CONFIDENCE:
        return True

    last_extracted = _as_datetime(record.last_extracted_at)
    if last_extracted is None:
        return False

    now = _as_datetime(now) or datetime.now(UTC)
    return last_extracted < now - timedelta(days=config.ENRICHMENT_STALE_DAYS)


def eligibility_from_records(
    records: Mapping[str, SenderRecord], now: datetime | None = None
) -> Callable[[EmailInput], bool]:
    """
    Build an EnrichmentEligibility predicate over records keyed by sender email.

    Lookups are case-insensitive; unknown senders are not enriched.
    """
    by_email = {address.lower(): record for address, record in records.items()}

    def eligible(email: EmailInput) -> bool:
        return should_enrich_contact(by_email.get(email.sender_email.strip().lower()), now)

    return eligible


def never_enrich(email: EmailInput) -> bool:  # noqa: ARG001
    return False
