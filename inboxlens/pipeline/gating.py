"""
Phase 2 gate rules.

Pure functions of an immutable Phase 1 snapshot. Each gated stage gets a
yes/no plus a human-readable reason so callers can see why a stage ran or
was skipped.

| Stage                | Runs when                                                        |
|----------------------|------------------------------------------------------------------|
| event_detector       | has_event and not has_multiple_events                            |
| multi_event_detector | has_event and has_multiple_events                                |
| idea_spark           | signal is not noise                                              |
| insight_extractor    | signal is not noise and content is a digest, single topic or links |
| news_brief           | signal is not noise and (industry_news label or digest/links)    |
| contact_enricher     | the enrichment-eligibility predicate says so                     |
| link_analyzer        | ContentDigest succeeded with at least one link                   |

When Categorizer failed its labels and signal are unknown: label-driven
gates stay closed, noise-only gates stay open.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from inboxlens.analyzers.types import (
    AnalyzerResult,
    ContentType,
    ExtractedLink,
    Label,
    SignalStrength,
)

INSIGHT_CONTENT_TYPES = frozenset(
    {
        ContentType.MULTI_TOPIC_DIGEST.value,
        ContentType.SINGLE_TOPIC.value,
        ContentType.CURATED_LINKS.value,
    }
)
NEWS_CONTENT_TYPES = frozenset(
    {
        ContentType.MULTI_TOPIC_DIGEST.value,
        ContentType.CURATED_LINKS.value,
    }
)

EVENT_STAGES = ("event_detector", "multi_event_detector")


@dataclass(frozen=True)
class Phase1Snapshot:
    """
    The Phase 1 facts the gates read.

    labels and signal_strength are None when Categorizer failed;
    content_type is None and links empty when ContentDigest failed.
    """

    labels: frozenset[str] | None = None
    signal_strength: str | None = None
    content_type: str | None = None
    links: tuple[ExtractedLink, ...] = ()

    @classmethod
    def from_results(cls, results: Mapping[str, AnalyzerResult[Any]]) -> Phase1Snapshot:
        categorization = results.get("categorizer")
        digest = results.get("content_digest")

        labels: frozenset[str] | None = None
        signal: str | None = None
        if categorization is not None and categorization.success:
            labels = frozenset(categorization.data.labels)
            signal = categorization.data.signal_strength

        content_type: str | None = None
        links: tuple[ExtractedLink, ...] = ()
        if digest is not None and digest.success:
            content_type = digest.data.content_type
            links = tuple(digest.data.links)

        return cls(labels=labels, signal_strength=signal, content_type=content_type, links=links)

    @property
    def is_noise(self) -> bool:
        return self.signal_strength == SignalStrength.NOISE.value

    def has_label(self, label: Label) -> bool:
        return self.labels is not None and label.value in self.labels


@dataclass(frozen=True)
class GateDecision:
    """Which Phase 2 stages run, with the reason for every decision."""

    runs: frozenset[str]
    reasons: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def should_run(self, stage_name: str) -> bool:
        return stage_name in self.runs

    @property
    def needs_links(self) -> bool:
        """True when an event stage will run and could use resolved pages."""
        return any(name in self.runs for name in EVENT_STAGES)

    def to_dict(self) -> dict[str, Any]:
        return {"runs": sorted(self.runs), "reasons": dict(self.reasons)}


def evaluate_gates(snapshot: Phase1Snapshot, enrichment_eligible: bool = False) -> GateDecision:
    """
    Apply the gate table to a Phase 1 snapshot.

    Args:
        snapshot: Immutable Phase 1 facts
        enrichment_eligible: Result of the enrichment-eligibility predicate

    Returns:
        GateDecision; event_detector and multi_event_detector never both run
    """
    reasons: dict[str, str] = {}
    runs: set[str] = set()

    def decide(stage: str, run: bool, reason: str) -> None:
        reasons[stage] = reason
        if run:
            runs.add(stage)

    # Events: mutually exclusive, decided by has_multiple_events alone
    if snapshot.labels is None:
        decide("event_detector", False, "categorizer failed, labels unknown")
        decide("multi_event_detector", False, "categorizer failed, labels unknown")
    elif not snapshot.has_label(Label.HAS_EVENT):
        decide("event_detector", False, "no has_event label")
        decide("multi_event_detector", False, "no has_event label")
    elif snapshot.has_label(Label.HAS_MULTIPLE_EVENTS):
        decide("event_detector", False, "has_multiple_events label, multi-event detection instead")
        decide("multi_event_detector", True, "has_event and has_multiple_events labels")
    else:
        decide("event_detector", True, "has_event label")
        decide("multi_event_detector", False, "single event")

    # Content stages: skipped for noise only
    if snapshot.is_noise:
        for stage in ("idea_spark", "insight_extractor", "news_brief"):
            decide(stage, False, "signal_strength is noise")
    else:
        signal = snapshot.signal_strength or "unknown"
        decide("idea_spark", True, f"signal_strength is {signal}")

        if snapshot.content_type in INSIGHT_CONTENT_TYPES:
            decide("insight_extractor", True, f"content_type is {snapshot.content_type}")
        else:
            decide("insight_extractor", False, f"content_type is {snapshot.content_type or 'unknown'}")

        if snapshot.has_label(Label.INDUSTRY_NEWS):
            decide("news_brief", True, "industry_news label")
        elif snapshot.content_type in NEWS_CONTENT_TYPES:
            decide("news_brief", True, f"content_type is {snapshot.content_type}")
        else:
            decide("news_brief", False, "not industry news or a digest")

    decide(
        "contact_enricher",
        enrichment_eligible,
        "sender eligible for enrichment" if enrichment_eligible else "sender not eligible for enrichment",
    )

    if snapshot.links:
        decide("link_analyzer", True, f"{len(snapshot.links)} link(s) from content digest")
    else:
        decide("link_analyzer", False, "no links from content digest")

    return GateDecision(runs=frozenset(runs), reasons=MappingProxyType(reasons))
