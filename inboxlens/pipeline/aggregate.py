"""
AggregatedAnalysis - one slot per stage plus run totals.

Only the orchestrator writes an aggregate; a slot is filled when its stage
succeeded and stays None when the stage failed, was disabled or was gated off.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, is_dataclass
from typing import Any

from inboxlens import config
from inboxlens.analyzers.action_extractor import ActionExtractionData
from inboxlens.analyzers.categorizer import CategorizationData
from inboxlens.analyzers.client_tagger import ClientTaggingData
from inboxlens.analyzers.contact_enricher import ContactEnrichmentData
from inboxlens.analyzers.content_digest import ContentDigestData
from inboxlens.analyzers.date_extractor import DateExtractionData
from inboxlens.analyzers.event_detector import EventDetectionData
from inboxlens.analyzers.idea_spark import IdeaSparkData
from inboxlens.analyzers.insight_extractor import InsightExtractionData
from inboxlens.analyzers.link_analyzer import LinkAnalysisData
from inboxlens.analyzers.multi_event_detector import MultiEventDetectionData
from inboxlens.analyzers.news_brief import NewsBriefData
from inboxlens.analyzers.sender_type import SenderTypeDetection
from inboxlens.analyzers.types import AnalyzerResult

# Stage name -> AggregatedAnalysis attribute
STAGE_SLOTS: dict[str, str] = {
    "categorizer": "categorization",
    "content_digest": "content_digest",
    "action_extractor": "action_extraction",
    "client_tagger": "client_tagging",
    "date_extractor": "date_extraction",
    "event_detector": "event_detection",
    "multi_event_detector": "multi_event_detection",
    "idea_spark": "idea_sparks",
    "insight_extractor": "insight_extraction",
    "news_brief": "news_brief",
    "contact_enricher": "contact_enrichment",
    "link_analyzer": "link_analysis",
}


@dataclass
class AggregatedAnalysis:
    categorization: CategorizationData | None = None
    content_digest: ContentDigestData | None = None
    action_extraction: ActionExtractionData | None = None
    client_tagging: ClientTaggingData | None = None
    date_extraction: DateExtractionData | None = None
    event_detection: EventDetectionData | None = None
    multi_event_detection: MultiEventDetectionData | None = None
    idea_sparks: IdeaSparkData | None = None
    insight_extraction: InsightExtractionData | None = None
    news_brief: NewsBriefData | None = None
    contact_enrichment: ContactEnrichmentData | None = None
    link_analysis: LinkAnalysisData | None = None
    sender_type: SenderTypeDetection | None = None
    total_tokens_used: int = 0
    total_processing_time_ms: int = 0
    total_estimated_cost: float = 0.0
    analyzer_version: str = config.ANALYZER_VERSION

    def filled_slots(self) -> list[str]:
        return [name for name, attr in STAGE_SLOTS.items() if getattr(self, attr) is not None]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = asdict(value) if is_dataclass(value) else value
        if self.sender_type is not None:
            data["sender_type"]["signals"] = list(self.sender_type.signals)
        return data


def result_to_dict(result: AnalyzerResult[Any]) -> dict[str, Any]:
    """Envelope of one stage result without its data (the aggregate carries that)."""
    return {
        "success": result.success,
        "confidence": result.confidence,
        "tokens_used": result.tokens_used,
        "processing_time_ms": result.processing_time_ms,
        "estimated_cost": result.estimated_cost,
        "error": result.error,
        "corrections": [str(c) for c in result.corrections],
    }


def build_aggregate(
    results: Mapping[str, AnalyzerResult[Any]],
    sender_type: SenderTypeDetection | None = None,
) -> AggregatedAnalysis:
    """
    Fold stage results into an AggregatedAnalysis.

    Totals count every result; failed results contribute zero tokens and cost
    but their elapsed time still counts.
    """
    analysis = AggregatedAnalysis(sender_type=sender_type)
    for name, result in results.items():
        slot = STAGE_SLOTS.get(name)
        if slot is not None and result.success:
            setattr(analysis, slot, result.data)
        analysis.total_tokens_used += result.tokens_used
        analysis.total_processing_time_ms += result.processing_time_ms
        analysis.total_estimated_cost += result.estimated_cost
    analysis.total_estimated_cost = round(analysis.total_estimated_cost, 6)
    return analysis
