"""
Stage registry - name -> StageDefinition.

The registry is built once (usually via default_registry()) and handed to the
orchestrator. It holds immutable values only; disabling or retuning a stage
produces a new definition rather than mutating a shared one.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

from inboxlens.analyzers.action_extractor import action_extractor_stage
from inboxlens.analyzers.categorizer import categorizer_stage
from inboxlens.analyzers.client_tagger import client_tagger_stage
from inboxlens.analyzers.contact_enricher import contact_enricher_stage
from inboxlens.analyzers.content_digest import content_digest_stage
from inboxlens.analyzers.contract import StageConfig, StageDefinition
from inboxlens.analyzers.date_extractor import date_extractor_stage
from inboxlens.analyzers.event_detector import event_detector_stage
from inboxlens.analyzers.idea_spark import idea_spark_stage
from inboxlens.analyzers.insight_extractor import insight_extractor_stage
from inboxlens.analyzers.link_analyzer import link_analyzer_stage
from inboxlens.analyzers.multi_event_detector import multi_event_detector_stage
from inboxlens.analyzers.news_brief import news_brief_stage

PHASE1_STAGES: tuple[str, ...] = (
    "categorizer",
    "content_digest",
    "action_extractor",
    "client_tagger",
    "date_extractor",
)

PHASE2_STAGES: tuple[str, ...] = (
    "event_detector",
    "multi_event_detector",
    "idea_spark",
    "insight_extractor",
    "news_brief",
    "contact_enricher",
    "link_analyzer",
)

STAGE_FACTORIES: dict[str, Callable[[StageConfig | None], StageDefinition[Any]]] = {
    "categorizer": categorizer_stage,
    "content_digest": content_digest_stage,
    "action_extractor": action_extractor_stage,
    "client_tagger": client_tagger_stage,
    "date_extractor": date_extractor_stage,
    "event_detector": event_detector_stage,
    "multi_event_detector": multi_event_detector_stage,
    "idea_spark": idea_spark_stage,
    "insight_extractor": insight_extractor_stage,
    "news_brief": news_brief_stage,
    "contact_enricher": contact_enricher_stage,
    "link_analyzer": link_analyzer_stage,
}


class StageRegistry(Mapping[str, StageDefinition[Any]]):
    """Read-only mapping of stage name to definition."""

    def __init__(self, stages: Mapping[str, StageDefinition[Any]]):
        for name, stage in stages.items():
            if name != stage.name:
                raise ValueError(f"Registry key {name!r} does not match stage name {stage.name!r}")
        self._stages: dict[str, StageDefinition[Any]] = dict(stages)

    def __getitem__(self, name: str) -> StageDefinition[Any]:
        try:
            return self._stages[name]
        except KeyError:
            raise KeyError(f"Unknown stage: {name}") from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def replace(self, stage: StageDefinition[Any]) -> StageRegistry:
        """New registry with one definition swapped in."""
        stages = dict(self._stages)
        stages[stage.name] = stage
        return StageRegistry(stages)

    def with_config(self, name: str, **overrides: Any) -> StageRegistry:
        """New registry with StageConfig overrides applied to one stage."""
        return self.replace(self[name].with_config(**overrides))

    def only(self, *names: str) -> StageRegistry:
        """New registry in which every stage not named is disabled."""
        registry = self
        for name in self._stages:
            if name not in names:
                registry = registry.with_config(name, enabled=False)
        return registry


def default_registry(**config_overrides: Any) -> StageRegistry:
    """
    Build the standard twelve-stage registry from config.STAGE_SETTINGS.

    Args:
        **config_overrides: StageConfig fields applied to every stage
            (e.g. model="gemini-2.5-flash")
    """
    return StageRegistry(
        {
            name: factory(StageConfig.from_settings(name, **config_overrides))
            for name, factory in STAGE_FACTORIES.items()
        }
    )
