"""
AnalysisOrchestrator - runs every stage for one email.

Coordinates:
1. Phase 1 (categorizer, content_digest, action_extractor, client_tagger,
   date_extractor) - unconditional, concurrent
2. Gating - pure rules over an immutable Phase 1 snapshot
3. Link resolution - only when an event stage is gated on
4. Phase 2 (gated stages) - concurrent
5. Sender-type reconciliation and aggregation

A failing stage only empties its own slot. process() always returns an
EmailProcessingResult, with per-stage errors collected by name.

Entry point: AnalysisOrchestrator.process()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from inboxlens.analyzers.contract import DISABLED_ERROR, RetryPolicy, run_stage
from inboxlens.analyzers.registry import PHASE1_STAGES, PHASE2_STAGES, StageRegistry
from inboxlens.analyzers.sender_type import SenderTypeDetection, SenderTypeDetector, reconcile_sender_type
from inboxlens.analyzers.types import (
    AnalyzerResult,
    EmailInput,
    ResolvedLink,
    StageExtras,
    UserContext,
)
from inboxlens.contracts import CompletionService, EnrichmentEligibility, LinkResolverProtocol
from inboxlens.observability.logging import get_logger
from inboxlens.observability.telemetry import counter, log_event, time_block
from inboxlens.pipeline.aggregate import AggregatedAnalysis, build_aggregate, result_to_dict
from inboxlens.pipeline.enrichment import SenderRecord, should_enrich_contact
from inboxlens.pipeline.gating import GateDecision, Phase1Snapshot, evaluate_gates
from inboxlens.utils.redaction import redact_subject

logger = get_logger(__name__)


class PipelineState(str, Enum):
    PHASE1_RUNNING = "phase1_running"
    PHASE1_DONE = "phase1_done"
    GATING = "gating"
    PHASE2_RUNNING = "phase2_running"
    AGGREGATED = "aggregated"


@dataclass(frozen=True)
class StageError:
    stage: str
    error: str


@dataclass
class EmailProcessingResult:
    """Outcome of one process() call. Usable even when success is False."""

    email_id: str
    success: bool
    analysis: AggregatedAnalysis
    results: dict[str, AnalyzerResult[Any]] = field(default_factory=dict)
    errors: list[StageError] = field(default_factory=list)
    gate_decision: GateDecision | None = None
    state: PipelineState = PipelineState.AGGREGATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "email_id": self.email_id,
            "success": self.success,
            "state": self.state.value,
            "analysis": self.analysis.to_dict(),
            "results": {name: result_to_dict(result) for name, result in self.results.items()},
            "errors": [{"stage": e.stage, "error": e.error} for e in self.errors],
            "gate_decision": self.gate_decision.to_dict() if self.gate_decision else None,
        }


def _attempted(result: AnalyzerResult[Any]) -> bool:
    return result.success or result.error != DISABLED_ERROR


def _enter(email: EmailInput, state: PipelineState) -> PipelineState:
    logger.debug("Email %s: %s", email.id, state.value)
    return state


class AnalysisOrchestrator:
    """
    Two-phase analysis of a single email.

    All collaborators are injected: the stage registry, the completion service,
    and optionally a link resolver, a sender-type detector and an
    enrichment-eligibility predicate. The orchestrator holds no per-email state,
    so one instance can process many emails concurrently.
    """

    def __init__(
        self,
        registry: StageRegistry,
        service: CompletionService,
        link_resolver: LinkResolverProtocol | None = None,
        sender_detector: SenderTypeDetector | None = None,
        enrichment_eligibility: EnrichmentEligibility | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.registry = registry
        self.service = service
        self.link_resolver = link_resolver
        self.sender_detector = sender_detector or SenderTypeDetector()
        self.enrichment_eligibility = enrichment_eligibility
        self.retry_policy = retry_policy or RetryPolicy()

        logger.info(
            "AnalysisOrchestrator initialized: %d stages (%d enabled), link resolver %s",
            len(registry),
            sum(1 for stage in registry.values() if stage.config.enabled),
            "on" if link_resolver is not None else "off",
        )

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    async def _run_guarded(
        self,
        name: str,
        email: EmailInput,
        context: UserContext | None,
        extras: StageExtras,
    ) -> AnalyzerResult[Any]:
        """run_stage() plus a net for anything it failed to convert."""
        stage = self.registry[name]
        try:
            return await run_stage(
                stage,
                email,
                context,
                service=self.service,
                extras=extras,
                retry_policy=self.retry_policy,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            counter(f"stage.{name}.error")
            logger.exception("Stage %s raised unexpectedly for email %s", name, email.id)
            return AnalyzerResult.failure(stage.empty(), str(e) or type(e).__name__)

    async def _run_phase(
        self,
        names: Iterable[str],
        email: EmailInput,
        context: UserContext | None,
        extras: StageExtras,
    ) -> dict[str, AnalyzerResult[Any]]:
        names = [name for name in names if name in self.registry]
        outcomes = await asyncio.gather(
            *(self._run_guarded(name, email, context, extras) for name in names)
        )
        return dict(zip(names, outcomes))

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _enrichment_eligible(self, email: EmailInput, sender_record: SenderRecord | None) -> bool:
        try:
            if self.enrichment_eligibility is not None:
                return bool(self.enrichment_eligibility(email))
            return should_enrich_contact(sender_record)
        except Exception:
            counter("pipeline.enrichment_gate.error")
            logger.warning("Enrichment eligibility failed for email %s, skipping enrichment", email.id, exc_info=True)
            return False

    async def _resolve_links(self, snapshot: Phase1Snapshot) -> tuple[ResolvedLink, ...]:
        if self.link_resolver is None or not snapshot.links:
            return ()
        try:
            return tuple(await self.link_resolver.resolve_links(snapshot.links))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Link resolution failed, continuing without linked pages", exc_info=True)
            return ()

    def _detect_sender(self, email: EmailInput) -> SenderTypeDetection | None:
        try:
            return self.sender_detector.detect(email)
        except Exception:
            logger.warning("Sender-type detection failed for email %s", email.id, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(
        self,
        email: EmailInput,
        context: UserContext | None = None,
        sender_record: SenderRecord | None = None,
    ) -> EmailProcessingResult:
        """
        Analyze one email with every applicable stage.

        Args:
            email: Email to analyze
            context: Optional user context (clients, VIPs, location, interests)
            sender_record: Stored sender profile for the default enrichment gate

        Returns:
            EmailProcessingResult; success is True only when every attempted
            stage succeeded (disabled and gated-off stages are not attempted)

        Side Effects:
            - Completion-service calls (Phase 1 always, Phase 2 as gated)
            - Outbound page fetches when an event stage runs with links
            - Increments pipeline.email.processed and per-stage counters
        """
        start = time.perf_counter()
        logger.info("PROCESS START: email=%s subject=%s", email.id, redact_subject(email.subject))

        # =========================================================
        # Phase 1: unconditional stages
        # =========================================================
        state = _enter(email, PipelineState.PHASE1_RUNNING)
        with time_block("pipeline.phase1.latency"):
            results = await self._run_phase(PHASE1_STAGES, email, context, StageExtras())
        state = _enter(email, PipelineState.PHASE1_DONE)

        # =========================================================
        # Gating
        # =========================================================
        state = _enter(email, PipelineState.GATING)
        snapshot = Phase1Snapshot.from_results(results)
        decision = evaluate_gates(snapshot, self._enrichment_eligible(email, sender_record))
        logger.info("GATES: email=%s run=%s", email.id, sorted(decision.runs))

        resolved: tuple[ResolvedLink, ...] = ()
        if decision.needs_links:
            with time_block("links.resolve.latency"):
                resolved = await self._resolve_links(snapshot)

        # =========================================================
        # Phase 2: gated stages
        # =========================================================
        state = _enter(email, PipelineState.PHASE2_RUNNING)
        extras = StageExtras(raw_links=snapshot.links, resolved_pages=resolved)
        phase2 = [name for name in PHASE2_STAGES if decision.should_run(name)]
        with time_block("pipeline.phase2.latency"):
            results.update(await self._run_phase(phase2, email, context, extras))

        # =========================================================
        # Sender type + aggregation
        # =========================================================
        detection = self._detect_sender(email)
        enrichment = results.get("contact_enricher")
        if detection is not None and enrichment is not None and enrichment.success:
            results["contact_enricher"] = replace(
                enrichment, data=reconcile_sender_type(enrichment.data, detection)
            )

        analysis = build_aggregate(results, sender_type=detection)
        errors = [
            StageError(stage=name, error=result.error or "Unknown error")
            for name, result in results.items()
            if _attempted(result) and not result.success
        ]
        success = all(result.success for result in results.values() if _attempted(result))
        state = _enter(email, PipelineState.AGGREGATED)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        counter("pipeline.email.processed")
        if not success:
            counter("pipeline.email.partial")
        log_event(
            "pipeline.email.complete",
            email_id=email.id,
            success=success,
            stages_run=len([r for r in results.values() if _attempted(r)]),
            errors=len(errors),
            tokens_used=analysis.total_tokens_used,
            estimated_cost=analysis.total_estimated_cost,
            duration_ms=elapsed_ms,
        )
        logger.info(
            "PROCESS COMPLETE: email=%s success=%s errors=%d tokens=%d in %dms",
            email.id,
            success,
            len(errors),
            analysis.total_tokens_used,
            elapsed_ms,
        )

        return EmailProcessingResult(
            email_id=email.id,
            success=success,
            analysis=analysis,
            results=results,
            errors=errors,
            gate_decision=decision,
            state=state,
        )
