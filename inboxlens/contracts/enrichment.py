"""
Enrichment Eligibility Protocol

ContactEnricher is the most expensive per-sender stage, so the orchestrator
asks a collaborator whether the sender of the current email is worth
enriching. The default implementation is
inboxlens.pipeline.enrichment.should_enrich_contact applied to a SenderRecord.
"""

from __future__ import annotations

from typing import Protocol

from inboxlens.analyzers.types import EmailInput


class EnrichmentEligibility(Protocol):
    """Callable deciding whether ContactEnricher runs for an email."""

    def __call__(self, email: EmailInput) -> bool:
        """Return True when the sender should be (re-)enriched.

        Side Effects:
            None - must be a pure decision over data the collaborator already holds
        """
        ...
