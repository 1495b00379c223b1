"""
Type Contracts for InboxLens

Protocol-based interfaces for the collaborators the pipeline depends on:
the completion service, the link resolver and the enrichment-eligibility
predicate. Concrete implementations are injected into the orchestrator.
"""

from inboxlens.contracts.completion import CompletionService
from inboxlens.contracts.enrichment import EnrichmentEligibility
from inboxlens.contracts.links import LinkResolverProtocol

__all__ = [
    "CompletionService",
    "EnrichmentEligibility",
    "LinkResolverProtocol",
]
