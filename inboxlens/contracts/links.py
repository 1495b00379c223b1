"""
Link Resolution Protocol

Implemented by inboxlens.links.resolver.LinkResolver. The orchestrator only
needs the resolve step; link selection is an implementation detail.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from inboxlens.analyzers.types import ExtractedLink, ResolvedLink


class LinkResolverProtocol(Protocol):
    """Protocol for best-effort page fetch + text extraction."""

    async def resolve_links(self, links: Sequence[ExtractedLink]) -> list[ResolvedLink]:
        """Fetch a bounded subset of links and return the pages that succeeded.

        Side Effects:
            Outbound HTTPS requests (bounded count, per-fetch timeout)

        Never raises; failed fetches are omitted from the result.
        """
        ...
