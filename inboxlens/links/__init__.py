"""Best-effort resolution of linked pages for the event stages."""

from inboxlens.links.resolver import (
    LinkResolver,
    format_resolved_links_for_prompt,
    select_links,
)

__all__ = ["LinkResolver", "format_resolved_links_for_prompt", "select_links"]
