"""
Link Resolver - fetch a few linked pages to ground event extraction.

Event emails often carry little more than "Details and registration here".
The resolver picks at most LINK_MAX_LINKS of the links ContentDigest found,
fetches them in parallel and returns readable page text that the event
stages append to their prompt.

Safety bounds:
- HTTPS only, with a deny-list of list-management, social and tracking hosts
- Unsubscribe / preference / legal pages skipped by path
- Per-fetch timeout, text capped at LINK_MAX_CONTENT_CHARS
- Never raises: failed fetches are logged and omitted
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup

from inboxlens import config
from inboxlens.analyzers.types import ExtractedLink, LinkType, ResolvedLink
from inboxlens.observability.logging import get_logger
from inboxlens.observability.telemetry import counter

logger = get_logger(__name__)

# Hosts that never carry event details; matched exactly or as a dot-suffix
SKIP_DOMAINS: frozenset[str] = frozenset(
    {
        # List management
        "unsubscribe",
        "manage.kmail-lists.com",
        "list-manage.com",
        "mailchimp.com",
        # Social profiles
        "twitter.com",
        "x.com",
        "facebook.com",
        "instagram.com",
        "linkedin.com",
        "tiktok.com",
        "youtube.com",
        # Click tracking
        "click.convertkit-mail.com",
        "click.convertkit-mail2.com",
        "email.mg.substack.com",
        "open.substack.com",
        "trk.klclick.com",
        # Utility
        "gravatar.com",
        "googleapis.com",
    }
)

SKIP_PATH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"/unsubscribe",
        r"/opt-?out",
        r"/manage.*preferences",
        r"/email-preferences",
        r"/privacy",
        r"/terms",
    )
)

EVENT_KEYWORDS = re.compile(
    r"event|register|sign.?up|calendar|schedule|class|course|rsvp|ticket|meetup|conference",
    re.IGNORECASE,
)

EVENT_LINK_TYPES = frozenset(
    {
        LinkType.REGISTRATION.value,
        LinkType.ARTICLE.value,
        LinkType.DOCUMENT.value,
        LinkType.VIDEO.value,
    }
)

REMOVED_TAGS = ("script", "style", "nav", "header", "footer", "noscript", "iframe", "svg")
BLOCK_TAGS = ("p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr")
HTML_CONTENT_TYPES = ("text/html", "application/xhtml")
TRUNCATION_MARKER = "\n[Content truncated...]"
REQUEST_HEADERS = {
    "User-Agent": config.LINK_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml",
}


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def should_skip_url(url: str) -> bool:
    """True for non-HTTPS, malformed, deny-listed or housekeeping URLs."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return True

    if parts.scheme != "https" or not parts.hostname:
        return True

    host = parts.hostname.lower()
    for domain in SKIP_DOMAINS:
        if host == domain or host.endswith(f".{domain}"):
            return True

    path_and_query = parts.path + (f"?{parts.query}" if parts.query else "")
    return any(pattern.search(path_and_query) for pattern in SKIP_PATH_PATTERNS)


def _event_rank(link: ExtractedLink) -> tuple[int, int]:
    keyword = link.type == LinkType.REGISTRATION.value or bool(
        EVENT_KEYWORDS.search(link.url) or EVENT_KEYWORDS.search(link.title or "")
    )
    eligible = link.type in EVENT_LINK_TYPES
    return (int(keyword), int(eligible))


def select_links(
    links: Sequence[ExtractedLink], max_links: int = config.LINK_MAX_LINKS
) -> list[ExtractedLink]:
    """
    Filter and rank candidate links.

    Registration links and links whose URL or title looks like an event come
    first, then event-eligible link types. The sort is stable, so ties keep
    the order ContentDigest reported.
    """
    candidates = [link for link in links if not should_skip_url(link.url)]
    candidates.sort(key=_event_rank, reverse=True)
    return candidates[: max(0, max_links)]


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageText:
    text: str
    title: str | None = None


def extract_page_text(html: str, max_chars: int = config.LINK_MAX_CONTENT_CHARS) -> PageText:
    """Readable text of an HTML page, truncated to max_chars."""
    soup = BeautifulSoup(html, "html.parser")

    title = None
    if soup.title is not None:
        title = " ".join(soup.title.get_text().split()) or None

    for tag in soup(list(REMOVED_TAGS)):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(list(BLOCK_TAGS)):
        block.append("\n")

    text = soup.get_text()
    text = re.sub(r"[ \t\xa0]+", " ", text)
    text = "\n".join(line.strip() for line in text.splitlines())
    text = re.sub(r"\n{3,}", "\n\n", text).strip()

    if len(text) > max_chars:
        text = text[:max_chars] + TRUNCATION_MARKER
    return PageText(text=text, title=title)


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


class LinkFetchError(Exception):
    """One page could not be used. Never escapes the resolver."""


class LinkResolver:
    """
    Fetches selected links with a shared httpx.AsyncClient.

    Pass a client to control transport (tests use httpx.MockTransport);
    otherwise one is created per resolve_links() call and closed afterwards.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = config.LINK_FETCH_TIMEOUT_SECONDS,
        max_links: int = config.LINK_MAX_LINKS,
        max_chars: int = config.LINK_MAX_CONTENT_CHARS,
    ):
        self._client = client
        self.timeout = timeout
        self.max_links = max_links
        self.max_chars = max_chars

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout)

    async def fetch_page(self, client: httpx.AsyncClient, url: str) -> ResolvedLink:
        """
        GET one page and extract its text.

        Raises:
            LinkFetchError: timeout, transport error, non-2xx, non-HTML or too little text
        """
        start = time.perf_counter()
        try:
            response = await client.get(
                url,
                headers=REQUEST_HEADERS,
                follow_redirects=True,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise LinkFetchError("Timeout") from e
        except httpx.HTTPError as e:
            raise LinkFetchError(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise LinkFetchError(f"HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if not any(kind in content_type for kind in HTML_CONTENT_TYPES):
            raise LinkFetchError(f"Non-HTML content: {content_type}")

        page = extract_page_text(response.text, self.max_chars)
        if len(page.text) < config.LINK_MIN_CONTENT_CHARS:
            raise LinkFetchError("Insufficient text content extracted")

        return ResolvedLink(
            url=url,
            title=page.title,
            text=page.text,
            fetched_in_ms=int((time.perf_counter() - start) * 1000),
        )

    async def _resolve_one(self, client: httpx.AsyncClient, url: str) -> ResolvedLink | None:
        try:
            page = await self.fetch_page(client, url)
        except LinkFetchError as e:
            counter("links.fetch.error")
            logger.debug("Link failed to resolve: %s (%s)", url[:60], e)
            return None
        counter("links.fetch.success")
        return page

    async def resolve_links(self, links: Sequence[ExtractedLink]) -> list[ResolvedLink]:
        """
        Resolve the best candidate links in parallel.

        Returns:
            Successfully resolved pages in selection order (possibly empty)

        Side Effects:
            - Up to max_links outbound HTTPS GETs
            - Increments links.fetch.success / links.fetch.error
        """
        if not links:
            return []

        selected = select_links(links, self.max_links)
        if not selected:
            logger.debug("No event-relevant links to resolve (%d filtered out)", len(links))
            return []

        logger.debug(
            "Resolving %d of %d links: %s",
            len(selected),
            len(links),
            [link.url[:60] for link in selected],
        )

        if self._client is not None:
            results = await asyncio.gather(
                *(self._resolve_one(self._client, link.url) for link in selected)
            )
        else:
            async with self._new_client() as client:
                results = await asyncio.gather(
                    *(self._resolve_one(client, link.url) for link in selected)
                )

        resolved = [page for page in results if page is not None]
        if resolved:
            logger.info(
                "Resolved %d event link(s), %d chars total",
                len(resolved),
                sum(len(page.text) for page in resolved),
            )
        return resolved


# ---------------------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------------------

_RULE = "=" * 79


def format_resolved_links_for_prompt(pages: Sequence[ResolvedLink]) -> str:
    """Prompt block with the text of resolved pages, or "" when there are none."""
    if not pages:
        return ""

    parts = [
        "",
        _RULE,
        "ADDITIONAL CONTENT FROM LINKED PAGES",
        _RULE,
        "",
        "The following content was fetched from links in the email.",
        "Use it to find additional event details (dates, times, locations, registration info).",
        "",
    ]
    for page in pages:
        parts.append(f"--- Page: {page.title or page.url} ---")
        parts.append(f"URL: {page.url}")
        parts.append(page.text)
        parts.append("")
    return "\n".join(parts)
