"""Centralized configuration for the InboxLens analyzer pipeline.

Re-exports everything from inboxlens.infrastructure.settings so callers have a
single import point, then adds typed constants for the analyzer contract, LLM
retry policy, pricing, link resolution and contact enrichment. Environment
variable overrides use safe defaults so the pipeline starts without extra env
configuration.
"""

from __future__ import annotations

import os

from inboxlens.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "1.0.0"
ANALYZER_VERSION: str = "1.0.0"

# --- Analyzer Contract ---
DEFAULT_MAX_BODY_CHARS: int = int(os.getenv("INBOXLENS_MAX_BODY_CHARS", "16000"))
DEFAULT_CONFIDENCE: float = 0.5

# --- LLM ---
LLM_TIMEOUT_SECONDS: float = float(os.getenv("INBOXLENS_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(os.getenv("INBOXLENS_LLM_MAX_RETRIES", "3"))
LLM_RETRY_BASE_DELAY: float = float(os.getenv("INBOXLENS_LLM_RETRY_BASE_DELAY", "0.5"))
LLM_RETRY_FACTOR: float = float(os.getenv("INBOXLENS_LLM_RETRY_FACTOR", "2"))
LLM_RETRY_MAX_DELAY: float = float(os.getenv("INBOXLENS_LLM_RETRY_MAX_DELAY", "4.0"))

# --- Pricing (USD per 1M tokens) ---
PRICE_PER_M_INPUT_TOKENS: float = float(os.getenv("INBOXLENS_PRICE_INPUT", "0.15"))
PRICE_PER_M_OUTPUT_TOKENS: float = float(os.getenv("INBOXLENS_PRICE_OUTPUT", "0.60"))

# --- Stage Settings ---
# Stage name -> (temperature, max_tokens)
STAGE_SETTINGS: dict[str, tuple[float, int]] = {
    "categorizer": (0.2, 750),
    "content_digest": (0.3, 1200),
    "action_extractor": (0.3, 500),
    "client_tagger": (0.2, 300),
    "date_extractor": (0.2, 500),
    "event_detector": (0.2, 600),
    "multi_event_detector": (0.2, 1200),
    "idea_spark": (0.7, 600),
    "insight_extractor": (0.4, 500),
    "news_brief": (0.2, 400),
    "contact_enricher": (0.2, 400),
    "link_analyzer": (0.3, 1500),
}


def stage_enabled(stage_name: str) -> bool:
    """Return False when INBOXLENS_STAGE_<NAME>_ENABLED is set to a false value."""
    raw = os.getenv(f"INBOXLENS_STAGE_{stage_name.upper()}_ENABLED", "true")
    return raw.strip().lower() not in ("false", "0", "no", "off")


# --- Link Resolver ---
LINK_FETCH_TIMEOUT_SECONDS: float = float(os.getenv("INBOXLENS_LINK_FETCH_TIMEOUT", "5.0"))
LINK_MAX_CONTENT_CHARS: int = 8000
LINK_MAX_LINKS: int = 2
LINK_MIN_CONTENT_CHARS: int = 50
LINK_USER_AGENT: str = "InboxLens/1.0 (Event Resolver)"

# --- Contact Enrichment ---
ENRICHMENT_MIN_EMAIL_COUNT: int = 3
ENRICHMENT_MIN_CONFIDENCE: float = 0.5
ENRICHMENT_STALE_DAYS: int = 30
