"""
Deterministic sender-type detection.

Classifies how a sender communicates (direct, broadcast, cold_outreach,
opportunity) without a model call. Checks run strongest-first and the first
hit wins:

1. Headers: List-Unsubscribe, List-Id, ESP markers
2. Address: known broadcast domains, broadcast local-part prefixes
3. Content: newsletter boilerplate, cold-outreach phrasing, opportunity lists

The orchestrator uses the result to fill in or override ContactEnricher's
model-based classification (see reconcile_sender_type).

Cost: $0 (no LLM calls)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from inboxlens.analyzers.contact_enricher import ContactEnrichmentData
from inboxlens.analyzers.sender_type_data import (
    BROADCAST_CONTENT_PATTERNS,
    BROADCAST_DOMAINS,
    BROADCAST_PREFIXES,
    COLD_OUTREACH_PATTERNS,
    ESP_HEADER_PATTERNS,
    OPPORTUNITY_PATTERNS,
)
from inboxlens.analyzers.types import (
    BroadcastSubtype,
    EmailInput,
    SenderType,
    SenderTypeSource,
    vocabulary,
)
from inboxlens.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent / "sender_rules.yaml"

_SUBTYPES = vocabulary(BroadcastSubtype)


@dataclass(frozen=True)
class SenderTypeDetection:
    sender_type: str
    confidence: float
    source: str
    reasoning: str
    broadcast_subtype: str | None = None
    signals: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_known(self) -> bool:
        return self.sender_type != SenderType.UNKNOWN.value


def _unknown(reasoning: str, signals: list[str]) -> SenderTypeDetection:
    return SenderTypeDetection(
        sender_type=SenderType.UNKNOWN.value,
        confidence=0.0,
        source=SenderTypeSource.EMAIL_PATTERN.value,
        reasoning=reasoning,
        signals=tuple(signals),
    )


class SenderTypeDetector:
    """
    Rule-based sender classifier.

    Domain tables come from sender_type_data.py, extended by an optional
    YAML rules file (broadcast_domains: {domain: subtype}).
    """

    def __init__(self, rules_path: Path | None = None):
        self.broadcast_domains: dict[str, str] = dict(BROADCAST_DOMAINS)
        self.broadcast_domains.update(self._load_rules(rules_path or DEFAULT_RULES_PATH))
        logger.debug("SenderTypeDetector initialized: %d broadcast domains", len(self.broadcast_domains))

    def _load_rules(self, path: Path) -> dict[str, str]:
        """Load extra broadcast domains from YAML; invalid subtypes are skipped."""
        if not path.exists():
            logger.warning("Sender rules not found at %s, using built-in tables", path)
            return {}

        with open(path) as f:
            rules = yaml.safe_load(f) or {}

        extra: dict[str, str] = {}
        for domain, subtype in (rules.get("broadcast_domains") or {}).items():
            if subtype not in _SUBTYPES:
                logger.warning("Ignoring sender rule %s: unknown subtype %r", domain, subtype)
                continue
            extra[str(domain).lower()] = subtype
        return extra

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(self, email: EmailInput) -> SenderTypeDetection:
        """Classify the sender of one email. Never raises."""
        signals: list[str] = []

        result = self._detect_from_headers(email.headers, signals)
        if result is None:
            result = self._detect_from_address(email.sender_email, signals)
            if not result.is_known:
                result = self._detect_from_content(email.subject, email.body_text, signals)

        if result is not None and result.is_known:
            logger.info(
                "Sender type for %s: %s (%s, %.2f)",
                email.sender_email,
                result.sender_type,
                result.source,
                result.confidence,
            )
            return result

        logger.debug("No strong sender type signals for %s", email.sender_email)
        return _unknown(
            "No clear signals to determine sender type. Needs AI analysis or user behavior.",
            signals,
        )

    def detect_from_email_only(self, sender_email: str) -> SenderTypeDetection | None:
        """Address-only check (for backfills without headers or body)."""
        result = self._detect_from_address(sender_email, [])
        return result if result.is_known else None

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _detect_from_headers(
        self, headers: dict[str, str] | None, signals: list[str]
    ) -> SenderTypeDetection | None:
        if not headers:
            return None
        lowered = {key.lower(): value or "" for key, value in headers.items()}

        if lowered.get("list-unsubscribe"):
            signals.append("List-Unsubscribe header present")
            return SenderTypeDetection(
                sender_type=SenderType.BROADCAST.value,
                broadcast_subtype=BroadcastSubtype.COMPANY_NEWSLETTER.value,
                confidence=0.95,
                source=SenderTypeSource.HEADER.value,
                reasoning="Email has List-Unsubscribe header, indicating a mailing list or newsletter.",
                signals=tuple(signals),
            )

        if lowered.get("list-id"):
            signals.append("List-Id header present")
            return SenderTypeDetection(
                sender_type=SenderType.BROADCAST.value,
                broadcast_subtype=BroadcastSubtype.COMPANY_NEWSLETTER.value,
                confidence=0.90,
                source=SenderTypeSource.HEADER.value,
                reasoning="Email has List-Id header, indicating a mailing list.",
                signals=tuple(signals),
            )

        transport = " ".join(
            lowered.get(key, "") for key in ("received", "x-mailer", "message-id")
        ).lower()
        for marker in ESP_HEADER_PATTERNS:
            if marker in transport:
                signals.append(f"ESP detected in headers: {marker}")
                return SenderTypeDetection(
                    sender_type=SenderType.BROADCAST.value,
                    broadcast_subtype=BroadcastSubtype.COMPANY_NEWSLETTER.value,
                    confidence=0.85,
                    source=SenderTypeSource.HEADER.value,
                    reasoning=f"Email sent via email service provider ({marker}), indicating bulk email.",
                    signals=tuple(signals),
                )
        return None

    def _detect_from_address(self, sender_email: str, signals: list[str]) -> SenderTypeDetection:
        address = sender_email.strip().lower()
        local_part, _, domain = address.rpartition("@")

        subtype = self.broadcast_domains.get(domain) if domain else None
        if subtype:
            signals.append(f"Known broadcast domain: {domain}")
            return SenderTypeDetection(
                sender_type=SenderType.BROADCAST.value,
                broadcast_subtype=subtype,
                confidence=0.95,
                source=SenderTypeSource.EMAIL_PATTERN.value,
                reasoning=f"Sender domain {domain} is a known {subtype.replace('_', ' ')} platform.",
                signals=tuple(signals),
            )

        if local_part:
            for prefix, subtype in BROADCAST_PREFIXES.items():
                if local_part == prefix or local_part.startswith(
                    (f"{prefix}.", f"{prefix}-", f"{prefix}_")
                ):
                    signals.append(f"Broadcast email prefix: {prefix}")
                    return SenderTypeDetection(
                        sender_type=SenderType.BROADCAST.value,
                        broadcast_subtype=subtype,
                        confidence=0.90 if subtype == BroadcastSubtype.TRANSACTIONAL.value else 0.80,
                        source=SenderTypeSource.EMAIL_PATTERN.value,
                        reasoning=f'Email prefix "{local_part}" indicates {subtype.replace("_", " ")} sender.',
                        signals=tuple(signals),
                    )

        return _unknown("Email address pattern does not match known broadcast patterns.", signals)

    def _detect_from_content(
        self, subject: str | None, body: str | None, signals: list[str]
    ) -> SenderTypeDetection | None:
        content = f"{subject or ''} {body or ''}"
        if not content.strip():
            return None

        broadcast_hits = [p.pattern for p in BROADCAST_CONTENT_PATTERNS if p.search(content)]
        if len(broadcast_hits) >= 2:
            signals.extend(f"Content pattern: {p}" for p in broadcast_hits[:3])
            return SenderTypeDetection(
                sender_type=SenderType.BROADCAST.value,
                broadcast_subtype=BroadcastSubtype.COMPANY_NEWSLETTER.value,
                confidence=min(0.60 + len(broadcast_hits) * 0.1, 0.85),
                source=SenderTypeSource.EMAIL_PATTERN.value,
                reasoning=f"Email contains {len(broadcast_hits)} newsletter/broadcast indicators.",
                signals=tuple(signals),
            )

        outreach_hits = [p.pattern for p in COLD_OUTREACH_PATTERNS if p.search(content)]
        if len(outreach_hits) >= 2:
            signals.extend(f"Cold outreach pattern: {p}" for p in outreach_hits[:3])
            return SenderTypeDetection(
                sender_type=SenderType.COLD_OUTREACH.value,
                confidence=min(0.50 + len(outreach_hits) * 0.1, 0.75),
                source=SenderTypeSource.EMAIL_PATTERN.value,
                reasoning=f"Email contains {len(outreach_hits)} cold outreach indicators.",
                signals=tuple(signals),
            )

        for pattern in OPPORTUNITY_PATTERNS:
            if pattern.search(content):
                signals.append(f"Opportunity pattern: {pattern.pattern}")
                return SenderTypeDetection(
                    sender_type=SenderType.OPPORTUNITY.value,
                    confidence=0.70,
                    source=SenderTypeSource.EMAIL_PATTERN.value,
                    reasoning="Email appears to be from an opportunity/query list (HARO, journalist query, etc.).",
                    signals=tuple(signals),
                )
        return None


def reconcile_sender_type(
    enrichment: ContactEnrichmentData, detection: SenderTypeDetection
) -> ContactEnrichmentData:
    """
    Merge the heuristic classification into ContactEnricher output.

    A header-based detection at least as confident as the model wins. A known
    detection also fills in when the model answered unknown. Otherwise the
    model's answer stands. broadcast_subtype is cleared unless the final type
    is broadcast.

    Returns:
        New ContactEnrichmentData (input is not modified)
    """
    header_wins = (
        detection.source == SenderTypeSource.HEADER.value
        and detection.confidence >= enrichment.sender_type_confidence
    )
    fills_unknown = detection.is_known and enrichment.sender_type == SenderType.UNKNOWN.value

    if header_wins or fills_unknown:
        merged = replace(
            enrichment,
            sender_type=detection.sender_type,
            broadcast_subtype=detection.broadcast_subtype,
            sender_type_confidence=detection.confidence,
            sender_type_reasoning=detection.reasoning,
            sender_type_source=detection.source,
        )
    else:
        merged = replace(enrichment, sender_type_source=SenderTypeSource.AI.value)

    if merged.sender_type != SenderType.BROADCAST.value and merged.broadcast_subtype is not None:
        merged = replace(merged, broadcast_subtype=None)
    return merged
