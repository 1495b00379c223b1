"""
Redaction helpers applied before anything about an email reaches the logs.

Provides:
- redact(): Hash sensitive strings for correlation without exposure
- redact_subject(): Partially redact email subjects for debugging
- redact_prompt(): Short preview + hash of a prompt or user content block
- sanitize_for_prompt(): Remove potential prompt injection patterns
"""

from __future__ import annotations

import re
from hashlib import sha256

# Patterns that could be used for prompt injection
INJECTION_PATTERNS = [
    r"ignore\s+(previous|above|all)\s+instructions?",
    r"disregard\s+(previous|above|all)\s+instructions?",
    r"forget\s+(previous|above|all)\s+instructions?",
    r"new\s+instructions?:",
    r"\[INST\]",
    r"\[/INST\]",
    r"<\|im_start\|>",
    r"<\|im_end\|>",
]
INJECTION_REGEX = re.compile("|".join(INJECTION_PATTERNS), re.IGNORECASE)


def redact(value: str | None) -> str:
    """
    Return a stable hash representation of a sensitive string.
    """
    if not value:
        return "hash:missing"
    digest = sha256(value.encode("utf-8")).hexdigest()[:12]
    return f"hash:{digest}"


def redact_subject(subject: str | None, max_length: int = 50) -> str:
    """
    Truncate an email subject for logging, with a hash suffix for correlation.

    Example:
        "Your Amazon order #123-456 has shipped and will arrive Friday morning" ->
        "Your Amazon order #123-456 has shipped and will ar... (h:7a8b9c)"
    """
    if not subject:
        return "(no subject)"

    visible = subject[:max_length] + "..." if len(subject) > max_length else subject
    digest = sha256(subject.encode("utf-8")).hexdigest()[:6]
    return f"{visible} (h:{digest})"


def redact_prompt(prompt: str, preview_chars: int = 50) -> str:
    """Redact email content from prompt for safe logging."""
    preview = prompt[:preview_chars]
    full_hash = sha256(prompt.encode("utf-8")).hexdigest()[:12]
    return f"{preview}... (hash:{full_hash}, chars={len(prompt)})"


def sanitize_for_prompt(text: str | None) -> str:
    """Neutralize instruction-override phrases inside untrusted email text."""
    if not text:
        return ""
    return INJECTION_REGEX.sub("[REDACTED]", text)
