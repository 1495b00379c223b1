"""
Completion-service request/response types shared by every adapter.

The analyzer contract only ever talks to a CompletionService (see
inboxlens.contracts.completion); adapters translate these dataclasses to a
concrete SDK. Helpers for JSON extraction and cost estimation live here so
that fake services in tests and the Gemini adapter parse output identically.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from inboxlens.config import PRICE_PER_M_INPUT_TOKENS, PRICE_PER_M_OUTPUT_TOKENS
from inboxlens.llm.errors import CompletionSchemaError

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


@dataclass(frozen=True)
class ModelParams:
    """Per-call model settings."""

    model: str
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class CompletionRequest:
    """One structured-output completion call."""

    system_prompt: str
    user_content: str
    output_schema: dict[str, Any]
    params: ModelParams
    schema_name: str = "analysis"


@dataclass
class CompletionResponse:
    """Parsed structured output plus accounting for one call."""

    data: dict[str, Any]
    tokens_total: int = 0
    estimated_cost: float = 0.0
    duration_ms: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    raw_text: str = field(default="", repr=False)


def estimate_cost(prompt_tokens: int, completion_tokens: int) -> float:
    """USD cost estimate from per-million-token pricing."""
    return (
        prompt_tokens * PRICE_PER_M_INPUT_TOKENS + completion_tokens * PRICE_PER_M_OUTPUT_TOKENS
    ) / 1_000_000


def extract_json_object(response_text: str) -> dict[str, Any]:
    """
    Parse a model response into a JSON object.

    Handles markdown code fences and leading/trailing prose around the object.

    Raises:
        CompletionSchemaError: If no JSON object can be recovered
    """
    text = (response_text or "").strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text)
        text = _FENCE_CLOSE.sub("", text)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Model wrapped the object in prose; take the outermost braces
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise CompletionSchemaError(f"No JSON object in response: {text[:80]!r}") from None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError as e:
            raise CompletionSchemaError(f"Invalid JSON in response: {e}") from e

    if not isinstance(data, dict):
        raise CompletionSchemaError(f"Expected JSON object, got {type(data).__name__}")
    return data
