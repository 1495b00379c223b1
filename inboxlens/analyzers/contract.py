"""
Analyzer Contract - the one execution path every stage goes through.

A stage is an immutable StageDefinition value (config, output schema, prompt
builder, wire-to-domain normalizer, empty-data factory). run_stage() owns the
shared steps:

1. Disabled check (returns a failed result, no service call)
2. Email formatting with a bounded body budget
3. Completion call wrapped in tenacity retry + per-attempt timeout
4. Normalization through the stage's FieldSpec-driven mapping
5. Confidence extraction, logging and telemetry

run_stage() never raises for service or payload problems; exhaustion and
unexpected errors come back as AnalyzerResult.failure(...) carrying the
stage's empty data. Only cancellation propagates.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from inboxlens import config
from inboxlens.analyzers.normalization import Normalized, clamp_unit
from inboxlens.analyzers.types import (
    AnalyzerResult,
    EmailInput,
    StageExtras,
    UserContext,
)
from inboxlens.contracts.completion import CompletionService
from inboxlens.llm.client import CompletionRequest, CompletionResponse, ModelParams
from inboxlens.llm.errors import CompletionError, TransientCompletionError
from inboxlens.observability.logging import get_logger, stage_logger
from inboxlens.observability.telemetry import counter, log_event, record_latency
from inboxlens.utils.redaction import redact_prompt, redact_subject, sanitize_for_prompt

logger = get_logger(__name__)

T = TypeVar("T")

DISABLED_ERROR = "Analyzer is disabled"

# asyncio.TimeoutError is a distinct class before Python 3.11
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    TransientCompletionError,
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
)


# ---------------------------------------------------------------------------
# Configuration values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StageConfig:
    """Immutable per-stage model settings."""

    name: str
    enabled: bool = True
    model: str = config.GEMINI_MODEL
    temperature: float = 0.2
    max_tokens: int = 500
    max_body_chars: int = config.DEFAULT_MAX_BODY_CHARS

    @classmethod
    def from_settings(cls, name: str, **overrides: Any) -> StageConfig:
        """Build from config.STAGE_SETTINGS and INBOXLENS_STAGE_<NAME>_ENABLED."""
        temperature, max_tokens = config.STAGE_SETTINGS.get(name, (0.2, 500))
        values: dict[str, Any] = {
            "name": name,
            "enabled": config.stage_enabled(name),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        values.update(overrides)
        return cls(**values)

    def params(self) -> ModelParams:
        return ModelParams(model=self.model, temperature=self.temperature, max_tokens=self.max_tokens)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff around one completion call."""

    max_attempts: int = config.LLM_MAX_RETRIES
    base_delay: float = config.LLM_RETRY_BASE_DELAY
    factor: float = config.LLM_RETRY_FACTOR
    max_delay: float = config.LLM_RETRY_MAX_DELAY
    jitter: float = 0.1
    timeout: float = config.LLM_TIMEOUT_SECONDS


@dataclass(frozen=True)
class StageInvocation:
    """Everything a stage may read during one call. Never mutated."""

    email: EmailInput
    context: UserContext | None = None
    extras: StageExtras = field(default_factory=StageExtras)


@dataclass(frozen=True)
class StageDefinition(Generic[T]):
    """
    One analysis stage as a value.

    Attributes:
        name: Registry key (snake_case)
        config: Model settings and enabled flag
        wire_model: Pydantic model describing the output schema sent to the service
        build_system_prompt: Prompt for this call (may read context/extras)
        normalize: Raw payload -> Normalized[T] (the wire-to-domain mapping)
        empty: Documented empty/default data shape used on failure
        confidence: Optional derived confidence; defaults to data.confidence
        short_circuit: Optional pre-check that answers without a service call
        build_user_content: Optional hook to append grounding to the formatted email
    """

    name: str
    config: StageConfig
    wire_model: type[BaseModel]
    build_system_prompt: Callable[[StageInvocation], str]
    normalize: Callable[[Mapping[str, Any], StageInvocation], Normalized[T]]
    empty: Callable[[], T]
    confidence: Callable[[T], float] | None = None
    short_circuit: Callable[[StageInvocation], T | None] | None = None
    build_user_content: Callable[[str, StageInvocation], str] | None = None

    def output_schema(self) -> dict[str, Any]:
        return self.wire_model.model_json_schema()

    def with_config(self, **overrides: Any) -> StageDefinition[T]:
        """Copy with some StageConfig fields replaced (e.g. enabled=False)."""
        from dataclasses import replace

        return replace(self, config=replace(self.config, **overrides))


# ---------------------------------------------------------------------------
# Email formatting
# ---------------------------------------------------------------------------


def truncate_body(body: str, max_chars: int) -> str:
    """Keep equal head and tail slices of an over-long body."""
    if len(body) <= max_chars:
        return body
    half = max_chars // 2
    removed = len(body) - max_chars
    return (
        f"{body[:half]}\n\n[...content truncated for AI processing ({removed} chars removed)...]\n\n"
        f"{body[-half:]}"
    )


def format_email_for_analysis(
    email: EmailInput, max_body_chars: int = config.DEFAULT_MAX_BODY_CHARS
) -> str:
    """
    Render an email as the user content for a stage call.

    Header lines, then the body truncated to max_body_chars. Falls back to the
    snippet, then to a placeholder, when there is no body.
    """
    parts = [
        f"From: {email.sender_name or ''} <{email.sender_email}>",
        f"Date: {email.date}",
        f"Subject: {sanitize_for_prompt(email.subject) or '(no subject)'}",
    ]
    if email.gmail_labels:
        parts.append(f"Labels: {', '.join(email.gmail_labels)}")

    parts.append("")
    parts.append("--- Email Body ---")

    if email.body_text:
        parts.append(truncate_body(sanitize_for_prompt(email.body_text), max_body_chars))
    elif email.snippet:
        parts.append(f"[Snippet only]: {sanitize_for_prompt(email.snippet)}")
    else:
        parts.append("[No body content available]")

    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _log_retry(stage_name: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        counter(f"stage.{stage_name}.retry")
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying %s after attempt %d: %s",
            stage_name,
            retry_state.attempt_number,
            exc,
        )

    return before_sleep


async def complete_with_retry(
    service: CompletionService,
    request: CompletionRequest,
    policy: RetryPolicy,
    stage_name: str,
) -> CompletionResponse:
    """
    Call the completion service with bounded retries.

    Only transient errors (RETRYABLE_ERRORS) are retried; the last one is
    re-raised when attempts run out.
    """
    response: CompletionResponse | None = None
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, policy.max_attempts)),
        wait=wait_exponential(
            multiplier=policy.base_delay, exp_base=policy.factor, max=policy.max_delay
        )
        + wait_random(0, policy.jitter),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=_log_retry(stage_name),
        reraise=True,
    ):
        with attempt:
            response = await asyncio.wait_for(service.complete(request), timeout=policy.timeout)
    if response is None:
        raise CompletionError(f"No completion response for {stage_name}")
    return response


def _extract_confidence(stage: StageDefinition[T], data: T) -> float:
    if stage.confidence is not None:
        return clamp_unit(stage.confidence(data), config.DEFAULT_CONFIDENCE)
    return clamp_unit(getattr(data, "confidence", None), config.DEFAULT_CONFIDENCE)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


async def run_stage(
    stage: StageDefinition[T],
    email: EmailInput,
    context: UserContext | None = None,
    *,
    service: CompletionService,
    extras: StageExtras | None = None,
    retry_policy: RetryPolicy | None = None,
) -> AnalyzerResult[T]:
    """
    Execute one stage against one email.

    Args:
        stage: Stage definition from the registry
        email: Email to analyze
        context: Optional user context
        service: Completion service collaborator
        extras: Per-call parameters (raw links, resolved pages)
        retry_policy: Backoff settings (defaults from config)

    Returns:
        AnalyzerResult; never raises for service or payload failures

    Side Effects:
        - Calls the completion service (billed)
        - Logs call start/complete/failure with redacted fields
        - Increments stage.<name>.* counters and records stage latency
    """
    log = stage_logger(logger, stage.name, email.id)

    if not stage.config.enabled:
        counter(f"stage.{stage.name}.disabled")
        log.debug("Stage disabled, skipping")
        return AnalyzerResult.failure(stage.empty(), DISABLED_ERROR)

    invocation = StageInvocation(email=email, context=context, extras=extras or StageExtras())
    policy = retry_policy or RetryPolicy()
    start = time.perf_counter()

    try:
        if stage.short_circuit is not None:
            answered = stage.short_circuit(invocation)
            if answered is not None:
                counter(f"stage.{stage.name}.short_circuit")
                return AnalyzerResult(
                    success=True,
                    data=answered,
                    confidence=_extract_confidence(stage, answered),
                    processing_time_ms=_elapsed_ms(start),
                )

        system_prompt = stage.build_system_prompt(invocation)
        user_content = format_email_for_analysis(email, stage.config.max_body_chars)
        if stage.build_user_content is not None:
            user_content = stage.build_user_content(user_content, invocation)

        request = CompletionRequest(
            system_prompt=system_prompt,
            user_content=user_content,
            output_schema=stage.output_schema(),
            params=stage.config.params(),
            schema_name=stage.name,
        )
        log.info(
            "Calling model=%s subject=%s content=%s",
            stage.config.model,
            redact_subject(email.subject),
            redact_prompt(user_content),
        )

        response = await complete_with_retry(service, request, policy, stage.name)
        normalized = stage.normalize(response.data, invocation)

    except asyncio.CancelledError:
        raise
    except Exception as e:
        elapsed = _elapsed_ms(start)
        message = str(e) or type(e).__name__
        counter(f"stage.{stage.name}.error")
        record_latency(f"stage.{stage.name}.latency", elapsed / 1000)
        log.error("Stage failed after %dms: %s", elapsed, message)
        log_event(
            "stage.error",
            stage=stage.name,
            email_id=email.id,
            error_type=type(e).__name__,
            error=message[:200],
        )
        return AnalyzerResult.failure(stage.empty(), message, processing_time_ms=elapsed)

    for correction in normalized.corrections:
        counter(f"stage.{stage.name}.correction")
        log.warning("Normalized %s", correction)

    elapsed = _elapsed_ms(start)
    confidence = _extract_confidence(stage, normalized.data)
    counter(f"stage.{stage.name}.success")
    record_latency(f"stage.{stage.name}.latency", elapsed / 1000)
    log_event(
        "stage.complete",
        stage=stage.name,
        email_id=email.id,
        tokens_used=response.tokens_total,
        estimated_cost=round(response.estimated_cost, 6),
        duration_ms=response.duration_ms,
        corrections=len(normalized.corrections),
        confidence=round(confidence, 3),
    )

    return AnalyzerResult(
        success=True,
        data=normalized.data,
        confidence=confidence,
        tokens_used=max(0, int(response.tokens_total)),
        processing_time_ms=elapsed,
        estimated_cost=max(0.0, float(response.estimated_cost)),
        corrections=list(normalized.corrections),
    )
