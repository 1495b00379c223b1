"""
Gemini completion service (Vertex AI).

Implements the CompletionService protocol for the analyzer contract. Each call
builds a lightweight GenerativeModel carrying the stage's system instruction
and JSON output schema; Vertex AI itself is initialized once per process.

Errors are mapped onto the inboxlens.llm.errors hierarchy so the contract can
tell retryable failures (deadline, overload, quota) from permanent ones.
"""

from __future__ import annotations

import json
import time
from functools import lru_cache

from inboxlens.config import GEMINI_LOCATION, GOOGLE_CLOUD_PROJECT
from inboxlens.llm.client import (
    CompletionRequest,
    CompletionResponse,
    estimate_cost,
    extract_json_object,
)
from inboxlens.llm.errors import (
    CompletionError,
    CompletionInitializationError,
    TransientCompletionError,
)
from inboxlens.observability.logging import get_logger
from inboxlens.observability.telemetry import counter

logger = get_logger(__name__)

SCHEMA_INSTRUCTION = """
Respond with ONLY a JSON object (no markdown, no commentary) matching this JSON schema:
{schema}"""


@lru_cache(maxsize=1)
def init_vertex(project: str | None = None, location: str | None = None) -> str:
    """
    Initialize the Vertex AI SDK once per process.

    Returns:
        The project id in use

    Raises:
        CompletionInitializationError: If the SDK is missing or no project is configured
    """
    project = project or GOOGLE_CLOUD_PROJECT
    location = location or GEMINI_LOCATION or "us-central1"
    if not project:
        raise CompletionInitializationError("GOOGLE_CLOUD_PROJECT not set")

    try:
        import vertexai

        vertexai.init(project=project, location=location)
    except ImportError as e:
        raise CompletionInitializationError(
            "Vertex AI SDK not installed. Install google-cloud-aiplatform."
        ) from e
    except Exception as e:
        logger.error("Failed to initialize Vertex AI: %s", e)
        raise CompletionInitializationError(f"Failed to initialize Vertex AI: {e}") from e

    logger.info("Initialized Vertex AI: project=%s, location=%s", project, location)
    return project


def clear_model_cache() -> None:
    """
    Clear the cached Vertex AI initialization.

    Useful for testing or when reconfiguration is needed.
    """
    init_vertex.cache_clear()
    logger.info("Cleared Vertex AI init cache")


class GeminiCompletionService:
    """
    CompletionService backed by Gemini on Vertex AI.

    Side Effects:
        - Calls the Vertex AI generate_content API (billed per token)
        - Increments llm.* telemetry counters
    """

    def __init__(self, project: str | None = None, location: str | None = None):
        self._project = project
        self._location = location

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        from google.api_core.exceptions import (
            DeadlineExceeded,
            InternalServerError,
            ResourceExhausted,
            ServiceUnavailable,
        )
        from vertexai.generative_models import GenerationConfig, GenerativeModel

        init_vertex(self._project, self._location)

        system_instruction = request.system_prompt + SCHEMA_INSTRUCTION.format(
            schema=json.dumps(request.output_schema, indent=2)
        )
        model = GenerativeModel(request.params.model, system_instruction=system_instruction)
        generation_config = GenerationConfig(
            temperature=request.params.temperature,
            max_output_tokens=request.params.max_tokens,
            response_mime_type="application/json",
        )

        start = time.perf_counter()
        try:
            response = await model.generate_content_async(
                request.user_content,
                generation_config=generation_config,
            )
        except DeadlineExceeded as e:
            counter("llm.timeout")
            raise TimeoutError(f"Gemini call timed out: {e}") from e
        except (ServiceUnavailable, ResourceExhausted, InternalServerError) as e:
            counter("llm.transient_error")
            logger.warning("Gemini unavailable, will retry: %s", e)
            raise TransientCompletionError(f"Gemini unavailable: {e}") from e
        except Exception as e:
            counter("llm.error")
            raise CompletionError(f"Gemini call failed: {e}") from e

        duration_ms = int((time.perf_counter() - start) * 1000)
        text = response.text
        data = extract_json_object(text)

        usage = getattr(response, "usage_metadata", None)
        prompt_tokens = int(getattr(usage, "prompt_token_count", 0) or 0)
        completion_tokens = int(getattr(usage, "candidates_token_count", 0) or 0)
        total_tokens = int(getattr(usage, "total_token_count", 0) or 0) or (
            prompt_tokens + completion_tokens
        )

        counter("llm.call_success")
        return CompletionResponse(
            data=data,
            tokens_total=total_tokens,
            estimated_cost=estimate_cost(prompt_tokens, completion_tokens),
            duration_ms=duration_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            raw_text=text,
        )
