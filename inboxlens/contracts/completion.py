"""
Completion Service Protocol

The analyzer contract depends on this interface only. The Gemini adapter in
inboxlens.llm.gemini implements it for production; tests pass a fake.
"""

from __future__ import annotations

from typing import Protocol

from inboxlens.llm.client import CompletionRequest, CompletionResponse


class CompletionService(Protocol):
    """Protocol for structured-output LLM completion."""

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Run one completion constrained to request.output_schema.

        Args:
            request: System prompt, user content, output schema and model params

        Returns:
            CompletionResponse with the parsed JSON object and token accounting

        Raises:
            TransientCompletionError / TimeoutError / ConnectionError: retryable failures
            CompletionError: permanent failures (bad request, unparseable output)
        """
        ...
