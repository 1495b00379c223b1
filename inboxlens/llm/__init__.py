"""Completion-service adapters and shared request/response types."""

from inboxlens.llm.client import CompletionRequest, CompletionResponse, ModelParams
from inboxlens.llm.errors import (
    CompletionError,
    CompletionInitializationError,
    CompletionSchemaError,
    TransientCompletionError,
)

__all__ = [
    "CompletionRequest",
    "CompletionResponse",
    "ModelParams",
    "CompletionError",
    "CompletionInitializationError",
    "CompletionSchemaError",
    "TransientCompletionError",
]
