"""Exceptions raised by completion-service adapters.

Only TransientCompletionError (and the builtin TimeoutError/ConnectionError/
OSError family) is retried by the analyzer contract. Everything else fails the
stage on the first attempt.
"""

from __future__ import annotations


class CompletionError(RuntimeError):
    """Raised when a completion call fails (network, API, etc)."""


class TransientCompletionError(CompletionError):
    """Rate limit, overload or unavailable backend. Safe to retry."""


class CompletionSchemaError(CompletionError, ValueError):
    """Raised when the model output is not a JSON object."""


class CompletionInitializationError(CompletionError):
    """Raised when the model client cannot be initialized."""
