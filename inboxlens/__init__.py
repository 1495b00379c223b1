"""InboxLens - multi-stage LLM analysis of email content"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports so lightweight modules (normalization, gating) load without the LLM stack
def __getattr__(name: str):
    """
    Lazy imports to avoid loading heavy dependencies when only importing lightweight modules.
    """
    if name in ("AnalysisOrchestrator", "EmailProcessingResult"):
        from inboxlens.pipeline import orchestrator

        return getattr(orchestrator, name)

    if name in ("EmailInput", "UserContext", "Client"):
        from inboxlens.analyzers import types

        return getattr(types, name)

    if name == "default_registry":
        from inboxlens.analyzers.registry import default_registry

        return default_registry

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "AnalysisOrchestrator",
    "EmailProcessingResult",
    "EmailInput",
    "UserContext",
    "Client",
    "default_registry",
]
