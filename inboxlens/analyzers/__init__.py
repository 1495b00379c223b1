"""
Analysis stages.

Each stage module exposes a ``<name>_stage()`` factory returning a
StageDefinition; registry.default_registry() assembles all twelve. Only the
leaf modules are re-exported here so that importing a vocabulary does not
pull in the contract and the LLM stack.
"""

from inboxlens.analyzers.normalization import Normalized, normalize_fields
from inboxlens.analyzers.types import (
    AnalyzerResult,
    Correction,
    EmailInput,
    ExtractedLink,
    ResolvedLink,
    StageExtras,
    UserContext,
)

__all__ = [
    "AnalyzerResult",
    "Correction",
    "EmailInput",
    "ExtractedLink",
    "Normalized",
    "ResolvedLink",
    "StageExtras",
    "UserContext",
    "normalize_fields",
]
