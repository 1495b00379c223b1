"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os

from inboxlens.infrastructure.env import ensure_env_loaded

ensure_env_loaded()

# Google Cloud / Gemini
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash-001")  # Vertex AI model
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")

# Feature Flags
USE_LINK_RESOLVER = os.getenv("INBOXLENS_USE_LINK_RESOLVER", "true").lower() == "true"
