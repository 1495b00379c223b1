"""
Centralized environment variable loader for InboxLens.

Entry points MUST call ensure_env_loaded() before reading configuration that
depends on a local .env file. inboxlens.infrastructure.settings does this on
import.

Usage:
    from inboxlens.infrastructure.env import ensure_env_loaded

    ensure_env_loaded()
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

_ENV_LOADED = False


def ensure_env_loaded(env_path: Path | None = None) -> None:
    """
    Ensure .env file is loaded exactly once.

    Args:
        env_path: Optional path to .env file. If None, searches upward for one.

    Side Effects:
        - Loads environment variables from .env file
        - Sets module-level flag to prevent double-loading
    """
    global _ENV_LOADED
    if _ENV_LOADED:
        return

    if env_path is None:
        current = Path(__file__).parent
        while current != current.parent:
            env_candidate = current / ".env"
            if env_candidate.exists():
                env_path = env_candidate
                break
            current = current.parent

    if env_path and env_path.exists():
        load_dotenv(env_path)
    else:
        # Try loading from current directory as fallback
        load_dotenv()
    _ENV_LOADED = True
