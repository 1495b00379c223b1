from __future__ import annotations

import logging
import os
from collections.abc import MutableMapping
from typing import Any, Final

_HANDLER_ATTACHED: bool = False
_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LEVEL_OVERRIDE: int | None = None


def _resolve_level() -> int:
    if _LEVEL_OVERRIDE is not None:
        return _LEVEL_OVERRIDE
    level_name = os.getenv("INBOXLENS_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def set_log_level(level_name: str) -> None:
    """Force a log level for every logger created afterwards (CLI --log-level)."""
    global _LEVEL_OVERRIDE
    _LEVEL_OVERRIDE = getattr(logging, level_name.upper(), logging.INFO)
    logging.getLogger().setLevel(_LEVEL_OVERRIDE)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger configured with a single stream handler."""
    global _HANDLER_ATTACHED

    level = _resolve_level()

    if not _HANDLER_ATTACHED:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(level)
        _HANDLER_ATTACHED = True
    else:
        logging.getLogger().setLevel(level)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger


class StageLogAdapter(logging.LoggerAdapter):
    """Prefix every record with the stage name and email id being analyzed."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        return f"[{extra.get('stage')} email={extra.get('email_id')}] {msg}", kwargs


def stage_logger(logger: logging.Logger, stage: str, email_id: str) -> StageLogAdapter:
    """Bind a stage/email pair to a module logger."""
    return StageLogAdapter(logger, {"stage": stage, "email_id": email_id})
