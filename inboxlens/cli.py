"""
inboxlens-analyze - run the analyzer pipeline on one email from the shell.

Reads an EmailInput JSON file (snake_case or camelCase keys), an optional
UserContext JSON file, runs every stage (or just one with --stage) against
Gemini on Vertex AI and prints the result as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from inboxlens import config
from inboxlens.analyzers.contract import run_stage
from inboxlens.analyzers.registry import STAGE_FACTORIES, default_registry
from inboxlens.analyzers.types import EmailInput, UserContext
from inboxlens.infrastructure.env import ensure_env_loaded
from inboxlens.links.resolver import LinkResolver
from inboxlens.llm.gemini import GeminiCompletionService
from inboxlens.observability.logging import get_logger, set_log_level
from inboxlens.observability.telemetry import snapshot_counters, snapshot_latencies
from inboxlens.pipeline.aggregate import result_to_dict
from inboxlens.pipeline.orchestrator import AnalysisOrchestrator

logger = get_logger(__name__)


def _load_json(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return json.load(f)


async def _analyze(args: argparse.Namespace, email: EmailInput, context: UserContext | None) -> dict[str, Any]:
    overrides = {"model": args.model} if args.model else {}
    registry = default_registry(**overrides)
    service = GeminiCompletionService()

    if args.stage:
        result = await run_stage(registry[args.stage], email, context, service=service)
        return {"stage": args.stage, **result_to_dict(result), "data": asdict(result.data)}

    orchestrator = AnalysisOrchestrator(
        registry,
        service,
        link_resolver=None if args.no_links or not config.USE_LINK_RESOLVER else LinkResolver(),
    )
    result = await orchestrator.process(email, context)
    return result.to_dict()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Analyze one email with the InboxLens stage pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full two-phase analysis
  inboxlens-analyze email.json --context context.json

  # Only the categorizer
  inboxlens-analyze email.json --stage categorizer

  # Skip fetching linked pages for the event stages
  inboxlens-analyze email.json --no-links

  # Show stage counters and latencies on stderr
  inboxlens-analyze email.json --stats
        """,
    )
    parser.add_argument("email_file", type=Path, help="EmailInput JSON file")
    parser.add_argument("--context", type=Path, help="UserContext JSON file")
    parser.add_argument("--stage", choices=sorted(STAGE_FACTORIES), help="Run a single stage")
    parser.add_argument("--no-links", action="store_true", help="Disable the link resolver")
    parser.add_argument("--model", help="Override the model for every stage")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    parser.add_argument("--stats", action="store_true", help="Print counters and latency stats to stderr")

    args = parser.parse_args(argv)

    ensure_env_loaded()
    if args.log_level:
        set_log_level(args.log_level)

    try:
        email = EmailInput.model_validate(_load_json(args.email_file))
        context = UserContext.model_validate(_load_json(args.context)) if args.context else None
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        print(f"Could not read input: {e}", file=sys.stderr)
        return 2

    output = asyncio.run(_analyze(args, email, context))
    print(json.dumps(output, indent=args.indent, default=str))
    if args.stats:
        stats = {"counters": snapshot_counters(), "latency": snapshot_latencies()}
        print(json.dumps(stats, indent=args.indent), file=sys.stderr)

    return 0 if output["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
