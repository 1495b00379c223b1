"""Per-email orchestration: Phase 1, gating, Phase 2, aggregation."""
