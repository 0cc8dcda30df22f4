#!/usr/bin/env python3
"""
ConsensusAI Demo -- run the bundled scenarios to convergence.

Run:
    python examples/demo.py

Requires GROQ_API_KEY (or GEMINI_API_KEY with CONSENSUSAI_PROVIDER=gemini).
Without a key every agent uses its deterministic fallback, which still
exercises the full negotiation loop.
"""
from __future__ import annotations

import sys
from pathlib import Path

# Ensure consensusai is importable when running from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from consensusai.autopilot import AutoNegotiator
from consensusai.config import get_config
from consensusai.engine import ConsensusEngine
from consensusai.intake import load_scenario
from consensusai.oracle import build_oracle

EXAMPLES_DIR = Path(__file__).resolve().parent

DEMO_SCENARIOS = [
    {
        "file": "general_scenario.yaml",
        "description": "Single proposal negotiated against budget, timeline, quality and risk limits.",
    },
    {
        "file": "vendor_scenario.yaml",
        "description": "Three hosting vendors ranked by the four agents and the coordinator.",
    },
]


def run_demo(index: int | None = None) -> None:
    """Run one or all demo scenarios through ConsensusAI."""
    config = get_config()
    scenarios = DEMO_SCENARIOS if index is None else [DEMO_SCENARIOS[index]]

    for i, item in enumerate(scenarios):
        num = index if index is not None else i
        scenario = load_scenario(EXAMPLES_DIR / item["file"])
        print(f"\n{'=' * 72}")
        print(f"  Demo {num + 1}: {item['description']}")
        print(f"  Module: {scenario.module}")
        print(f"{'=' * 72}\n")

        engine = ConsensusEngine(scenario, build_oracle(config), vendor_round_cap=config.vendor_round_cap)
        autopilot = AutoNegotiator(
            engine,
            max_rounds=config.auto_max_rounds,
            on_round=lambda r: print(f"  Round {r.round}: {r.summary} ({r.conflict_count} objections)"),
        )
        autopilot.run()

        print(f"\n  Status: {engine.status}  Confidence: {engine.confidence_score()}/100\n")
        for line in engine.executive_summary().splitlines():
            print(f"    {line}")
        print()


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        description="Run ConsensusAI demo scenarios through the negotiation engine."
    )
    parser.add_argument(
        "--scenario",
        "-s",
        type=int,
        choices=range(1, len(DEMO_SCENARIOS) + 1),
        help="Run a specific demo scenario (1-%d)" % len(DEMO_SCENARIOS),
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available demo scenarios and exit.",
    )
    args = parser.parse_args()

    if args.list:
        print("\nAvailable demo scenarios:\n")
        for i, item in enumerate(DEMO_SCENARIOS, 1):
            print(f"  {i}. {item['file']}")
            print(f"     {item['description']}\n")
        return

    idx = (args.scenario - 1) if args.scenario else None
    run_demo(idx)


if __name__ == "__main__":
    main()
