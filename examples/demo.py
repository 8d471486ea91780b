#!/usr/bin/env python3
"""
Consilium Demo -- fan business questions out to a panel of models.

Run:
    python examples/demo.py

Models whose API keys are not set answer with placeholder analyses, so the
demo runs offline. Set OPENAI_API_KEY, ANTHROPIC_API_KEY, GOOGLE_API_KEY etc.
to bring real providers into the panel.
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure consilium is importable when running from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from consilium.config import configure_logging, get_config
from consilium.engine import CoordinationEngine


DEMO_QUESTIONS = [
    {
        "topic": "Should a mid-size retailer build or buy its e-commerce platform?",
        "type": "strategic_analysis",
        "strategy": "iq_integration",
        "description": "Strategic question integrated across the routed panel.",
    },
    {
        "topic": "Refinancing a 5-year term loan while rates are falling",
        "type": "financial_analysis",
        "strategy": "weighted_average",
        "description": "Financial question, responses weighted by expertise.",
    },
    {
        "topic": "Regulatory risk of launching an AI hiring assistant in the EU",
        "type": "risk_assessment",
        "strategy": "expert_selection",
        "description": "Risk question answered by the most relevant expert.",
    },
]


def run_demo(index: int | None = None) -> None:
    """Run one or all demo questions through the coordination engine."""
    config = get_config()
    configure_logging("WARNING")
    engine = CoordinationEngine.from_config(config)

    questions = DEMO_QUESTIONS if index is None else [DEMO_QUESTIONS[index]]

    for i, q in enumerate(questions):
        num = index if index is not None else i
        print(f"\n{'=' * 72}")
        print(f"  Demo {num + 1}: {q['description']}")
        print(f"  Type: {q['type']}  Strategy: {q['strategy']}")
        print(f"{'=' * 72}")
        print(f"\n  Q: {q['topic']}\n")

        result = asyncio.run(engine.run_analysis({
            "type": q["type"],
            "topic": q["topic"],
            "depth": "advanced",
            "strategy": q["strategy"],
        }))

        print(f"  Confidence: {result.confidence:.1f}/10")
        print(f"  Models: {', '.join(result.models_used) or 'none'}")
        print(f"\n  Summary:\n")
        for line in result.summary.splitlines():
            print(f"    {line}")
        print()


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        description="Run Consilium demo questions through a multi-model panel."
    )
    parser.add_argument(
        "--question",
        "-q",
        type=int,
        choices=range(1, len(DEMO_QUESTIONS) + 1),
        help="Run a specific demo question (1-%d)" % len(DEMO_QUESTIONS),
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available demo questions and exit.",
    )
    args = parser.parse_args()

    if args.list:
        print("\nAvailable demo questions:\n")
        for i, q in enumerate(DEMO_QUESTIONS, 1):
            print(f"  {i}. [{q['type']}] {q['topic']}")
            print(f"     {q['description']}\n")
        return

    idx = (args.question - 1) if args.question else None
    run_demo(idx)


if __name__ == "__main__":
    main()
