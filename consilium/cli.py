"""Command line front end for Consilium."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from consilium.config import configure_logging, get_config
from consilium.engine import AnalysisRequest, CoordinationEngine, ResearchRequest
from consilium.errors import InvalidRequestError
from consilium.models.registry import ModelNotFoundError
from consilium.prompts import DEPTHS, RESEARCH_FORMATS
from consilium.report import (
    render_analysis_report,
    render_model_catalog,
    render_research_report,
    write_report,
)
from consilium.synthesis import CoordinationStrategy


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def cmd_models(args: argparse.Namespace, engine: CoordinationEngine) -> None:
    if args.models_cmd == "strategies":
        _print({"strategies": engine.list_strategies()})
    elif args.markdown:
        print(render_model_catalog(engine.registry.describe()), end="")
    else:
        _print({"models": engine.registry.describe()})


def cmd_analyze(args: argparse.Namespace, engine: CoordinationEngine) -> None:
    request = AnalysisRequest(
        type=args.type,
        topic=args.topic,
        depth=args.depth,
        models=args.model or None,
        strategy=args.strategy,
    )
    result = asyncio.run(engine.run_analysis(request))
    _print(result.to_dict())
    if args.output_md:
        write_report(Path(args.output_md), render_analysis_report(args.topic, result))


def cmd_research(args: argparse.Namespace, engine: CoordinationEngine) -> None:
    request = ResearchRequest(
        query=args.query,
        sources=args.source or [],
        format=args.format,
        models=args.model or None,
    )
    result = asyncio.run(engine.run_research(request))
    _print(result.to_dict())
    if args.output_md:
        write_report(Path(args.output_md), render_research_report(args.query, result))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="consilium")
    sub = parser.add_subparsers(dest="command")

    models = sub.add_parser("models")
    models_sub = models.add_subparsers(dest="models_cmd")
    list_cmd = models_sub.add_parser("list")
    list_cmd.add_argument("--markdown", action="store_true")
    models_sub.add_parser("strategies")

    analyze = sub.add_parser("analyze", help="Fan an analysis topic out to several models")
    analyze.add_argument("topic")
    analyze.add_argument("--type", default="strategic_analysis")
    analyze.add_argument("--depth", choices=DEPTHS, default="phd_level")
    analyze.add_argument("--model", action="append", help="Explicit model id (repeatable)")
    analyze.add_argument("--strategy", choices=[s.value for s in CoordinationStrategy])
    analyze.add_argument("--output-md", help="Write a markdown report to this path")

    research = sub.add_parser("research", help="Run a multi-model research query")
    research.add_argument("query")
    research.add_argument("--source", action="append", help="Preferred source (repeatable)")
    research.add_argument("--format", choices=RESEARCH_FORMATS, default="report")
    research.add_argument("--model", action="append", help="Explicit model id (repeatable)")
    research.add_argument("--output-md", help="Write a markdown report to this path")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return
    config = get_config()
    configure_logging(config.log_level)
    engine = CoordinationEngine.from_config(config)
    try:
        if args.command == "models":
            if getattr(args, "markdown", None) is None:
                args.markdown = False
            cmd_models(args, engine)
        elif args.command == "analyze":
            cmd_analyze(args, engine)
        elif args.command == "research":
            cmd_research(args, engine)
    except (InvalidRequestError, ModelNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(2)


if __name__ == "__main__":
    main()
