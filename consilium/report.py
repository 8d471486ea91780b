"""Markdown rendering of analysis and research results."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from consilium.engine import AnalysisResult, ResearchResult


def render_analysis_report(topic: str, result: AnalysisResult) -> str:
    lines = [
        f"# Multi-AI Analysis: {topic}",
        "",
        f"- Strategy: {result.strategy.value}",
        f"- Depth: {result.analysis_depth}",
        f"- Confidence: {result.confidence:.1f}/10",
        f"- Models: {', '.join(result.models_used) or 'none'}",
        "",
        "## Summary",
        "",
        result.summary,
        "",
        "## Insights",
        "",
        result.insights or "_No insights._",
        "",
        "## Recommendations",
        "",
        result.recommendations or "_No recommendations._",
    ]
    return "\n".join(lines).strip() + "\n"


def render_research_report(query: str, result: ResearchResult) -> str:
    contributions = ", ".join(result.contributions) or "none"
    return (
        f"# Multi-AI Research Report\n\n"
        f"## Query: {query}\n\n"
        f"## Executive Summary\n\n{result.summary}\n\n"
        f"## Detailed Analysis\n\n{result.analysis}\n\n"
        f"## Sources and References\n\n{result.sources}\n\n"
        f"## AI Model Contributions\n\n{contributions}\n"
    )


def render_model_catalog(models: List[Dict[str, Any]]) -> str:
    lines = [f"# Available AI Models ({len(models)} total)", ""]
    for model in models:
        lines.extend([
            f"## {model['name']} ({model['provider']})",
            f"- **Key**: {model['id']}",
            f"- **Capabilities**: {', '.join(model['capabilities'])}",
            f"- **Expertise**: {', '.join(model['expertise'])}",
            "",
        ])
    return "\n".join(lines).strip() + "\n"


def write_report(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
