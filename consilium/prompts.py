"""Prompt builders for analysis and research fan-outs."""
from __future__ import annotations

from typing import Sequence

DEPTHS = ("basic", "advanced", "phd_level")
RESEARCH_FORMATS = ("report", "presentation", "executive_summary")

DEPTH_INSTRUCTIONS: dict[str, str] = {
    "basic": "Provide a basic business analysis",
    "advanced": "Provide an advanced business analysis with detailed insights",
    "phd_level": (
        "Provide a PhD-level business analysis with a comprehensive theoretical framework, "
        "advanced methodologies, and expert-level insights"
    ),
}

ANALYSIS_SECTIONS = [
    "Strategic framework analysis",
    "Key insights and implications",
    "Risk assessment and opportunities",
    "Actionable recommendations",
    "Success metrics and KPIs",
]

RESEARCH_SECTIONS = [
    "Comprehensive research findings",
    "Multiple perspectives and viewpoints",
    "Source citations and reliability assessment",
    "Key insights and implications",
    "Recommendations based on research",
]


def _numbered(items: Sequence[str]) -> str:
    return "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))


def create_analysis_prompt(topic: str, depth: str = "phd_level") -> str:
    instruction = DEPTH_INSTRUCTIONS.get(depth, DEPTH_INSTRUCTIONS["phd_level"])
    return (
        f"You are a business management expert. {instruction}.\n\n"
        f"Topic: {topic}\n\n"
        "Please provide:\n"
        f"{_numbered(ANALYSIS_SECTIONS)}\n\n"
        "Use established business theories, frameworks, and methodologies in your analysis."
    )


def create_research_prompt(query: str, sources: Sequence[str] = ()) -> str:
    preferred = ", ".join(sources) if sources else "All reliable sources"
    return (
        "You are a research expert with access to comprehensive information sources. "
        "Conduct thorough research on the following query:\n\n"
        f"Query: {query}\n"
        f"Preferred Sources: {preferred}\n\n"
        "Please provide:\n"
        f"{_numbered(RESEARCH_SECTIONS)}\n\n"
        "Ensure accuracy, completeness, and objectivity in your research."
    )
