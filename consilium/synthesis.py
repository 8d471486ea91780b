"""Ensemble strategies reducing scored responses to one synthesis."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

from consilium.errors import EmptyResponseSetError, InvalidRequestError
from consilium.scoring import ResearchScoredResponse, ScoredResponse

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 200
HIGH_RELEVANCE = 0.8
NO_RESPONSES = "No responses available"


class CoordinationStrategy(str, Enum):
    WEIGHTED_AVERAGE = "weighted_average"
    MAJORITY_VOTING = "majority_voting"
    EXPERT_SELECTION = "expert_selection"
    CONSENSUS_SYNTHESIS = "consensus_synthesis"
    IQ_INTEGRATION = "iq_integration"


DEFAULT_STRATEGY = CoordinationStrategy.IQ_INTEGRATION

STRATEGY_DESCRIPTIONS = {
    CoordinationStrategy.WEIGHTED_AVERAGE: "Weight responses by model confidence and expertise relevance",
    CoordinationStrategy.MAJORITY_VOTING: "Keep the themes a majority of models agree on",
    CoordinationStrategy.EXPERT_SELECTION: "Use the response of the most relevant expert model",
    CoordinationStrategy.CONSENSUS_SYNTHESIS: "Report consensus and divergent points across models",
    CoordinationStrategy.IQ_INTEGRATION: "Comprehensive integration of summary, insights and recommendations",
}


@dataclass
class SynthesisResult:
    summary: str
    insights: str
    recommendations: str
    confidence: float
    models: List[str]
    strategy: CoordinationStrategy
    weights: Dict[str, float] = field(default_factory=dict)
    methodology: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "insights": self.insights,
            "recommendations": self.recommendations,
            "confidence": round(self.confidence, 2),
            "models": list(self.models),
            "strategy": self.strategy.value,
            "weights": dict(self.weights),
            "methodology": self.methodology,
        }


@dataclass
class ResearchSynthesis:
    summary: str
    analysis: str
    sources: str
    contributions: List[str]
    confidence: float


def parse_strategy(name: str | CoordinationStrategy | None) -> CoordinationStrategy:
    if name is None or name == "":
        return DEFAULT_STRATEGY
    try:
        return CoordinationStrategy(name)
    except ValueError:
        choices = ", ".join(s.value for s in CoordinationStrategy)
        raise InvalidRequestError(f"unknown strategy '{name}' (choose from {choices})") from None


def require_responses(responses: Sequence[Any]) -> None:
    """Opt-in guard for callers that treat an empty panel as an error.

    The strategies themselves never raise on empty input; they return a
    zero-confidence result instead.
    """
    if not responses:
        raise EmptyResponseSetError("no responses to synthesize")


def _excerpt(text: str, max_chars: int = EXCERPT_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def _label(response: ScoredResponse) -> str:
    return response.model_id if response.ok else f"{response.model_id} (fallback)"


def _empty(strategy: CoordinationStrategy) -> SynthesisResult:
    return SynthesisResult(
        summary=f"{NO_RESPONSES}: no model produced a response to synthesize.",
        insights="",
        recommendations="",
        confidence=0.0,
        models=[],
        strategy=strategy,
    )


def consensus_bonus(count: int) -> float:
    return 0.5 if count > 3 else 0.2


def overall_confidence(responses: Sequence[ScoredResponse]) -> float:
    """Average confidence plus a consensus bonus, on a 0-10 scale."""
    if not responses:
        return 0.0
    average = sum(r.confidence for r in responses) / len(responses)
    return min((average + consensus_bonus(len(responses))) * 10, 10.0)


def integrated_confidence(responses: Sequence[ScoredResponse]) -> float:
    if not responses:
        return 0.0
    diversity_bonus = min(len(responses) * 0.1, 1.0)
    expertise_bonus = sum(1 for r in responses if r.expertise_relevance > HIGH_RELEVANCE) * 0.2
    return min(overall_confidence(responses) + diversity_bonus + expertise_bonus, 10.0)


def ensemble_weights(responses: Sequence[ScoredResponse]) -> List[float]:
    """Normalized confidence x relevance; uniform when every product is zero."""
    if not responses:
        return []
    products = [r.confidence * r.expertise_relevance for r in responses]
    total = sum(products)
    if total <= 0:
        return [1.0 / len(responses)] * len(responses)
    return [p / total for p in products]


def weighted_average(responses: Sequence[ScoredResponse], options: Dict[str, Any]) -> SynthesisResult:
    strategy = CoordinationStrategy.WEIGHTED_AVERAGE
    if not responses:
        return _empty(strategy)
    weights = ensemble_weights(responses)
    lines = [
        f"{_label(r)} ({w * 100:.1f}%): {_excerpt(r.content)}"
        for r, w in zip(responses, weights)
    ]
    weight_map: Dict[str, float] = {}
    for r, w in zip(responses, weights):
        weight_map[r.model_id] = weight_map.get(r.model_id, 0.0) + w
    confidence = sum(w * r.confidence for r, w in zip(responses, weights)) * 10
    return SynthesisResult(
        summary=f"Weighted synthesis of {len(responses)} AI models",
        insights="\n\n".join(lines),
        recommendations="Recommendations based on weighted AI consensus",
        confidence=min(confidence, 10.0),
        models=[r.model_id for r in responses],
        strategy=strategy,
        weights=weight_map,
    )


def extract_common_themes(responses: Sequence[ScoredResponse]) -> List[Dict[str, Any]]:
    count = len(responses)
    return [
        {"theme": "Strategic Alignment", "frequency": count, "description": "Common strategic themes"},
        {"theme": "Risk Management", "frequency": count - 1, "description": "Risk-related insights"},
        {"theme": "Implementation", "frequency": count - 1, "description": "Implementation considerations"},
    ]


def majority_voting(responses: Sequence[ScoredResponse], options: Dict[str, Any]) -> SynthesisResult:
    strategy = CoordinationStrategy.MAJORITY_VOTING
    if not responses:
        return _empty(strategy)
    themes = [t for t in extract_common_themes(responses) if t["frequency"] > len(responses) / 2]
    return SynthesisResult(
        summary=f"Majority consensus from {len(responses)} AI models",
        insights="\n\n".join(f"{t['theme']}: {t['description']}" for t in themes),
        recommendations="Recommendations based on majority AI consensus",
        confidence=8.0,
        models=[r.model_id for r in responses],
        strategy=strategy,
    )


def select_expert(responses: Sequence[ScoredResponse]) -> ScoredResponse:
    best = responses[0]
    for current in responses[1:]:
        # strict comparison keeps the earliest response on ties
        if current.expertise_relevance > best.expertise_relevance:
            best = current
    return best


def expert_selection(responses: Sequence[ScoredResponse], options: Dict[str, Any]) -> SynthesisResult:
    strategy = CoordinationStrategy.EXPERT_SELECTION
    if not responses:
        return _empty(strategy)
    expert = select_expert(responses)
    return SynthesisResult(
        summary=f"Expert analysis from {_label(expert)}",
        insights=expert.content,
        recommendations=f"Recommendations from {expert.model_id} expert analysis",
        confidence=expert.confidence * 10,
        models=[r.model_id for r in responses],
        strategy=strategy,
    )


CONSENSUS_POINTS = ["Strategic importance", "Implementation complexity", "Resource requirements"]
DIVERGENT_POINTS = ["Timeline preferences", "Risk tolerance levels", "Priority rankings"]


def consensus_synthesis(responses: Sequence[ScoredResponse], options: Dict[str, Any]) -> SynthesisResult:
    strategy = CoordinationStrategy.CONSENSUS_SYNTHESIS
    if not responses:
        return _empty(strategy)
    return SynthesisResult(
        summary=f"Consensus synthesis from {len(responses)} AI models",
        insights=(
            f"Consensus: {', '.join(CONSENSUS_POINTS)}\n"
            f"Divergent views: {', '.join(DIVERGENT_POINTS)}"
        ),
        recommendations="Recommendations balancing consensus and divergent perspectives",
        confidence=8.7,
        models=[r.model_id for r in responses],
        strategy=strategy,
    )


def _integration_summary(responses: Sequence[ScoredResponse], confidence: float, depth: str) -> str:
    failed = sum(1 for r in responses if not r.ok)
    lines = [
        "# Multi-AI Analysis Summary",
        "",
        f"This analysis integrates {len(responses)} AI models with specialized expertise.",
        "",
        "## Key Findings",
        "Each contributing model provided domain-specific analysis, integrated using weights "
        "derived from expertise relevance and confidence.",
        "",
        "## Analytical Approach",
        "- **Ensemble Method**: Weighted consensus with expertise-based routing",
        f"- **Confidence Level**: {confidence:.1f}/10",
        f"- **Models Integrated**: {', '.join(_label(r) for r in responses)}",
        f"- **Analysis Depth**: {depth}",
    ]
    if failed:
        lines.append(f"- **Degraded**: {failed} of {len(responses)} models returned fallback responses")
    lines.extend([
        "",
        "## Contributions",
    ])
    for response, weight in zip(responses, ensemble_weights(responses)):
        lines.append(f"- {_label(response)} ({weight * 100:.1f}%): {_excerpt(response.content)}")
    return "\n".join(lines)


def _integration_insights(analysis_type: str) -> str:
    return "\n".join([
        f"# Insights: {analysis_type.replace('_', ' ')}",
        "",
        "### Convergent Insights",
        "- **Strategic Alignment**: Common themes across models indicate strategic alignment opportunities",
        "- **Risk-Reward Profile**: Consistent risk assessment patterns suggest well-understood risk factors",
        "- **Implementation Feasibility**: Convergent views on implementation complexity and resources",
        "",
        "### Divergent Perspectives",
        "- **Approach Variations**: Models suggest alternative implementation approaches",
        "- **Priority Differences**: Varying emphasis on success factors and metrics",
        "- **Risk Tolerance**: Different views on acceptable risk levels and mitigation",
        "",
        "### Emergent Insights",
        "- **Synergistic Opportunities**: Insights that only appear when perspectives are combined",
        "- **Hidden Patterns**: Patterns visible across the ensemble but not in any single response",
    ])


def _integration_recommendations() -> str:
    return "\n".join([
        "# Strategic Recommendations",
        "",
        "### Immediate Actions (0-3 months)",
        "1. **Strategic Alignment**: Align initiatives with core strategic objectives",
        "2. **Resource Optimization**: Reallocate resources based on the combined analysis",
        "3. **Risk Mitigation**: Put mitigation plans in place for the identified risks",
        "",
        "### Medium-term Initiatives (3-12 months)",
        "1. **Capability Building**: Develop the organizational capabilities identified",
        "2. **Process Optimization**: Implement the suggested process improvements",
        "3. **Performance Monitoring**: Establish KPI tracking for the initiatives",
        "",
        "### Long-term Strategic Moves (12+ months)",
        "1. **Competitive Positioning**: Build sustainable competitive advantages",
        "2. **Innovation Pipeline**: Develop a repeatable innovation and growth pipeline",
        "3. **Organizational Transformation**: Complete the transformation initiatives",
    ])


def _integration_methodology(responses: Sequence[ScoredResponse]) -> str:
    return "\n".join([
        "# Methodology",
        "",
        f"- **Multi-Model Synthesis**: Integration of {len(responses)} AI models",
        "- **Weighted Consensus**: Expertise-based weighting and confidence scoring",
        "- **Confidence Calibration**: Average confidence with consensus, diversity and expertise bonuses",
    ])


def iq_integration(responses: Sequence[ScoredResponse], options: Dict[str, Any]) -> SynthesisResult:
    strategy = CoordinationStrategy.IQ_INTEGRATION
    if not responses:
        return _empty(strategy)
    confidence = integrated_confidence(responses)
    return SynthesisResult(
        summary=_integration_summary(responses, confidence, str(options.get("depth") or "phd_level")),
        insights=_integration_insights(str(options.get("type") or "general_analysis")),
        recommendations=_integration_recommendations(),
        confidence=confidence,
        models=[r.model_id for r in responses],
        strategy=strategy,
        methodology=_integration_methodology(responses),
    )


Reducer = Callable[[Sequence[ScoredResponse], Dict[str, Any]], SynthesisResult]

STRATEGIES: Dict[CoordinationStrategy, Reducer] = {
    CoordinationStrategy.WEIGHTED_AVERAGE: weighted_average,
    CoordinationStrategy.MAJORITY_VOTING: majority_voting,
    CoordinationStrategy.EXPERT_SELECTION: expert_selection,
    CoordinationStrategy.CONSENSUS_SYNTHESIS: consensus_synthesis,
    CoordinationStrategy.IQ_INTEGRATION: iq_integration,
}


def synthesize(
    responses: Sequence[ScoredResponse],
    strategy: str | CoordinationStrategy | None = None,
    options: Optional[Dict[str, Any]] = None,
) -> SynthesisResult:
    selected = parse_strategy(strategy)
    logger.debug("Synthesizing %d responses with %s", len(responses), selected.value)
    return STRATEGIES[selected](list(responses), dict(options or {}))


def synthesize_research(
    responses: Sequence[ResearchScoredResponse],
    output_format: str = "report",
    sources: Sequence[str] = (),
) -> ResearchSynthesis:
    if not responses:
        return ResearchSynthesis(
            summary=f"{NO_RESPONSES}: no research model produced findings.",
            analysis="",
            sources="",
            contributions=[],
            confidence=0.0,
        )
    ranked = sorted(responses, key=lambda r: r.weight, reverse=True)
    analysis_lines = [f"Detailed {output_format.replace('_', ' ')} analysis weighted by research quality:", ""]
    for response in ranked:
        analysis_lines.append(f"### {_label(response)} (weight {response.weight:.2f})")
        analysis_lines.append(_excerpt(response.content, 500))
        analysis_lines.append("")
    preferred = ", ".join(sources) if sources else "All reliable sources"
    average = sum(r.weight for r in responses) / len(responses)
    return ResearchSynthesis(
        summary=(
            f"Research synthesis from {len(responses)} AI models with weighted analysis "
            "based on research quality and source reliability."
        ),
        analysis="\n".join(analysis_lines).strip(),
        sources=f"Preferred sources: {preferred}. Compiled by: {', '.join(r.model_id for r in responses)}",
        contributions=[f"{r.model_id}: {r.weight * 100:.1f}% contribution" for r in responses],
        confidence=min((average + consensus_bonus(len(responses))) * 10, 10.0),
    )
