"""Static confidence and relevance heuristics for model responses."""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterable, List, Optional

from consilium.models.registry import (
    InvocationResult,
    ModelDescriptor,
    ModelNotFoundError,
    ModelRegistry,
)

BASE_CONFIDENCE = 0.7
EXPERTISE_BONUS = 0.2
CAPABILITY_BONUS = 0.1
MATCHED_RELEVANCE = 0.9
UNMATCHED_RELEVANCE = 0.6
NEUTRAL_SCORE = 0.5

RESEARCH_MODELS = frozenset({"storm", "perplexity", "gpt5", "claude"})
RELIABLE_SOURCE_MODELS = frozenset({"storm", "perplexity", "claude", "gpt5"})
RESEARCH_HIGH = 0.9
RESEARCH_BASE = 0.7


@dataclass
class ScoredResponse(InvocationResult):
    confidence: float = NEUTRAL_SCORE
    expertise_relevance: float = NEUTRAL_SCORE


@dataclass
class ResearchScoredResponse(InvocationResult):
    research_quality: float = RESEARCH_BASE
    source_reliability: float = RESEARCH_BASE

    @property
    def weight(self) -> float:
        return (self.research_quality + self.source_reliability) / 2


def score_confidence(descriptor: Optional[ModelDescriptor]) -> float:
    """Depends only on the declared tags, never on response content."""
    if descriptor is None:
        return NEUTRAL_SCORE
    score = BASE_CONFIDENCE
    if descriptor.expertise:
        score += EXPERTISE_BONUS
    if descriptor.capabilities:
        score += CAPABILITY_BONUS
    return min(score, 1.0)


def score_expertise_relevance(descriptor: Optional[ModelDescriptor], topic: str) -> float:
    if descriptor is None or not descriptor.expertise:
        return NEUTRAL_SCORE
    keywords = (topic or "").lower().split()
    for tag in descriptor.expertise:
        tag = tag.lower()
        if any(keyword in tag for keyword in keywords):
            return MATCHED_RELEVANCE
    return UNMATCHED_RELEVANCE


def score_research_quality(model_id: str) -> float:
    return RESEARCH_HIGH if model_id in RESEARCH_MODELS else RESEARCH_BASE


def score_source_reliability(model_id: str) -> float:
    return RESEARCH_HIGH if model_id in RELIABLE_SOURCE_MODELS else RESEARCH_BASE


def _base_fields(result: InvocationResult) -> dict:
    return {f.name: getattr(result, f.name) for f in fields(InvocationResult)}


def _lookup(registry: ModelRegistry, model_id: str) -> Optional[ModelDescriptor]:
    try:
        return registry.get(model_id)
    except ModelNotFoundError:
        return None


def score_responses(
    results: Iterable[InvocationResult],
    registry: ModelRegistry,
    topic: str,
) -> List[ScoredResponse]:
    scored = []
    for result in results:
        if result.ok:
            descriptor = _lookup(registry, result.model_id)
            confidence = score_confidence(descriptor)
            relevance = score_expertise_relevance(descriptor, topic)
        else:
            confidence = relevance = NEUTRAL_SCORE
        scored.append(ScoredResponse(**_base_fields(result), confidence=confidence, expertise_relevance=relevance))
    return scored


def score_research_responses(results: Iterable[InvocationResult]) -> List[ResearchScoredResponse]:
    scored = []
    for result in results:
        if result.ok:
            quality = score_research_quality(result.model_id)
            reliability = score_source_reliability(result.model_id)
        else:
            quality = reliability = RESEARCH_BASE
        scored.append(ResearchScoredResponse(
            **_base_fields(result),
            research_quality=quality,
            source_reliability=reliability,
        ))
    return scored
