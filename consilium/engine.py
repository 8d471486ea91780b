"""Coordination engine: the analysis and research entry points."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional
import asyncio
import logging

import httpx

from consilium.audit import AuditLog
from consilium.config import Config
from consilium.dispatch import Dispatcher
from consilium.errors import InvalidRequestError
from consilium.models.registry import ModelRegistry
from consilium.prompts import DEPTHS, RESEARCH_FORMATS, create_analysis_prompt, create_research_prompt
from consilium.scoring import score_research_responses, score_responses
from consilium.synthesis import (
    STRATEGY_DESCRIPTIONS,
    CoordinationStrategy,
    parse_strategy,
    synthesize,
    synthesize_research,
)

logger = logging.getLogger(__name__)


def _model_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise InvalidRequestError("models must be a list of model identifiers")
    if not all(isinstance(item, str) and item.strip() for item in value):
        raise InvalidRequestError("models must contain non-empty strings")
    return list(value)


def _required_text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"'{key}' is required")
    return value.strip()


@dataclass
class AnalysisRequest:
    type: str
    topic: str
    depth: str = "phd_level"
    models: Optional[List[str]] = None
    strategy: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.topic, str) or not self.topic.strip():
            raise InvalidRequestError("'topic' is required")
        if self.depth not in DEPTHS:
            raise InvalidRequestError(f"depth must be one of {', '.join(DEPTHS)}")
        self.models = _model_list(self.models)
        parse_strategy(self.strategy)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisRequest":
        return cls(
            type=str(data.get("type") or "strategic_analysis"),
            topic=_required_text(data, "topic"),
            depth=data.get("depth") or "phd_level",
            models=data.get("models"),
            strategy=data.get("strategy"),
        )


@dataclass
class ResearchRequest:
    query: str
    sources: List[str] = field(default_factory=list)
    format: str = "report"
    models: Optional[List[str]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.query, str) or not self.query.strip():
            raise InvalidRequestError("'query' is required")
        if self.format not in RESEARCH_FORMATS:
            raise InvalidRequestError(f"format must be one of {', '.join(RESEARCH_FORMATS)}")
        if isinstance(self.sources, str) or not isinstance(self.sources, (list, tuple)):
            raise InvalidRequestError("sources must be a list")
        self.sources = [str(s) for s in self.sources]
        self.models = _model_list(self.models)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResearchRequest":
        return cls(
            query=_required_text(data, "query"),
            sources=data.get("sources") or [],
            format=data.get("format") or "report",
            models=data.get("models"),
        )


@dataclass
class AnalysisResult:
    summary: str
    insights: str
    recommendations: str
    confidence: float
    models_used: List[str]
    analysis_depth: str
    strategy: CoordinationStrategy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "insights": self.insights,
            "recommendations": self.recommendations,
            "confidence": round(self.confidence, 2),
            "models_used": list(self.models_used),
            "analysis_depth": self.analysis_depth,
            "strategy": self.strategy.value,
        }


@dataclass
class ResearchResult:
    summary: str
    analysis: str
    sources: str
    contributions: List[str]
    confidence: float
    models_used: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "analysis": self.analysis,
            "sources": self.sources,
            "contributions": list(self.contributions),
            "confidence": round(self.confidence, 2),
            "models_used": list(self.models_used),
        }


class CoordinationEngine:
    def __init__(self, registry: ModelRegistry, dispatcher: Dispatcher | None = None) -> None:
        self.registry = registry
        self.dispatcher = dispatcher or Dispatcher(registry)

    @classmethod
    def from_config(
        cls,
        config: Config,
        env: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CoordinationEngine":
        audit = AuditLog(config.audit_path) if config.audit_path else None
        registry = ModelRegistry.from_config(
            config.models,
            env=env,
            transport=transport,
            audit=audit,
            default_timeout=config.call_timeout_seconds,
        )
        return cls(registry, Dispatcher.from_config(registry, config))

    @staticmethod
    def list_strategies() -> List[Dict[str, str]]:
        return [
            {"name": strategy.value, "description": description}
            for strategy, description in STRATEGY_DESCRIPTIONS.items()
        ]

    def _resolve(self, explicit: Optional[List[str]], select: Callable[[], List[str]]) -> List[str]:
        if not explicit:
            return select()
        if len(set(explicit)) != len(explicit):
            raise InvalidRequestError(f"duplicate model identifiers: {explicit}")
        self.registry.require(explicit)
        return list(explicit)

    async def run_analysis(
        self,
        request: AnalysisRequest | Mapping[str, Any],
        cancel: asyncio.Event | None = None,
    ) -> AnalysisResult:
        if not isinstance(request, AnalysisRequest):
            request = AnalysisRequest.from_dict(request)
        models = self._resolve(
            request.models,
            lambda: self.dispatcher.select_models(request.type, request.topic),
        )
        logger.info("Analysis %s on %r with %d models", request.type, request.topic, len(models))
        prompt = create_analysis_prompt(request.topic, request.depth)
        options = {
            "max_tokens": 4000 if request.depth == "phd_level" else 2000,
            "temperature": 0.7,
        }
        results = await self.dispatcher.execute_fan_out(models, prompt, options, cancel=cancel)
        scored = score_responses(results, self.registry, request.topic)
        synthesis = synthesize(
            scored,
            request.strategy,
            {"type": request.type, "depth": request.depth},
        )
        return AnalysisResult(
            summary=synthesis.summary,
            insights=synthesis.insights,
            recommendations=synthesis.recommendations,
            confidence=synthesis.confidence,
            models_used=models,
            analysis_depth=request.depth,
            strategy=synthesis.strategy,
        )

    async def run_research(
        self,
        request: ResearchRequest | Mapping[str, Any],
        cancel: asyncio.Event | None = None,
    ) -> ResearchResult:
        if not isinstance(request, ResearchRequest):
            request = ResearchRequest.from_dict(request)
        models = self._resolve(request.models, self.dispatcher.select_research_models)
        logger.info("Research on %r with %d models", request.query, len(models))
        prompt = create_research_prompt(request.query, request.sources)
        results = await self.dispatcher.execute_fan_out(
            models,
            prompt,
            {"max_tokens": 3000, "temperature": 0.6},
            cancel=cancel,
        )
        synthesis = synthesize_research(score_research_responses(results), request.format, request.sources)
        return ResearchResult(
            summary=synthesis.summary,
            analysis=synthesis.analysis,
            sources=synthesis.sources,
            contributions=synthesis.contributions,
            confidence=synthesis.confidence,
            models_used=models,
        )
