"""Model selection and concurrent fan-out."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import asyncio
import logging

from consilium.config import Config
from consilium.errors import InvalidRequestError
from consilium.models.registry import InvocationResult, ModelRegistry

logger = logging.getLogger(__name__)

ROUTING_RULES: Dict[str, List[str]] = {
    "strategic_analysis": ["gpt5", "claude", "strategy_ai", "abacus", "gemini"],
    "financial_analysis": ["financial_ai", "gpt4", "claude", "cohere", "mistral"],
    "operational_analysis": ["operations_ai", "abacus", "genspark", "together", "huggingface"],
    "market_research": ["perplexity", "storm", "marketing_ai", "genspark", "gemini"],
    "risk_assessment": ["claude", "financial_ai", "gpt5", "mistral", "cohere"],
    "innovation_analysis": ["innovation_ai", "gemini", "together", "replicate", "huggingface"],
}

DEFAULT_MODELS = ["gpt5", "claude", "abacus", "genspark", "storm"]
RESEARCH_MODELS = ["storm", "perplexity", "gpt5", "claude", "genspark"]


@dataclass
class Dispatcher:
    registry: ModelRegistry
    routing: Dict[str, List[str]] = field(default_factory=lambda: dict(ROUTING_RULES))
    default_models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    research_models: List[str] = field(default_factory=lambda: list(RESEARCH_MODELS))
    max_concurrency: int = 0
    fanout_timeout: Optional[float] = None

    @classmethod
    def from_config(cls, registry: ModelRegistry, config: Config) -> "Dispatcher":
        routing = dict(ROUTING_RULES)
        routing.update({str(k): list(v) for k, v in (config.routing.get("rules") or {}).items()})
        return cls(
            registry=registry,
            routing=routing,
            default_models=list(config.routing.get("default") or DEFAULT_MODELS),
            research_models=list(config.routing.get("research") or RESEARCH_MODELS),
            max_concurrency=config.max_concurrency,
            fanout_timeout=config.fanout_timeout_seconds,
        )

    def select_models(self, analysis_type: str, topic: str = "") -> List[str]:
        """Static routing: the rule for `analysis_type`, else the default list.

        `topic` does not influence the choice; rule entries missing from the
        registry are dropped.
        """
        rule = self.routing.get(analysis_type)
        if rule is None:
            rule = self.default_models
        return self._registered(rule, analysis_type)

    def select_research_models(self) -> List[str]:
        return self._registered(self.research_models, "research")

    def _registered(self, model_ids: Iterable[str], label: str) -> List[str]:
        selected = []
        for model_id in model_ids:
            if model_id in self.registry:
                selected.append(model_id)
            else:
                logger.warning("Routing for %s names unregistered model %s", label, model_id)
        return selected

    async def execute_fan_out(
        self,
        model_ids: Iterable[str],
        prompt: str,
        options: Dict[str, Any] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> List[InvocationResult]:
        """Invoke every model concurrently; one result per id, in input order."""
        ids = list(model_ids)
        if len(set(ids)) != len(ids):
            raise InvalidRequestError(f"duplicate model identifiers: {ids}")
        self.registry.require(ids)
        if not ids:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None

        async def _call(model_id: str) -> InvocationResult:
            if cancel is not None and cancel.is_set():
                return await self.registry.fallback_result(model_id, prompt, "cancelled")
            return await self.registry.invoke(model_id, prompt, options)

        async def _bounded(model_id: str) -> InvocationResult:
            if semaphore is None:
                return await _call(model_id)
            async with semaphore:
                return await _call(model_id)

        logger.info("Fan-out to %d models: %s", len(ids), ", ".join(ids))
        tasks = [asyncio.ensure_future(_bounded(model_id)) for model_id in ids]
        try:
            if self.fanout_timeout is None:
                await asyncio.gather(*tasks, return_exceptions=True)
            else:
                _, pending = await asyncio.wait(tasks, timeout=self.fanout_timeout)
                if pending:
                    logger.warning("Fan-out deadline %.1fs hit; %d calls pending", self.fanout_timeout, len(pending))
                    await _cancel_all(pending)
        except asyncio.CancelledError:
            # caller went away: no provider call may outlive the request
            logger.warning("Fan-out cancelled by caller; stopping %d calls", len(tasks))
            await _cancel_all(tasks)
            raise

        results: List[InvocationResult] = []
        for model_id, task in zip(ids, tasks):
            if task.cancelled():
                results.append(await self.registry.fallback_result(model_id, prompt, "fan-out timeout"))
            elif task.exception() is not None:
                results.append(await self.registry.fallback_result(model_id, prompt, str(task.exception())))
            else:
                results.append(task.result())
        return results


async def _cancel_all(tasks: Iterable[asyncio.Future]) -> None:
    tasks = list(tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
