"""Model registry: descriptors, invocation and per-model telemetry."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import asyncio
import logging
import os
import time

import httpx

from consilium.audit import AuditLog, ModelCallEvent
from consilium.models.providers import Invoker, ProviderError, build_invoker

logger = logging.getLogger(__name__)

FALLBACK_EXCERPT_CHARS = 100


class ModelNotFoundError(KeyError):
    """Raised when an identifier is not registered."""

    def __init__(self, model_id: str) -> None:
        super().__init__(model_id)
        self.model_id = model_id

    def __str__(self) -> str:
        return f"Model not found: {self.model_id}"


class DuplicateModelError(Exception):
    """Raised when registering an identifier that already exists."""
    pass


class ModelInvocationError(Exception):
    """A provider failure for one model.

    Never raised out of `ModelRegistry.invoke`; it rides on the failed
    `InvocationResult.exception` so callers can inspect the cause.
    """

    def __init__(self, model_id: str, cause: BaseException) -> None:
        self.model_id = model_id
        self.cause = cause
        super().__init__(f"{model_id} failed: {describe_failure(cause)}")


def describe_failure(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout"
    return str(exc) or type(exc).__name__


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    name: str
    provider: str
    invoker: Invoker = field(compare=False, repr=False)
    capabilities: Tuple[str, ...] = ()
    expertise: Tuple[str, ...] = ()
    timeout_seconds: Optional[float] = None
    kind: str = "custom"

    def __post_init__(self) -> None:
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        object.__setattr__(self, "expertise", tuple(self.expertise))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "capabilities": list(self.capabilities),
            "expertise": list(self.expertise),
            "kind": self.kind,
        }


@dataclass
class InvocationResult:
    model_id: str
    text: Optional[str] = None
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    fallback_text: Optional[str] = None
    exception: Optional[ModelInvocationError] = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def content(self) -> str:
        """Response text, or the labeled fallback when the call failed."""
        if self.ok:
            return self.text or ""
        return self.fallback_text or ""


def fallback_text(name: str, reason: str, prompt: str) -> str:
    return f"[fallback] {name} analysis unavailable ({reason}): {prompt[:FALLBACK_EXCERPT_CHARS]}..."


@dataclass
class ModelRegistry:
    default_timeout: Optional[float] = None
    audit: Optional[AuditLog] = None
    metrics: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    _models: Dict[str, ModelDescriptor] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        env: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        audit: AuditLog | None = None,
        default_timeout: float | None = None,
    ) -> "ModelRegistry":
        env = os.environ if env is None else env
        registry = cls(default_timeout=default_timeout, audit=audit)
        for card in config.get("cards", []):
            gate = card.get("enabled_env")
            if card.get("optional"):
                gate = gate or (card.get("invoker") or {}).get("api_key_env")
            if gate and not env.get(gate):
                logger.info("Skipping %s: %s not set", card.get("id"), gate)
                continue
            kind, invoker = build_invoker(card, env=env, transport=transport)
            timeout = card.get("timeout_seconds")
            registry.register(ModelDescriptor(
                id=str(card["id"]),
                name=str(card.get("name") or card["id"]),
                provider=str(card.get("provider") or "Custom"),
                invoker=invoker,
                capabilities=card.get("capabilities") or (),
                expertise=card.get("expertise") or (),
                timeout_seconds=float(timeout) if timeout else None,
                kind=kind,
            ))
        logger.info("Registered %d models", len(registry))
        return registry

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def register(self, descriptor: ModelDescriptor) -> None:
        if descriptor.id in self._models:
            raise DuplicateModelError(f"Model already registered: {descriptor.id}")
        self._models[descriptor.id] = descriptor

    def get(self, model_id: str) -> ModelDescriptor:
        try:
            return self._models[model_id]
        except KeyError:
            raise ModelNotFoundError(model_id) from None

    def require(self, model_ids: Iterable[str]) -> List[ModelDescriptor]:
        return [self.get(model_id) for model_id in model_ids]

    def list_models(self) -> List[ModelDescriptor]:
        return list(self._models.values())

    def model_ids(self) -> List[str]:
        return list(self._models)

    def describe(self) -> List[Dict[str, Any]]:
        return [descriptor.to_dict() for descriptor in self._models.values()]

    async def invoke(
        self,
        model_id: str,
        prompt: str,
        options: Dict[str, Any] | None = None,
    ) -> InvocationResult:
        """Call one model. Provider failures come back as fallback results."""
        descriptor = self.get(model_id)
        opts = dict(options or {})
        timeout = opts.pop("timeout", None) or descriptor.timeout_seconds or self.default_timeout
        start = time.perf_counter()
        try:
            call = descriptor.invoker(prompt, opts)
            text = await asyncio.wait_for(call, timeout) if timeout else await call
            if not isinstance(text, str):
                raise ProviderError(f"expected text, got {type(text).__name__}")
        except Exception as exc:
            duration = (time.perf_counter() - start) * 1000
            failure = ModelInvocationError(model_id, exc)
            logger.warning("%s (prompt %d chars, %.0fms)", failure, len(prompt), duration)
            return await self._fail(descriptor, prompt, describe_failure(exc), duration, failure)
        duration = (time.perf_counter() - start) * 1000
        logger.info(
            "Model %s ok: prompt %d chars, response %d chars, %.0fms",
            model_id, len(prompt), len(text), duration,
        )
        await self._record(ModelCallEvent(model_id=model_id, ok=True, duration_ms=duration))
        return InvocationResult(model_id=model_id, text=text, duration_ms=duration)

    async def fallback_result(self, model_id: str, prompt: str, reason: str) -> InvocationResult:
        """Fallback for a call that never ran (cancelled, fan-out deadline)."""
        descriptor = self.get(model_id)
        logger.warning("Model %s skipped: %s", model_id, reason)
        return await self._fail(descriptor, prompt, reason, None)

    async def _fail(
        self,
        descriptor: ModelDescriptor,
        prompt: str,
        reason: str,
        duration_ms: Optional[float],
        failure: Optional[ModelInvocationError] = None,
    ) -> InvocationResult:
        await self._record(ModelCallEvent(
            model_id=descriptor.id, ok=False, duration_ms=duration_ms, error=reason,
        ))
        return InvocationResult(
            model_id=descriptor.id,
            duration_ms=duration_ms,
            error=reason,
            fallback_text=fallback_text(descriptor.name, reason, prompt),
            exception=failure,
        )

    async def _record(self, call: ModelCallEvent) -> None:
        entry = self.metrics.setdefault(call.model_id, {
            "calls": 0,
            "errors": 0,
            "error_rate": 0.0,
            "timeout_rate": 0.0,
        })
        decay = 0.8
        error_rate = entry["error_rate"] * decay
        timeout_rate = entry["timeout_rate"] * decay
        entry["calls"] += 1
        if not call.ok:
            entry["errors"] += 1
            error_rate = min(1.0, error_rate + 0.2)
            if call.error and "timeout" in call.error.lower():
                timeout_rate = min(1.0, timeout_rate + 0.2)
        entry["error_rate"] = round(error_rate, 4)
        entry["timeout_rate"] = round(timeout_rate, 4)
        if call.duration_ms is not None:
            entry["last_latency_ms"] = round(call.duration_ms, 2)
        if self.audit:
            # file append stays off the event loop
            await asyncio.to_thread(self.audit.record, call)
