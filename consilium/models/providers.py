"""Provider invokers: async `(prompt, options) -> text` callables over httpx."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence
import logging
import os

import httpx

logger = logging.getLogger(__name__)

Invoker = Callable[[str, Dict[str, Any]], Awaitable[str]]


class ProviderError(Exception):
    """Raised by an invoker when a provider call cannot produce text."""
    pass


def _dig(data: Any, path: str) -> Any:
    """Follow a dotted path (`choices.0.message.content`) through JSON data."""
    current = data
    for part in path.split("."):
        try:
            if isinstance(current, list):
                current = current[int(part)]
            else:
                current = current[part]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(f"malformed response: missing '{path}'") from exc
    return current


class HttpInvoker:
    """Shared POST/JSON plumbing for network-backed providers."""

    requires_key = True

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or ""
        self.timeout = timeout
        self.transport = transport

    @property
    def available(self) -> bool:
        return bool(self.api_key) or not self.requires_key

    async def _post_json(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        if not self.available:
            raise ProviderError("API key not set")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(url, json=body, headers=headers)
        if not response.is_success:
            raise ProviderError(f"HTTP {response.status_code}: {response.text[:500]}")
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError("malformed response: body is not JSON") from exc

    @staticmethod
    def _as_text(value: Any) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return "".join(value)
        raise ProviderError(f"malformed response: expected text, got {type(value).__name__}")


class OpenAIChatInvoker(HttpInvoker):
    """OpenAI-compatible `/chat/completions` (OpenAI, Mistral, Perplexity, Together)."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str = "https://api.openai.com/v1",
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key=api_key, **kwargs)
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens

    async def __call__(self, prompt: str, options: Dict[str, Any]) -> str:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.get("temperature", 0.7),
        }
        max_tokens = options.get("max_tokens") or self.max_tokens
        if max_tokens:
            body["max_tokens"] = max_tokens
        data = await self._post_json(
            f"{self.base_url}/chat/completions",
            body,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        return self._as_text(_dig(data, "choices.0.message.content"))


class AnthropicInvoker(HttpInvoker):
    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str = "https://api.anthropic.com/v1",
        max_tokens: int = 4000,
        version: str = "2023-06-01",
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key=api_key, **kwargs)
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.version = version

    async def __call__(self, prompt: str, options: Dict[str, Any]) -> str:
        body = {
            "model": self.model,
            "max_tokens": options.get("max_tokens") or self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if "temperature" in options:
            body["temperature"] = options["temperature"]
        data = await self._post_json(
            f"{self.base_url}/messages",
            body,
            headers={"x-api-key": self.api_key, "anthropic-version": self.version},
        )
        return self._as_text(_dig(data, "content.0.text"))


class GeminiInvoker(HttpInvoker):
    """Native Gemini `generateContent` call."""

    MODEL_MAP = {
        "2.5-flash": "gemini-2.5-flash",
        "2.5-pro": "gemini-2.5-pro",
        "2.0-flash": "gemini-2.0-flash",
        "1.5-pro": "gemini-1.5-pro",
    }

    def __init__(
        self,
        model: str = "2.5-flash",
        api_key: str | None = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key=api_key, **kwargs)
        self.model = self.MODEL_MAP.get(model, model)
        self.base_url = base_url.rstrip("/")

    async def __call__(self, prompt: str, options: Dict[str, Any]) -> str:
        generation: Dict[str, Any] = {"temperature": options.get("temperature", 0.7)}
        if options.get("max_tokens"):
            generation["maxOutputTokens"] = options["max_tokens"]
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation,
        }
        url = f"{self.base_url}/models/{self.model}:generateContent?key={self.api_key}"
        data = await self._post_json(url, body)
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            raise ProviderError("No candidates in response")
        parts = _dig(candidates[0], "content.parts")
        return "".join(self._as_text(part.get("text", "")) for part in parts)


class OllamaInvoker(HttpInvoker):
    """Local Ollama inference; no API key involved."""

    requires_key = False

    def __init__(self, model: str, base_url: str = "http://localhost:11434", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.model = model
        self.base_url = base_url.rstrip("/")

    async def __call__(self, prompt: str, options: Dict[str, Any]) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": options.get("temperature", 0.7)},
        }
        if options.get("max_tokens"):
            payload["options"]["num_predict"] = options["max_tokens"]
        data = await self._post_json(f"{self.base_url}/api/generate", payload)
        return self._as_text(_dig(data, "response"))


class JsonEndpointInvoker(HttpInvoker):
    """Generic JSON POST endpoint with the prompt under one key.

    Used for providers whose request bodies differ only in field names:
    Abacus, Genspark, Manus, STORM, Cohere, Hugging Face, Replicate.
    """

    def __init__(
        self,
        url: str,
        response_path: str,
        prompt_field: str = "prompt",
        api_key: str | None = None,
        auth_scheme: str = "Bearer",
        extra: Mapping[str, Any] | None = None,
        max_tokens_field: str | None = None,
        requires_key: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key=api_key, **kwargs)
        self.url = url
        self.response_path = response_path
        self.prompt_field = prompt_field
        self.auth_scheme = auth_scheme
        self.extra = dict(extra or {})
        self.max_tokens_field = max_tokens_field
        self.requires_key = requires_key

    async def __call__(self, prompt: str, options: Dict[str, Any]) -> str:
        body = dict(self.extra)
        body[self.prompt_field] = prompt
        if self.max_tokens_field and options.get("max_tokens"):
            body[self.max_tokens_field] = options["max_tokens"]
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"{self.auth_scheme} {self.api_key}"
        data = await self._post_json(self.url, body, headers=headers)
        return self._as_text(_dig(data, self.response_path))


class PlaceholderInvoker:
    """Offline stand-in producing a labeled analysis stub."""

    def __init__(self, name: str, expertise: Sequence[str] = ()) -> None:
        self.name = name
        self.expertise = list(expertise)

    async def __call__(self, prompt: str, options: Dict[str, Any]) -> str:
        focus = ", ".join(self.expertise) or "general"
        return (
            f"{self.name} Analysis: {prompt[:100]}... "
            f"[Specialized {focus} analysis would be provided here]"
        )


INVOKER_KINDS: Dict[str, type] = {
    "openai_chat": OpenAIChatInvoker,
    "anthropic": AnthropicInvoker,
    "gemini": GeminiInvoker,
    "ollama": OllamaInvoker,
    "json_endpoint": JsonEndpointInvoker,
}


def build_invoker(
    card: Dict[str, Any],
    env: Mapping[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[str, Invoker]:
    """Build the invoker for a catalog card; returns `(kind, invoker)`.

    A card whose API key variable is unset falls back to the placeholder
    invoker so the catalog stays usable offline.
    """
    env = os.environ if env is None else env
    spec = dict(card.get("invoker") or {})
    kind = str(spec.pop("kind", "placeholder"))
    name = str(card.get("name") or card.get("id"))
    expertise = card.get("expertise") or []
    if kind == "placeholder":
        return kind, PlaceholderInvoker(name, expertise)
    cls = INVOKER_KINDS.get(kind)
    if cls is None:
        raise ValueError(f"unknown invoker kind '{kind}' for model {card.get('id')}")
    key_env = spec.pop("api_key_env", None)
    if key_env:
        api_key = env.get(key_env, "")
        if not api_key:
            logger.info("%s not set; %s uses placeholder responses", key_env, card.get("id"))
            return "placeholder", PlaceholderInvoker(name, expertise)
        spec["api_key"] = api_key
    elif kind == "json_endpoint":
        spec.setdefault("requires_key", False)
    return kind, cls(transport=transport, **spec)
