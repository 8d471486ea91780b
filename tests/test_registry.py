"""Tests for consilium.models.registry."""
import asyncio
import dataclasses
import tempfile
import threading
import unittest
from pathlib import Path

import httpx

from consilium.audit import AuditLog
from consilium.config import load_config
from consilium.models.providers import ProviderError
from consilium.models.registry import (
    DuplicateModelError,
    InvocationResult,
    ModelDescriptor,
    ModelInvocationError,
    ModelNotFoundError,
    ModelRegistry,
)


async def echo(prompt, options):
    return f"echo: {prompt}"


async def unavailable(prompt, options):
    raise ProviderError("HTTP 503: unavailable")


async def refused(prompt, options):
    raise httpx.ConnectError("connection refused")


async def sleepy(prompt, options):
    await asyncio.sleep(5)
    return "late"


async def numeric(prompt, options):
    return 42


def make(model_id, invoker=echo, **kwargs):
    return ModelDescriptor(id=model_id, name=model_id.upper(), provider="Test", invoker=invoker, **kwargs)


class RegistryTests(unittest.TestCase):
    def test_register_and_get(self):
        registry = ModelRegistry()
        descriptor = make("a", expertise=["market_analysis"])
        registry.register(descriptor)
        self.assertIs(registry.get("a"), descriptor)
        self.assertIn("a", registry)
        self.assertEqual(len(registry), 1)

    def test_duplicate_registration_rejected(self):
        registry = ModelRegistry()
        registry.register(make("a"))
        with self.assertRaises(DuplicateModelError):
            registry.register(make("a", invoker=unavailable))
        self.assertIs(registry.get("a").invoker, echo)

    def test_unknown_identifier(self):
        registry = ModelRegistry()
        with self.assertRaises(ModelNotFoundError) as ctx:
            registry.get("missing")
        self.assertEqual(ctx.exception.model_id, "missing")
        self.assertIn("missing", str(ctx.exception))

    def test_require_stops_at_unknown(self):
        registry = ModelRegistry()
        registry.register(make("a"))
        with self.assertRaises(ModelNotFoundError):
            registry.require(["a", "b"])

    def test_list_models_keeps_registration_order(self):
        registry = ModelRegistry()
        for model_id in ["c", "a", "b"]:
            registry.register(make(model_id))
        self.assertEqual([d.id for d in registry.list_models()], ["c", "a", "b"])
        self.assertEqual(registry.model_ids(), ["c", "a", "b"])

    def test_descriptor_is_immutable(self):
        descriptor = make("a", capabilities=["text"], expertise=["risk"])
        self.assertEqual(descriptor.capabilities, ("text",))
        self.assertEqual(descriptor.expertise, ("risk",))
        with self.assertRaises(dataclasses.FrozenInstanceError):
            descriptor.name = "other"

    def test_describe(self):
        registry = ModelRegistry()
        registry.register(make("a", capabilities=["text"], expertise=["risk"]))
        self.assertEqual(registry.describe(), [{
            "id": "a",
            "name": "A",
            "provider": "Test",
            "capabilities": ["text"],
            "expertise": ["risk"],
            "kind": "custom",
        }])

    def test_invocation_error_message(self):
        error = ModelInvocationError("gpt5", asyncio.TimeoutError())
        self.assertEqual(str(error), "gpt5 failed: timeout")
        self.assertIsInstance(error.cause, asyncio.TimeoutError)

    def test_result_content(self):
        ok = InvocationResult(model_id="a", text="hello")
        failed = InvocationResult(model_id="a", error="timeout", fallback_text="[fallback] A")
        self.assertTrue(ok.ok)
        self.assertEqual(ok.content, "hello")
        self.assertFalse(failed.ok)
        self.assertEqual(failed.content, "[fallback] A")


class RegistryFromConfigTests(unittest.TestCase):
    def setUp(self):
        self.models = load_config().get("models", {})

    def test_without_keys_uses_placeholders(self):
        registry = ModelRegistry.from_config(self.models, env={})
        self.assertEqual(registry.get("gpt5").kind, "placeholder")
        self.assertEqual(registry.get("claude").kind, "placeholder")
        self.assertEqual(registry.get("strategy_ai").kind, "placeholder")
        # no key needed for STORM
        self.assertEqual(registry.get("storm").kind, "json_endpoint")

    def test_optional_models_skipped_without_key(self):
        registry = ModelRegistry.from_config(self.models, env={})
        self.assertNotIn("cohere", registry)
        self.assertNotIn("local", registry)
        with_key = ModelRegistry.from_config(self.models, env={"COHERE_API_KEY": "k", "CONSILIUM_OLLAMA": "1"})
        self.assertIn("cohere", with_key)
        self.assertEqual(with_key.get("local").kind, "ollama")

    def test_keys_enable_network_invokers(self):
        registry = ModelRegistry.from_config(self.models, env={"OPENAI_API_KEY": "k"})
        self.assertEqual(registry.get("gpt5").kind, "openai_chat")
        self.assertEqual(registry.get("gpt4").kind, "openai_chat")
        self.assertEqual(registry.get("mistral").kind, "placeholder")

    def test_catalog_order_and_tags(self):
        registry = ModelRegistry.from_config(self.models, env={})
        ids = registry.model_ids()
        self.assertEqual(ids[:3], ["gpt5", "gpt4", "claude"])
        self.assertIn("strategic_planning", registry.get("gpt5").expertise)
        self.assertEqual(registry.get("storm").timeout_seconds, 120.0)

    def test_duplicate_card_rejected(self):
        cards = {"cards": [{"id": "x", "name": "X"}, {"id": "x", "name": "X again"}]}
        with self.assertRaises(DuplicateModelError):
            ModelRegistry.from_config(cards, env={})


class RegistryInvokeTests(unittest.IsolatedAsyncioTestCase):
    async def test_successful_call(self):
        registry = ModelRegistry()
        registry.register(make("a"))
        result = await registry.invoke("a", "analyze growth")
        self.assertTrue(result.ok)
        self.assertEqual(result.text, "echo: analyze growth")
        self.assertIsNone(result.fallback_text)
        self.assertIsNotNone(result.duration_ms)
        self.assertEqual(registry.metrics["a"]["calls"], 1)
        self.assertEqual(registry.metrics["a"]["errors"], 0)

    async def test_provider_error_becomes_fallback(self):
        registry = ModelRegistry()
        registry.register(make("bad", invoker=unavailable))
        result = await registry.invoke("bad", "analyze growth")
        self.assertFalse(result.ok)
        self.assertIsNone(result.text)
        self.assertIn("HTTP 503", result.error)
        self.assertTrue(result.content.startswith("[fallback] BAD analysis unavailable"))
        self.assertIn("analyze growth", result.content)
        self.assertEqual(registry.metrics["bad"]["errors"], 1)
        self.assertAlmostEqual(registry.metrics["bad"]["error_rate"], 0.2)

    async def test_network_error_becomes_fallback(self):
        registry = ModelRegistry()
        registry.register(make("net", invoker=refused))
        result = await registry.invoke("net", "prompt")
        self.assertFalse(result.ok)
        self.assertIn("connection refused", result.error)

    async def test_timeout_becomes_fallback(self):
        registry = ModelRegistry(default_timeout=0.05)
        registry.register(make("slow", invoker=sleepy))
        result = await registry.invoke("slow", "prompt")
        self.assertEqual(result.error, "timeout")
        self.assertAlmostEqual(registry.metrics["slow"]["timeout_rate"], 0.2)

    async def test_descriptor_timeout_overrides_default(self):
        registry = ModelRegistry(default_timeout=30)
        registry.register(make("slow", invoker=sleepy, timeout_seconds=0.05))
        result = await registry.invoke("slow", "prompt")
        self.assertEqual(result.error, "timeout")

    async def test_non_text_response_is_a_failure(self):
        registry = ModelRegistry()
        registry.register(make("num", invoker=numeric))
        result = await registry.invoke("num", "prompt")
        self.assertFalse(result.ok)
        self.assertIn("expected text", result.error)

    async def test_unknown_model_propagates(self):
        registry = ModelRegistry()
        with self.assertRaises(ModelNotFoundError):
            await registry.invoke("nope", "prompt")

    async def test_options_forwarded_without_timeout(self):
        seen = {}

        async def capture(prompt, options):
            seen.update(options)
            return "ok"

        registry = ModelRegistry()
        registry.register(make("a", invoker=capture))
        await registry.invoke("a", "prompt", {"max_tokens": 2000, "temperature": 0.7, "timeout": 5})
        self.assertEqual(seen, {"max_tokens": 2000, "temperature": 0.7})

    async def test_error_rate_accumulates_across_failures(self):
        registry = ModelRegistry()
        registry.register(make("bad", invoker=unavailable))
        await registry.invoke("bad", "prompt")
        await registry.fallback_result("bad", "prompt", "cancelled")
        self.assertAlmostEqual(registry.metrics["bad"]["error_rate"], 0.36)

    async def test_audit_log_records_calls(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            audit = AuditLog(Path(tmpdir) / "audit.jsonl")
            registry = ModelRegistry(audit=audit)
            registry.register(make("a"))
            registry.register(make("bad", invoker=unavailable))
            await registry.invoke("a", "prompt")
            await registry.invoke("bad", "prompt")
            entries = audit.read("model.call")
            self.assertEqual([e["data"]["model_id"] for e in entries], ["a", "bad"])
            self.assertTrue(entries[0]["data"]["ok"])
            self.assertFalse(entries[1]["data"]["ok"])

    async def test_audit_write_runs_off_the_event_loop(self):
        class ThreadRecorder:
            def __init__(self):
                self.calls = []

            def record(self, call):
                self.calls.append((threading.get_ident(), call))

        audit = ThreadRecorder()
        registry = ModelRegistry(audit=audit)
        registry.register(make("a"))
        await registry.invoke("a", "prompt")
        thread_id, call = audit.calls[0]
        self.assertNotEqual(thread_id, threading.get_ident())
        self.assertEqual(call.model_id, "a")
        self.assertTrue(call.ok)

    async def test_failure_carries_invocation_error(self):
        registry = ModelRegistry()
        registry.register(make("bad", invoker=unavailable))
        result = await registry.invoke("bad", "prompt")
        self.assertIsInstance(result.exception, ModelInvocationError)
        self.assertEqual(result.exception.model_id, "bad")
        self.assertIsInstance(result.exception.cause, ProviderError)
        registry.register(make("a"))
        ok = await registry.invoke("a", "prompt")
        self.assertIsNone(ok.exception)

    async def test_skipped_call_has_no_exception(self):
        registry = ModelRegistry()
        registry.register(make("a"))
        result = await registry.fallback_result("a", "prompt", "cancelled")
        self.assertEqual(result.error, "cancelled")
        self.assertIsNone(result.exception)


if __name__ == "__main__":
    unittest.main()
