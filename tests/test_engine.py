"""End-to-end tests for the coordination engine with in-process invokers."""
import asyncio
import unittest

from consilium.config import Config, load_config
from consilium.dispatch import Dispatcher
from consilium.engine import AnalysisRequest, CoordinationEngine, ResearchRequest
from consilium.errors import InvalidRequestError
from consilium.models.providers import ProviderError
from consilium.models.registry import ModelDescriptor, ModelNotFoundError, ModelRegistry
from consilium.synthesis import CoordinationStrategy


class Recorder:
    """Invoker that records each call and answers with a fixed text."""

    def __init__(self, text, fail=False):
        self.text = text
        self.fail = fail
        self.calls = []

    async def __call__(self, prompt, options):
        self.calls.append((prompt, dict(options)))
        if self.fail:
            raise ProviderError("HTTP 502: bad gateway")
        return self.text


def build_engine(**invokers):
    registry = ModelRegistry()
    expertise = {"a": ["corporate_strategy"], "b": ["risk_assessment"], "c": ["market_analysis"]}
    for model_id, invoker in invokers.items():
        registry.register(ModelDescriptor(
            id=model_id,
            name=model_id.upper(),
            provider="Test",
            invoker=invoker,
            capabilities=["analysis"],
            expertise=expertise.get(model_id, ()),
        ))
    dispatcher = Dispatcher(
        registry,
        routing={"strategic_analysis": ["a", "b"]},
        default_models=["c"],
        research_models=["b", "c"],
    )
    return CoordinationEngine(registry, dispatcher)


class AnalysisTests(unittest.IsolatedAsyncioTestCase):
    async def test_routed_analysis(self):
        a, b, c = Recorder("strategy text"), Recorder("risk text"), Recorder("market text")
        engine = build_engine(a=a, b=b, c=c)
        result = await engine.run_analysis({"type": "strategic_analysis", "topic": "Corporate growth"})
        self.assertEqual(result.models_used, ["a", "b"])
        self.assertEqual(len(a.calls), 1)
        self.assertEqual(len(b.calls), 1)
        self.assertEqual(c.calls, [])
        self.assertEqual(result.strategy, CoordinationStrategy.IQ_INTEGRATION)
        self.assertEqual(result.analysis_depth, "phd_level")
        self.assertGreater(result.confidence, 0)
        self.assertLessEqual(result.confidence, 10)
        prompt, options = a.calls[0]
        self.assertIn("Topic: Corporate growth", prompt)
        self.assertEqual(options, {"max_tokens": 4000, "temperature": 0.7})

    async def test_unknown_type_uses_default_models(self):
        c = Recorder("market text")
        engine = build_engine(a=Recorder("x"), c=c)
        result = await engine.run_analysis(AnalysisRequest(type="pricing", topic="Price", depth="basic"))
        self.assertEqual(result.models_used, ["c"])
        self.assertEqual(c.calls[0][1]["max_tokens"], 2000)

    async def test_one_failure_still_synthesizes(self):
        engine = build_engine(a=Recorder("strategy text"), b=Recorder("", fail=True))
        result = await engine.run_analysis({"type": "strategic_analysis", "topic": "growth"})
        self.assertEqual(result.models_used, ["a", "b"])
        self.assertGreater(result.confidence, 0)
        self.assertIn("b (fallback)", result.summary)
        self.assertIn("strategy text", result.summary)

    async def test_explicit_models_override_routing(self):
        a, c = Recorder("a text"), Recorder("c text")
        engine = build_engine(a=a, b=Recorder("b"), c=c)
        result = await engine.run_analysis({"topic": "growth", "models": ["c", "a"]})
        self.assertEqual(result.models_used, ["c", "a"])

    async def test_explicit_strategy(self):
        engine = build_engine(a=Recorder("strategy text"), b=Recorder("risk text"))
        result = await engine.run_analysis({
            "type": "strategic_analysis",
            "topic": "risk",
            "strategy": "expert_selection",
        })
        self.assertEqual(result.strategy, CoordinationStrategy.EXPERT_SELECTION)
        self.assertEqual(result.insights, "risk text")

    async def test_unknown_explicit_model_fails_before_calls(self):
        a = Recorder("a text")
        engine = build_engine(a=a)
        with self.assertRaises(ModelNotFoundError):
            await engine.run_analysis({"topic": "growth", "models": ["a", "ghost"]})
        self.assertEqual(a.calls, [])

    async def test_duplicate_explicit_models(self):
        engine = build_engine(a=Recorder("a"))
        with self.assertRaises(InvalidRequestError):
            await engine.run_analysis({"topic": "growth", "models": ["a", "a"]})

    async def test_empty_routing_gives_zero_confidence(self):
        engine = build_engine(z=Recorder("z"))
        result = await engine.run_analysis({"type": "strategic_analysis", "topic": "growth"})
        self.assertEqual(result.models_used, [])
        self.assertEqual(result.confidence, 0.0)
        self.assertIn("No responses available", result.summary)

    async def test_cancelled_fan_out(self):
        a = Recorder("a text")
        engine = build_engine(a=a, b=Recorder("b text"))
        cancel = asyncio.Event()
        cancel.set()
        result = await engine.run_analysis({"type": "strategic_analysis", "topic": "growth"}, cancel=cancel)
        self.assertEqual(a.calls, [])
        self.assertIn("2 of 2 models returned fallback responses", result.summary)

    async def test_to_dict(self):
        engine = build_engine(a=Recorder("a"), b=Recorder("b"))
        payload = (await engine.run_analysis({"type": "strategic_analysis", "topic": "growth"})).to_dict()
        self.assertEqual(payload["strategy"], "iq_integration")
        self.assertEqual(payload["models_used"], ["a", "b"])


class RequestValidationTests(unittest.TestCase):
    def test_missing_topic(self):
        with self.assertRaises(InvalidRequestError):
            AnalysisRequest.from_dict({"type": "strategic_analysis"})

    def test_bad_depth(self):
        with self.assertRaises(InvalidRequestError):
            AnalysisRequest(type="strategic_analysis", topic="x", depth="genius")

    def test_models_must_be_a_list(self):
        with self.assertRaises(InvalidRequestError):
            AnalysisRequest(type="strategic_analysis", topic="x", models="gpt5")
        with self.assertRaises(InvalidRequestError):
            AnalysisRequest(type="strategic_analysis", topic="x", models=["gpt5", ""])

    def test_unknown_strategy(self):
        with self.assertRaises(InvalidRequestError):
            AnalysisRequest(type="strategic_analysis", topic="x", strategy="coin_flip")

    def test_defaults_from_dict(self):
        request = AnalysisRequest.from_dict({"topic": "  growth  "})
        self.assertEqual(request.type, "strategic_analysis")
        self.assertEqual(request.topic, "growth")
        self.assertEqual(request.depth, "phd_level")
        self.assertIsNone(request.models)

    def test_research_format(self):
        with self.assertRaises(InvalidRequestError):
            ResearchRequest(query="q", format="poem")
        with self.assertRaises(InvalidRequestError):
            ResearchRequest(query="q", sources="arxiv")
        with self.assertRaises(InvalidRequestError):
            ResearchRequest.from_dict({"sources": ["arxiv"]})


class ResearchTests(unittest.IsolatedAsyncioTestCase):
    async def test_research_uses_research_models(self):
        b, c = Recorder("b findings"), Recorder("c findings")
        engine = build_engine(a=Recorder("a"), b=b, c=c)
        result = await engine.run_research({"query": "AI adoption", "sources": ["Gartner"]})
        self.assertEqual(result.models_used, ["b", "c"])
        prompt, options = b.calls[0]
        self.assertIn("Query: AI adoption", prompt)
        self.assertIn("Preferred Sources: Gartner", prompt)
        self.assertEqual(options, {"max_tokens": 3000, "temperature": 0.6})
        self.assertEqual(result.contributions, ["b: 70.0% contribution", "c: 70.0% contribution"])
        self.assertAlmostEqual(result.confidence, 9.0)
        self.assertIn("Gartner", result.sources)

    async def test_explicit_research_models(self):
        a = Recorder("a findings")
        engine = build_engine(a=a, b=Recorder("b"), c=Recorder("c"))
        result = await engine.run_research(ResearchRequest(query="q", models=["a"], format="presentation"))
        self.assertEqual(result.models_used, ["a"])
        self.assertIn("presentation", result.analysis)

    async def test_research_unknown_model(self):
        engine = build_engine(a=Recorder("a"))
        with self.assertRaises(ModelNotFoundError):
            await engine.run_research({"query": "q", "models": ["nobody"]})


class FromConfigTests(unittest.IsolatedAsyncioTestCase):
    async def test_offline_catalog(self):
        engine = CoordinationEngine.from_config(Config(load_config()), env={})
        self.assertIn("gpt5", engine.registry)
        self.assertNotIn("cohere", engine.dispatcher.select_models("financial_analysis"))
        result = await engine.run_analysis({
            "type": "financial_analysis",
            "topic": "Cash flow planning",
            "models": ["financial_ai", "strategy_ai"],
        })
        self.assertEqual(result.models_used, ["financial_ai", "strategy_ai"])
        self.assertIn("Financial AI Specialist Analysis", result.summary)

    def test_list_strategies(self):
        names = [s["name"] for s in CoordinationEngine.list_strategies()]
        self.assertEqual(names, [s.value for s in CoordinationStrategy])


if __name__ == "__main__":
    unittest.main()
