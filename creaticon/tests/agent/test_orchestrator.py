import json
import unittest

from creaticon.agent.artifacts import (
    AnalysisReport,
    GenerationAttempt,
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
)
from creaticon.agent.errors import (
    GenerationCancelled,
    ProviderAuthenticationError,
    ProvidersExhaustedError,
)
from creaticon.agent.llm_client import normalize_output
from creaticon.agent.orchestrator import GenerationOrchestrator, build_generation_call

ANALYSIS = json.dumps({"app_type": "music player", "key_features": ["playback"], "estimated_icon_count": 4})
ICONS = (
    "```html\n<html><body><nav>"
    '<svg data-name="play" viewBox="0 0 24 24"></svg>'
    '<svg data-name="pause" viewBox="0 0 24 24"></svg>'
    "</nav></body></html>\n```"
)


def _exhausted():
    return ProvidersExhaustedError([
        GenerationAttempt(provider="openrouter", status="retryable-error", failure="server", status_code=503),
    ])


class ScriptedDispatcher:
    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.calls = []

    async def dispatch(self, request, call, providers, cancel=None):
        self.calls.append(call)
        raw = self.outputs.pop(0)
        if isinstance(raw, Exception):
            raise raw
        return GenerationResult(provider="scripted", text=normalize_output(raw, request.kind), raw_text=raw)


REQUEST = GenerationRequest(description="Icons for a music player", kind="icon-pack", color_scheme="teal")


class GenerationOrchestratorTests(unittest.IsolatedAsyncioTestCase):
    async def test_generate_feeds_analysis_into_generation_prompt(self):
        dispatcher = ScriptedDispatcher([ANALYSIS, ICONS])
        orchestrator = GenerationOrchestrator(dispatcher, providers=[])

        outcome = await orchestrator.generate(REQUEST)

        self.assertEqual(outcome.analysis.app_type, "music player")
        self.assertEqual([a.semantic_name for a in outcome.artifacts], ["play", "pause"])
        generation_prompt = dispatcher.calls[1].messages[-1].content
        self.assertIn("App type: music player", generation_prompt)
        self.assertIn("teal", generation_prompt)
        self.assertIn("Extracted 2 artifacts", outcome.processing_steps)

    async def test_failed_analysis_does_not_block_generation(self):
        dispatcher = ScriptedDispatcher([_exhausted(), ICONS])
        orchestrator = GenerationOrchestrator(dispatcher, providers=[])

        outcome = await orchestrator.generate(REQUEST)

        self.assertIsNone(outcome.analysis)
        self.assertIn("Context analysis skipped due to error", outcome.processing_steps)
        self.assertEqual(len(outcome.artifacts), 2)

    async def test_unparseable_analysis_is_skipped(self):
        dispatcher = ScriptedDispatcher(["I think it is a music app", ICONS])
        orchestrator = GenerationOrchestrator(dispatcher, providers=[])

        outcome = await orchestrator.generate(REQUEST)

        self.assertIsNone(outcome.analysis)

    async def test_analysis_can_be_turned_off(self):
        dispatcher = ScriptedDispatcher([ICONS])
        orchestrator = GenerationOrchestrator(dispatcher, providers=[])

        outcome = await orchestrator.generate(REQUEST.model_copy(update={"analysis_required": False}))

        self.assertEqual(len(dispatcher.calls), 1)
        self.assertNotIn("CONTEXT ANALYSIS", dispatcher.calls[0].messages[-1].content)
        self.assertEqual(len(outcome.artifacts), 2)

    async def test_generation_failure_propagates(self):
        orchestrator = GenerationOrchestrator(ScriptedDispatcher([ANALYSIS, _exhausted()]), providers=[])

        with self.assertRaises(ProvidersExhaustedError):
            await orchestrator.generate(REQUEST)

    async def test_event_stream_reports_each_stage(self):
        orchestrator = GenerationOrchestrator(ScriptedDispatcher([ANALYSIS, ICONS]), providers=[])

        events = [json.loads(e) async for e in orchestrator.run_generation_events(REQUEST)]

        self.assertEqual(
            [e["status"] for e in events],
            ["starting", "analysis", "analysis_done", "generating", "generation_done", "extracting", "completed"],
        )
        self.assertEqual(len(events[-1]["artifact"]["artifacts"]), 2)

    async def test_event_stream_reports_exhaustion_with_failures(self):
        orchestrator = GenerationOrchestrator(ScriptedDispatcher([ANALYSIS, _exhausted()]), providers=[])

        events = [json.loads(e) async for e in orchestrator.run_generation_events(REQUEST)]

        self.assertEqual(events[-1]["status"], "error")
        self.assertEqual(events[-1]["type"], "providers_exhausted")
        self.assertEqual(events[-1]["failures"][0]["provider"], "openrouter")

    async def test_event_stream_reports_authentication_failure(self):
        auth = ProviderAuthenticationError("anthropic", "HTTP 401", [])
        orchestrator = GenerationOrchestrator(ScriptedDispatcher([auth]), providers=[])

        events = [json.loads(e) async for e in orchestrator.run_generation_events(REQUEST)]

        self.assertEqual(events[-1]["type"], "authentication")
        self.assertNotIn("completed", [e["status"] for e in events])

    async def test_event_stream_reports_cancellation(self):
        orchestrator = GenerationOrchestrator(
            ScriptedDispatcher([ANALYSIS, GenerationCancelled("stopped by user")]), providers=[]
        )

        events = [json.loads(e) async for e in orchestrator.run_generation_events(REQUEST)]

        self.assertEqual(events[-1], {"status": "cancelled", "message": "stopped by user"})

    async def test_start_session_runs_a_pipeline(self):
        orchestrator = GenerationOrchestrator(ScriptedDispatcher([ANALYSIS]), providers=[])

        pipeline_id = await orchestrator.start_session(
            REQUEST, GenerationOptions(pause_after_analysis=True)
        )
        pipeline = await orchestrator.engine.wait(pipeline_id)

        self.assertEqual(pipeline.status, "paused")
        self.assertEqual(pipeline.step_data("analyze_request"), None)
        self.assertEqual(pipeline.steps[0].result.data["app_type"], "music player")


def test_generation_call_uses_kind_specific_system_prompt():
    component_call = build_generation_call(REQUEST.model_copy(update={"kind": "component"}), None)
    icon_call = build_generation_call(REQUEST, AnalysisReport(visual_theme="neon"))

    assert component_call.messages[0].content != icon_call.messages[0].content
    assert "Visual theme: neon" in icon_call.messages[1].content
