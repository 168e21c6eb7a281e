import asyncio
import json
import logging
from collections.abc import AsyncIterator

from creaticon.agent.artifact_store import ArtifactStore
from creaticon.agent.artifacts import (
    AnalysisReport,
    ChatMessage,
    GenerationCall,
    GenerationOptions,
    GenerationOutcome,
    GenerationRequest,
    ProviderSpec,
)
from creaticon.agent.dispatcher import ProviderDispatcher
from creaticon.agent.errors import (
    GenerationCancelled,
    GenerationError,
    ProviderAuthenticationError,
    ProvidersExhaustedError,
)
from creaticon.agent.extractor import extract
from creaticon.agent.llm_client import parse_structured
from creaticon.agent.pipeline import PipelineEngine
from creaticon.agent.prompts.generation import GENERATION_SYSTEM_PROMPTS, GENERATION_USER_PROMPT
from creaticon.agent.providers import default_providers
from creaticon.agent.steps import GenerationSteps, build_analysis_call
from creaticon.core.config import settings

logger = logging.getLogger(__name__)


def _analysis_context(analysis: AnalysisReport | None) -> str:
    if analysis is None:
        return ""
    insights = [f"App type: {analysis.app_type} ({analysis.complexity} complexity)"]
    if analysis.key_features:
        insights.append(f"Key features: {', '.join(analysis.key_features)}")
    if analysis.icon_categories:
        insights.append(f"Icon categories: {', '.join(analysis.icon_categories)}")
    if analysis.estimated_icon_count:
        insights.append(f"Aim for about {analysis.estimated_icon_count} icons")
    if analysis.visual_theme:
        insights.append(f"Visual theme: {analysis.visual_theme}")
    if analysis.suggestions:
        insights.append(f"Suggestions: {'; '.join(analysis.suggestions)}")
    return "\nCONTEXT ANALYSIS:\n" + "\n".join(f"- {line}" for line in insights) + "\n"


def build_generation_call(request: GenerationRequest, analysis: AnalysisReport | None) -> GenerationCall:
    return GenerationCall(
        messages=[
            ChatMessage(role="system", content=GENERATION_SYSTEM_PROMPTS[request.kind]),
            ChatMessage(
                role="user",
                content=GENERATION_USER_PROMPT.format(
                    description=request.description,
                    style_preference=request.style_preference,
                    color_scheme=request.color_scheme or "designer's choice",
                    analysis_context=_analysis_context(analysis),
                ),
            ),
        ],
        temperature=settings.GENERATION_TEMPERATURE,
        max_tokens=settings.GENERATION_MAX_TOKENS,
    )


class GenerationOrchestrator:
    """Front door for generation: one-shot analysis, dispatch and extraction, or a full pipeline session."""

    def __init__(
        self,
        dispatcher: ProviderDispatcher | None = None,
        providers: list[ProviderSpec] | None = None,
        *,
        engine: PipelineEngine | None = None,
        store: ArtifactStore | None = None,
    ):
        self.dispatcher = dispatcher or ProviderDispatcher()
        self.providers = providers if providers is not None else default_providers(settings)
        if engine is None:
            engine = PipelineEngine(GenerationSteps(self.dispatcher, self.providers).handlers(), store=store)
        self.engine = engine

    async def analyze(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> AnalysisReport | None:
        """Best-effort context analysis; generation proceeds without it when it fails."""
        try:
            result = await self.dispatcher.dispatch(
                request, build_analysis_call(request), self.providers, cancel=cancel
            )
            return parse_structured(result.raw_text, AnalysisReport)
        except (ProvidersExhaustedError, ValueError) as exc:
            logger.warning("Context analysis failed, proceeding without it: %s", exc)
            return None

    async def generate(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> GenerationOutcome:
        processing_steps = [f"Started {request.kind} generation"]
        analysis = None
        if request.analysis_required:
            processing_steps.append("Analyzing context and requirements")
            analysis = await self.analyze(request, cancel)
            processing_steps.append(
                "Context analysis completed" if analysis else "Context analysis skipped due to error"
            )

        processing_steps.append("Generating design assets")
        result = await self.dispatcher.dispatch(
            request, build_generation_call(request, analysis), self.providers, cancel=cancel
        )
        processing_steps.append(f"Design generation completed by {result.provider}")

        artifacts = extract(result.text, request.kind)
        processing_steps.append(f"Extracted {len(artifacts)} artifacts")
        logger.info(
            "Generated %s %s artifacts via %s in %.0fms.",
            len(artifacts),
            request.kind,
            result.provider,
            result.elapsed_ms,
        )
        return GenerationOutcome(
            request=request,
            analysis=analysis,
            result=result,
            artifacts=artifacts,
            processing_steps=processing_steps,
        )

    async def start_session(
        self,
        request: GenerationRequest,
        options: GenerationOptions | None = None,
    ) -> str:
        return await self.engine.start(request, options)

    async def run_generation_events(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """
        Runs the one-shot flow stage by stage and yields JSON progress events for SSE clients.
        """
        yield json.dumps({"status": "starting", "message": f"Initializing {request.kind} generation..."})
        try:
            analysis = None
            if request.analysis_required:
                yield json.dumps({"status": "analysis", "message": "Analyzing context and requirements..."})
                analysis = await self.analyze(request, cancel)
                yield json.dumps({
                    "status": "analysis_done",
                    "artifact": analysis.model_dump() if analysis else None,
                    "message": "Context analysis completed" if analysis else "Context analysis skipped",
                })

            yield json.dumps({"status": "generating", "message": "Generating design assets..."})
            result = await self.dispatcher.dispatch(
                request, build_generation_call(request, analysis), self.providers, cancel=cancel
            )
            yield json.dumps({
                "status": "generation_done",
                "message": f"Received output from {result.provider}",
                "artifact": {
                    "provider": result.provider,
                    "elapsed_ms": result.elapsed_ms,
                    "attempts": [a.model_dump(mode="json", exclude={"raw_text"}) for a in result.attempts],
                },
            })

            yield json.dumps({"status": "extracting", "message": "Extracting artifacts..."})
            artifacts = extract(result.text, request.kind)
            yield json.dumps({
                "status": "completed",
                "message": f"Generated {len(artifacts)} artifacts.",
                "artifact": {
                    "provider": result.provider,
                    "artifacts": [a.model_dump(mode="json") for a in artifacts],
                },
            })
        except GenerationCancelled as e:
            logger.info("Streaming generation cancelled: %s", e)
            yield json.dumps({"status": "cancelled", "message": str(e)})
        except ProviderAuthenticationError as e:
            logger.error("Generation stopped on authentication failure: %s", e)
            yield json.dumps({"status": "error", "type": "authentication", "message": str(e)})
        except ProvidersExhaustedError as e:
            logger.error("Generation failed on every provider: %s", e)
            yield json.dumps({
                "status": "error",
                "type": "providers_exhausted",
                "message": str(e),
                "failures": e.failures,
            })
        except GenerationError as e:
            logger.error("Generation error: %s", e, exc_info=True)
            yield json.dumps({"status": "error", "message": str(e)})
